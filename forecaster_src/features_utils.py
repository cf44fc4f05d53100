# forecaster_src/features_utils.py

"""
Exploratory features of a single series.

Tabular counterparts of the usual exploratory plots: the seasonal profile
(one line per year), seasonal subseries (one panel per season with its mean),
lag correlations and the autocorrelation function, plus the Guerrero lambda
as a scalar feature.
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.stattools import acf

from .series_utils import Frequency, TimeSeries
from .transform_utils import DEFAULT_LAMBDA_BOUNDS, guerrero_lambda

logger = logging.getLogger(__name__)


def season_of(index: pd.PeriodIndex, frequency: Frequency) -> np.ndarray:
    """Position within the year: quarter (1-4), month (1-12) or 1 for annual data."""
    if frequency == Frequency.QUARTERLY:
        return np.asarray(index.quarter)
    if frequency == Frequency.MONTHLY:
        return np.asarray(index.month)
    return np.ones(len(index), dtype=int)


def guerrero_feature(series: TimeSeries,
                     bounds: Tuple[float, float] = DEFAULT_LAMBDA_BOUNDS) -> Dict[str, float]:
    """Guerrero Box-Cox lambda as a named feature."""
    return {"lambda_guerrero": guerrero_lambda(series, lower=bounds[0], upper=bounds[1])}


def seasonal_profile(series: TimeSeries) -> pd.DataFrame:
    """
    Year x season table of values.

    Rows are calendar years, columns are seasons (quarters or months). Missing
    cells (incomplete first or last year) are NaN.
    """
    idx = series.index
    frame = pd.DataFrame({
        "year": np.asarray(idx.year),
        "season": season_of(idx, series.frequency),
        "value": series.values,
    })
    profile = frame.pivot(index="year", columns="season", values="value")
    profile.columns.name = "season"
    return profile


def seasonal_subseries(series: TimeSeries) -> pd.DataFrame:
    """
    Long table of seasonal subseries with each season's mean.

    Returns
    -------
    pd.DataFrame
        Columns: season, year, value, season_mean
    """
    idx = series.index
    frame = pd.DataFrame({
        "season": season_of(idx, series.frequency),
        "year": np.asarray(idx.year),
        "value": series.values,
    })
    frame["season_mean"] = frame.groupby("season")["value"].transform("mean")
    return frame.sort_values(["season", "year"]).reset_index(drop=True)


def lagged_pairs(series: TimeSeries, lag: int) -> pd.DataFrame:
    """Pairs (y_t, y_{t-lag}) with the season of t, for lag scatter plots."""
    if lag < 1:
        raise ValueError(f"lag must be a positive integer, got {lag}")
    values = series.values
    idx = series.index
    return pd.DataFrame({
        "period": idx[lag:].astype(str),
        "season": season_of(idx[lag:], series.frequency),
        "value": values[lag:],
        "lagged": values[:-lag],
    })


def lag_correlations(series: TimeSeries, lags: Optional[Iterable[int]] = None) -> pd.Series:
    """
    Pearson correlation of y_t with y_{t-k} for each lag k.

    Lags without at least three pairs are NaN. Defaults to lags 1-9.
    """
    lags = list(lags) if lags is not None else list(range(1, 10))
    values = series.values
    out = {}
    for k in lags:
        if len(values) - k < 3:
            out[k] = np.nan
            continue
        a, b = values[k:], values[:-k]
        if np.std(a) == 0 or np.std(b) == 0:
            out[k] = np.nan
            continue
        out[k] = float(np.corrcoef(a, b)[0, 1])
    result = pd.Series(out, name="lag_correlation", dtype=float)
    result.index.name = "lag"
    return result


def autocorrelations(series: TimeSeries, nlags: Optional[int] = None) -> pd.Series:
    """
    Sample autocorrelation function for lags 1..nlags.

    nlags defaults to 2 * period for seasonal series and 10 for annual series,
    capped at n - 1.
    """
    n = len(series)
    if nlags is None:
        nlags = 2 * series.period if series.frequency.is_seasonal else 10
    nlags = int(min(nlags, n - 1))
    if nlags < 1:
        return pd.Series(dtype=float, name="acf")
    values = np.asarray(acf(series.values, nlags=nlags, fft=False))[1:]
    result = pd.Series(values, index=pd.RangeIndex(1, nlags + 1, name="lag"), name="acf")
    return result
