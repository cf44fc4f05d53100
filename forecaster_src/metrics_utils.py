# forecaster_src/metrics_utils.py

import logging
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from .errors import RangeError
from .series_utils import TimeSeries

logger = logging.getLogger(__name__)

ArrayLike = Union[List[float], np.ndarray, pd.Series]

POINT_METRICS = ("ME", "RMSE", "MAE", "MPE", "MAPE", "MASE", "RMSSE", "ACF1")


def to_1d_array(x: ArrayLike) -> np.ndarray:
    """
    Convert input to a 1D float array (non-finite values kept).
    """
    return np.asarray(x, dtype=float).ravel()


def _paired(y_true: ArrayLike, y_hat: ArrayLike) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pair actuals and forecasts position by position, dropping pairs where either is non-finite.
    """
    yt = to_1d_array(y_true)
    yh = to_1d_array(y_hat)
    n = min(len(yt), len(yh))
    yt, yh = yt[:n], yh[:n]
    mask = np.isfinite(yt) & np.isfinite(yh)
    return yt[mask], yh[mask]


def me(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """Mean error (actual - forecast); positive values mean under-forecasting."""
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.mean(yt - yh))


def mae(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Calculate Mean Absolute Error.

    Parameters
    ----------
    y_true : ArrayLike
        True values
    y_hat : ArrayLike
        Predicted values

    Returns
    -------
    float
        Mean absolute error, or NaN if no valid pairs
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.mean(np.abs(yh - yt)))


def rmse(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Calculate Root Mean Square Error.

    sqrt(mean((forecast - actual)**2)) over the valid pairs.

    Returns
    -------
    float
        Root mean square error, or NaN if no valid pairs
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.sqrt(np.mean((yh - yt) ** 2)))


def mpe(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """Mean percentage error in percent, mean((actual - forecast) / actual) * 100.

    NaN when any actual is exactly zero.
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0 or (yt == 0).any():
        return float("nan")
    return float(np.mean((yt - yh) / yt) * 100.0)


def mape(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Calculate Mean Absolute Percentage Error.

    mean(|forecast - actual| / |actual|) * 100 over the valid pairs.

    Parameters
    ----------
    y_true : ArrayLike
        True values
    y_hat : ArrayLike
        Predicted values

    Returns
    -------
    float
        MAPE as percentage, or NaN if there are no valid pairs or any actual is
        exactly zero

    Notes
    -----
    A zero actual makes the percentage error undefined. The metric is flagged
    as NaN rather than raising or returning infinity, so callers aggregating
    across folds can skip it.
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    if (yt == 0).any():
        logger.debug("MAPE undefined: %d actual value(s) are exactly zero", int((yt == 0).sum()))
        return float("nan")
    return float(np.mean(np.abs(yh - yt) / np.abs(yt)) * 100.0)


def _naive_scale(y_train: ArrayLike, m: int, power: int) -> float:
    tr = to_1d_array(y_train)
    tr = tr[np.isfinite(tr)]
    m = max(int(m), 1)
    if len(tr) <= m:
        return float("nan")
    diffs = tr[m:] - tr[:-m]
    scale = np.mean(np.abs(diffs) ** power)
    if not np.isfinite(scale) or scale <= 0.0:
        return float("nan")
    return float(scale)


def mase(y_true: ArrayLike, y_hat: ArrayLike, y_train: ArrayLike, m: int = 1) -> float:
    """
    Calculate Mean Absolute Scaled Error.

    MASE scales the MAE by the in-sample MAE of the seasonal naive method
    (lag ``m``) on the training data.

    Parameters
    ----------
    y_true : ArrayLike
        True values
    y_hat : ArrayLike
        Predicted values
    y_train : ArrayLike
        Training data for scaling reference
    m : int, default=1
        Seasonal period (1 for non-seasonal data)

    Returns
    -------
    float
        MASE value, or NaN if computation is not possible

    Notes
    -----
    Values < 1 indicate the forecast beats the in-sample seasonal naive forecast.
    """
    num = mae(y_true, y_hat)
    scale = _naive_scale(y_train, m, power=1)
    if not np.isfinite(num) or not np.isfinite(scale):
        return float("nan")
    return float(num / scale)


def rmsse(y_true: ArrayLike, y_hat: ArrayLike, y_train: ArrayLike, m: int = 1) -> float:
    """Root Mean Squared Scaled Error (squared-error analogue of MASE)."""
    yt, yh = _paired(y_true, y_hat)
    scale = _naive_scale(y_train, m, power=2)
    if yt.size == 0 or not np.isfinite(scale):
        return float("nan")
    return float(np.sqrt(np.mean((yt - yh) ** 2) / scale))


def acf1(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    """Lag-1 autocorrelation of the errors."""
    yt, yh = _paired(y_true, y_hat)
    if yt.size < 3:
        return float("nan")
    e = (yt - yh) - np.mean(yt - yh)
    denom = float(np.sum(e * e))
    if denom <= 0.0:
        return float("nan")
    return float(np.sum(e[1:] * e[:-1]) / denom)


def _as_series(x) -> pd.Series:
    if isinstance(x, TimeSeries):
        return x.series
    mean = getattr(x, "mean", None)
    if isinstance(mean, pd.Series):
        return mean
    if isinstance(x, pd.Series):
        return x
    raise TypeError(f"Expected a TimeSeries, Forecast or pandas Series, got {type(x).__name__}")


def align_on_overlap(forecast, actuals) -> Tuple[np.ndarray, np.ndarray, pd.Index]:
    """
    Align forecast values and actuals on their overlapping periods.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray, pd.Index]
        (actuals, forecasts, common index)

    Raises
    ------
    RangeError
        If the two index sets do not overlap
    """
    fc = _as_series(forecast)
    act = _as_series(actuals)
    common = fc.index.intersection(act.index)
    if len(common) == 0:
        raise RangeError(
            f"Forecast periods {fc.index.min()}..{fc.index.max()} do not overlap the actuals"
        )
    return act.loc[common].to_numpy(dtype=float), fc.loc[common].to_numpy(dtype=float), common


def accuracy(forecast,
             actuals,
             training: Optional[Union[TimeSeries, pd.Series, np.ndarray]] = None,
             period: int = 1) -> Dict[str, float]:
    """
    Point accuracy of a forecast over the periods it shares with the actuals.

    Parameters
    ----------
    forecast : Forecast, TimeSeries or pd.Series
        Forecast (or in-sample fitted values) indexed by period
    actuals : TimeSeries or pd.Series
        Observed values
    training : TimeSeries, pd.Series or array, optional
        Training values used to scale MASE and RMSSE
    period : int, default=1
        Seasonal period for the scaling naive method

    Returns
    -------
    Dict[str, float]
        ME, RMSE, MAE, MPE, MAPE, MASE, RMSSE, ACF1 and n (number of pairs)
    """
    yt, yh, _ = align_on_overlap(forecast, actuals)
    if isinstance(training, TimeSeries):
        train_values = training.values
    elif training is not None:
        train_values = to_1d_array(training)
    else:
        train_values = None

    result = {
        "ME": me(yt, yh),
        "RMSE": rmse(yt, yh),
        "MAE": mae(yt, yh),
        "MPE": mpe(yt, yh),
        "MAPE": mape(yt, yh),
        "MASE": mase(yt, yh, train_values, m=period) if train_values is not None else float("nan"),
        "RMSSE": rmsse(yt, yh, train_values, m=period) if train_values is not None else float("nan"),
        "ACF1": acf1(yt, yh),
        "n": float(np.sum(np.isfinite(yt) & np.isfinite(yh))),
    }
    return result


def interval_coverage(lower: ArrayLike, upper: ArrayLike, y_true: ArrayLike) -> float:
    """Share of actuals falling inside [lower, upper]."""
    lo, hi, yt = (to_1d_array(v) for v in (lower, upper, y_true))
    n = min(len(lo), len(hi), len(yt))
    lo, hi, yt = lo[:n], hi[:n], yt[:n]
    mask = np.isfinite(yt) & ~np.isnan(lo) & ~np.isnan(hi)
    if not mask.any():
        return float("nan")
    inside = (yt[mask] >= lo[mask]) & (yt[mask] <= hi[mask])
    return float(np.mean(inside))


def winkler_score(lower: ArrayLike, upper: ArrayLike, y_true: ArrayLike, level: int = 95) -> float:
    """
    Mean Winkler interval score.

    Interval width plus a penalty of (2 / alpha) times the distance by which an
    actual falls outside the interval, where alpha = 1 - level / 100.
    """
    lo, hi, yt = (to_1d_array(v) for v in (lower, upper, y_true))
    n = min(len(lo), len(hi), len(yt))
    lo, hi, yt = lo[:n], hi[:n], yt[:n]
    mask = np.isfinite(yt) & np.isfinite(lo) & np.isfinite(hi)
    if not mask.any():
        return float("nan")
    lo, hi, yt = lo[mask], hi[mask], yt[mask]
    alpha = 1.0 - level / 100.0
    score = (hi - lo) + (2.0 / alpha) * ((lo - yt) * (yt < lo) + (yt - hi) * (yt > hi))
    return float(np.mean(score))


def interval_accuracy(forecast, actuals, level: int = 95) -> Dict[str, float]:
    """Coverage and Winkler score of one interval level over the overlapping periods."""
    lower = forecast.lower(level)
    upper = forecast.upper(level)
    act = _as_series(actuals)
    common = lower.index.intersection(act.index)
    if len(common) == 0:
        raise RangeError("Forecast intervals do not overlap the actuals")
    yt = act.loc[common]
    return {
        f"coverage_{level}": interval_coverage(lower.loc[common], upper.loc[common], yt),
        f"winkler_{level}": winkler_score(lower.loc[common], upper.loc[common], yt, level=level),
    }
