import numpy as np
import pandas as pd
import pytest

from forecaster_src.series_utils import Frequency, TimeSeries


def make_quarterly_series(n=40, start="1992Q1", seed=42, level=100.0, slope=0.8,
                          amplitude=6.0, noise=1.0, name="cement"):
    """Trend + fixed quarterly pattern + Gaussian noise, strictly positive."""
    rng = np.random.default_rng(seed)
    t = np.arange(n)
    pattern = np.array([1.0, -1.0, 0.5, -0.5])
    values = level + slope * t + amplitude * pattern[t % 4] + rng.normal(0, noise, size=n)
    index = pd.period_range(start=start, periods=n, freq="Q")
    return TimeSeries(values, index, Frequency.QUARTERLY, name=name)


def make_growing_seasonal_series(n_years=10, start="1990Q1"):
    """
    Quarterly series whose seasonal swing grows faster than its level.

    Yearly means 100 * 1.15**k, seasonal amplitude 0.02 * mean**1.5 and a
    zero-sum quarterly pattern, so the within-year standard deviation is
    proportional to mean**1.5.
    """
    pattern = np.array([1.0, -1.0, 0.5, -0.5])
    values = []
    for k in range(n_years):
        m = 100.0 * 1.15 ** k
        values.extend(m + 0.02 * m ** 1.5 * pattern)
    index = pd.period_range(start=start, periods=4 * n_years, freq="Q")
    return TimeSeries(values, index, Frequency.QUARTERLY, name="growing")


def make_annual_series(n=20, start="2000", seed=7):
    rng = np.random.default_rng(seed)
    values = 50.0 + 1.5 * np.arange(n) + rng.normal(0, 1.0, size=n)
    index = pd.period_range(start=start, periods=n, freq="Y")
    return TimeSeries(values, index, Frequency.ANNUAL, name="annual")


@pytest.fixture
def quarterly_series():
    return make_quarterly_series()


@pytest.fixture
def growing_series():
    return make_growing_seasonal_series()


@pytest.fixture
def annual_series():
    return make_annual_series()


@pytest.fixture
def pure_seasonal_series():
    return make_quarterly_series(n=24, slope=0.0, noise=0.0, name="pattern")
