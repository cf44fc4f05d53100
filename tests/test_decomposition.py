import numpy as np
import pandas as pd
import pytest

from forecaster_src.decomposition_utils import (
    DecompositionConfig, DecompositionMethod, DecompositionType, STLDecomposer, decompose
)
from forecaster_src.errors import DomainError, InsufficientDataError, IrregularSeriesError
from forecaster_src.series_utils import TimeSeries


@pytest.mark.parametrize("method", [DecompositionMethod.LOCAL_REGRESSION, DecompositionMethod.MOVING_AVERAGE])
@pytest.mark.parametrize("kind", [DecompositionType.ADDITIVE, DecompositionType.MULTIPLICATIVE])
def test_components_reconstruct_observed(quarterly_series, method, kind):
    result = decompose(quarterly_series, DecompositionConfig(method=method, type=kind))
    assert result.trend.index.equals(quarterly_series.index)
    np.testing.assert_allclose(result.reconstruct().to_numpy(), quarterly_series.values, rtol=1e-8)


def test_robust_stl_keeps_outlier_in_remainder(quarterly_series):
    values = quarterly_series.values
    values[20] += 60.0
    spiked = quarterly_series.with_values(values)
    result = decompose(spiked, DecompositionConfig(robust=True, robust_iterations=5))
    remainder = result.remainder.to_numpy()
    assert np.argmax(np.abs(remainder)) == 20
    np.testing.assert_allclose(result.reconstruct().to_numpy(), values, rtol=1e-8)


def test_default_stl_seasonal_window():
    decomposer = STLDecomposer()
    assert decomposer._seasonal_window(4) == 7
    assert decomposer._seasonal_window(12) == 13
    assert STLDecomposer(DecompositionConfig(seasonal_window=4))._seasonal_window(4) == 5


def test_seasonal_pattern_recovered(quarterly_series):
    result = decompose(quarterly_series, DecompositionConfig(method=DecompositionMethod.MOVING_AVERAGE))
    shape = result.seasonal.to_numpy()[:4]
    # the generating pattern is [1, -1, 0.5, -0.5] * 6
    assert np.argmax(shape) == 0
    assert np.argmin(shape) == 1


def test_seasonal_forecast_repeats_last_cycle(quarterly_series):
    result = decompose(quarterly_series)
    last = result.seasonal.to_numpy()[-4:]
    np.testing.assert_allclose(result.seasonal_forecast(6), np.concatenate([last, last[:2]]))


def test_annual_series_has_no_seasonality(annual_series):
    add = decompose(annual_series)
    assert np.all(add.seasonal.to_numpy() == 0.0)
    np.testing.assert_allclose(add.reconstruct().to_numpy(), annual_series.values, rtol=1e-8)

    mult = decompose(annual_series, DecompositionConfig(method=DecompositionMethod.MOVING_AVERAGE,
                                                        type=DecompositionType.MULTIPLICATIVE))
    assert np.all(mult.seasonal.to_numpy() == 1.0)
    np.testing.assert_allclose(mult.reconstruct().to_numpy(), annual_series.values, rtol=1e-8)


def test_one_cycle_is_insufficient(quarterly_series):
    with pytest.raises(InsufficientDataError):
        decompose(quarterly_series.subset(0, 7))


def test_multiplicative_requires_positive_values(quarterly_series):
    negative = quarterly_series.shifted(-150.0)
    with pytest.raises(DomainError):
        decompose(negative, DecompositionConfig(type=DecompositionType.MULTIPLICATIVE))


def test_irregular_series_rejected():
    index = pd.PeriodIndex(["2000Q1", "2000Q2", "2000Q3", "2001Q1", "2001Q2", "2001Q3", "2001Q4",
                            "2002Q1", "2002Q2"], freq="Q")
    series = TimeSeries(np.arange(1.0, 10.0), index, "Q")
    with pytest.raises(IrregularSeriesError):
        decompose(series)


def test_adjusted_series_removes_seasonal(quarterly_series):
    result = decompose(quarterly_series)
    adjusted = result.adjusted_series()
    np.testing.assert_allclose(adjusted.values + result.seasonal.to_numpy(), quarterly_series.values)
    assert adjusted.index.equals(quarterly_series.index)
