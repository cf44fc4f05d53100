import numpy as np
import pandas as pd
import pytest

from forecaster_src.errors import RangeError
from forecaster_src.forecasting_utils import BenchmarkMethod, BenchmarkSpec, fit_model
from forecaster_src.metrics_utils import (
    accuracy, acf1, interval_accuracy, interval_coverage, mae, mape, mase, me, mpe, rmse, rmsse, winkler_score
)
from forecaster_src.series_utils import TimeSeries


def test_point_metrics_known_values():
    actual = [1.0, 2.0, 3.0, 4.0]
    predicted = [1.5, 2.0, 2.0, 5.0]
    assert me(actual, predicted) == pytest.approx(-0.125)
    assert mae(actual, predicted) == pytest.approx(0.625)
    assert rmse(actual, predicted) == pytest.approx(np.sqrt((0.25 + 0 + 1 + 1) / 4))
    assert mape(actual, predicted) == pytest.approx((50.0 + 0.0 + 100.0 / 3 + 25.0) / 4)


def test_percentage_errors_are_reported_in_percent():
    assert mape([2.0], [1.0]) == pytest.approx(50.0)
    assert mpe([2.0, 4.0], [1.0, 5.0]) == pytest.approx((50.0 - 25.0) / 2)


def test_percentage_errors_undefined_with_zero_actual():
    actual = [0.0, 2.0, 3.0]
    predicted = [1.0, 2.0, 3.0]
    assert np.isnan(mape(actual, predicted))
    assert np.isnan(mpe(actual, predicted))
    # the scale-dependent measures are unaffected
    assert mae(actual, predicted) == pytest.approx(1.0 / 3)


def test_non_finite_pairs_are_dropped():
    assert rmse([1.0, np.nan, 3.0], [1.0, 5.0, 4.0]) == pytest.approx(np.sqrt(0.5))
    assert np.isnan(mae([np.nan], [1.0]))


def test_scaled_errors():
    train = [10.0, 12.0, 14.0, 16.0, 18.0]
    # naive in-sample MAE is 2
    assert mase([20.0, 22.0], [19.0, 21.0], train, m=1) == pytest.approx(0.5)
    assert rmsse([20.0, 22.0], [19.0, 21.0], train, m=1) == pytest.approx(0.5)
    assert np.isnan(mase([1.0], [1.0], [5.0, 5.0, 5.0]))


def test_acf1_of_alternating_errors():
    actual = np.zeros(6)
    predicted = np.array([1.0, -1.0, 1.0, -1.0, 1.0, -1.0])
    assert acf1(actual, predicted) < -0.5


def test_accuracy_on_overlap_only(quarterly_series):
    train = quarterly_series.subset(0, 32)
    test = quarterly_series.subset(32, 40)
    fc = fit_model("snaive", BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE), train).forecast(12)
    result = accuracy(fc, test, training=train, period=4)
    assert result["n"] == 8
    assert set(result) >= {"ME", "RMSE", "MAE", "MPE", "MAPE", "MASE", "RMSSE", "ACF1"}
    assert result["RMSE"] >= result["MAE"]


def test_accuracy_without_overlap_raises(quarterly_series):
    train = quarterly_series.subset(0, 20)
    fc = fit_model("naive", BenchmarkSpec(), train).forecast(4)
    with pytest.raises(RangeError):
        accuracy(fc, quarterly_series.subset(30, 40))


def test_interval_scores():
    lower = [0.0, 0.0, 0.0, 0.0]
    upper = [2.0, 2.0, 2.0, 2.0]
    actual = [1.0, 1.5, 3.0, -1.0]
    assert interval_coverage(lower, upper, actual) == pytest.approx(0.5)
    # width 2, penalty 2/0.05 * 1 for the two misses
    assert winkler_score(lower, upper, actual, level=95) == pytest.approx(2.0 + 40.0 * 2 / 4)


def test_interval_accuracy_keys(quarterly_series):
    train = quarterly_series.subset(0, 36)
    test = quarterly_series.subset(36, 40)
    fc = fit_model("snaive", BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE), train).forecast(4, levels=[80])
    result = interval_accuracy(fc, test, level=80)
    assert set(result) == {"coverage_80", "winkler_80"}
    assert 0.0 <= result["coverage_80"] <= 1.0


def test_accuracy_accepts_plain_series():
    index = pd.period_range("2001Q1", periods=3, freq="Q")
    actual = TimeSeries([1.0, 2.0, 3.0], index, "Q")
    predicted = pd.Series([1.0, 2.0, 4.0], index=index)
    assert accuracy(predicted, actual)["MAE"] == pytest.approx(1.0 / 3)
