import json

import numpy as np
import pandas as pd
import pytest

from backtesting import rolling_origin
from backtesting.evaluation_pipeline import EvaluationPipeline, evaluate_holdout, train_test_split
from backtesting.metrics_aggregation import AccuracyReport, MetricsAggregator, Regime, create_performance_summary
from backtesting.rolling_origin import (
    RollingOriginConfig, RollingOriginValidator, count_folds, generate_folds, run_rolling_origin_cv
)
from forecaster_src import forecasting_utils
from forecaster_src.errors import DomainError, InsufficientDataError, NonConvergenceError
from forecaster_src.forecasting_utils import (
    BenchmarkMethod, BenchmarkSpec, ErrorType, ETSSpec, ModelRegistry, SeasonalType, TrendType
)
from forecaster_src.series_utils import Frequency, TimeSeries
from forecaster_src.transform_utils import TransformSpec


def _benchmarks():
    return ModelRegistry({
        "snaive": BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE),
        "drift": BenchmarkSpec(BenchmarkMethod.DRIFT),
    })


class _FailsOnShortWindows(forecasting_utils._BenchmarkEngine):
    """Stands in for ETS: does not converge on windows shorter than 24 observations."""

    def __init__(self, spec, values, period, config):
        if len(values) < 24:
            raise NonConvergenceError(f"{spec.label} optimizer stalled on {len(values)} observations")
        super().__init__(BenchmarkSpec(BenchmarkMethod.NAIVE), values, period, config)



class _FailsToForecast(forecasting_utils._BenchmarkEngine):
    """Fits like a naive benchmark but cannot produce a forecast."""

    def __init__(self, spec, values, period, config):
        super().__init__(BenchmarkSpec(BenchmarkMethod.NAIVE), values, period, config)

    def predict(self, horizon, levels):
        raise NonConvergenceError("forecast failed: singular covariance")

def test_fold_count_formula():
    folds = generate_folds(40, initial_window=20, step=2, horizon=4)
    assert len(folds) == 9 == count_folds(40, 20, 2, 4)
    assert [f.train_end for f in folds] == list(range(20, 37, 2))
    assert all(f.test_size == 4 for f in folds)
    assert folds[-1].test_end == 40


def test_too_short_for_one_fold():
    assert generate_folds(23, 20, 2, 4) == []
    with pytest.raises(ValueError):
        generate_folds(40, 20, 0, 4)


def test_partial_folds_are_opt_in():
    folds = generate_folds(41, 20, 2, 4, allow_partial=True)
    assert len(folds) == 11
    assert [f.test_size for f in folds[-2:]] == [3, 1]
    assert all(f.is_partial for f in folds[-2:])
    assert not any(f.is_partial for f in folds[:-2])
    assert len(generate_folds(41, 20, 2, 4)) == 9


def test_cross_validation_runs_every_fold(quarterly_series):
    result = run_rolling_origin_cv(quarterly_series, _benchmarks(), initial_window=20, step=2, horizon=4)
    assert result.n_folds == 9
    assert len(result.fold_results) == 18
    assert result.success_rate() == 1.0
    first = result.results_for("snaive")[0]
    assert str(first.train_end) == "1996Q4"
    assert str(first.test_start) == "1997Q1"
    assert first.metrics["n"] == 4
    assert len(result.get_metric_series("drift", "RMSE")) == 9


def test_partial_folds_are_scored_on_available_actuals():
    rng = np.random.default_rng(5)
    index = pd.period_range("1992Q1", periods=41, freq="Q")
    series = TimeSeries(100.0 + np.arange(41) + rng.normal(0, 1.0, size=41), index, Frequency.QUARTERLY)
    result = run_rolling_origin_cv(series, _benchmarks(), initial_window=20, step=2, horizon=4,
                                   allow_partial=True)
    assert result.n_folds == 11
    scored = result.results_for("drift")
    assert [r.metrics["n"] for r in scored[-2:]] == [3, 1]
    assert all(r.metrics["n"] == 4 for r in scored[:-2])
    assert len(scored[-1].forecasts) == 1


def test_seasonal_model_on_annual_data_fails_per_fold():
    rng = np.random.default_rng(7)
    index = pd.period_range("1990", periods=30, freq="Y")
    annual = TimeSeries(50.0 + 1.5 * np.arange(30) + rng.normal(0, 1.0, size=30), index, Frequency.ANNUAL)
    specs = ModelRegistry({
        "hw": ETSSpec(ErrorType.ADDITIVE, TrendType.NONE, SeasonalType.ADDITIVE),
        "naive": BenchmarkSpec(BenchmarkMethod.NAIVE),
    })
    result = run_rolling_origin_cv(annual, specs, initial_window=20, step=2, horizon=4)
    assert result.n_folds == 4
    assert {r.error_type for r in result.results_for("hw")} == {DomainError.__name__}
    assert result.success_rate("naive") == 1.0



def test_forecast_failure_is_recorded_against_the_fold(quarterly_series, monkeypatch):
    monkeypatch.setitem(forecasting_utils._ENGINES, ETSSpec, _FailsToForecast)
    specs = ModelRegistry({
        "ets": ETSSpec(ErrorType.ADDITIVE, TrendType.NONE, SeasonalType.NONE),
        "drift": BenchmarkSpec(BenchmarkMethod.DRIFT),
    })
    result = run_rolling_origin_cv(quarterly_series, specs, initial_window=20, step=2, horizon=4)
    assert result.success_rate("ets") == 0.0
    assert {r.error_type for r in result.results_for("ets")} == {"NonConvergenceError"}
    assert all(r.fit_time is not None for r in result.results_for("ets"))
    assert result.success_rate("drift") == 1.0

def test_cross_validation_needs_one_fold(quarterly_series):
    with pytest.raises(InsufficientDataError):
        run_rolling_origin_cv(quarterly_series.subset(0, 20), _benchmarks(), initial_window=20, step=2, horizon=4)


def test_failed_folds_recorded_and_excluded_from_average(quarterly_series, monkeypatch):
    monkeypatch.setitem(forecasting_utils._ENGINES, ETSSpec, _FailsOnShortWindows)
    specs = ModelRegistry({
        "ets": ETSSpec(ErrorType.ADDITIVE, TrendType.NONE, SeasonalType.NONE),
        "snaive": BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE),
    })
    cv = run_rolling_origin_cv(quarterly_series, specs, initial_window=20, step=2, horizon=4)
    assert len(cv.failures) == 2
    assert {r.fold_id for r in cv.failures} == {1, 2}
    assert cv.success_rate("snaive") == 1.0

    report = AccuracyReport()
    aggregated = report.add_cv_result(cv, MetricsAggregator())
    assert aggregated["ets"].n_folds == 9
    assert aggregated["ets"].successful_folds == 7
    expected = cv.get_metric_series("ets", "RMSE").mean()
    assert report.get("ets", Regime.CV)["RMSE"] == pytest.approx(expected)

    failures = report.failures_frame()
    assert list(failures["model"]) == ["ets", "ets"]
    assert set(failures["regime"]) == {"cv"}
    assert set(failures["error_type"]) == {"NonConvergenceError"}

    summary = create_performance_summary(report)
    assert "Failures: 2" in summary
    assert "ets [fold 1] NonConvergenceError" in summary


def test_lambda_estimated_on_training_window_only(quarterly_series, monkeypatch):
    seen = []
    original = rolling_origin.select_transform

    def _spy(series, method="guerrero", bounds=(-1.0, 2.0)):
        seen.append(len(series))
        return original(series, method=method, bounds=bounds)

    monkeypatch.setattr(rolling_origin, "select_transform", _spy)
    cv = run_rolling_origin_cv(quarterly_series, _benchmarks(), initial_window=20, step=2, horizon=4,
                               transform="guerrero")
    assert sorted(seen) == [f.train_end for f in cv.folds]


def test_parallel_folds_match_sequential(quarterly_series):
    seq = RollingOriginValidator(RollingOriginConfig(max_workers=1)).validate(quarterly_series, _benchmarks())
    par = RollingOriginValidator(RollingOriginConfig(max_workers=3)).validate(quarterly_series, _benchmarks())
    pd.testing.assert_series_equal(seq.get_metric_series("drift", "MAE"), par.get_metric_series("drift", "MAE"))


def test_train_test_split(quarterly_series):
    train, test = train_test_split(quarterly_series, 8)
    assert len(train) == 32 and len(test) == 8
    assert test.start == train.end + 1
    with pytest.raises(InsufficientDataError):
        train_test_split(quarterly_series, 40)
    with pytest.raises(ValueError):
        train_test_split(quarterly_series, 0)


def test_holdout_fills_training_and_test_regimes(quarterly_series):
    report = AccuracyReport()
    result = evaluate_holdout(quarterly_series, _benchmarks(), test_size=8,
                              transform=TransformSpec.log(), report=report)
    frame = report.to_frame()
    assert set(frame["regime"]) == {"training", "test"}
    assert set(frame["model"]) == {"snaive", "drift"}
    assert "coverage_95" in result.test_accuracy["snaive"]
    assert report.best_model("RMSE", Regime.TEST) in {"snaive", "drift"}


def test_report_export(tmp_path):
    report = AccuracyReport()
    report.add_metrics("ets", Regime.TEST, {"RMSE": 1.5, "MAPE": float("nan")})
    report.add_metrics("snaive", Regime.TEST, {"RMSE": 2.0, "MAPE": 3.0})
    report.add_failure("hw", Regime.CV, "NonConvergenceError", "did not converge", fold=3)

    csv_path = report.to_csv(tmp_path / "accuracy_report.csv")
    frame = pd.read_csv(csv_path)
    assert list(frame["model"]) == ["ets", "snaive"]
    failures = pd.read_csv(tmp_path / "accuracy_report_failures.csv")
    assert failures.loc[0, "model"] == "hw"
    assert failures.loc[0, "fold"] == 3

    payload = json.loads(report.to_json(tmp_path / "accuracy_report.json"))
    assert payload["rows"][0]["MAPE"] is None
    assert payload["failures"][0]["error_type"] == "NonConvergenceError"
    assert report.best_model("RMSE", Regime.TEST) == "ets"
    assert report.models == ["ets", "snaive", "hw"]


def test_pipeline_end_to_end(quarterly_series):
    specs = ModelRegistry({
        "ses": ETSSpec(ErrorType.ADDITIVE, TrendType.NONE, SeasonalType.NONE),
        "snaive": BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE),
        "drift": BenchmarkSpec(BenchmarkMethod.DRIFT),
    })
    result = EvaluationPipeline().run(quarterly_series, specs, transform="guerrero", test_size=8, horizon=6)

    assert result.transform.kind.value in ("power", "log")
    assert result.decomposition is not None
    assert set(result.report.to_frame()["regime"]) == {"training", "test", "cv"}
    assert set(result.forecasts) == {"ses", "snaive", "drift"}
    for fc in result.forecasts.values():
        assert fc.horizon == 6
        assert str(fc.index[0]) == "2002Q1"
    assert set(result.diagnostics["model"]) == {"ses", "snaive", "drift"}
    assert "Performance Summary" in result.summary()
    assert result.execution_time >= 0


def test_pipeline_default_registry_has_no_failures(quarterly_series):
    result = EvaluationPipeline().run(quarterly_series, transform="none", test_size=8, horizon=4,
                                      run_cv=False, run_decomposition=False)
    assert result.report.failures_frame().empty
    assert "hw_multiplicative" in result.forecasts
    assert set(result.forecasts) == set(result.report.models)
