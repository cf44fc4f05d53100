import numpy as np
import pandas as pd

from config import ConfigurationManager
from diagnostics import ResidualDiagnostics, default_ljung_box_lags, diagnose_models, ljung_box
from forecaster_src.forecasting_utils import BenchmarkMethod, BenchmarkSpec, ModelRegistry, fit_models


def test_white_noise_mostly_passes_ljung_box():
    rng = np.random.default_rng(2024)
    p_values = [ljung_box(rng.normal(size=100), lags=10).p_value for _ in range(100)]
    share = np.mean(np.array(p_values) > 0.05)
    assert share >= 0.85


def test_autocorrelated_residuals_are_flagged():
    rng = np.random.default_rng(1)
    e = rng.normal(size=200)
    ar = np.zeros(200)
    for t in range(1, 200):
        ar[t] = 0.8 * ar[t - 1] + e[t]
    result = ljung_box(ar, period=4)
    assert result.lags == 8
    assert result.is_significant
    assert result.interpretation == "Serial correlation detected in residuals"


def test_default_lags():
    assert default_ljung_box_lags(4) == 8
    assert default_ljung_box_lags(12) == 24
    assert default_ljung_box_lags(1) == 10
    assert default_ljung_box_lags(12, n=15) == 14


def test_nan_residuals_dropped_and_short_series_skipped():
    resid = pd.Series([np.nan, np.nan, 0.3, -0.1, 0.2, -0.4, 0.1, 0.0, -0.2, 0.5])
    result = ljung_box(resid, lags=3)
    assert np.isfinite(result.p_value)
    short = ljung_box([0.1, np.nan, -0.1])
    assert np.isnan(short.p_value)
    assert not short.is_significant


def test_model_df_reduces_degrees_of_freedom():
    rng = np.random.default_rng(3)
    result = ResidualDiagnostics().ljung_box_test(rng.normal(size=80), lags=8, model_df=2)
    assert result.degrees_of_freedom == 6


def test_model_df_never_exceeds_lags():
    rng = np.random.default_rng(3)
    result = ResidualDiagnostics().ljung_box_test(rng.normal(size=80), lags=4, model_df=10)
    assert result.degrees_of_freedom == 1
    assert np.isfinite(result.p_value)


def test_config_supplies_lags_and_level(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "evaluation:\n"
        "  diagnostic_tests:\n"
        "    significance_level: 0.01\n"
        "    ljung_box:\n"
        "      lags: 5\n",
        encoding="utf-8",
    )
    diagnostics = ResidualDiagnostics(config_manager=ConfigurationManager(path))
    assert diagnostics.significance_level == 0.01
    rng = np.random.default_rng(4)
    assert diagnostics.ljung_box_test(rng.normal(size=60)).lags == 5


def test_diagnose_models_table(quarterly_series):
    fits = fit_models(quarterly_series, ModelRegistry({
        "snaive": BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE),
        "drift": BenchmarkSpec(BenchmarkMethod.DRIFT),
    }))
    table = diagnose_models(fits)
    assert list(table["model"]) == ["snaive", "drift"]
    # seasonal naive has no residual for the first cycle
    assert table.set_index("model").loc["snaive", "n_residuals"] == 36
    assert (table["lags"] == 8).all()
    assert table["lb_pvalue"].between(0, 1).all()
    assert table["jb_pvalue"].between(0, 1).all()
