import numpy as np
import pytest

from forecaster_src.decomposition_utils import decompose
from forecaster_src.features_utils import (
    autocorrelations, guerrero_feature, lag_correlations, lagged_pairs, seasonal_profile, seasonal_subseries
)
from forecaster_src.forecasting_utils import BenchmarkMethod, BenchmarkSpec, fit_model
from forecaster_src.plotting_utils import (
    PlotConfig, plot_decomposition, plot_forecast, plot_lags, plot_season, plot_series, plot_subseries
)


def test_seasonal_profile_is_year_by_quarter(quarterly_series):
    profile = seasonal_profile(quarterly_series)
    assert profile.shape == (10, 4)
    assert list(profile.index) == list(range(1992, 2002))
    assert profile.loc[1992, 1] == pytest.approx(quarterly_series.values[0])


def test_incomplete_year_leaves_gaps(quarterly_series):
    profile = seasonal_profile(quarterly_series.subset(1, 40))
    assert np.isnan(profile.loc[1992, 1])
    assert profile.notna().sum().sum() == 39


def test_subseries_means(pure_seasonal_series):
    frame = seasonal_subseries(pure_seasonal_series)
    means = frame.groupby("season")["season_mean"].first()
    np.testing.assert_allclose(means.to_numpy(), [106.0, 94.0, 103.0, 97.0])
    assert list(frame.columns) == ["season", "year", "value", "season_mean"]


def test_lag_correlations_peak_at_seasonal_lag(pure_seasonal_series):
    corr = lag_correlations(pure_seasonal_series)
    assert list(corr.index) == list(range(1, 10))
    assert corr[4] == pytest.approx(1.0)
    assert corr[8] == pytest.approx(1.0)
    assert corr[1] < corr[4]


def test_lagged_pairs(pure_seasonal_series):
    pairs = lagged_pairs(pure_seasonal_series, 4)
    assert len(pairs) == 20
    np.testing.assert_allclose(pairs["value"], pairs["lagged"])
    with pytest.raises(ValueError):
        lagged_pairs(pure_seasonal_series, 0)


def test_autocorrelation_default_lags(quarterly_series, annual_series):
    assert list(autocorrelations(quarterly_series).index) == list(range(1, 9))
    assert len(autocorrelations(annual_series)) == 10
    assert len(autocorrelations(quarterly_series.subset(0, 5))) == 4


def test_guerrero_feature(growing_series):
    feature = guerrero_feature(growing_series)
    assert set(feature) == {"lambda_guerrero"}
    assert -1.0 <= feature["lambda_guerrero"] < 0.0


def test_plots_are_written(tmp_path, quarterly_series):
    config = PlotConfig(caption="Source: synthetic", dpi=60)
    paths = [
        plot_series(quarterly_series, tmp_path / "series.png", config),
        plot_season(quarterly_series, tmp_path / "season.png", config),
        plot_subseries(quarterly_series, tmp_path / "subseries.png", config),
        plot_lags(quarterly_series, tmp_path / "lags.png", config=config),
        plot_decomposition(decompose(quarterly_series), tmp_path / "nested" / "decomp.png", config),
    ]
    train = quarterly_series.subset(0, 32)
    fc = fit_model("snaive", BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE), train).forecast(8, levels=[80, 95])
    paths.append(plot_forecast(train, {"snaive": fc}, tmp_path / "forecast.png",
                               actuals=quarterly_series.subset(32, 40), config=config.with_title("Cement")))
    for path in paths:
        assert path.exists()
        assert path.stat().st_size > 0


def test_plot_config_from_manager():
    class _Manager:
        def get(self, key, default=None):
            return {"plotting.dpi": 72, "plotting.caption": "ABS"}.get(key, default)

    config = PlotConfig.from_config_manager(_Manager(), width=10.0)
    assert config.dpi == 72
    assert config.caption == "ABS"
    assert config.base_font_size == 12
    assert config.width == 10.0
    assert PlotConfig.from_config_manager(None) == PlotConfig()
