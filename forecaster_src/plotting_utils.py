# forecaster_src/plotting_utils.py

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Optional
import logging

from .decomposition_utils import Decomposition
from .features_utils import lagged_pairs, seasonal_profile, seasonal_subseries
from .file_utils import ensure_dir
from .forecasting_utils import Forecast
from .series_utils import TimeSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlotConfig:
    """
    Figure settings passed explicitly to every plotting function.

    Attributes
    ----------
    title : str, optional
        Figure title (each function supplies a default)
    caption : str, optional
        Text rendered under the axes, e.g. a data source
    base_font_size : int
        Base font size for labels and titles
    dpi : int
        Output resolution
    width, height : float
        Figure size in inches
    """
    title: Optional[str] = None
    caption: Optional[str] = None
    base_font_size: int = 12
    dpi: int = 150
    width: float = 8.0
    height: float = 4.5

    @classmethod
    def from_config_manager(cls, config_manager=None, **overrides) -> "PlotConfig":
        config = cls()
        if config_manager is not None:
            config = cls(
                caption=config_manager.get("plotting.caption", None),
                base_font_size=int(config_manager.get("plotting.base_font_size", config.base_font_size)),
                dpi=int(config_manager.get("plotting.dpi", config.dpi)),
            )
        return replace(config, **overrides)

    def with_title(self, title: str) -> "PlotConfig":
        return replace(self, title=title)


def _new_figure(config: PlotConfig, nrows: int = 1, ncols: int = 1, height_scale: float = 1.0):
    fig, axes = plt.subplots(nrows, ncols, figsize=(config.width, config.height * height_scale), squeeze=False)
    return fig, axes


def _finish(fig, axes, config: PlotConfig, default_title: str, out_path: Path) -> Path:
    fs = config.base_font_size
    fig.suptitle(config.title or default_title, fontsize=fs + 2)
    for ax in np.ravel(axes):
        ax.tick_params(labelsize=fs - 2)
        ax.xaxis.label.set_size(fs)
        ax.yaxis.label.set_size(fs)
    if config.caption:
        fig.text(0.99, 0.01, config.caption, ha="right", va="bottom", fontsize=fs - 3, style="italic")
    fig.tight_layout()
    ensure_dir(out_path.parent)
    fig.savefig(out_path, dpi=config.dpi)
    plt.close(fig)
    logger.debug("Saved figure %s", out_path)
    return out_path


def _timestamps(index: pd.PeriodIndex) -> pd.DatetimeIndex:
    return index.to_timestamp()


def plot_series(series: TimeSeries, out_path: Path, config: Optional[PlotConfig] = None) -> Path:
    """
    Time plot of a single series.

    Parameters
    ----------
    series : TimeSeries
        Series to draw
    out_path : Path
        PNG destination (parents are created if missing)
    config : PlotConfig, optional
        Figure settings

    Returns
    -------
    Path
        The written file
    """
    config = config or PlotConfig()
    fig, axes = _new_figure(config)
    ax = axes[0, 0]
    ax.plot(_timestamps(series.index), series.values, color="black", linewidth=1.2)
    ax.set_xlabel(series.frequency.name.capitalize())
    ax.set_ylabel(series.name)
    return _finish(fig, axes, config, series.name, Path(out_path))


def plot_season(series: TimeSeries, out_path: Path, config: Optional[PlotConfig] = None) -> Path:
    """Seasonal plot: one line per year across the seasons."""
    config = config or PlotConfig()
    profile = seasonal_profile(series)
    fig, axes = _new_figure(config)
    ax = axes[0, 0]
    cmap = plt.get_cmap("viridis")
    n_years = len(profile.index)
    for i, (year, row) in enumerate(profile.iterrows()):
        ax.plot(profile.columns, row.values, color=cmap(i / max(n_years - 1, 1)), linewidth=1)
    if n_years:
        first = profile.iloc[0].dropna()
        ax.annotate(str(profile.index[0]), (first.index[0], first.iloc[0]), fontsize=8)
        last = profile.iloc[-1].dropna()
        if not last.empty:
            ax.annotate(str(profile.index[-1]), (last.index[-1], last.iloc[-1]), fontsize=8)
    ax.set_xticks(list(profile.columns))
    ax.set_xlabel("Season")
    ax.set_ylabel(series.name)
    return _finish(fig, axes, config, f"Seasonal plot: {series.name}", Path(out_path))


def plot_subseries(series: TimeSeries, out_path: Path, config: Optional[PlotConfig] = None) -> Path:
    """Seasonal subseries plot: one panel per season with its mean as a horizontal line."""
    config = config or PlotConfig()
    frame = seasonal_subseries(series)
    seasons = sorted(frame["season"].unique())
    fig, axes = _new_figure(config, 1, len(seasons))
    for ax, season in zip(axes[0], seasons):
        sub = frame[frame["season"] == season]
        ax.plot(sub["year"], sub["value"], color="black", linewidth=1)
        ax.axhline(sub["season_mean"].iloc[0], color="tab:blue", linewidth=1.2)
        ax.set_title(str(season), fontsize=config.base_font_size - 1)
        ax.set_xticks([])
    axes[0, 0].set_ylabel(series.name)
    return _finish(fig, axes, config, f"Seasonal subseries: {series.name}", Path(out_path))


def plot_lags(series: TimeSeries, out_path: Path, lags: int = 9, config: Optional[PlotConfig] = None) -> Path:
    """Lag plots of y_t against y_{t-k} for k = 1..lags, coloured by season."""
    config = config or PlotConfig()
    ncols = 3
    nrows = int(np.ceil(lags / ncols))
    fig, axes = _new_figure(config, nrows, ncols, height_scale=nrows / 1.5)
    for k, ax in enumerate(np.ravel(axes), start=1):
        if k > lags:
            ax.set_visible(False)
            continue
        pairs = lagged_pairs(series, k)
        ax.scatter(pairs["lagged"], pairs["value"], c=pairs["season"], cmap="tab10", s=8)
        ax.set_title(f"lag {k}", fontsize=config.base_font_size - 2)
    return _finish(fig, axes, config, f"Lag plots: {series.name}", Path(out_path))


def plot_decomposition(decomposition: Decomposition, out_path: Path, config: Optional[PlotConfig] = None) -> Path:
    """Observed, trend, seasonal and remainder panels."""
    config = config or PlotConfig()
    fig, axes = _new_figure(config, 4, 1, height_scale=1.8)
    x = _timestamps(decomposition.observed.index)
    panels = [
        ("observed", decomposition.observed),
        ("trend", decomposition.trend),
        ("seasonal", decomposition.seasonal),
        ("remainder", decomposition.remainder),
    ]
    for ax, (label, component) in zip(axes[:, 0], panels):
        ax.plot(x, component.to_numpy(), color="black", linewidth=1)
        ax.set_ylabel(label)
    kind = "multiplicative" if decomposition.multiplicative else "additive"
    return _finish(fig, axes, config, f"{decomposition.method.value.upper()} decomposition ({kind})", Path(out_path))


def plot_forecast(history: TimeSeries,
                  forecasts: Dict[str, Forecast],
                  out_path: Path,
                  actuals: Optional[TimeSeries] = None,
                  level: int = 95,
                  config: Optional[PlotConfig] = None) -> Path:
    """
    History plus point forecasts and shaded intervals for several models.

    Parameters
    ----------
    history : TimeSeries
        Training observations
    forecasts : Dict[str, Forecast]
        Model name -> forecast
    out_path : Path
        PNG destination
    actuals : TimeSeries, optional
        Held-out observations drawn over the forecasts
    level : int, default=95
        Interval level to shade when available
    config : PlotConfig, optional
        Figure settings
    """
    config = config or PlotConfig()
    fig, axes = _new_figure(config)
    ax = axes[0, 0]
    ax.plot(_timestamps(history.index), history.values, color="black", linewidth=1.2, label="observed")
    if actuals is not None:
        ax.plot(_timestamps(actuals.index), actuals.values, color="black", linestyle=":", linewidth=1.2,
                label="actual")

    colors = ["tab:red", "tab:blue", "tab:green", "tab:orange", "tab:purple", "tab:brown", "tab:pink"]
    for i, (name, fc) in enumerate(forecasts.items()):
        color = colors[i % len(colors)]
        x = _timestamps(fc.index)
        ax.plot(x, fc.mean.to_numpy(), color=color, linestyle="--", label=name)
        if level in fc.intervals:
            lo, hi = fc.intervals[level]
            ax.fill_between(x, lo.to_numpy(), hi.to_numpy(), color=color, alpha=0.15)

    ax.set_ylabel(history.name)
    ax.legend(fontsize=config.base_font_size - 3)
    return _finish(fig, axes, config, f"Forecasts: {history.name}", Path(out_path))
