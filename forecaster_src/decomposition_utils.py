# forecaster_src/decomposition_utils.py

"""
Trend / seasonal / remainder decomposition strategies.

Two interchangeable strategies implement ``Decomposer.decompose``:

- ``STLDecomposer``: iterative Loess smoothing (STL). The seasonal smoother
  window lets the seasonal shape evolve over time; the robust flag down-weights
  outliers in the trend and seasonal fits (they stay in the remainder).
- ``MovingAverageDecomposer``: cascade of centered moving averages and
  per-calendar-position seasonal filters in the X-11 spirit. The seasonal shape
  is fixed within each pass.

Annual series have no seasonality: the seasonal component is the identity
element and only trend and remainder are estimated.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Type, Union

import numpy as np
import pandas as pd
from statsmodels.nonparametric.smoothers_lowess import lowess
from statsmodels.tsa.seasonal import STL, seasonal_decompose

from .errors import DomainError, InsufficientDataError
from .series_utils import Frequency, TimeSeries, assert_regular

logger = logging.getLogger(__name__)


class DecompositionMethod(Enum):
    """Available decomposition strategies."""
    LOCAL_REGRESSION = "stl"
    MOVING_AVERAGE = "x11"

    @classmethod
    def from_string(cls, value: Union[str, "DecompositionMethod"]) -> "DecompositionMethod":
        if isinstance(value, DecompositionMethod):
            return value
        key = str(value).strip().lower()
        aliases = {
            "stl": cls.LOCAL_REGRESSION, "loess": cls.LOCAL_REGRESSION, "local_regression": cls.LOCAL_REGRESSION,
            "x11": cls.MOVING_AVERAGE, "x-11": cls.MOVING_AVERAGE, "classical": cls.MOVING_AVERAGE,
            "moving_average": cls.MOVING_AVERAGE,
        }
        if key not in aliases:
            raise ValueError(f"Unknown decomposition method '{value}'. Use one of: {sorted(aliases)}")
        return aliases[key]


class DecompositionType(Enum):
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"


@dataclass(frozen=True)
class DecompositionConfig:
    """Decomposition strategy and its tuning knobs."""

    method: DecompositionMethod = DecompositionMethod.LOCAL_REGRESSION
    type: DecompositionType = DecompositionType.ADDITIVE
    robust: bool = False
    robust_iterations: int = 2          # STL outer iterations when robust
    seasonal_window: Optional[int] = None  # STL seasonal smoother length (odd)
    trend_window: Optional[int] = None     # trend smoother length

    @property
    def multiplicative(self) -> bool:
        return self.type == DecompositionType.MULTIPLICATIVE

    @property
    def label(self) -> str:
        name = "STL" if self.method == DecompositionMethod.LOCAL_REGRESSION else "X11"
        return f"{name}({'robust, ' if self.robust else ''}{self.type.value})"

    @classmethod
    def from_config_manager(cls, config_manager=None) -> "DecompositionConfig":
        """Build from the ``decomposition`` configuration section, falling back to defaults."""
        config = cls()
        if config_manager is None:
            return config
        section = config_manager.get_decomposition_config()
        return cls(
            method=DecompositionMethod.from_string(section.get("method", config.method.value)),
            type=DecompositionType(str(section.get("type", config.type.value)).lower()),
            robust=bool(section.get("robust", config.robust)),
            robust_iterations=int(section.get("robust_iterations", config.robust_iterations)),
            seasonal_window=section.get("seasonal_window", config.seasonal_window),
            trend_window=section.get("trend_window", config.trend_window),
        )


@dataclass(frozen=True)
class Decomposition:
    """
    Aligned decomposition components.

    ``observed == trend + seasonal + remainder`` (additive) or
    ``observed == trend * seasonal * remainder`` (multiplicative), at every period.
    """

    observed: pd.Series
    trend: pd.Series
    seasonal: pd.Series
    remainder: pd.Series
    method: DecompositionMethod
    multiplicative: bool
    period: int
    frequency: Frequency

    def __post_init__(self):
        for name in ("trend", "seasonal", "remainder"):
            component = getattr(self, name)
            if not component.index.equals(self.observed.index):
                raise ValueError(f"{name} component is not aligned with the observed index")

    def reconstruct(self) -> pd.Series:
        if self.multiplicative:
            return self.trend * self.seasonal * self.remainder
        return self.trend + self.seasonal + self.remainder

    @property
    def seasonally_adjusted(self) -> pd.Series:
        if self.multiplicative:
            return self.observed / self.seasonal
        return self.observed - self.seasonal

    def adjusted_series(self, name: Optional[str] = None) -> TimeSeries:
        """Seasonally adjusted component as a TimeSeries."""
        adjusted = self.seasonally_adjusted
        return TimeSeries(adjusted.to_numpy(), adjusted.index, self.frequency,
                          name=name or f"{self.observed.name}_sa")

    def seasonal_forecast(self, horizon: int) -> np.ndarray:
        """Extrapolate the seasonal component by repeating the last full cycle."""
        last_cycle = self.seasonal.to_numpy()[-self.period:]
        return np.array([last_cycle[h % self.period] for h in range(int(horizon))], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "observed": self.observed,
            "trend": self.trend,
            "seasonal": self.seasonal,
            "remainder": self.remainder,
        })


def minimum_length(period: int) -> int:
    """Two full seasonal cycles."""
    return 2 * max(int(period), 1)


def _odd_at_least(value: int) -> int:
    value = int(value)
    return value if value % 2 == 1 else value + 1


class Decomposer(ABC):
    """Decomposition strategy interface."""

    method: DecompositionMethod

    def __init__(self, config: Optional[DecompositionConfig] = None):
        self.config = config or DecompositionConfig(method=self.method)

    def decompose(self, series: TimeSeries) -> Decomposition:
        """
        Decompose a regular series.

        Raises
        ------
        IrregularSeriesError
            If the series has gaps or missing values
        InsufficientDataError
            If the series has fewer than two full seasonal cycles
        DomainError
            If a multiplicative decomposition is requested for non-positive data
        """
        assert_regular(series)
        period = series.period
        if len(series) < minimum_length(period):
            raise InsufficientDataError(
                f"{self.config.label} decomposition of '{series.name}' needs at least "
                f"{minimum_length(period)} observations (two full cycles of {period}); got {len(series)}"
            )
        values = series.values
        if self.config.multiplicative and (values <= 0).any():
            raise DomainError(
                f"Multiplicative decomposition of '{series.name}' requires strictly positive values"
            )

        if period == 1:
            trend = self._annual_trend(values)
            identity = 1.0 if self.config.multiplicative else 0.0
            seasonal = np.full(len(values), identity)
        else:
            trend, seasonal = self._decompose_seasonal(values, period)

        if self.config.multiplicative:
            remainder = values / (trend * seasonal)
        else:
            remainder = values - trend - seasonal

        index = series.index
        result = Decomposition(
            observed=pd.Series(values, index=index, name=series.name),
            trend=pd.Series(trend, index=index, name="trend"),
            seasonal=pd.Series(seasonal, index=index, name="seasonal"),
            remainder=pd.Series(remainder, index=index, name="remainder"),
            method=self.method,
            multiplicative=self.config.multiplicative,
            period=period,
            frequency=series.frequency,
        )
        logger.debug("%s decomposition of '%s' (%d obs)", self.config.label, series.name, len(series))
        return result

    @abstractmethod
    def _decompose_seasonal(self, values: np.ndarray, period: int):
        """Return (trend, seasonal) arrays for a seasonal series."""

    @abstractmethod
    def _annual_trend(self, values: np.ndarray) -> np.ndarray:
        """Return the trend array for a non-seasonal series."""


class STLDecomposer(Decomposer):
    """STL (Seasonal-Trend decomposition using Loess)."""

    method = DecompositionMethod.LOCAL_REGRESSION

    def _seasonal_window(self, period: int) -> int:
        if self.config.seasonal_window:
            return _odd_at_least(max(3, self.config.seasonal_window))
        # odd, at least 7 (quarterly 7, monthly 13)
        return _odd_at_least(max(7, period))

    def _decompose_seasonal(self, values: np.ndarray, period: int):
        work = np.log(values) if self.config.multiplicative else values
        stl = STL(
            work,
            period=period,
            seasonal=self._seasonal_window(period),
            trend=_odd_at_least(self.config.trend_window) if self.config.trend_window else None,
            robust=self.config.robust,
        )
        outer_iter = self.config.robust_iterations if self.config.robust else 0
        res = stl.fit(outer_iter=outer_iter)
        trend = np.asarray(res.trend, dtype=float)
        seasonal = np.asarray(res.seasonal, dtype=float)
        if self.config.multiplicative:
            return np.exp(trend), np.exp(seasonal)
        return trend, seasonal

    def _annual_trend(self, values: np.ndarray) -> np.ndarray:
        n = len(values)
        work = np.log(values) if self.config.multiplicative else values
        if n <= 3:
            frac = 1.0
        elif self.config.trend_window:
            frac = min(1.0, self.config.trend_window / n)
        else:
            frac = 2.0 / 3.0
        iterations = self.config.robust_iterations if self.config.robust else 0
        trend = lowess(work, np.arange(n, dtype=float), frac=frac, it=iterations, return_sorted=False)
        return np.exp(trend) if self.config.multiplicative else np.asarray(trend, dtype=float)


class MovingAverageDecomposer(Decomposer):
    """
    Moving-average / seasonal-filter cascade.

    Pass 1 runs classical decomposition (centered 2xm moving average and
    per-position seasonal means). Pass 2 re-estimates the trend from the
    seasonally adjusted series with a centered moving average and the seasonal
    shape from per-position medians of the detrended series, which limits the
    influence of isolated outliers.
    """

    method = DecompositionMethod.MOVING_AVERAGE

    def _trend_window(self, period: int) -> int:
        if self.config.trend_window:
            return _odd_at_least(self.config.trend_window)
        return _odd_at_least(max(3, period + 1))

    @staticmethod
    def _centered_ma(values: np.ndarray, window: int) -> np.ndarray:
        return pd.Series(values).rolling(window, center=True, min_periods=1).mean().to_numpy()

    def _decompose_seasonal(self, values: np.ndarray, period: int):
        model = "multiplicative" if self.config.multiplicative else "additive"
        first = seasonal_decompose(values, model=model, period=period, extrapolate_trend="freq")
        s1 = np.asarray(first.seasonal, dtype=float)

        adjusted = values / s1 if self.config.multiplicative else values - s1
        trend = self._centered_ma(adjusted, self._trend_window(period))
        detrended = values / trend if self.config.multiplicative else values - trend

        positions = np.arange(len(values)) % period
        shape = np.array([np.median(detrended[positions == p]) for p in range(period)])
        if self.config.multiplicative:
            shape = shape / shape.mean()
        else:
            shape = shape - shape.mean()
        return trend, shape[positions]

    def _annual_trend(self, values: np.ndarray) -> np.ndarray:
        window = _odd_at_least(self.config.trend_window or 3)
        return self._centered_ma(values, window)


_DECOMPOSERS: Dict[DecompositionMethod, Type[Decomposer]] = {
    DecompositionMethod.LOCAL_REGRESSION: STLDecomposer,
    DecompositionMethod.MOVING_AVERAGE: MovingAverageDecomposer,
}


def get_decomposer(config: Optional[DecompositionConfig] = None) -> Decomposer:
    """Instantiate the strategy selected by ``config.method``."""
    config = config or DecompositionConfig()
    return _DECOMPOSERS[config.method](config)


def decompose(series: TimeSeries, config: Optional[DecompositionConfig] = None) -> Decomposition:
    """Decompose ``series`` with the configured strategy."""
    return get_decomposer(config).decompose(series)
