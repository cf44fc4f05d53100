# forecaster_src/forecasting_utils.py

"""
Model registry and fitter.

Model specifications form a closed set of frozen dataclasses:

- ``ETSSpec``: exponential smoothing with (error, trend, seasonal) components,
  estimated by ``statsmodels.tsa.exponential_smoothing.ets.ETSModel``
- ``BenchmarkSpec``: mean, naive, seasonal naive and drift benchmarks
- ``CompositeSpec``: a decomposition plus a sub-model fitted to the seasonally
  adjusted component; forecasts are recombined with the last seasonal cycle

Each spec type is mapped to an engine class through ``_ENGINES``. Engines work
on the transformed scale; ``FittedModel`` handles the Box-Cox round trip.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import norm
from statsmodels.tsa.exponential_smoothing.ets import ETSModel

from .decomposition_utils import (
    Decomposition,
    DecompositionConfig,
    DecompositionMethod,
    DecompositionType,
    get_decomposer,
)
from .errors import DataValidityError, DomainError, InsufficientDataError, NonConvergenceError
from .series_utils import Frequency, TimeSeries, assert_regular, future_index
from .transform_utils import TransformSpec

logger = logging.getLogger(__name__)

Intervals = Dict[int, Tuple[np.ndarray, np.ndarray]]

# sample paths drawn for models with multiplicative components
SIMULATION_REPETITIONS = 1000


# ---------------------------------------------------------------------------
# Specifications
# ---------------------------------------------------------------------------

class ErrorType(Enum):
    ADDITIVE = "A"
    MULTIPLICATIVE = "M"


class TrendType(Enum):
    NONE = "N"
    ADDITIVE = "A"
    DAMPED = "Ad"


class SeasonalType(Enum):
    NONE = "N"
    ADDITIVE = "A"
    MULTIPLICATIVE = "M"


@dataclass(frozen=True)
class ETSSpec:
    """Exponential smoothing structure, e.g. ETS(A,Ad,M)."""

    error: ErrorType = ErrorType.ADDITIVE
    trend: TrendType = TrendType.NONE
    seasonal: SeasonalType = SeasonalType.NONE

    @property
    def label(self) -> str:
        return f"ETS({self.error.value},{self.trend.value},{self.seasonal.value})"

    @property
    def is_seasonal(self) -> bool:
        return self.seasonal != SeasonalType.NONE

    @property
    def is_multiplicative(self) -> bool:
        return self.error == ErrorType.MULTIPLICATIVE or self.seasonal == SeasonalType.MULTIPLICATIVE


class BenchmarkMethod(Enum):
    MEAN = "mean"
    NAIVE = "naive"
    SEASONAL_NAIVE = "snaive"
    DRIFT = "drift"


@dataclass(frozen=True)
class BenchmarkSpec:
    """Simple benchmark forecasting method."""

    method: BenchmarkMethod = BenchmarkMethod.NAIVE

    @property
    def label(self) -> str:
        return self.method.value.upper()


@dataclass(frozen=True)
class CompositeSpec:
    """Decomposition followed by a sub-model on the seasonally adjusted series."""

    decomposition: DecompositionConfig
    model: Union[ETSSpec, BenchmarkSpec]

    def __post_init__(self):
        if not isinstance(self.model, (ETSSpec, BenchmarkSpec)):
            raise TypeError("CompositeSpec sub-model must be an ETSSpec or BenchmarkSpec")

    @property
    def label(self) -> str:
        return f"{self.decomposition.label} + {self.model.label}"


ModelSpec = Union[ETSSpec, BenchmarkSpec, CompositeSpec]

_ETS_PATTERN = re.compile(r"^ETS\(\s*([AM])\s*,\s*(N|A|Ad)\s*,\s*(N|A|M)\s*\)$", re.IGNORECASE)


def _parse_simple_spec(text: str) -> Union[ETSSpec, BenchmarkSpec]:
    txt = text.strip()
    match = _ETS_PATTERN.match(txt)
    if match:
        error, trend, seasonal = match.groups()
        trend = "Ad" if trend.lower() == "ad" else trend.upper()
        return ETSSpec(ErrorType(error.upper()), TrendType(trend), SeasonalType(seasonal.upper()))
    try:
        return BenchmarkSpec(BenchmarkMethod(txt.lower()))
    except ValueError:
        raise ValueError(
            f"Cannot parse model '{text}'. Use ETS(E,T,S), MEAN, NAIVE, SNAIVE, DRIFT "
            f"or <STL|STL_ROBUST|X11>+<sub-model>"
        ) from None


def parse_model_spec(text: str) -> ModelSpec:
    """
    Parse a model specification string.

    Examples
    --------
    >>> parse_model_spec("ETS(M,Ad,M)").label
    'ETS(M,Ad,M)'
    >>> parse_model_spec("stl+ETS(A,A,N)").label
    'STL(additive) + ETS(A,A,N)'
    """
    if "+" not in text:
        return _parse_simple_spec(text)
    head, sub = text.split("+", 1)
    head = head.strip().lower()
    decompositions = {
        "stl": DecompositionConfig(DecompositionMethod.LOCAL_REGRESSION),
        "stl_robust": DecompositionConfig(DecompositionMethod.LOCAL_REGRESSION, robust=True),
        "x11": DecompositionConfig(DecompositionMethod.MOVING_AVERAGE),
        "stl_mult": DecompositionConfig(DecompositionMethod.LOCAL_REGRESSION, DecompositionType.MULTIPLICATIVE),
        "x11_mult": DecompositionConfig(DecompositionMethod.MOVING_AVERAGE, DecompositionType.MULTIPLICATIVE),
    }
    if head not in decompositions:
        raise ValueError(f"Unknown decomposition '{head}' in model '{text}'. Use one of: {sorted(decompositions)}")
    return CompositeSpec(decompositions[head], _parse_simple_spec(sub))


class ModelRegistry:
    """Ordered mapping of unique model names to specifications."""

    def __init__(self, specs: Optional[Mapping[str, ModelSpec]] = None):
        self._specs: Dict[str, ModelSpec] = {}
        for name, spec in (specs or {}).items():
            self.register(name, spec)

    def register(self, name: str, spec: ModelSpec) -> "ModelRegistry":
        if not name:
            raise ValueError("Model name must be a non-empty string")
        if name in self._specs:
            raise ValueError(f"Model name '{name}' is already registered")
        if not isinstance(spec, (ETSSpec, BenchmarkSpec, CompositeSpec)):
            raise TypeError(f"Unsupported model specification for '{name}': {type(spec).__name__}")
        self._specs[name] = spec
        return self

    @classmethod
    def from_strings(cls, entries: Iterable[str]) -> "ModelRegistry":
        """Build from 'name=SPEC' or bare 'SPEC' strings (the spec label becomes the name)."""
        registry = cls()
        for entry in entries:
            if "=" in entry:
                name, text = entry.split("=", 1)
                spec = parse_model_spec(text)
                registry.register(name.strip(), spec)
            else:
                spec = parse_model_spec(entry)
                registry.register(spec.label, spec)
        return registry

    def names(self) -> List[str]:
        return list(self._specs)

    def items(self):
        return self._specs.items()

    def __getitem__(self, name: str) -> ModelSpec:
        return self._specs[name]

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __iter__(self):
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)


def default_registry(frequency: Union[Frequency, str], multiplicative: bool = True) -> ModelRegistry:
    """
    Competing models used for a typical analysis.

    Seasonal series get simple/Holt/damped ETS, Holt-Winters variants, seasonal
    naive, drift and an STL + damped ETS composite. Annual series get the
    non-seasonal subset plus naive and mean benchmarks. ``multiplicative=False``
    drops models with multiplicative components (useful after a Box-Cox
    transform, where values may be non-positive).
    """
    frequency = Frequency.from_string(frequency)
    A, M = ErrorType.ADDITIVE, ErrorType.MULTIPLICATIVE
    registry = ModelRegistry()
    registry.register("ses", ETSSpec(A, TrendType.NONE, SeasonalType.NONE))
    registry.register("holt", ETSSpec(A, TrendType.ADDITIVE, SeasonalType.NONE))
    registry.register("damped", ETSSpec(A, TrendType.DAMPED, SeasonalType.NONE))
    if frequency.is_seasonal:
        registry.register("hw_additive", ETSSpec(A, TrendType.ADDITIVE, SeasonalType.ADDITIVE))
        registry.register("hw_damped", ETSSpec(A, TrendType.DAMPED, SeasonalType.ADDITIVE))
        if multiplicative:
            registry.register("hw_multiplicative", ETSSpec(M, TrendType.ADDITIVE, SeasonalType.MULTIPLICATIVE))
        registry.register("snaive", BenchmarkSpec(BenchmarkMethod.SEASONAL_NAIVE))
        registry.register("stl_ets", CompositeSpec(DecompositionConfig(), ETSSpec(A, TrendType.DAMPED, SeasonalType.NONE)))
    else:
        registry.register("naive", BenchmarkSpec(BenchmarkMethod.NAIVE))
        registry.register("mean", BenchmarkSpec(BenchmarkMethod.MEAN))
    registry.register("drift", BenchmarkSpec(BenchmarkMethod.DRIFT))
    return registry


@dataclass(frozen=True)
class FitConfig:
    """Budgets and interval settings for model fitting."""

    max_iterations: int = 1000
    time_budget_seconds: Optional[float] = None
    confidence_levels: Tuple[int, ...] = (95,)
    max_workers: int = 1
    random_seed: int = 0

    @classmethod
    def from_config_manager(cls, config_manager=None) -> "FitConfig":
        config = cls()
        if config_manager is None:
            return config
        budget = config_manager.get("model.fitting.time_budget_seconds", None)
        return cls(
            max_iterations=int(config_manager.get("model.fitting.max_iterations", config.max_iterations)),
            time_budget_seconds=float(budget) if budget is not None else None,
            confidence_levels=tuple(int(x) for x in config_manager.get(
                "model.forecast.confidence_levels", list(config.confidence_levels))),
            max_workers=int(config_manager.get("backtesting.parallel.max_workers", config.max_workers)),
        )


# ---------------------------------------------------------------------------
# Engines (transformed scale)
# ---------------------------------------------------------------------------

def _z_value(level: int) -> float:
    return float(norm.ppf(0.5 + level / 200.0))


class _Engine:
    """Fitted state of one model on the (transformed) training values."""

    fitted: np.ndarray
    residuals: np.ndarray
    params: Dict[str, float]

    def predict(self, horizon: int, levels: Sequence[int]) -> Tuple[np.ndarray, Intervals]:
        raise NotImplementedError

    @property
    def n_params(self) -> int:
        return len(self.params)


class _BudgetExceeded(Exception):
    pass


class _ETSEngine(_Engine):
    """statsmodels ETSModel estimated by maximum likelihood."""

    def __init__(self, spec: ETSSpec, values: np.ndarray, period: int, config: FitConfig):
        self.spec = spec
        self.config = config
        n = len(values)
        if spec.is_seasonal and period < 2:
            raise DomainError(f"{spec.label} has a seasonal component but the series is not seasonal")
        if spec.is_seasonal and n < 2 * period:
            raise InsufficientDataError(
                f"{spec.label} needs at least {2 * period} observations (two seasonal cycles); got {n}"
            )
        if n < 3:
            raise InsufficientDataError(f"{spec.label} needs at least 3 observations; got {n}")
        if spec.is_multiplicative and (values <= 0).any():
            raise DomainError(f"{spec.label} has multiplicative components and requires strictly positive data")

        model = ETSModel(
            pd.Series(values),
            error="mul" if spec.error == ErrorType.MULTIPLICATIVE else "add",
            trend=None if spec.trend == TrendType.NONE else "add",
            damped_trend=spec.trend == TrendType.DAMPED,
            seasonal={SeasonalType.NONE: None, SeasonalType.ADDITIVE: "add",
                      SeasonalType.MULTIPLICATIVE: "mul"}[spec.seasonal],
            seasonal_periods=period if spec.is_seasonal else None,
            initialization_method="estimated",
        )

        deadline = None
        if config.time_budget_seconds is not None:
            deadline = time.monotonic() + config.time_budget_seconds

        def _check_budget(_params):
            if deadline is not None and time.monotonic() > deadline:
                raise _BudgetExceeded()

        try:
            res = model.fit(maxiter=config.max_iterations, disp=False, callback=_check_budget)
        except _BudgetExceeded:
            raise NonConvergenceError(
                f"{spec.label} exceeded its time budget of {config.time_budget_seconds:g}s"
            ) from None
        except (ValueError, np.linalg.LinAlgError, FloatingPointError, OverflowError) as e:
            raise NonConvergenceError(f"{spec.label} estimation failed: {e}") from e

        retvals = getattr(res, "mle_retvals", None) or {}
        # warnflag 1: L-BFGS-B ran out of iterations / function evaluations
        if retvals.get("warnflag") == 1 or not np.all(np.isfinite(np.asarray(res.params, dtype=float))):
            raise NonConvergenceError(
                f"{spec.label} did not converge within {config.max_iterations} iterations"
            )
        if not retvals.get("converged", True):
            logger.debug("%s optimizer stopped early (warnflag %s); keeping the estimates",
                         spec.label, retvals.get("warnflag"))

        self._res = res
        self.fitted = np.asarray(res.fittedvalues, dtype=float)
        self.residuals = np.asarray(res.resid, dtype=float)
        names = list(getattr(res.model, "param_names", [])) or [f"p{i}" for i in range(len(res.params))]
        self.params = {str(k): float(v) for k, v in zip(names, np.asarray(res.params, dtype=float))}
        for criterion in ("aic", "aicc", "bic"):
            value = getattr(res, criterion, None)
            if value is not None:
                self.params[criterion] = float(value)
        self._n_params = len(np.asarray(res.params))

    @property
    def n_params(self) -> int:
        return self._n_params

    def predict(self, horizon: int, levels: Sequence[int]) -> Tuple[np.ndarray, Intervals]:
        try:
            if self.spec.is_multiplicative:
                return self._simulated_predict(horizon, levels)
            n = len(self.fitted)
            pred = self._res.get_prediction(start=n, end=n + horizon - 1)
            mean = np.asarray(pred.predicted_mean, dtype=float)
            intervals: Intervals = {}
            for level in levels:
                bounds = np.asarray(pred.pred_int(alpha=1.0 - level / 100.0), dtype=float)
                intervals[level] = (bounds[:, 0], bounds[:, 1])
            return mean, intervals
        except (ValueError, np.linalg.LinAlgError, FloatingPointError, OverflowError) as e:
            raise NonConvergenceError(f"{self.spec.label} forecast failed: {e}") from e

    def _simulated_predict(self, horizon: int, levels: Sequence[int]) -> Tuple[np.ndarray, Intervals]:
        """
        Intervals for models with multiplicative components from simulated sample paths.

        The innovations are drawn from a generator seeded with
        ``FitConfig.random_seed`` and handed to ``simulate`` as an array, so the
        intervals are reproducible.
        """
        rng = np.random.default_rng(self.config.random_seed)
        resid = self.residuals[np.isfinite(self.residuals)]
        sigma = float(np.sqrt(np.mean(resid ** 2))) if len(resid) else 0.0
        errors = rng.normal(0.0, sigma, size=(horizon, SIMULATION_REPETITIONS))
        paths = np.asarray(self._res.simulate(horizon, anchor="end", repetitions=SIMULATION_REPETITIONS,
                                              random_errors=errors), dtype=float)
        paths = paths.reshape(horizon, SIMULATION_REPETITIONS)
        mean = np.asarray(self._res.forecast(horizon), dtype=float)
        intervals: Intervals = {}
        for level in levels:
            alpha = 1.0 - level / 100.0
            lower, upper = np.quantile(paths, [alpha / 2.0, 1.0 - alpha / 2.0], axis=1)
            intervals[level] = (lower, upper)
        return mean, intervals


class _BenchmarkEngine(_Engine):
    """Mean / naive / seasonal naive / drift with normal prediction intervals."""

    def __init__(self, spec: BenchmarkSpec, values: np.ndarray, period: int, config: FitConfig):
        self.spec = spec
        self.period = period
        self._values = np.asarray(values, dtype=float)
        y = self._values
        n = len(y)
        method = spec.method
        minimum = {
            BenchmarkMethod.MEAN: 2,
            BenchmarkMethod.NAIVE: 2,
            BenchmarkMethod.SEASONAL_NAIVE: period + 1,
            BenchmarkMethod.DRIFT: 3,
        }[method]
        if n < minimum:
            raise InsufficientDataError(f"{spec.label} needs at least {minimum} observations; got {n}")

        fitted = np.full(n, np.nan)
        self._drift = 0.0
        if method == BenchmarkMethod.MEAN:
            fitted[:] = y.mean()
        elif method == BenchmarkMethod.NAIVE:
            fitted[1:] = y[:-1]
        elif method == BenchmarkMethod.SEASONAL_NAIVE:
            fitted[period:] = y[:-period]
        else:
            self._drift = (y[-1] - y[0]) / (n - 1)
            fitted[1:] = y[:-1] + self._drift

        self.fitted = fitted
        self.residuals = y - fitted
        resid = self.residuals[np.isfinite(self.residuals)]
        ddof = 1 if method in (BenchmarkMethod.MEAN, BenchmarkMethod.DRIFT) else 0
        self._sigma = float(np.sqrt(np.sum(resid ** 2) / max(len(resid) - ddof, 1)))
        self.params = {"sigma": self._sigma}
        if method == BenchmarkMethod.DRIFT:
            self.params["drift"] = float(self._drift)

    @property
    def n_params(self) -> int:
        return 1 if self.spec.method in (BenchmarkMethod.MEAN, BenchmarkMethod.DRIFT) else 0

    def predict(self, horizon: int, levels: Sequence[int]) -> Tuple[np.ndarray, Intervals]:
        y = self._values
        n = len(y)
        h = np.arange(1, horizon + 1)
        method = self.spec.method
        if method == BenchmarkMethod.MEAN:
            mean = np.full(horizon, y.mean())
            se = self._sigma * np.sqrt(1.0 + 1.0 / n) * np.ones(horizon)
        elif method == BenchmarkMethod.NAIVE:
            mean = np.full(horizon, y[-1])
            se = self._sigma * np.sqrt(h)
        elif method == BenchmarkMethod.SEASONAL_NAIVE:
            last_cycle = y[-self.period:]
            mean = np.array([last_cycle[(k - 1) % self.period] for k in h])
            se = self._sigma * np.sqrt((h - 1) // self.period + 1)
        else:
            mean = y[-1] + h * self._drift
            se = self._sigma * np.sqrt(h * (1.0 + h / (n - 1)))
        intervals = {level: (mean - _z_value(level) * se, mean + _z_value(level) * se) for level in levels}
        return mean, intervals


class _CompositeEngine(_Engine):
    """Decompose, model the seasonally adjusted component, re-seasonalize."""

    def __init__(self, spec: CompositeSpec, series: TimeSeries, config: FitConfig):
        self.spec = spec
        self.decomposition: Decomposition = get_decomposer(spec.decomposition).decompose(series)
        adjusted = self.decomposition.adjusted_series().values
        self.sub = _ENGINES[type(spec.model)](spec.model, adjusted, series.period, config)

        seasonal = self.decomposition.seasonal.to_numpy()
        self._multiplicative = self.decomposition.multiplicative
        self.fitted = self._combine(self.sub.fitted, seasonal)
        self.residuals = self.sub.residuals
        self.params = dict(self.sub.params)

    @property
    def n_params(self) -> int:
        return self.sub.n_params

    def _combine(self, values: np.ndarray, seasonal: np.ndarray) -> np.ndarray:
        return values * seasonal if self._multiplicative else values + seasonal

    def predict(self, horizon: int, levels: Sequence[int]) -> Tuple[np.ndarray, Intervals]:
        mean, intervals = self.sub.predict(horizon, levels)
        seasonal = self.decomposition.seasonal_forecast(horizon)
        combined = {
            level: (self._combine(lo, seasonal), self._combine(hi, seasonal))
            for level, (lo, hi) in intervals.items()
        }
        return self._combine(mean, seasonal), combined


_ENGINES = {
    ETSSpec: _ETSEngine,
    BenchmarkSpec: _BenchmarkEngine,
}


def _build_engine(spec: ModelSpec, transformed: TimeSeries, config: FitConfig) -> _Engine:
    if isinstance(spec, CompositeSpec):
        return _CompositeEngine(spec, transformed, config)
    return _ENGINES[type(spec)](spec, transformed.values, transformed.period, config)


# ---------------------------------------------------------------------------
# Fitted models and forecasts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Forecast:
    """Point forecasts and interval bounds on the original scale."""

    model_name: str
    mean: pd.Series
    intervals: Dict[int, Tuple[pd.Series, pd.Series]]
    frequency: Frequency

    @property
    def index(self) -> pd.PeriodIndex:
        return self.mean.index

    @property
    def horizon(self) -> int:
        return len(self.mean)

    @property
    def levels(self) -> List[int]:
        return sorted(self.intervals)

    def lower(self, level: int = 95) -> pd.Series:
        return self.intervals[level][0]

    def upper(self, level: int = 95) -> pd.Series:
        return self.intervals[level][1]

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame({"model": self.model_name, "mean": self.mean})
        for level in self.levels:
            lo, hi = self.intervals[level]
            frame[f"lower_{level}"] = lo
            frame[f"upper_{level}"] = hi
        frame.index.name = "period"
        return frame


@dataclass(frozen=True)
class FitFailure:
    """A model that could not be fitted, with the reason."""

    name: str
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, name: str, exc: Exception) -> "FitFailure":
        return cls(name=name, error_type=type(exc).__name__, message=str(exc))


@dataclass
class FittedModel:
    """A specification fitted to one training window."""

    name: str
    spec: ModelSpec
    training: TimeSeries
    transform: TransformSpec
    engine: _Engine = field(repr=False)

    @property
    def label(self) -> str:
        return self.spec.label

    @property
    def params(self) -> Dict[str, float]:
        return dict(self.engine.params)

    @property
    def n_params(self) -> int:
        return self.engine.n_params

    @property
    def residuals(self) -> pd.Series:
        """Innovation residuals, one per training period (transformed scale, NaN where undefined)."""
        return pd.Series(self.engine.residuals, index=self.training.index, name=f"{self.name}_innov")

    @property
    def fitted_values(self) -> pd.Series:
        """In-sample one-step fitted values on the original scale."""
        return pd.Series(self.transform.backward(self.engine.fitted), index=self.training.index,
                         name=f"{self.name}_fitted")

    @property
    def decomposition(self) -> Optional[Decomposition]:
        return getattr(self.engine, "decomposition", None)

    def forecast(self, horizon: int, levels: Optional[Sequence[int]] = None) -> Forecast:
        return forecast(self, horizon, levels)


FitOutcome = Union[FittedModel, FitFailure]


def is_success(outcome: FitOutcome) -> bool:
    return isinstance(outcome, FittedModel)


def fit_model(name: str,
              spec: ModelSpec,
              series: TimeSeries,
              transform: Optional[TransformSpec] = None,
              config: Optional[FitConfig] = None) -> FittedModel:
    """
    Fit one specification.

    Raises
    ------
    IrregularSeriesError, DomainError, InsufficientDataError
        For unusable data
    NonConvergenceError
        If estimation fails or exceeds its iteration/time budget
    """
    config = config or FitConfig()
    transform = transform or TransformSpec.identity()
    assert_regular(series)
    if len(series) == 0:
        raise InsufficientDataError(f"Cannot fit '{name}' on an empty series")

    transformed = transform.apply(series)
    start = time.monotonic()
    engine = _build_engine(spec, transformed, config)
    logger.debug("Fitted '%s' %s on %d obs in %.3fs", name, spec.label, len(series), time.monotonic() - start)
    return FittedModel(name=name, spec=spec, training=series, transform=transform, engine=engine)


def fit_models(series: TimeSeries,
               specs: Union[ModelRegistry, Mapping[str, ModelSpec]],
               transform: Optional[TransformSpec] = None,
               config: Optional[FitConfig] = None,
               raise_data_errors: bool = True) -> Dict[str, FitOutcome]:
    """
    Fit every specification independently.

    Parameters
    ----------
    series : TimeSeries
        Training series (original scale)
    specs : ModelRegistry or mapping name -> spec
        Competing model specifications
    transform : TransformSpec, optional
        Box-Cox transform applied before fitting and inverted for forecasts
    config : FitConfig, optional
        Iteration/time budget, interval levels and worker count
    raise_data_errors : bool, default True
        Re-raise data-validity errors. Cross-validation passes False to record
        them against the fold instead.

    Returns
    -------
    Dict[str, FittedModel | FitFailure]
        One entry per specification, in registry order. Non-converging fits are
        recorded as FitFailure and never abort the other fits.
    """
    config = config or FitConfig()
    assert_regular(series)
    items = list(specs.items())

    def _fit_one(name: str, spec: ModelSpec) -> FitOutcome:
        try:
            return fit_model(name, spec, series, transform, config)
        except NonConvergenceError as e:
            logger.warning("Model '%s' (%s) failed: %s", name, spec.label, e)
            return FitFailure.from_exception(name, e)
        except DataValidityError as e:
            if raise_data_errors:
                raise
            logger.warning("Model '%s' (%s) skipped: %s", name, spec.label, e)
            return FitFailure.from_exception(name, e)

    if config.max_workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures = [(name, executor.submit(_fit_one, name, spec)) for name, spec in items]
            results = {name: future.result() for name, future in futures}
    else:
        results = {name: _fit_one(name, spec) for name, spec in items}

    n_ok = sum(is_success(r) for r in results.values())
    logger.info("Fitted %d/%d models on '%s' (%d obs)", n_ok, len(results), series.name, len(series))
    return results


def forecast(fitted: FittedModel, horizon: int, levels: Optional[Sequence[int]] = None) -> Forecast:
    """
    Forecast ``horizon`` periods past the end of the training series.

    Point forecasts and each interval bound are back-transformed individually,
    so bounds stay valid quantiles on the original scale.
    """
    if not isinstance(horizon, (int, np.integer)) or horizon < 1:
        raise ValueError(f"horizon must be a positive integer, got {horizon!r}")
    levels = tuple(levels) if levels is not None else (95,)
    index = future_index(fitted.training, int(horizon))
    mean_z, intervals_z = fitted.engine.predict(int(horizon), levels)

    backward = fitted.transform.backward
    mean = pd.Series(backward(mean_z), index=index, name=fitted.name)
    intervals = {
        level: (pd.Series(backward(lo), index=index, name=f"lower_{level}"),
                pd.Series(backward(hi), index=index, name=f"upper_{level}"))
        for level, (lo, hi) in intervals_z.items()
    }
    return Forecast(model_name=fitted.name, mean=mean, intervals=intervals, frequency=fitted.training.frequency)


def forecast_all(results: Mapping[str, FitOutcome],
                 horizon: int,
                 levels: Optional[Sequence[int]] = None) -> Dict[str, Forecast]:
    """Forecast every successfully fitted model."""
    return {name: forecast(outcome, horizon, levels)
            for name, outcome in results.items() if is_success(outcome)}
