"""Rolling-origin cross-validation for exponential smoothing model registries.

This module implements expanding-window cross-validation for time series
models, ensuring strict out-of-sample evaluation and preventing data leakage.

Features:
- Expanding training windows ``[0, w0 + k*s)`` paired with the next ``h`` actuals
- Optional truncated final folds (``allow_partial``)
- Every model specification refit independently on every fold
- Per-fold failures recorded against the model/fold instead of aborting
- Optional fold-level parallelism with ``ThreadPoolExecutor``
- Integration with configuration system
"""

import dataclasses
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd
from tqdm import tqdm

from forecaster_src.errors import ForecastPipelineError, InsufficientDataError
from forecaster_src.forecasting_utils import (
    FitConfig,
    FitFailure,
    ModelRegistry,
    ModelSpec,
    fit_models,
)
from forecaster_src.metrics_utils import accuracy, interval_accuracy
from forecaster_src.series_utils import TimeSeries, assert_regular
from forecaster_src.transform_utils import TransformSpec, select_transform

logger = logging.getLogger(__name__)


@dataclass
class RollingOriginConfig:
    """Configuration for rolling-origin cross-validation."""

    initial_window: int = 20            # Observations in the first training window
    step_size: int = 2                  # Observations added per fold
    forecast_horizon: int = 4           # Steps ahead to forecast
    allow_partial: bool = False         # Keep folds whose horizon is cut by the series end

    confidence_levels: List[int] = field(default_factory=lambda: [95])
    max_workers: int = 1                # Folds evaluated in parallel

    @classmethod
    def from_config_manager(cls, config_manager: Optional = None) -> 'RollingOriginConfig':
        """Create RollingOriginConfig from configuration manager.

        Parameters
        ----------
        config_manager : ConfigurationManager, optional
            Configuration manager instance

        Returns
        -------
        RollingOriginConfig
            Configured cross-validation settings
        """
        config = cls()

        if config_manager:
            base_config = config_manager.get_backtesting_config()
            rolling_config = base_config.get('rolling_origin', {}) or {}
            parallel_config = base_config.get('parallel', {}) or {}

            config.initial_window = int(rolling_config.get('initial_window', config.initial_window))
            config.step_size = int(rolling_config.get('step_size', config.step_size))
            config.forecast_horizon = int(rolling_config.get('forecast_horizon', config.forecast_horizon))
            config.allow_partial = bool(rolling_config.get('allow_partial', config.allow_partial))
            config.max_workers = int(parallel_config.get('max_workers', config.max_workers))
            config.confidence_levels = [
                int(x) for x in config_manager.get('model.forecast.confidence_levels', config.confidence_levels)
            ]
            logger.debug("Loaded rolling-origin configuration from config manager")

        return config


@dataclass(frozen=True)
class Fold:
    """Positional boundaries of one fold: train ``[0, train_end)``, test ``[train_end, test_end)``."""

    fold_id: int
    train_end: int
    test_end: int
    horizon: int

    @property
    def train_size(self) -> int:
        return self.train_end

    @property
    def test_size(self) -> int:
        return self.test_end - self.train_end

    @property
    def is_partial(self) -> bool:
        return self.test_size < self.horizon


def count_folds(n: int, initial_window: int, step: int, horizon: int) -> int:
    """Number of complete folds: ``floor((n - w0 - h) / s) + 1``, or 0 if the first fold does not fit."""
    if n < initial_window + horizon:
        return 0
    return (n - initial_window - horizon) // step + 1


def generate_folds(n: int,
                   initial_window: int,
                   step: int,
                   horizon: int,
                   allow_partial: bool = False) -> List[Fold]:
    """Generate expanding-window fold boundaries.

    Parameters
    ----------
    n : int
        Series length
    initial_window : int
        Length of the first training window (w0)
    step : int
        Observations added to the training window per fold (s)
    horizon : int
        Forecast horizon per fold (h)
    allow_partial : bool, default False
        Also emit trailing folds with fewer than ``horizon`` test observations

    Returns
    -------
    List[Fold]
        Folds in origin order

    Examples
    --------
    >>> len(generate_folds(40, 20, 2, 4))
    9
    """
    for name, value in (('initial_window', initial_window), ('step', step), ('horizon', horizon)):
        if int(value) < 1:
            raise ValueError(f"{name} must be a positive integer, got {value}")

    folds = []
    n_full = count_folds(n, initial_window, step, horizon)
    for k in range(n_full):
        train_end = initial_window + k * step
        folds.append(Fold(fold_id=k + 1, train_end=train_end, test_end=train_end + horizon, horizon=horizon))

    if allow_partial:
        train_end = initial_window + n_full * step
        while train_end < n:
            folds.append(Fold(fold_id=len(folds) + 1, train_end=train_end,
                              test_end=min(train_end + horizon, n), horizon=horizon))
            train_end += step

    return folds


@dataclass
class FoldResult:
    """Results from a single model on a single fold."""

    fold_id: int
    model_name: str
    train_start: pd.Period
    train_end: pd.Period
    test_start: pd.Period
    test_end: pd.Period
    train_size: int
    test_size: int

    # Forecasts and actuals
    actuals: pd.Series
    forecasts: Optional[pd.Series] = None
    forecast_intervals: Optional[Dict[int, Tuple[pd.Series, pd.Series]]] = None

    # Performance metrics
    metrics: Optional[Dict[str, float]] = None

    # Failure information
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    # Timing information
    fit_time: Optional[float] = None

    @property
    def success(self) -> bool:
        return self.error_type is None


@dataclass
class CrossValidationResult:
    """Complete results from rolling-origin cross-validation."""

    config: RollingOriginConfig
    folds: List[Fold]
    model_names: List[str]
    fold_results: List[FoldResult]

    # Execution metadata
    total_execution_time: Optional[float] = None

    @property
    def n_folds(self) -> int:
        """Number of generated folds."""
        return len(self.folds)

    def results_for(self, model_name: str) -> List[FoldResult]:
        return [r for r in self.fold_results if r.model_name == model_name]

    @property
    def failures(self) -> List[FoldResult]:
        return [r for r in self.fold_results if not r.success]

    def success_rate(self, model_name: Optional[str] = None) -> float:
        """Proportion of successful (model, fold) fits."""
        results = self.results_for(model_name) if model_name else self.fold_results
        if not results:
            return 0.0
        return sum(r.success for r in results) / len(results)

    def get_metric_series(self, model_name: str, metric_name: str) -> pd.Series:
        """Metric across successful folds of one model, indexed by fold id."""
        values = []
        fold_ids = []

        for fold in self.results_for(model_name):
            if fold.success and fold.metrics and metric_name in fold.metrics:
                values.append(fold.metrics[metric_name])
                fold_ids.append(fold.fold_id)

        return pd.Series(values, index=fold_ids, name=metric_name, dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """One row per (fold, model) with boundaries, status and metrics."""
        rows = []
        for r in self.fold_results:
            row = {
                'fold': r.fold_id,
                'model': r.model_name,
                'train_end': str(r.train_end),
                'test_start': str(r.test_start),
                'test_end': str(r.test_end),
                'train_size': r.train_size,
                'test_size': r.test_size,
                'status': 'ok' if r.success else 'failed',
                'error_type': r.error_type,
                'error_message': r.error_message,
            }
            row.update(r.metrics or {})
            rows.append(row)
        return pd.DataFrame(rows)


TransformArg = Union[TransformSpec, str, None]


class RollingOriginValidator:
    """Rolling-origin cross-validator for a registry of model specifications."""

    def __init__(self,
                 config: Optional[RollingOriginConfig] = None,
                 fit_config: Optional[FitConfig] = None,
                 lambda_bounds: Tuple[float, float] = (-1.0, 2.0)):
        """Initialize the validator.

        Parameters
        ----------
        config : RollingOriginConfig, optional
            Fold geometry and parallelism. If None, uses defaults.
        fit_config : FitConfig, optional
            Iteration/time budget for each fit
        lambda_bounds : tuple of float
            Search bounds when the transform is re-estimated per fold
        """
        self.config = config or RollingOriginConfig()
        base_fit = fit_config or FitConfig()
        # Folds are the unit of parallelism; fits inside a fold run sequentially
        self.fit_config = dataclasses.replace(
            base_fit, max_workers=1, confidence_levels=tuple(self.config.confidence_levels)
        )
        self.lambda_bounds = lambda_bounds

    def validate(self,
                 series: TimeSeries,
                 specs: Union[ModelRegistry, Mapping[str, ModelSpec]],
                 transform: TransformArg = None,
                 progress: bool = False) -> CrossValidationResult:
        """Run rolling-origin cross-validation.

        Parameters
        ----------
        series : TimeSeries
            Regular series (original scale)
        specs : ModelRegistry or mapping name -> spec
            Competing model specifications
        transform : TransformSpec, 'guerrero' or None
            Fixed transform, or 'guerrero' to re-estimate lambda on every
            training window
        progress : bool, default False
            Show a tqdm progress bar over folds

        Returns
        -------
        CrossValidationResult
            Per-fold, per-model results including recorded failures

        Raises
        ------
        IrregularSeriesError
            If the series has gaps or missing values
        InsufficientDataError
            If not a single fold fits in the series
        """
        start_time = datetime.now()
        assert_regular(series)
        cfg = self.config

        folds = generate_folds(len(series), cfg.initial_window, cfg.step_size,
                               cfg.forecast_horizon, cfg.allow_partial)
        if not folds:
            raise InsufficientDataError(
                f"Series '{series.name}' has {len(series)} observations; rolling-origin CV needs at least "
                f"{cfg.initial_window + cfg.forecast_horizon} (initial window {cfg.initial_window} "
                f"+ horizon {cfg.forecast_horizon})"
            )
        model_names = [name for name, _ in specs.items()]
        logger.info("Starting rolling-origin cross-validation of %d models on '%s' with %d folds",
                    len(model_names), series.name, len(folds))

        def _run(fold: Fold) -> List[FoldResult]:
            return self._run_single_fold(series, fold, specs, transform)

        if cfg.max_workers > 1 and len(folds) > 1:
            with ThreadPoolExecutor(max_workers=cfg.max_workers) as executor:
                iterator = executor.map(_run, folds)
                if progress:
                    iterator = tqdm(iterator, total=len(folds), desc="CV folds", unit="fold")
                per_fold = list(iterator)
        else:
            iterator = tqdm(folds, desc="CV folds", unit="fold") if progress else folds
            per_fold = [_run(fold) for fold in iterator]

        fold_results = [r for results in per_fold for r in results]
        execution_time = (datetime.now() - start_time).total_seconds()

        result = CrossValidationResult(
            config=cfg,
            folds=folds,
            model_names=model_names,
            fold_results=fold_results,
            total_execution_time=execution_time,
        )

        n_failed = len(result.failures)
        logger.info("Rolling-origin cross-validation completed: %d fits, %d failed (%.1f%% successful)",
                    len(fold_results), n_failed, result.success_rate() * 100)
        return result

    def _resolve_transform(self, train: TimeSeries, transform: TransformArg) -> TransformSpec:
        if isinstance(transform, str):
            return select_transform(train, method=transform, bounds=self.lambda_bounds)
        return transform or TransformSpec.identity()

    def _run_single_fold(self,
                         series: TimeSeries,
                         fold: Fold,
                         specs: Union[ModelRegistry, Mapping[str, ModelSpec]],
                         transform: TransformArg) -> List[FoldResult]:
        """Fit every specification on one training window and score its forecasts."""
        train = series.subset(0, fold.train_end)
        test = series.subset(fold.train_end, fold.test_end)
        actuals = test.series
        logger.debug("Running fold %d: train=%s to %s, test=%s to %s",
                     fold.fold_id, train.start, train.end, test.start, test.end)

        def _make(name: str, **kwargs) -> FoldResult:
            return FoldResult(
                fold_id=fold.fold_id,
                model_name=name,
                train_start=train.start,
                train_end=train.end,
                test_start=test.start,
                test_end=test.end,
                train_size=len(train),
                test_size=len(test),
                actuals=actuals,
                **kwargs
            )

        fit_start = time.time()
        try:
            fold_transform = self._resolve_transform(train, transform)
            outcomes = fit_models(train, specs, transform=fold_transform,
                                  config=self.fit_config, raise_data_errors=False)
        except ForecastPipelineError as e:
            logger.warning("Fold %d failed for all models: %s", fold.fold_id, e)
            return [_make(name, error_type=type(e).__name__, error_message=str(e))
                    for name, _ in specs.items()]
        fit_time = time.time() - fit_start

        results = []
        for name, outcome in outcomes.items():
            if isinstance(outcome, FitFailure):
                results.append(_make(name, error_type=outcome.error_type,
                                     error_message=outcome.message, fit_time=fit_time))
                continue

            try:
                fc = outcome.forecast(fold.horizon, self.fit_config.confidence_levels)
                metrics = accuracy(fc, actuals, training=train, period=train.period)
                for level in fc.levels:
                    metrics.update(interval_accuracy(fc, actuals, level=level))
            except ForecastPipelineError as e:
                logger.warning("Fold %d: model '%s' could not be scored: %s", fold.fold_id, name, e)
                results.append(_make(name, error_type=type(e).__name__, error_message=str(e),
                                     fit_time=fit_time))
                continue

            common = fc.index.intersection(actuals.index)
            results.append(_make(
                name,
                forecasts=fc.mean.loc[common],
                forecast_intervals={lvl: (lo.loc[common], hi.loc[common])
                                    for lvl, (lo, hi) in fc.intervals.items()},
                metrics=metrics,
                fit_time=fit_time,
            ))
        return results


def run_rolling_origin_cv(series: TimeSeries,
                          specs: Union[ModelRegistry, Mapping[str, ModelSpec]],
                          initial_window: Optional[int] = None,
                          step: Optional[int] = None,
                          horizon: Optional[int] = None,
                          transform: TransformArg = None,
                          config: Optional[RollingOriginConfig] = None,
                          fit_config: Optional[FitConfig] = None,
                          allow_partial: Optional[bool] = None,
                          progress: bool = False) -> CrossValidationResult:
    """Convenience function to run rolling-origin cross-validation.

    Explicit ``initial_window``, ``step``, ``horizon`` and ``allow_partial``
    arguments override the corresponding ``config`` fields.

    Parameters
    ----------
    series : TimeSeries
        Regular series
    specs : ModelRegistry or mapping
        Model specifications
    initial_window, step, horizon : int, optional
        Fold geometry (w0, s, h)
    transform : TransformSpec, 'guerrero' or None
        Transform applied before fitting
    config : RollingOriginConfig, optional
        Base configuration
    fit_config : FitConfig, optional
        Fit budget
    allow_partial : bool, optional
        Keep truncated trailing folds
    progress : bool
        Show a progress bar

    Returns
    -------
    CrossValidationResult
        Complete cross-validation results
    """
    cfg = dataclasses.replace(config) if config is not None else RollingOriginConfig()
    if initial_window is not None:
        cfg.initial_window = int(initial_window)
    if step is not None:
        cfg.step_size = int(step)
    if horizon is not None:
        cfg.forecast_horizon = int(horizon)
    if allow_partial is not None:
        cfg.allow_partial = bool(allow_partial)

    validator = RollingOriginValidator(cfg, fit_config=fit_config)
    return validator.validate(series, specs, transform=transform, progress=progress)
