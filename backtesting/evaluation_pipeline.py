"""End-to-end evaluation pipeline.

This module provides a high-level interface for running a complete analysis
of one series, integrating transform selection, decomposition, holdout
evaluation, rolling-origin cross-validation, residual diagnostics and final
forecasts into a unified pipeline.

Features:
- Train/test holdout split with training- and test-regime accuracy
- Rolling-origin cross-validation with fold-averaged accuracy
- Box-Cox lambda re-estimated on each training window (no leakage)
- Failed fits recorded in the AccuracyReport failure table
- Residual diagnostics of the final fits
- Configuration system integration
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd

from config import ConfigurationManager
from diagnostics.residual_diagnostics import diagnose_models
from forecaster_src.decomposition_utils import Decomposition, DecompositionConfig, decompose
from forecaster_src.errors import InsufficientDataError
from forecaster_src.forecasting_utils import (
    FitConfig,
    FitFailure,
    FitOutcome,
    Forecast,
    ModelRegistry,
    ModelSpec,
    default_registry,
    fit_models,
    forecast_all,
    is_success,
)
from forecaster_src.metrics_utils import accuracy, interval_accuracy
from forecaster_src.series_utils import TimeSeries, assert_regular
from forecaster_src.transform_utils import TransformSpec, parse_transform, select_transform

from .metrics_aggregation import (
    AccuracyReport,
    AggregatedMetrics,
    MetricsAggregator,
    Regime,
    create_performance_summary,
)
from .rolling_origin import CrossValidationResult, RollingOriginConfig, RollingOriginValidator

logger = logging.getLogger(__name__)

Specs = Union[ModelRegistry, Mapping[str, ModelSpec]]


def train_test_split(series: TimeSeries, test_size: int) -> Tuple[TimeSeries, TimeSeries]:
    """Split off the last ``test_size`` observations as the holdout.

    Raises
    ------
    ValueError
        If ``test_size`` is not a positive integer
    InsufficientDataError
        If no training observations would remain
    """
    if int(test_size) < 1:
        raise ValueError(f"test_size must be a positive integer, got {test_size}")
    n = len(series)
    if test_size >= n:
        raise InsufficientDataError(
            f"Cannot hold out {test_size} observations from series '{series.name}' of length {n}"
        )
    return series.subset(0, n - test_size), series.subset(n - test_size, n)


@dataclass
class HoldoutResult:
    """Fits, forecasts and accuracy of a fixed train/test split."""

    train: TimeSeries
    test: TimeSeries
    transform: TransformSpec
    fits: Dict[str, FitOutcome]
    forecasts: Dict[str, Forecast]
    training_accuracy: Dict[str, Dict[str, float]] = field(default_factory=dict)
    test_accuracy: Dict[str, Dict[str, float]] = field(default_factory=dict)

    @property
    def failures(self) -> Dict[str, FitFailure]:
        return {name: f for name, f in self.fits.items() if isinstance(f, FitFailure)}


def _resolve_transform(series: TimeSeries,
                       choice: Union[TransformSpec, str, None],
                       bounds: Tuple[float, float]) -> TransformSpec:
    if isinstance(choice, str):
        return select_transform(series, method=choice, bounds=bounds)
    return choice or TransformSpec.identity()


def evaluate_holdout(series: TimeSeries,
                     specs: Specs,
                     test_size: int,
                     transform: Union[TransformSpec, str, None] = None,
                     fit_config: Optional[FitConfig] = None,
                     report: Optional[AccuracyReport] = None,
                     lambda_bounds: Tuple[float, float] = (-1.0, 2.0)) -> HoldoutResult:
    """Fit every specification on the training part and score it on the holdout.

    Parameters
    ----------
    series : TimeSeries
        Full regular series
    specs : ModelRegistry or mapping
        Model specifications
    test_size : int
        Number of trailing observations held out
    transform : TransformSpec, 'guerrero' or None
        Transform; 'guerrero' estimates lambda on the training part only
    fit_config : FitConfig, optional
        Fit budget and interval levels
    report : AccuracyReport, optional
        Report receiving training/test rows and failures

    Returns
    -------
    HoldoutResult
        Holdout fits, forecasts and accuracy
    """
    fit_config = fit_config or FitConfig()
    train, test = train_test_split(series, test_size)
    spec = _resolve_transform(train, transform, lambda_bounds)
    logger.info("Holdout split for '%s': train %s..%s (%d), test %s..%s (%d), transform %s",
                series.name, train.start, train.end, len(train), test.start, test.end, len(test), spec.label)

    fits = fit_models(train, specs, transform=spec, config=fit_config)
    forecasts = forecast_all(fits, len(test), fit_config.confidence_levels)
    result = HoldoutResult(train=train, test=test, transform=spec, fits=fits, forecasts=forecasts)

    for name, outcome in fits.items():
        if not is_success(outcome):
            if report is not None:
                report.add_failure(name, Regime.TEST, outcome.error_type, outcome.message)
            continue
        train_metrics = accuracy(outcome.fitted_values, train, training=train, period=train.period)
        test_metrics = accuracy(forecasts[name], test, training=train, period=train.period)
        for level in forecasts[name].levels:
            test_metrics.update(interval_accuracy(forecasts[name], test, level=level))
        result.training_accuracy[name] = train_metrics
        result.test_accuracy[name] = test_metrics
        if report is not None:
            report.add_metrics(name, Regime.TRAINING, train_metrics)
            report.add_metrics(name, Regime.TEST, test_metrics)

    return result


@dataclass
class EvaluationResult:
    """Everything produced by one pipeline run on one series."""

    series: TimeSeries
    transform: TransformSpec
    report: AccuracyReport
    holdout: Optional[HoldoutResult] = None
    cv_result: Optional[CrossValidationResult] = None
    aggregated: Dict[str, AggregatedMetrics] = field(default_factory=dict)
    decomposition: Optional[Decomposition] = None
    final_fits: Dict[str, FitOutcome] = field(default_factory=dict)
    forecasts: Dict[str, Forecast] = field(default_factory=dict)
    diagnostics: Optional[pd.DataFrame] = None
    execution_time: Optional[float] = None

    def summary(self, primary_metrics: Optional[List[str]] = None) -> str:
        return create_performance_summary(self.report, primary_metrics)


class EvaluationPipeline:
    """Transform, decompose, evaluate and forecast one series."""

    def __init__(self, config_manager: Optional[ConfigurationManager] = None):
        """Initialize the evaluation pipeline.

        Parameters
        ----------
        config_manager : ConfigurationManager, optional
            Source of default settings; library defaults are used without one
        """
        self.config_manager = config_manager
        self.fit_config = FitConfig.from_config_manager(config_manager)
        self.cv_config = RollingOriginConfig.from_config_manager(config_manager)
        self.decomposition_config = DecompositionConfig.from_config_manager(config_manager)

    def _get(self, key_path: str, default=None):
        if self.config_manager is None:
            return default
        return self.config_manager.get(key_path, default)

    def run(self,
            series: TimeSeries,
            specs: Optional[Specs] = None,
            transform: Union[TransformSpec, str, float, None] = None,
            test_size: Optional[int] = None,
            horizon: Optional[int] = None,
            run_cv: bool = True,
            run_decomposition: bool = True,
            progress: bool = False) -> EvaluationResult:
        """Run the full evaluation.

        Parameters
        ----------
        series : TimeSeries
            Regular input series (original scale)
        specs : ModelRegistry or mapping, optional
            Model specifications (default: ``default_registry`` for the frequency)
        transform : TransformSpec, 'guerrero', 'none', 'log', float or None
            Transform choice (default from ``transform.lambda_method``)
        test_size : int, optional
            Holdout length (default from ``backtesting.holdout.test_size``)
        horizon : int, optional
            Final forecast horizon (default: the CV forecast horizon)
        run_cv : bool
            Run rolling-origin cross-validation
        run_decomposition : bool
            Decompose the transformed full series
        progress : bool
            Show a progress bar over CV folds

        Returns
        -------
        EvaluationResult
            Report, fits, forecasts, decomposition and diagnostics

        Raises
        ------
        DataValidityError
            For irregular, too short or out-of-domain data
        """
        start_time = datetime.now()
        assert_regular(series)

        if transform is None:
            transform = self._get('transform.lambda_method', 'guerrero')
        choice = transform if isinstance(transform, TransformSpec) else parse_transform(transform)
        bounds = tuple(self._get('transform.lambda_bounds', [-1.0, 2.0]))

        full_transform = _resolve_transform(series, choice, bounds)
        if specs is None:
            specs = default_registry(series.frequency, multiplicative=full_transform.is_identity)

        test_size = int(test_size or self._get('backtesting.holdout.test_size', 8))
        horizon = int(horizon or self.cv_config.forecast_horizon)
        report = AccuracyReport()
        result = EvaluationResult(series=series, transform=full_transform, report=report)
        logger.info("Evaluating %d models on '%s' (%d obs, %s), transform %s",
                    len(specs), series.name, len(series), series.frequency.name.lower(), full_transform.label)

        if run_decomposition:
            result.decomposition = decompose(full_transform.apply(series), self.decomposition_config)

        result.holdout = evaluate_holdout(series, specs, test_size, transform=choice,
                                          fit_config=self.fit_config, report=report, lambda_bounds=bounds)

        if run_cv:
            validator = RollingOriginValidator(self.cv_config, fit_config=self.fit_config, lambda_bounds=bounds)
            result.cv_result = validator.validate(series, specs, transform=choice, progress=progress)
            result.aggregated = report.add_cv_result(result.cv_result, MetricsAggregator())

        result.final_fits = fit_models(series, specs, transform=full_transform, config=self.fit_config)
        for name, outcome in result.final_fits.items():
            if not is_success(outcome):
                report.add_failure(name, Regime.TRAINING, outcome.error_type, outcome.message)
        result.forecasts = forecast_all(result.final_fits, horizon, self.fit_config.confidence_levels)

        successful = {name: f for name, f in result.final_fits.items() if is_success(f)}
        if successful:
            result.diagnostics = diagnose_models(
                successful,
                lags=self._get('evaluation.diagnostic_tests.ljung_box.lags', None),
                significance_level=float(self._get('evaluation.diagnostic_tests.significance_level', 0.05)),
            )

        result.execution_time = (datetime.now() - start_time).total_seconds()
        logger.info("Evaluation summary:\n%s", result.summary(self._get('evaluation.metrics', None)))
        logger.info("Evaluation of '%s' completed in %.2f seconds", series.name, result.execution_time)
        return result


def run_evaluation(series: TimeSeries,
                   specs: Optional[Specs] = None,
                   config_manager: Optional[ConfigurationManager] = None,
                   **kwargs) -> EvaluationResult:
    """Convenience function for the end-to-end evaluation.

    Keyword arguments are forwarded to ``EvaluationPipeline.run``.
    """
    return EvaluationPipeline(config_manager).run(series, specs, **kwargs)
