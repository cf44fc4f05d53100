"""Holdout and rolling-origin evaluation of forecasting model registries.

This package provides:
- Train/test holdout evaluation with training- and test-regime accuracy
- Rolling-origin (expanding window) cross-validation
- Per-model aggregation of fold metrics, ignoring failed folds
- AccuracyReport with a failure table and CSV/JSON export
- End-to-end evaluation pipeline
"""

from .rolling_origin import (
    RollingOriginValidator,
    RollingOriginConfig,
    CrossValidationResult,
    FoldResult,
    Fold,
    count_folds,
    generate_folds,
    run_rolling_origin_cv
)

from .metrics_aggregation import (
    MetricsAggregator,
    AggregatedMetrics,
    AggregationMethod,
    AccuracyReport,
    Regime,
    aggregate_fold_results,
    create_performance_summary
)

from .evaluation_pipeline import (
    EvaluationPipeline,
    EvaluationResult,
    HoldoutResult,
    evaluate_holdout,
    run_evaluation,
    train_test_split
)

__all__ = [
    # Cross-validation
    'RollingOriginValidator',
    'RollingOriginConfig',
    'CrossValidationResult',
    'FoldResult',
    'Fold',
    'count_folds',
    'generate_folds',
    'run_rolling_origin_cv',

    # Metrics aggregation
    'MetricsAggregator',
    'AggregatedMetrics',
    'AggregationMethod',
    'AccuracyReport',
    'Regime',
    'aggregate_fold_results',
    'create_performance_summary',

    # Pipeline
    'EvaluationPipeline',
    'EvaluationResult',
    'HoldoutResult',
    'evaluate_holdout',
    'run_evaluation',
    'train_test_split'
]

# Version info
__version__ = '1.0.0'
