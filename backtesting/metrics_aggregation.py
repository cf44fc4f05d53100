"""Metrics aggregation and the accuracy report.

This module aggregates per-fold cross-validation metrics per model and
collects training, test and cross-validation accuracy into a single
``AccuracyReport`` that also carries a failure table.

Features:
- Per-model, per-metric mean/std/median/min/max/count across folds
- Failed folds ignored in the aggregation and listed in the failure table
- Mean-based t-distribution confidence intervals for CV metrics
- Model ranking on a chosen metric
- DataFrame, CSV and JSON export
- Plain-text performance summary
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

logger = logging.getLogger(__name__)


class Regime(Enum):
    """Evaluation regimes."""
    TRAINING = "training"
    TEST = "test"
    CV = "cv"


class AggregationMethod(Enum):
    """Methods for aggregating metrics across folds."""
    MEAN = "mean"
    MEDIAN = "median"


@dataclass
class AggregatedMetrics:
    """Aggregated performance metrics of one model across folds."""

    model_name: str

    # metric_name -> {mean, std, median, min, max, count}
    metrics: Dict[str, Dict[str, float]]

    # metric_name -> {level: (lower, upper)}
    confidence_intervals: Dict[str, Dict[int, Tuple[float, float]]] = field(default_factory=dict)

    # Fold-wise results for detailed analysis
    fold_metrics: Optional[pd.DataFrame] = None

    # Metadata
    n_folds: int = 0
    successful_folds: int = 0
    aggregation_method: AggregationMethod = AggregationMethod.MEAN

    def get_primary_metric(self, metric_name: str = 'RMSE') -> float:
        """Get the primary aggregated value for a metric."""
        if metric_name not in self.metrics:
            raise KeyError(f"Metric {metric_name} not found in aggregated results")

        if self.aggregation_method == AggregationMethod.MEDIAN:
            return self.metrics[metric_name]['median']
        return self.metrics[metric_name]['mean']

    def get_metric_summary(self, metric_name: str) -> str:
        """Get formatted summary string for a metric."""
        if metric_name not in self.metrics:
            return f"{metric_name}: Not available"

        values = self.metrics[metric_name]
        mean = values.get('mean', np.nan)
        std = values.get('std', np.nan)

        summary = f"{metric_name}: {mean:.4f}"
        if not np.isnan(std) and std > 0:
            summary += f" ± {std:.4f}"

        if metric_name in self.confidence_intervals and 95 in self.confidence_intervals[metric_name]:
            ci_lower, ci_upper = self.confidence_intervals[metric_name][95]
            summary += f" [95% CI: {ci_lower:.4f}, {ci_upper:.4f}]"

        return summary

    def means(self) -> Dict[str, float]:
        return {name: values['mean'] for name, values in self.metrics.items()}


class MetricsAggregator:
    """Aggregates performance metrics across rolling-origin CV folds."""

    def __init__(self,
                 aggregation_method: AggregationMethod = AggregationMethod.MEAN,
                 confidence_levels: Optional[List[int]] = None):
        """Initialize the aggregator.

        Parameters
        ----------
        aggregation_method : AggregationMethod
            Statistic reported as the primary value of each metric
        confidence_levels : list, optional
            Confidence levels for the mean of each metric (default: [95])
        """
        self.aggregation_method = aggregation_method
        self.confidence_levels = confidence_levels or [95]

    def aggregate_model(self, model_name: str, fold_results: List) -> AggregatedMetrics:
        """Aggregate one model's fold results.

        Failed folds are excluded. A metric that is NaN on some folds (e.g.
        MAPE with a zero actual) is averaged over the folds where it is defined.

        Parameters
        ----------
        model_name : str
            Model whose folds are aggregated
        fold_results : list of FoldResult
            Fold results of that model

        Returns
        -------
        AggregatedMetrics
            Aggregated statistics
        """
        valid_folds = [f for f in fold_results if f.success and f.metrics]
        if len(valid_folds) < len(fold_results):
            logger.info("Model '%s': excluding %d failed fold(s) from aggregation",
                        model_name, len(fold_results) - len(valid_folds))

        if not valid_folds:
            return AggregatedMetrics(model_name=model_name, metrics={}, n_folds=len(fold_results),
                                     successful_folds=0, aggregation_method=self.aggregation_method)

        fold_metrics_df = pd.DataFrame([f.metrics for f in valid_folds],
                                       index=[f.fold_id for f in valid_folds])
        fold_metrics_df.index.name = 'fold'

        metrics: Dict[str, Dict[str, float]] = {}
        confidence_intervals: Dict[str, Dict[int, Tuple[float, float]]] = {}
        for metric_name in fold_metrics_df.columns:
            values = fold_metrics_df[metric_name].dropna()
            if values.empty:
                metrics[metric_name] = {'mean': np.nan, 'std': np.nan, 'median': np.nan,
                                        'min': np.nan, 'max': np.nan, 'count': 0}
                continue
            metrics[metric_name] = self._compute_basic_statistics(values)
            confidence_intervals[metric_name] = {
                level: self._compute_confidence_interval(values, level) for level in self.confidence_levels
            }

        return AggregatedMetrics(
            model_name=model_name,
            metrics=metrics,
            confidence_intervals=confidence_intervals,
            fold_metrics=fold_metrics_df,
            n_folds=len(fold_results),
            successful_folds=len(valid_folds),
            aggregation_method=self.aggregation_method,
        )

    def aggregate(self, cv_result) -> Dict[str, AggregatedMetrics]:
        """Aggregate every model of a CrossValidationResult."""
        return {name: self.aggregate_model(name, cv_result.results_for(name))
                for name in cv_result.model_names}

    def _compute_basic_statistics(self, values: pd.Series) -> Dict[str, float]:
        """Compute basic statistics for a metric."""
        return {
            'mean': float(values.mean()),
            'std': float(values.std(ddof=1)) if len(values) > 1 else 0.0,
            'median': float(values.median()),
            'min': float(values.min()),
            'max': float(values.max()),
            'count': int(len(values)),
        }

    def _compute_confidence_interval(self, values: pd.Series, confidence_level: int) -> Tuple[float, float]:
        """t-distribution interval for the mean of a metric."""
        mean = float(values.mean())
        if len(values) < 2:
            return mean, mean
        alpha = 1 - (confidence_level / 100)
        sem = float(values.std(ddof=1)) / np.sqrt(len(values))
        t_crit = float(stats.t.ppf(1 - alpha / 2, df=len(values) - 1))
        return mean - t_crit * sem, mean + t_crit * sem


def aggregate_fold_results(cv_result,
                           aggregation_method: AggregationMethod = AggregationMethod.MEAN) -> Dict[str, AggregatedMetrics]:
    """Convenience wrapper around MetricsAggregator.aggregate."""
    return MetricsAggregator(aggregation_method=aggregation_method).aggregate(cv_result)


def _clean(value: Any) -> Any:
    if isinstance(value, (float, np.floating)):
        return None if not np.isfinite(value) else float(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


class AccuracyReport:
    """
    Accuracy per model and regime, plus the table of failed fits.

    Rows are ``(model, regime, metrics)``; CV rows hold fold-averaged metrics.
    Every failure is kept with its model, regime, fold, error type and message
    so reports always show which models or folds failed and why.
    """

    def __init__(self):
        self._rows: List[Dict[str, Any]] = []
        self._failures: List[Dict[str, Any]] = []

    def add_metrics(self, model: str, regime: Union[Regime, str], metrics: Dict[str, float],
                    n_folds: Optional[int] = None) -> None:
        regime = Regime(regime)
        row = {'model': model, 'regime': regime.value}
        if n_folds is not None:
            row['folds'] = n_folds
        row.update(metrics)
        self._rows.append(row)

    def add_failure(self, model: str, regime: Union[Regime, str], error_type: str, message: str,
                    fold: Optional[int] = None) -> None:
        self._failures.append({
            'model': model,
            'regime': Regime(regime).value,
            'fold': fold,
            'error_type': error_type,
            'message': message,
        })

    def add_cv_result(self, cv_result, aggregator: Optional[MetricsAggregator] = None) -> Dict[str, AggregatedMetrics]:
        """Add fold-averaged metrics and per-fold failures of a cross-validation run."""
        aggregator = aggregator or MetricsAggregator()
        aggregated = aggregator.aggregate(cv_result)
        for name, agg in aggregated.items():
            if agg.successful_folds:
                self.add_metrics(name, Regime.CV, agg.means(), n_folds=agg.successful_folds)
        for failed in cv_result.failures:
            self.add_failure(failed.model_name, Regime.CV, failed.error_type, failed.error_message,
                             fold=failed.fold_id)
        return aggregated

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return list(self._rows)

    @property
    def failures(self) -> List[Dict[str, Any]]:
        return list(self._failures)

    @property
    def models(self) -> List[str]:
        names = [r['model'] for r in self._rows] + [f['model'] for f in self._failures]
        return list(dict.fromkeys(names))

    def get(self, model: str, regime: Union[Regime, str]) -> Dict[str, float]:
        regime = Regime(regime).value
        for row in self._rows:
            if row['model'] == model and row['regime'] == regime:
                return {k: v for k, v in row.items() if k not in ('model', 'regime')}
        raise KeyError(f"No {regime} accuracy recorded for model '{model}'")

    def to_frame(self) -> pd.DataFrame:
        if not self._rows:
            return pd.DataFrame(columns=['model', 'regime'])
        return pd.DataFrame(self._rows)

    def failures_frame(self) -> pd.DataFrame:
        columns = ['model', 'regime', 'fold', 'error_type', 'message']
        if not self._failures:
            return pd.DataFrame(columns=columns)
        return pd.DataFrame(self._failures, columns=columns)

    def ranking(self, metric: str = 'RMSE', regime: Union[Regime, str] = Regime.CV) -> pd.DataFrame:
        """Models sorted by a metric within one regime (NaN last)."""
        frame = self.to_frame()
        if frame.empty or metric not in frame.columns:
            return pd.DataFrame(columns=['model', metric])
        subset = frame[frame['regime'] == Regime(regime).value][['model', metric]]
        return subset.sort_values(metric, na_position='last').reset_index(drop=True)

    def best_model(self, metric: str = 'RMSE', regime: Union[Regime, str] = Regime.CV) -> Optional[str]:
        ranked = self.ranking(metric, regime).dropna()
        return None if ranked.empty else str(ranked.iloc[0]['model'])

    def to_csv(self, path: Union[str, Path]) -> Path:
        """Write the accuracy rows to ``path`` and the failures next to it (``*_failures.csv``)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_frame().to_csv(path, index=False)
        failures_path = path.with_name(f"{path.stem}_failures{path.suffix}")
        self.failures_frame().to_csv(failures_path, index=False)
        logger.info("Wrote accuracy report to %s (%d rows, %d failures)", path, len(self._rows), len(self._failures))
        return path

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rows': [{k: _clean(v) for k, v in row.items()} for row in self._rows],
            'failures': [{k: _clean(v) for k, v in row.items()} for row in self._failures],
        }

    def to_json(self, path: Optional[Union[str, Path]] = None) -> str:
        text = json.dumps(self.to_dict(), indent=2)
        if path is not None:
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding='utf-8')
            logger.info("Wrote accuracy report JSON to %s", path)
        return text


def create_performance_summary(report: AccuracyReport,
                               primary_metrics: Optional[List[str]] = None) -> str:
    """Create a formatted performance summary.

    Parameters
    ----------
    report : AccuracyReport
        Accuracy report to summarize
    primary_metrics : list, optional
        Metrics shown per model (default: RMSE, MAPE, MAE, MASE)

    Returns
    -------
    str
        Formatted performance summary, including every failed fit
    """
    if primary_metrics is None:
        primary_metrics = ['RMSE', 'MAPE', 'MAE', 'MASE']
    primary_metrics = [m.upper() for m in primary_metrics]

    lines = []
    lines.append("Performance Summary")
    lines.append("=" * 50)

    frame = report.to_frame()
    for regime in Regime:
        subset = frame[frame['regime'] == regime.value] if not frame.empty else frame
        if subset.empty:
            continue
        lines.append("")
        lines.append(f"{regime.value.capitalize()} accuracy:")
        lines.append("-" * 30)
        for _, row in subset.iterrows():
            parts = []
            for metric in primary_metrics:
                value = row.get(metric, np.nan)
                parts.append(f"{metric}={value:.4f}" if pd.notna(value) else f"{metric}=n/a")
            folds = f" ({int(row['folds'])} folds)" if 'folds' in row and pd.notna(row['folds']) else ""
            lines.append(f"  {row['model']:<20} " + "  ".join(parts) + folds)

    best = report.best_model(primary_metrics[0], Regime.CV) or report.best_model(primary_metrics[0], Regime.TEST)
    if best:
        lines.append("")
        lines.append(f"Best model by {primary_metrics[0]}: {best}")

    failures = report.failures
    lines.append("")
    lines.append(f"Failures: {len(failures)}")
    if failures:
        lines.append("-" * 30)
        for f in failures:
            where = f"fold {f['fold']}" if f['fold'] is not None else f['regime']
            lines.append(f"  {f['model']} [{where}] {f['error_type']}: {f['message']}")

    return "\n".join(lines)
