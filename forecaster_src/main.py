# forecaster_src/main.py

"""
ETS forecast evaluation on quarterly, monthly or annual series.

This is the command-line entry point of the forecasting pipeline.

Purpose
-------
- Load one or more series from a long-format CSV (date, value, optional key),
  or a column of the statsmodels macro dataset when no CSV is given
- Select a Box-Cox transform (Guerrero lambda by default) and decompose the
  transformed series (STL or X11 style)
- Fit a registry of competing ETS, benchmark and decomposition + ETS models
- Evaluate them on a train/test holdout and with rolling-origin cross-validation
- Write the accuracy report (with its failure table), final forecasts,
  residual diagnostics and figures to the output directory

Configuration-Driven Workflow
-----------------------------
Defaults come from the YAML configuration in config/settings.yaml (or the file
named by FORECASTER_CONFIG / --config). CLI arguments override configuration
values where applicable.
"""

import argparse
import logging
import re
import sys
import warnings
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from backtesting.evaluation_pipeline import EvaluationPipeline, EvaluationResult
from backtesting.metrics_aggregation import Regime

from .config_utils import initialize_config, get_config_value
from .data_utils import load_series_csv, macro_series
from .errors import DataValidityError
from .file_utils import (
    append_metrics_csv_row, ensure_dir, resolve_path, write_diagnostics_csv, write_forecasts_csv, write_report
)
from .forecasting_utils import is_success
from .parsing_utils import parse_intervals_arg, parse_models, validate_frequency, validate_log_level
from .plotting_utils import (
    PlotConfig, plot_decomposition, plot_forecast, plot_lags, plot_season, plot_series, plot_subseries
)
from .series_utils import SeriesStore, TimeSeries
from .transform_utils import parse_transform

logger = logging.getLogger(__name__)

SUMMARY_HEADER = ["series", "n_obs", "frequency", "transform", "n_models", "n_failures",
                  "best_model", "best_metric", "best_value"]


def _slug(text: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", str(text)).strip("_") or "series"


def load_input_series(args: argparse.Namespace, base_dir: Path) -> SeriesStore:
    """
    Build the SeriesStore requested on the command line.

    A --series-csv is read with the configured column names; otherwise the
    --macro-column of the statsmodels macro dataset is used.
    """
    if args.series_csv:
        frequency = validate_frequency(get_config_value('data.frequency', 'Q', args, 'frequency'))
        return load_series_csv(
            resolve_path(args.series_csv, base_dir),
            time_col=get_config_value('data.time_column', 'date', args, 'time_col'),
            value_col=get_config_value('data.value_column', 'value', args, 'value_col'),
            frequency=frequency,
            key_col=get_config_value('data.key_column', None, args, 'key_col'),
        )
    series = macro_series(args.macro_column)
    return SeriesStore({args.macro_column: series})


def build_pipeline(args: argparse.Namespace, config_manager) -> EvaluationPipeline:
    """Create the evaluation pipeline and apply CLI overrides to its settings."""
    pipeline = EvaluationPipeline(config_manager)

    cv = pipeline.cv_config
    cv.initial_window = int(get_config_value('backtesting.rolling_origin.initial_window', cv.initial_window,
                                             args, 'initial_window'))
    cv.step_size = int(get_config_value('backtesting.rolling_origin.step_size', cv.step_size, args, 'step'))
    cv.forecast_horizon = int(get_config_value('backtesting.rolling_origin.forecast_horizon',
                                               cv.forecast_horizon, args, 'cv_horizon'))
    if args.allow_partial:
        cv.allow_partial = True

    fit_config = pipeline.fit_config
    if args.intervals is not None:
        fit_config = replace(fit_config, confidence_levels=tuple(parse_intervals_arg(args.intervals)))
    if args.workers is not None:
        fit_config = replace(fit_config, max_workers=max(1, int(args.workers)))
        cv.max_workers = max(1, int(args.workers))
    cv.confidence_levels = list(fit_config.confidence_levels)
    pipeline.fit_config = fit_config
    return pipeline


def write_figures(result: EvaluationResult, figures_dir: Path, plot_config: PlotConfig) -> List[Path]:
    """Exploratory, decomposition and forecast figures for one evaluated series."""
    ensure_dir(figures_dir)
    series = result.series
    written = [plot_series(series, figures_dir / "series.png", plot_config)]
    if series.frequency.is_seasonal:
        written.append(plot_season(series, figures_dir / "season.png", plot_config))
        written.append(plot_subseries(series, figures_dir / "subseries.png", plot_config))
    written.append(plot_lags(series, figures_dir / "lags.png", config=plot_config))
    if result.decomposition is not None:
        written.append(plot_decomposition(result.decomposition, figures_dir / "decomposition.png", plot_config))
    levels = [level for fc in result.forecasts.values() for level in fc.levels]
    level = max(levels) if levels else 95
    if result.holdout is not None and result.holdout.forecasts:
        written.append(plot_forecast(result.holdout.train, result.holdout.forecasts,
                                     figures_dir / "holdout_forecasts.png", actuals=result.holdout.test,
                                     level=level, config=plot_config))
    if result.forecasts:
        written.append(plot_forecast(series, result.forecasts, figures_dir / "forecasts.png",
                                     level=level, config=plot_config))
    logger.info("Wrote %d figures to %s", len(written), figures_dir)
    return written


def run_series_workflow(series: TimeSeries,
                        pipeline: EvaluationPipeline,
                        args: argparse.Namespace,
                        output_dir: Path,
                        plot_config: Optional[PlotConfig] = None) -> EvaluationResult:
    """
    Evaluate one series and write its outputs.

    Outputs
    -------
    accuracy_report.csv / accuracy_report_failures.csv / accuracy_report.json,
    forecasts.csv, diagnostics.csv and (with --figures) PNG figures, all under
    ``output_dir``.
    """
    specs = parse_models(args.models)
    transform = parse_transform(args.transform) if args.transform is not None else None

    result = pipeline.run(
        series,
        specs=specs,
        transform=transform,
        test_size=args.test_size,
        horizon=args.horizon,
        run_cv=not args.no_cv,
        run_decomposition=True,
        progress=True,
    )

    ensure_dir(output_dir)
    write_report(result.report, output_dir)
    write_forecasts_csv(result.forecasts, output_dir / "forecasts.csv", key=series.key or series.name)
    write_diagnostics_csv(result.diagnostics, output_dir / "diagnostics.csv", key=series.key or series.name)
    if args.figures:
        write_figures(result, output_dir / "figures", plot_config or PlotConfig())
    return result


def _summary_row(key: str, result: EvaluationResult, metric: str) -> dict:
    regime = Regime.CV if result.cv_result is not None else Regime.TEST
    best = result.report.best_model(metric, regime)
    best_value = result.report.get(best, regime).get(metric) if best else None
    return {
        "series": key,
        "n_obs": len(result.series),
        "frequency": result.series.frequency.name.lower(),
        "transform": result.transform.label,
        "n_models": len(result.final_fits),
        "n_failures": len(result.report.failures),
        "best_model": best or "",
        "best_metric": f"{metric} ({regime.value})",
        "best_value": best_value,
    }


def setup_cli_parser() -> argparse.ArgumentParser:
    """
    Set up the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="ETS forecast evaluation with Box-Cox transforms, decomposition and rolling-origin CV."
    )

    # Data and output arguments
    parser.add_argument(
        "--series-csv", type=str, default=None,
        help="Long-format CSV with a time column, a value column and optionally a key column. "
             "If omitted, a column of the statsmodels macro dataset is used."
    )
    parser.add_argument("--time-col", type=str, default=None, help="Time column name (config: data.time_column).")
    parser.add_argument("--value-col", type=str, default=None, help="Value column name (config: data.value_column).")
    parser.add_argument("--key-col", type=str, default=None, help="Grouping key column (config: data.key_column).")
    parser.add_argument(
        "--frequency", type=str, default=None,
        help="Sampling frequency: A, Q or M (config: data.frequency)."
    )
    parser.add_argument(
        "--macro-column", type=str, default="realgdp",
        help="Macro dataset column used when --series-csv is not given."
    )
    parser.add_argument(
        "--output-dir", type=str, default="output",
        help="Directory for reports, forecasts, diagnostics and figures."
    )
    parser.add_argument("--figures", action="store_true", default=False, help="Also write PNG figures.")
    parser.add_argument("--config", type=str, default=None, help="Alternative YAML configuration file.")
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level."
    )

    # Modelling
    parser.add_argument(
        "--transform", type=str, default=None,
        help="'none', 'log', 'guerrero' or a numeric Box-Cox lambda (config: transform.lambda_method)."
    )
    parser.add_argument(
        "--models", type=str, default=None,
        help="Comma-separated model list, e.g. 'ets=ETS(M,Ad,M),SNAIVE,stl+ETS(A,Ad,N)'. "
             "Defaults to the standard registry for the series frequency."
    )
    parser.add_argument(
        "--intervals", type=str, default=None,
        help="Comma-separated predictive interval coverages (e.g., '80,95')."
    )
    parser.add_argument("--horizon", type=int, default=None, help="Final forecast horizon.")
    parser.add_argument("--workers", type=int, default=None, help="Thread pool size for model fits and folds.")

    # Evaluation
    parser.add_argument("--test-size", type=int, default=None, help="Holdout length (config: backtesting.holdout.test_size).")
    parser.add_argument("--no-cv", action="store_true", default=False, help="Skip rolling-origin cross-validation.")
    parser.add_argument("--initial-window", type=int, default=None, help="First CV training window length.")
    parser.add_argument("--step", type=int, default=None, help="CV origin step size.")
    parser.add_argument("--cv-horizon", type=int, default=None, help="CV forecast horizon per fold.")
    parser.add_argument(
        "--allow-partial", action="store_true", default=False,
        help="Keep trailing CV folds whose test window is shorter than the horizon."
    )
    parser.add_argument(
        "--summary-metric", type=str, default="RMSE",
        help="Metric used to pick the best model in the run summary."
    )

    return parser


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.

    Parameters
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        from statsmodels.tools.sm_exceptions import ConvergenceWarning
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the forecasting application.

    Returns
    -------
    int
        Process exit code: 0 on success, 1 when any series had unusable
        data, 2 for a missing input file
    """
    parser = setup_cli_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)
    config_manager = initialize_config(args.config)

    base_dir = Path.cwd()
    output_dir = resolve_path(args.output_dir, base_dir)

    try:
        store = load_input_series(args, base_dir)
    except FileNotFoundError as e:
        logger.error("%s", e)
        return 2
    except (KeyError, DataValidityError) as e:
        logger.error("Could not load input series: %s", e)
        return 1

    pipeline = build_pipeline(args, config_manager)
    plot_config = PlotConfig.from_config_manager(config_manager)
    summary_csv = output_dir / "summary.csv"
    exit_code = 0

    for key, series in tqdm(list(store.items()), desc="Series", disable=len(store) < 2):
        series_dir = output_dir / _slug(key) if len(store) > 1 else output_dir
        try:
            result = run_series_workflow(series, pipeline, args, series_dir, plot_config)
        except DataValidityError as e:
            logger.error("Series '%s' rejected (%s): %s", key, type(e).__name__, e)
            exit_code = 1
            continue

        n_ok = sum(1 for outcome in result.final_fits.values() if is_success(outcome))
        logger.info("Series '%s': %d/%d models fitted, outputs in %s", key, n_ok, len(result.final_fits), series_dir)
        append_metrics_csv_row(summary_csv, _summary_row(key, result, args.summary_metric), SUMMARY_HEADER)

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
