# forecaster_src/__init__.py

"""
ETS Forecaster - Time Series Transformation and Forecast Evaluation Package

This package provides the building blocks of a classical forecasting workflow:
variance-stabilising transforms, seasonal decomposition, exponential smoothing
and benchmark models, and forecast accuracy measures.

Key Components
--------------
- errors: Error taxonomy (data-validity errors vs. non-convergence)
- series_utils: Regular period-indexed series and the keyed series store
- transform_utils: Box-Cox / log transforms and Guerrero lambda selection
- decomposition_utils: STL and X11-style classical decomposition
- forecasting_utils: Model specifications, registry, fitting and forecasts
- metrics_utils: Point and interval accuracy measures
- features_utils: Seasonal profiles, lag correlations and ACF
- plotting_utils: Exploratory, decomposition and forecast figures
- config_utils: Configuration management and CLI override support
- data_utils: CSV and macro dataset loading
- parsing_utils: Command-line argument parsing
- file_utils: Report, forecast and diagnostics writers
- main: Command-line entry point

Usage
-----
    # Command-line usage
    python -m forecaster_src.main --series-csv data/cement.csv --frequency Q

    # Programmatic usage
    from forecaster_src import TimeSeries, select_transform, fit_models, accuracy
"""

__version__ = "1.0.0"
__author__ = "ETS Forecaster Development Team"

# Import key functions for easy access
from .errors import (
    ForecastPipelineError, DataValidityError, RangeError, IrregularSeriesError,
    DomainError, InsufficientDataError, NonConvergenceError
)
from .series_utils import Frequency, TimeSeries, SeriesStore, slice_series
from .transform_utils import TransformSpec, guerrero_lambda, select_transform
from .decomposition_utils import DecompositionConfig, Decomposition, decompose
from .forecasting_utils import (
    ETSSpec, BenchmarkSpec, CompositeSpec, ModelRegistry, FitConfig, FittedModel, FitFailure,
    Forecast, default_registry, fit_models, forecast
)
from .metrics_utils import accuracy

__all__ = [
    # Errors
    "ForecastPipelineError",
    "DataValidityError",
    "RangeError",
    "IrregularSeriesError",
    "DomainError",
    "InsufficientDataError",
    "NonConvergenceError",
    # Core functionality
    "Frequency",
    "TimeSeries",
    "SeriesStore",
    "slice_series",
    "TransformSpec",
    "guerrero_lambda",
    "select_transform",
    "DecompositionConfig",
    "Decomposition",
    "decompose",
    "ETSSpec",
    "BenchmarkSpec",
    "CompositeSpec",
    "ModelRegistry",
    "FitConfig",
    "FittedModel",
    "FitFailure",
    "Forecast",
    "default_registry",
    "fit_models",
    "forecast",
    "accuracy",
    # Version info
    "__version__",
    "__author__"
]
