# forecaster_src/errors.py

"""
Error taxonomy for the forecast evaluation pipeline.

Data-validity errors describe a malformed request and are raised to the caller
immediately. ``NonConvergenceError`` describes a model fit that did not finish
within its budget; multi-model and cross-validation runs record it against the
failing model or fold and carry on with the rest.
"""


class ForecastPipelineError(Exception):
    """Base class for all pipeline errors."""
    pass


class DataValidityError(ForecastPipelineError, ValueError):
    """Base class for errors caused by unusable input data."""
    pass


class RangeError(DataValidityError):
    """Requested time slice is empty, inverted or outside the series."""
    pass


class IrregularSeriesError(DataValidityError):
    """Periods are duplicated, unordered, missing or hold missing values."""
    pass


class DomainError(DataValidityError):
    """A transform or multiplicative model is undefined for the given values."""
    pass


class InsufficientDataError(DataValidityError):
    """Too few observations (e.g. fewer than two full seasonal cycles)."""
    pass


class NonConvergenceError(ForecastPipelineError, RuntimeError):
    """A model fit did not converge within its iteration or time budget."""
    pass
