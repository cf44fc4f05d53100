# forecaster_src/transform_utils.py

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

import numpy as np
import pandas as pd
from scipy.optimize import minimize_scalar

from .errors import DomainError, InsufficientDataError
from .series_utils import TimeSeries

logger = logging.getLogger(__name__)

DEFAULT_LAMBDA_BOUNDS: Tuple[float, float] = (-1.0, 2.0)
ArrayLike = Union[np.ndarray, pd.Series, list]


class TransformKind(Enum):
    """Variance-stabilizing transform families."""
    IDENTITY = "identity"
    LOG = "log"
    POWER = "power"


def box_cox(values: ArrayLike, lam: float) -> np.ndarray:
    """
    Box-Cox transform.

    lam == 0 maps to the natural logarithm; otherwise (y**lam - 1) / lam.
    The caller is responsible for the domain check (see ``check_domain``).
    """
    y = np.asarray(values, dtype=float)
    if lam == 0:
        return np.log(y)
    return (np.power(y, lam) - 1.0) / lam


def inv_box_cox(values: ArrayLike, lam: float) -> np.ndarray:
    """
    Exact algebraic inverse of ``box_cox``.

    For lam != 0 the base (lam * z + 1) is clipped at zero, so values outside the
    image of the forward transform map to 0 (lam > 0) or +inf (lam < 0) instead
    of NaN. Only clipped values fall outside the round-trip guarantee.
    """
    z = np.asarray(values, dtype=float)
    if lam == 0:
        return np.exp(z)
    base = np.maximum(lam * z + 1.0, 0.0)
    with np.errstate(divide="ignore", over="ignore"):
        return np.power(base, 1.0 / lam)


def check_domain(values: ArrayLike, lam: float, kind: TransformKind = TransformKind.POWER) -> None:
    """
    Raise DomainError if the transform is undefined for some of the values.

    Logarithms and fractional powers require strictly positive data; the
    identity and the lam == 1 shift accept any real value.
    """
    if kind == TransformKind.IDENTITY or (kind == TransformKind.POWER and lam == 1):
        return
    y = np.asarray(values, dtype=float)
    finite = y[np.isfinite(y)]
    if finite.size and (finite <= 0).any():
        raise DomainError(
            f"Box-Cox transform with lambda={lam:g} requires strictly positive values "
            f"(min={finite.min():g}); shift the series by a positive constant first"
        )


@dataclass(frozen=True)
class TransformSpec:
    """
    Invertible variance-stabilizing transform.

    Use the constructors rather than building instances directly:

    >>> TransformSpec.box_cox(0.0).kind
    <TransformKind.LOG: 'log'>
    >>> TransformSpec.box_cox(-0.31).kind
    <TransformKind.POWER: 'power'>
    """
    kind: TransformKind = TransformKind.IDENTITY
    lam: float = 1.0

    @classmethod
    def identity(cls) -> "TransformSpec":
        return cls(TransformKind.IDENTITY, 1.0)

    @classmethod
    def log(cls) -> "TransformSpec":
        return cls(TransformKind.LOG, 0.0)

    @classmethod
    def box_cox(cls, lam: float) -> "TransformSpec":
        lam = float(lam)
        if lam == 0.0:
            return cls.log()
        return cls(TransformKind.POWER, lam)

    @classmethod
    def from_lambda(cls, lam: float) -> "TransformSpec":
        """lam == 1 is a pure shift and is treated as the identity."""
        if float(lam) == 1.0:
            return cls.identity()
        return cls.box_cox(lam)

    @property
    def is_identity(self) -> bool:
        return self.kind == TransformKind.IDENTITY

    @property
    def label(self) -> str:
        if self.kind == TransformKind.IDENTITY:
            return "none"
        if self.kind == TransformKind.LOG:
            return "log"
        return f"box_cox({self.lam:.4f})"

    def forward(self, values: ArrayLike) -> np.ndarray:
        """Transform raw values (array level)."""
        if self.is_identity:
            return np.asarray(values, dtype=float).copy()
        check_domain(values, self.lam, self.kind)
        return box_cox(values, self.lam)

    def backward(self, values: ArrayLike) -> np.ndarray:
        """Back-transform values to the original scale (array level)."""
        if self.is_identity:
            return np.asarray(values, dtype=float).copy()
        return inv_box_cox(values, self.lam)

    def apply(self, series: TimeSeries) -> TimeSeries:
        return series.with_values(self.forward(series.values))

    def invert(self, series: TimeSeries) -> TimeSeries:
        return series.with_values(self.backward(series.values))


def _subseries_stats(values: np.ndarray, length: int) -> Tuple[np.ndarray, np.ndarray]:
    """Means and standard deviations of contiguous equal-length blocks (leading remainder dropped)."""
    n_blocks = len(values) // length
    trimmed = values[len(values) - n_blocks * length:]
    blocks = trimmed.reshape(n_blocks, length)
    return blocks.mean(axis=1), blocks.std(axis=1, ddof=1)


def guerrero_objective(lam: float, means: np.ndarray, sds: np.ndarray) -> float:
    """Coefficient of variation of sd / mean**(1 - lam) across subseries."""
    ratio = sds / np.power(means, 1.0 - lam)
    mu = np.mean(ratio)
    if mu == 0 or not np.isfinite(mu):
        return np.inf
    return float(np.std(ratio, ddof=1) / mu)


def guerrero_lambda(series: TimeSeries,
                    lower: float = DEFAULT_LAMBDA_BOUNDS[0],
                    upper: float = DEFAULT_LAMBDA_BOUNDS[1]) -> float:
    """
    Select a Box-Cox lambda with Guerrero's (1993) variance-stabilization method.

    The series is split into contiguous non-overlapping subseries, one per
    seasonal cycle (at least two observations each). Lambda is the value in
    [lower, upper] that minimizes the coefficient of variation of
    sd_h / mean_h**(1 - lambda) across subseries.

    Parameters
    ----------
    series : TimeSeries
        Strictly positive input series
    lower, upper : float
        Search bounds for lambda (conventionally -1 and 2)

    Returns
    -------
    float
        Selected lambda

    Raises
    ------
    DomainError
        If the series contains zero or negative values
    InsufficientDataError
        If fewer than two complete subseries are available

    Notes
    -----
    A constant series has no variance to stabilize and returns lambda = 1.
    """
    values = series.values
    values = values[np.isfinite(values)]
    if values.size and (values <= 0).any():
        raise DomainError(
            f"Guerrero lambda requires strictly positive values; series '{series.name}' "
            f"has minimum {values.min():g}"
        )
    if values.size and np.all(values == values[0]):
        return 1.0

    length = max(series.period, 2)
    if len(values) // length < 2:
        raise InsufficientDataError(
            f"Guerrero lambda needs at least two subseries of length {length}; got {len(values)} observations"
        )

    means, sds = _subseries_stats(values, length)
    result = minimize_scalar(
        guerrero_objective,
        bounds=(lower, upper),
        args=(means, sds),
        method="bounded",
    )
    lam = float(result.x)
    logger.debug("Guerrero lambda for '%s': %.4f (objective %.6f)", series.name, lam, float(result.fun))
    return lam


def estimate_lambda(series: TimeSeries,
                    method: str = "guerrero",
                    lower: float = DEFAULT_LAMBDA_BOUNDS[0],
                    upper: float = DEFAULT_LAMBDA_BOUNDS[1]) -> float:
    """
    Estimate a variance-stabilizing Box-Cox parameter.

    Only the Guerrero heuristic is implemented; the ``method`` argument keeps
    the call signature open for alternatives.
    """
    if method.lower() != "guerrero":
        raise ValueError(f"Unknown lambda estimation method '{method}'")
    return guerrero_lambda(series, lower=lower, upper=upper)


def select_transform(series: TimeSeries,
                     method: str = "guerrero",
                     bounds: Tuple[float, float] = DEFAULT_LAMBDA_BOUNDS) -> TransformSpec:
    """Estimate lambda and wrap it in a TransformSpec."""
    lam = estimate_lambda(series, method=method, lower=bounds[0], upper=bounds[1])
    spec = TransformSpec.box_cox(lam)
    logger.info("Selected transform for '%s': %s", series.name, spec.label)
    return spec


def parse_transform(value: Union[str, float, None]) -> Union[TransformSpec, str]:
    """
    Parse a CLI/config transform option.

    Returns a TransformSpec for 'none', 'log' or a numeric lambda, and the
    string 'guerrero' when lambda should be estimated from the data.
    """
    if value is None:
        return TransformSpec.identity()
    if isinstance(value, (int, float)):
        return TransformSpec.box_cox(value)
    txt = str(value).strip().lower()
    if txt in ("none", "identity", "level"):
        return TransformSpec.identity()
    if txt in ("log", "ln"):
        return TransformSpec.log()
    if txt in ("guerrero", "auto"):
        return "guerrero"
    try:
        return TransformSpec.box_cox(float(txt))
    except ValueError:
        raise ValueError(f"Invalid transform '{value}'. Use 'none', 'log', 'guerrero' or a numeric lambda") from None
