# forecaster_src/parsing_utils.py

from typing import Optional, List
import logging

from .forecasting_utils import ModelRegistry
from .series_utils import Frequency

logger = logging.getLogger(__name__)


def parse_intervals_arg(s: Optional[str], default: str = "95") -> List[int]:
    """
    Parse a CLI intervals argument like '80,95' into sorted unique integer coverage levels.

    Values outside 1-99 are dropped; an unparseable or empty argument falls
    back to ``default``.

    Parameters
    ----------
    s : str, optional
        CLI intervals argument (e.g., "80,95" or "90")
    default : str, default="95"
        Default intervals if parsing fails

    Returns
    -------
    List[int]
        Sorted list of unique coverage levels as integers between 1 and 99

    Examples
    --------
    >>> parse_intervals_arg("80,95")
    [80, 95]
    >>> parse_intervals_arg("95,80,80")
    [80, 95]
    >>> parse_intervals_arg("abc")
    [95]
    """
    fallback = sorted({int(x) for x in default.split(",") if x.strip()})
    txt = (s or default).strip()
    try:
        vals = sorted({int(x.strip()) for x in txt.split(",") if x.strip() != ""})
    except ValueError:
        logger.warning("Could not parse intervals '%s'; using %s", s, fallback)
        return fallback
    vals = [v for v in vals if 1 <= v < 100]
    return vals or fallback


def split_model_list(s: str) -> List[str]:
    """
    Split a comma-separated model list, keeping commas inside parentheses.

    Examples
    --------
    >>> split_model_list("ets=ETS(A,Ad,N), SNAIVE")
    ['ets=ETS(A,Ad,N)', 'SNAIVE']
    """
    items, depth, current = [], 0, []
    for ch in s:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    items.append("".join(current).strip())
    return [item for item in items if item]


def parse_models(s: Optional[str]) -> Optional[ModelRegistry]:
    """
    Parse a --models argument into a ModelRegistry.

    Entries are 'name=SPEC' or bare 'SPEC', where SPEC is an ETS label such as
    'ETS(M,Ad,M)', a benchmark (MEAN, NAIVE, SNAIVE, DRIFT) or a composite like
    'stl+ETS(A,Ad,N)'. Returns None for an empty argument so callers can fall
    back to the default registry.

    Raises
    ------
    ValueError
        For unknown specifications or duplicate names
    """
    if s is None or not s.strip():
        return None
    return ModelRegistry.from_strings(split_model_list(s))


def validate_frequency(frequency: str) -> Frequency:
    """
    Validate a frequency alias ('A', 'Q', 'M', 'quarterly', ...).

    Raises
    ------
    ValueError
        If the alias is not recognised
    """
    return Frequency.from_string(frequency)


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize logging level specification.

    Parameters
    ----------
    log_level : str
        Logging level to validate

    Returns
    -------
    str
        Validated logging level

    Raises
    ------
    ValueError
        If the logging level is not supported
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = log_level.upper()
    if level_upper not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level_upper
