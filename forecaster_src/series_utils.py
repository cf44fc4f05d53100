# forecaster_src/series_utils.py

"""
Series store: immutable, frequency-aware time series containers.

A ``TimeSeries`` wraps a float array on a ``pandas.PeriodIndex`` at a declared
quarterly, monthly or annual frequency. Periods are unique and strictly
increasing by construction; gaps are allowed to exist but are rejected by
``assert_regular`` before any decomposition or model fit, since smoothing
models assume no implicit gaps.
"""

import logging
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import IrregularSeriesError, RangeError

logger = logging.getLogger(__name__)


class Frequency(Enum):
    """Supported sampling frequencies (value is the pandas period alias)."""
    QUARTERLY = "Q"
    MONTHLY = "M"
    ANNUAL = "Y"

    @property
    def period(self) -> int:
        """Number of observations per seasonal cycle."""
        return _SEASONAL_PERIODS[self]

    @property
    def is_seasonal(self) -> bool:
        return self.period > 1

    @classmethod
    def from_string(cls, value: Union[str, "Frequency"]) -> "Frequency":
        """
        Parse a frequency alias.

        Examples
        --------
        >>> Frequency.from_string("quarterly")
        <Frequency.QUARTERLY: 'Q'>
        >>> Frequency.from_string("A")
        <Frequency.ANNUAL: 'Y'>
        """
        if isinstance(value, Frequency):
            return value
        key = str(value).strip().lower()
        try:
            return _FREQUENCY_ALIASES[key]
        except KeyError:
            raise ValueError(
                f"Unknown frequency '{value}'. Use one of: {sorted(_FREQUENCY_ALIASES)}"
            ) from None


_SEASONAL_PERIODS = {
    Frequency.QUARTERLY: 4,
    Frequency.MONTHLY: 12,
    Frequency.ANNUAL: 1,
}

_FREQUENCY_ALIASES = {
    "q": Frequency.QUARTERLY, "qe": Frequency.QUARTERLY, "qs": Frequency.QUARTERLY,
    "quarter": Frequency.QUARTERLY, "quarterly": Frequency.QUARTERLY,
    "m": Frequency.MONTHLY, "me": Frequency.MONTHLY, "ms": Frequency.MONTHLY,
    "month": Frequency.MONTHLY, "monthly": Frequency.MONTHLY,
    "a": Frequency.ANNUAL, "y": Frequency.ANNUAL, "ye": Frequency.ANNUAL, "ys": Frequency.ANNUAL,
    "annual": Frequency.ANNUAL, "year": Frequency.ANNUAL, "yearly": Frequency.ANNUAL,
}


def to_period_index(index: pd.Index, frequency: Frequency) -> pd.PeriodIndex:
    """
    Convert a DatetimeIndex, PeriodIndex or label index to a PeriodIndex.

    Parameters
    ----------
    index : pd.Index
        Timestamps, periods, or labels parseable as periods ('1990Q1', '1990-01', 1990)
    frequency : Frequency
        Target frequency

    Returns
    -------
    pd.PeriodIndex
    """
    if isinstance(index, pd.PeriodIndex):
        if index.freqstr == pd.Period("2000-01-01", freq=frequency.value).freqstr:
            return index
        return index.asfreq(frequency.value)
    if isinstance(index, pd.DatetimeIndex):
        return index.to_period(frequency.value)
    return pd.PeriodIndex([str(label) for label in index], freq=frequency.value)


class TimeSeries:
    """
    Immutable univariate series on a regular period grid.

    Accessors hand out copies; transformations return new TimeSeries objects.
    """

    __slots__ = ("_values", "_index", "frequency", "name", "key")

    def __init__(self,
                 values: Union[Sequence[float], np.ndarray],
                 index: pd.PeriodIndex,
                 frequency: Union[Frequency, str],
                 name: str = "value",
                 key: Optional[str] = None):
        frequency = Frequency.from_string(frequency)
        index = to_period_index(pd.Index(index) if not isinstance(index, pd.Index) else index, frequency)
        arr = np.array(values, dtype=float).ravel()

        if len(arr) != len(index):
            raise ValueError(f"values ({len(arr)}) and index ({len(index)}) lengths differ")
        if not index.is_unique:
            dupes = index[index.duplicated()].unique()
            raise IrregularSeriesError(f"Duplicate periods in series '{name}': {list(map(str, dupes[:5]))}")
        if not index.is_monotonic_increasing:
            raise IrregularSeriesError(f"Periods of series '{name}' are not strictly increasing")

        arr.setflags(write=False)
        self._values = arr
        self._index = index
        self.frequency = frequency
        self.name = name
        self.key = key

    @classmethod
    def from_series(cls,
                    series: pd.Series,
                    frequency: Union[Frequency, str],
                    name: Optional[str] = None,
                    key: Optional[str] = None) -> "TimeSeries":
        """
        Build a TimeSeries from a pandas Series.

        The index may be a DatetimeIndex, a PeriodIndex or period labels.
        Raises IrregularSeriesError for duplicate or unordered periods.
        """
        frequency = Frequency.from_string(frequency)
        index = to_period_index(series.index, frequency)
        series_name = name if name is not None else (str(series.name) if series.name is not None else "value")
        return cls(series.to_numpy(dtype=float), index, frequency, name=series_name, key=key)

    @property
    def index(self) -> pd.PeriodIndex:
        return self._index

    @property
    def values(self) -> np.ndarray:
        return self._values.copy()

    @property
    def series(self) -> pd.Series:
        return pd.Series(self._values.copy(), index=self._index, name=self.name)

    @property
    def period(self) -> int:
        return self.frequency.period

    @property
    def start(self) -> pd.Period:
        return self._index[0]

    @property
    def end(self) -> pd.Period:
        return self._index[-1]

    @property
    def n_cycles(self) -> int:
        """Number of complete seasonal cycles covered by the observations."""
        return len(self) // self.period

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator:
        return iter(zip(self._index, self._values))

    def __repr__(self) -> str:
        if len(self) == 0:
            return f"TimeSeries(name={self.name!r}, frequency={self.frequency.name}, empty)"
        return (f"TimeSeries(name={self.name!r}, frequency={self.frequency.name}, "
                f"n={len(self)}, {self.start}..{self.end})")

    def with_values(self, values: Union[Sequence[float], np.ndarray], name: Optional[str] = None) -> "TimeSeries":
        """New series with the same index and different values."""
        return TimeSeries(values, self._index, self.frequency, name=name or self.name, key=self.key)

    def shifted(self, offset: float) -> "TimeSeries":
        """Add a constant to every value (e.g. to make a series strictly positive)."""
        return self.with_values(self._values + float(offset))

    def subset(self, start: int, stop: int) -> "TimeSeries":
        """Positional slice [start, stop)."""
        return TimeSeries(self._values[start:stop], self._index[start:stop], self.frequency,
                          name=self.name, key=self.key)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"period": self._index.astype(str), self.name: self._values})


def assert_regular(series: TimeSeries) -> None:
    """
    Fail with IrregularSeriesError unless the series is evenly spaced and complete.

    Checks that consecutive periods advance by exactly one step at the declared
    frequency and that no value is missing.
    """
    if len(series) == 0:
        return
    expected = pd.period_range(start=series.start, periods=len(series), freq=series.index.freq)
    if not series.index.equals(expected):
        full = pd.period_range(start=series.start, end=series.end, freq=series.index.freq)
        missing = full.difference(series.index)
        raise IrregularSeriesError(
            f"Series '{series.name}' has {len(missing)} missing period(s) at "
            f"{series.frequency.name.lower()} frequency, first: {[str(p) for p in missing[:5]]}"
        )
    nan_mask = ~np.isfinite(series.values)
    if nan_mask.any():
        bad = series.index[nan_mask]
        raise IrregularSeriesError(
            f"Series '{series.name}' has {int(nan_mask.sum())} missing value(s), first: {[str(p) for p in bad[:5]]}"
        )


def _as_period(label, frequency: Frequency) -> pd.Period:
    if isinstance(label, pd.Period):
        return label.asfreq(frequency.value)
    return pd.Period(label, freq=frequency.value)


def slice_series(series: TimeSeries, start, end) -> TimeSeries:
    """
    Slice a series by time range, both ends inclusive.

    Parameters
    ----------
    series : TimeSeries
        Source series
    start, end : period label, Timestamp or Period
        Range bounds; converted to periods at the series frequency

    Returns
    -------
    TimeSeries
        Copy of the observations inside the range, same frequency

    Raises
    ------
    RangeError
        If start > end or the range lies entirely outside the series
    """
    p_start = _as_period(start, series.frequency)
    p_end = _as_period(end, series.frequency)
    if p_start > p_end:
        raise RangeError(f"Slice start {p_start} is after end {p_end}")
    if len(series) == 0 or p_end < series.start or p_start > series.end:
        raise RangeError(
            f"Range {p_start}..{p_end} lies outside series '{series.name}' "
            f"({series.start if len(series) else '-'}..{series.end if len(series) else '-'})"
        )
    mask = (series.index >= p_start) & (series.index <= p_end)
    positions = np.flatnonzero(mask)
    return series.subset(int(positions[0]), int(positions[-1]) + 1)


def future_index(series: TimeSeries, horizon: int) -> pd.PeriodIndex:
    """The ``horizon`` periods immediately following the last observation."""
    if int(horizon) < 1:
        raise ValueError(f"horizon must be a positive integer, got {horizon}")
    return pd.period_range(start=series.end + 1, periods=int(horizon), freq=series.index.freq)


class SeriesStore:
    """Named collection of TimeSeries keyed by grouping key."""

    def __init__(self, series: Optional[Dict[str, TimeSeries]] = None):
        self._series: Dict[str, TimeSeries] = dict(series or {})

    @classmethod
    def from_frame(cls,
                   frame: pd.DataFrame,
                   time_col: str,
                   value_col: str,
                   frequency: Union[Frequency, str],
                   key_col: Optional[str] = None) -> "SeriesStore":
        """
        Build one TimeSeries per grouping key from a long-format table.

        Rows are sorted by time within each key. Without ``key_col`` the store
        holds a single series keyed by ``value_col``.
        """
        frequency = Frequency.from_string(frequency)
        missing_cols = [c for c in (time_col, value_col, key_col) if c and c not in frame.columns]
        if missing_cols:
            raise KeyError(f"Columns not found in frame: {missing_cols}")

        store: Dict[str, TimeSeries] = {}
        groups = frame.groupby(key_col, sort=True) if key_col else [(value_col, frame)]
        for key, group in groups:
            key = str(key[0] if isinstance(key, tuple) else key)
            g = group.sort_values(time_col)
            idx = g[time_col]
            if not isinstance(idx.dtype, pd.PeriodDtype):
                parsed = pd.to_datetime(idx, errors="coerce")
                idx = parsed if parsed.notna().all() else idx
            s = pd.Series(pd.to_numeric(g[value_col], errors="coerce").to_numpy(), index=pd.Index(idx))
            store[key] = TimeSeries.from_series(s, frequency, name=value_col, key=key if key_col else None)
            logger.debug("Series store loaded '%s' with %d observations", key, len(s))
        return cls(store)

    def get(self, key: str) -> TimeSeries:
        try:
            return self._series[key]
        except KeyError:
            raise KeyError(f"No series '{key}' in store; available: {self.keys()}") from None

    def add(self, key: str, series: TimeSeries) -> None:
        if key in self._series:
            raise ValueError(f"Series '{key}' already present in store")
        self._series[key] = series

    def keys(self) -> List[str]:
        return list(self._series)

    def items(self):
        return self._series.items()

    def slice(self, key: str, start, end) -> TimeSeries:
        return slice_series(self.get(key), start, end)

    def __contains__(self, key: str) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    def __iter__(self):
        return iter(self._series)
