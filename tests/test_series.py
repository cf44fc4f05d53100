import numpy as np
import pandas as pd
import pytest

from forecaster_src.errors import DataValidityError, IrregularSeriesError, RangeError
from forecaster_src.series_utils import (
    Frequency, SeriesStore, TimeSeries, assert_regular, future_index, slice_series
)


def test_frequency_aliases():
    assert Frequency.from_string("quarterly") == Frequency.QUARTERLY
    assert Frequency.from_string("QE") == Frequency.QUARTERLY
    assert Frequency.from_string("A") == Frequency.ANNUAL
    assert Frequency.MONTHLY.period == 12
    assert not Frequency.ANNUAL.is_seasonal
    with pytest.raises(ValueError):
        Frequency.from_string("weekly")


def test_gap_in_periods_is_irregular():
    index = pd.PeriodIndex(["2000Q1", "2000Q2", "2000Q4", "2001Q1"], freq="Q")
    series = TimeSeries([1.0, 2.0, 3.0, 4.0], index, "Q")
    with pytest.raises(IrregularSeriesError, match="missing period"):
        assert_regular(series)


def test_missing_value_is_irregular():
    index = pd.period_range("2000Q1", periods=4, freq="Q")
    series = TimeSeries([1.0, np.nan, 3.0, 4.0], index, "Q")
    with pytest.raises(IrregularSeriesError, match="missing value"):
        assert_regular(series)


def test_duplicate_periods_rejected():
    index = pd.PeriodIndex(["2000Q1", "2000Q1", "2000Q2"], freq="Q")
    with pytest.raises(IrregularSeriesError):
        TimeSeries([1.0, 2.0, 3.0], index, "Q")


def test_data_errors_are_value_errors():
    assert issubclass(IrregularSeriesError, DataValidityError)
    assert issubclass(RangeError, ValueError)


def test_slice_is_inclusive_and_keeps_frequency(quarterly_series):
    sliced = slice_series(quarterly_series, "1993Q1", "1994Q4")
    assert len(sliced) == 8
    assert str(sliced.start) == "1993Q1"
    assert str(sliced.end) == "1994Q4"
    assert sliced.frequency == Frequency.QUARTERLY
    np.testing.assert_allclose(sliced.values, quarterly_series.values[4:12])


def test_slice_errors(quarterly_series):
    with pytest.raises(RangeError):
        slice_series(quarterly_series, "1995Q1", "1994Q1")
    with pytest.raises(RangeError):
        slice_series(quarterly_series, "2050Q1", "2051Q1")


def test_values_are_copies(quarterly_series):
    values = quarterly_series.values
    values[0] = -999.0
    assert quarterly_series.values[0] != -999.0


def test_future_index_continues_series(quarterly_series):
    idx = future_index(quarterly_series, 3)
    assert list(idx.astype(str)) == ["2002Q1", "2002Q2", "2002Q3"]
    with pytest.raises(ValueError):
        future_index(quarterly_series, 0)


def test_store_from_long_frame():
    frame = pd.DataFrame({
        "date": ["2001Q2", "2001Q1", "2001Q3", "2001Q1", "2001Q2", "2001Q3"],
        "region": ["north", "north", "north", "south", "south", "south"],
        "value": [2.0, 1.0, 3.0, 10.0, 20.0, 30.0],
    })
    store = SeriesStore.from_frame(frame, time_col="date", value_col="value", frequency="Q", key_col="region")
    assert store.keys() == ["north", "south"]
    north = store.get("north")
    np.testing.assert_allclose(north.values, [1.0, 2.0, 3.0])
    assert north.key == "north"
    assert str(store.slice("south", "2001Q2", "2001Q3").start) == "2001Q2"
    with pytest.raises(KeyError):
        store.get("east")


def test_store_from_dates():
    frame = pd.DataFrame({
        "date": pd.date_range("2010-01-01", periods=6, freq="MS").strftime("%Y-%m-%d"),
        "value": np.arange(6, dtype=float),
    })
    store = SeriesStore.from_frame(frame, time_col="date", value_col="value", frequency="M")
    series = store.get("value")
    assert series.frequency == Frequency.MONTHLY
    assert str(series.start) == "2010-01"
