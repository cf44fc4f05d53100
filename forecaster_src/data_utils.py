# forecaster_src/data_utils.py

import pandas as pd
import statsmodels.api as sm
from pathlib import Path
from typing import Optional, Union
import logging

from .series_utils import Frequency, SeriesStore, TimeSeries

logger = logging.getLogger(__name__)


def load_macro_data(data_path: Optional[Path] = None) -> pd.DataFrame:
    """
    Load the US macro quarterly dataset (1959-2009) from CSV or statsmodels.

    Parameters
    ----------
    data_path : Optional[Path]
        If provided and exists, load from this CSV. If provided and does not exist,
        the statsmodels macrodata dataset is loaded and written to this CSV path (parents created).

    Returns
    -------
    pd.DataFrame
        DataFrame with columns such as ['year', 'quarter', 'realgdp', 'realcons', 'realinv',
        'realgovt', 'realdpi', 'cpi', ...].

    Notes
    -----
    When persisting, the CSV is written without an index.
    """
    if data_path and data_path.is_file():
        return pd.read_csv(data_path)
    df = sm.datasets.macrodata.load_pandas().data.copy()
    if data_path:
        data_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(data_path, index=False)
    return df


def macro_series(column: str = "realgdp", data_path: Optional[Path] = None) -> TimeSeries:
    """
    One column of the macro dataset as a quarterly TimeSeries (1959Q1 onwards).

    Parameters
    ----------
    column : str, default="realgdp"
        Dataset column, e.g. 'realgdp', 'realcons' or 'cpi'
    data_path : Optional[Path]
        Optional CSV cache, see ``load_macro_data``

    Raises
    ------
    KeyError
        If the column is not part of the dataset
    """
    df = load_macro_data(data_path)
    if column not in df.columns:
        raise KeyError(f"Column '{column}' not in macro dataset; available: {list(df.columns)}")
    labels = [f"{int(y)}Q{int(q)}" for y, q in zip(df["year"], df["quarter"])]
    series = TimeSeries(df[column].to_numpy(dtype=float), labels, Frequency.QUARTERLY, name=column)
    logger.info("Loaded macro series '%s': %s..%s (%d obs)", column, series.start, series.end, len(series))
    return series


def load_series_csv(series_path: Path,
                    time_col: str = "date",
                    value_col: str = "value",
                    frequency: Union[Frequency, str] = Frequency.QUARTERLY,
                    key_col: Optional[str] = None) -> SeriesStore:
    """
    Load a long-format CSV into a SeriesStore.

    Parameters
    ----------
    series_path : Path
        CSV with a time column, a value column and optionally a key column
    time_col : str
        Column holding dates or period labels (e.g. '1992Q1', '2004-03')
    value_col : str
        Numeric observation column
    frequency : Frequency or str
        Sampling frequency ('A', 'Q' or 'M')
    key_col : str, optional
        Grouping key; one series is built per distinct key

    Returns
    -------
    SeriesStore
        Series keyed by grouping key (or by ``value_col`` without one)

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    KeyError
        If a named column is missing
    IrregularSeriesError
        If a series has duplicate or unordered periods
    """
    series_path = Path(series_path)
    if not series_path.exists():
        raise FileNotFoundError(f"Series CSV not found: {series_path}")

    logger.info("Loading series from: %s", series_path)
    df = pd.read_csv(series_path)
    store = SeriesStore.from_frame(df, time_col=time_col, value_col=value_col,
                                   frequency=frequency, key_col=key_col)
    logger.info("Loaded %d series from %s", len(store), series_path.name)
    return store
