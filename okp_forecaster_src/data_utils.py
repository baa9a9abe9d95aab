# okp_forecaster_src/data_utils.py

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from validation.data_integrity import DataIntegrityError, validate_quarterly_series

logger = logging.getLogger(__name__)

COVID_START = "2020-04-01"
COVID_END = "2021-12-31"


def load_cost_series_csv(series_path: Union[str, Path],
                         date_column: str = "Date",
                         value_column: str = "Value") -> pd.Series:
    """
    Load a quarterly cost series from a CSV file.

    Parameters
    ----------
    series_path : Path
        CSV with one row per quarter.
    date_column : str
        Column holding the observation date (any day inside the quarter).
    value_column : str
        Column holding the observed value.

    Returns
    -------
    pd.Series
        Validated series on a quarter-start DatetimeIndex, named after ``value_column``.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    DataIntegrityError
        Missing columns, unparseable dates or values, gaps or duplicates.

    Notes
    -----
    Rows that are entirely empty (trailing lines of spreadsheet exports)
    are skipped. Any other unparseable cell is an error, never silently
    dropped.
    """
    series_path = Path(series_path)
    if not series_path.is_file():
        raise FileNotFoundError(f"Series CSV not found: {series_path}")

    logger.info("Loading cost series from: %s", series_path)
    df = pd.read_csv(series_path).dropna(how="all")

    missing = [c for c in (date_column, value_column) if c not in df.columns]
    if missing:
        raise DataIntegrityError(
            f"Series CSV must contain columns {[date_column, value_column]}; missing {missing}"
        )

    dates = pd.to_datetime(df[date_column], errors="coerce")
    if dates.isna().any():
        bad = df.loc[dates.isna(), date_column].iloc[0]
        raise DataIntegrityError(f"Unparseable date {bad!r} in column '{date_column}'")

    values = pd.to_numeric(df[value_column], errors="coerce")
    series = pd.Series(values.to_numpy(), index=pd.DatetimeIndex(dates), name=value_column)
    return validate_quarterly_series(series.sort_index(), name=value_column)


def build_indicator_regressor(index: pd.DatetimeIndex,
                              start: Optional[str] = COVID_START,
                              end: Optional[str] = COVID_END,
                              name: str = "covid") -> pd.DataFrame:
    """
    Build a 0/1 indicator regressor on a quarterly index.

    Parameters
    ----------
    index : pd.DatetimeIndex
        Quarter-start dates of the target series.
    start, end : str
        Inclusive date window where the indicator is 1.
    name : str
        Column name.

    Returns
    -------
    pd.DataFrame
        Single float column, 1.0 inside ``[start, end]`` and 0.0 elsewhere.

    Examples
    --------
    >>> idx = pd.date_range("2019-10-01", periods=3, freq="QS")
    >>> build_indicator_regressor(idx, "2020-01-01", "2020-03-31")["covid"].tolist()
    [0.0, 1.0, 0.0]
    """
    start_ts = pd.Timestamp(start) if start is not None else index.min()
    end_ts = pd.Timestamp(end) if end is not None else index.max()
    if end_ts < start_ts:
        raise ValueError(f"Indicator window ends ({end_ts.date()}) before it starts ({start_ts.date()})")
    flag = ((index >= start_ts) & (index <= end_ts)).astype(float)
    active = int(flag.sum())
    logger.debug("Indicator '%s' active in %d of %d quarters", name, active, len(index))
    return pd.DataFrame({name: flag}, index=index)
