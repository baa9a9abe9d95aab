# -*- coding: utf-8 -*-
"""
Temporal utilities for quarterly calendars.

Functions
---------
- quarter_start(value): Normalise any timestamp to the first day of its quarter.
- quarterly_index(start, periods): Quarter-start DatetimeIndex.
- shift_quarters(value, n): Move a date by n quarters (result at quarter start).
- quarter_ordinal(dates): Integer quarter counter (year * 4 + quarter - 1).
- quarters_between(origin, target): Whole quarters from origin to target.
"""

from __future__ import annotations

from typing import Union

import numpy as np
import pandas as pd

QUARTERLY_FREQ = "QS-JAN"

DateLike = Union[str, pd.Timestamp]


def quarter_start(value: DateLike) -> pd.Timestamp:
    """Return the first day of the quarter containing ``value``."""
    return pd.Timestamp(value).to_period("Q").to_timestamp(how="start")


def quarterly_index(start: DateLike, periods: int, name: str = "date") -> pd.DatetimeIndex:
    """
    Build a quarter-start index.

    Parameters
    ----------
    start : str or pd.Timestamp
        Any date inside the first quarter.
    periods : int
        Number of quarters.
    name : str
        Index name.
    """
    return pd.date_range(quarter_start(start), periods=periods, freq=QUARTERLY_FREQ, name=name)


def shift_quarters(value: DateLike, n: int) -> pd.Timestamp:
    """Shift a date by ``n`` quarters; the result sits on a quarter start."""
    return (pd.Timestamp(value).to_period("Q") + int(n)).to_timestamp(how="start")


def quarter_ordinal(dates) -> np.ndarray:
    """
    Map dates to a monotone integer quarter counter.

    Accepts a scalar, a Series or an Index of timestamps; the result is an
    int64 array (or a plain int for scalar input). Two dates in the same
    quarter share the ordinal.
    """
    if isinstance(dates, (str, pd.Timestamp)):
        ts = pd.Timestamp(dates)
        return ts.year * 4 + ts.quarter - 1
    idx = pd.DatetimeIndex(pd.to_datetime(dates))
    return (idx.year.to_numpy(dtype=np.int64) * 4 + idx.quarter.to_numpy(dtype=np.int64) - 1)


def quarters_between(origin, target):
    """
    Number of quarters from ``origin`` to ``target`` (positive when target is later).

    Works element-wise on array-likes of equal length.
    """
    return quarter_ordinal(target) - quarter_ordinal(origin)
