"""Data integrity checks and provenance for quarterly cost series.

Every series entering the evaluation passes through this module before any
model is fitted. Violations are fatal: they raise ``DataIntegrityError`` and
no partial evaluation is produced.

Features:
- Quarterly grid validation (ordering, gaps, duplicates, numeric values)
- Regressor alignment against the target index
- SHA-256 data fingerprinting for run provenance
"""

import hashlib
import logging
from typing import Dict, Any, Optional, Tuple
from dataclasses import dataclass, asdict

import pandas as pd
import numpy as np

from helpers.temporal import QUARTERLY_FREQ, quarter_ordinal

logger = logging.getLogger(__name__)


class DataIntegrityError(ValueError):
    """Raised when the input series or regressors break the quarterly data contract."""


def _to_quarter_start_index(index: pd.Index, label: str) -> pd.DatetimeIndex:
    """Convert a Datetime/Period index to quarter-start timestamps."""
    if isinstance(index, pd.PeriodIndex):
        return index.asfreq("Q").to_timestamp(how="start")
    if isinstance(index, pd.DatetimeIndex):
        if index.hasnans:
            raise DataIntegrityError(f"{label} index contains missing dates")
        return index.to_period("Q").to_timestamp(how="start")
    raise DataIntegrityError(
        f"{label} must be indexed by dates (DatetimeIndex or PeriodIndex), got {type(index).__name__}"
    )


def validate_quarterly_series(series: pd.Series, name: Optional[str] = None) -> pd.Series:
    """Validate a quarterly observation series and normalise its index.

    Parameters
    ----------
    series : pd.Series
        Observations indexed by dates. Any date inside a quarter is accepted
        and mapped to the first day of that quarter.
    name : str, optional
        Name for the returned series (defaults to ``series.name`` or ``'value'``).

    Returns
    -------
    pd.Series
        Float series on a ``QS-JAN`` DatetimeIndex named ``date``.

    Raises
    ------
    DataIntegrityError
        Empty input, non-numeric or non-finite values, unsorted dates,
        two observations in one quarter, or a missing quarter.
    """
    if not isinstance(series, pd.Series):
        raise DataIntegrityError("series must be a pandas Series")
    if series.empty:
        raise DataIntegrityError("series is empty")

    index = _to_quarter_start_index(series.index, "series")

    values = pd.to_numeric(pd.Series(series.to_numpy()), errors="coerce").to_numpy(dtype=float)
    bad = ~np.isfinite(values)
    if bad.any():
        first_bad = index[int(np.argmax(bad))]
        raise DataIntegrityError(
            f"series has {int(bad.sum())} missing or non-numeric value(s), first at {first_bad.date()}"
        )

    ordinals = quarter_ordinal(index)
    steps = np.diff(ordinals)
    if (steps == 0).any():
        dup = index[1:][steps == 0][0]
        raise DataIntegrityError(f"duplicate observation for quarter starting {dup.date()}")
    if (steps < 0).any():
        raise DataIntegrityError("series dates are not strictly increasing")
    if (steps > 1).any():
        pos = int(np.argmax(steps > 1))
        raise DataIntegrityError(
            f"series has a gap of {int(steps[pos]) - 1} quarter(s) after {index[pos].date()}"
        )

    clean_index = pd.date_range(index[0], periods=len(index), freq=QUARTERLY_FREQ, name="date")
    label = name if name is not None else (series.name if series.name is not None else "value")
    logger.debug("Validated series '%s': %d quarters %s..%s", label, len(values),
                 clean_index[0].date(), clean_index[-1].date())
    return pd.Series(values, index=clean_index, name=label)


def validate_regressors(exog: Optional[pd.DataFrame], index: pd.DatetimeIndex) -> Optional[pd.DataFrame]:
    """Check that regressors sit on exactly the target's quarterly grid.

    Parameters
    ----------
    exog : pd.DataFrame or None
        Regressor columns (a Series is promoted to a one-column frame).
    index : pd.DatetimeIndex
        Validated target index.

    Returns
    -------
    pd.DataFrame or None
        Float regressor frame reindexed on ``index``.
    """
    if exog is None:
        return None
    if isinstance(exog, pd.Series):
        exog = exog.to_frame(exog.name if exog.name is not None else "x")
    if not isinstance(exog, pd.DataFrame):
        raise DataIntegrityError("regressors must be a pandas DataFrame")
    if exog.shape[1] == 0:
        return None

    ex_index = _to_quarter_start_index(exog.index, "regressors")
    if ex_index.has_duplicates:
        raise DataIntegrityError("regressors contain duplicate quarters")
    aligned = pd.DataFrame(exog.to_numpy(), index=ex_index, columns=[str(c) for c in exog.columns])

    missing_dates = index.difference(ex_index)
    if len(missing_dates):
        raise DataIntegrityError(
            f"regressors missing {len(missing_dates)} target quarter(s), first {missing_dates[0].date()}"
        )
    extra_dates = ex_index.difference(index)
    if len(extra_dates):
        raise DataIntegrityError(
            f"regressors have {len(extra_dates)} quarter(s) outside the target grid, first {extra_dates[0].date()}"
        )
    aligned = aligned.reindex(index)
    try:
        aligned = aligned.astype(float)
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"regressors must be numeric: {e}") from e
    if not np.isfinite(aligned.to_numpy()).all():
        raise DataIntegrityError("regressors contain missing or non-finite values")
    return aligned


@dataclass(frozen=True)
class DataFingerprint:
    """Data fingerprint with SHA-256 hash and metadata."""

    hash: str                           # SHA-256 hash (truncated to 16 chars)
    full_hash: str                      # Full SHA-256 hash
    n_obs: int                          # Number of observations
    date_range: Tuple[str, str]         # (first, last) quarter start as ISO strings
    source: Optional[str] = None        # Where the series came from (file path, label)

    @classmethod
    def from_series(cls, data: pd.Series, source: Optional[str] = None) -> 'DataFingerprint':
        """Create a DataFingerprint from a validated quarterly series."""
        if data.empty:
            raise DataIntegrityError("Cannot create fingerprint from empty series")

        full_hash = cls._compute_hash(data)
        return cls(
            hash=full_hash[:16],
            full_hash=full_hash,
            n_obs=int(len(data)),
            date_range=(data.index.min().date().isoformat(), data.index.max().date().isoformat()),
            source=source,
        )

    @staticmethod
    def _compute_hash(data: pd.Series) -> str:
        # Values and index both enter the hash so a shifted series differs
        values_bytes = np.ascontiguousarray(data.to_numpy(dtype=float)).tobytes()
        index_bytes = "|".join(ts.isoformat() for ts in data.index).encode("utf-8")
        return hashlib.sha256(values_bytes + index_bytes).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)


def create_data_fingerprint(data: pd.Series, source: Optional[str] = None) -> DataFingerprint:
    """Create a data fingerprint for a series.

    Parameters
    ----------
    data : pd.Series
        Time series data
    source : str, optional
        Data source identifier

    Returns
    -------
    DataFingerprint
        Data fingerprint
    """
    return DataFingerprint.from_series(data, source)
