"""Join forecast records with realised values.

Each forecast row is matched to the actual observation at its target date.
The horizon is recomputed from (origin, target_date) and must agree with the
stored horizon; any disagreement, or a duplicated (origin, target_date,
model) key, means the forecast table is corrupt and evaluation stops.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from helpers.temporal import quarters_between

logger = logging.getLogger(__name__)

KEY_COLUMNS = ["origin", "target_date", "model"]
ALIGNED_COLUMNS = ["origin", "target_date", "horizon", "model", "point_forecast", "lower", "upper", "realized"]


class AlignmentInconsistency(RuntimeError):
    """Raised when forecast records contradict their own dates or repeat a key."""


class ForecastAligner:
    """Align forecast records with actual observations.

    Parameters
    ----------
    horizon : int, optional
        Keep only rows with ``1 <= horizon <= H``; no filtering when None.
    """

    def __init__(self, horizon: Optional[int] = None):
        self.horizon = horizon

    def align(self, forecasts: pd.DataFrame, actual: pd.Series) -> pd.DataFrame:
        """Left-join realised values onto forecasts by target date.

        Parameters
        ----------
        forecasts : pd.DataFrame
            Columns ``origin, target_date, horizon, model, point_forecast``
            (``lower``/``upper`` optional)
        actual : pd.Series
            Realised values indexed by quarter-start date

        Returns
        -------
        pd.DataFrame
            Forecast columns plus ``realized`` (NaN where the target date is
            not observed), sorted by model, origin and horizon

        Raises
        ------
        AlignmentInconsistency
            Duplicate keys or a stored horizon that disagrees with the dates
        """
        missing_cols = [c for c in ["origin", "target_date", "horizon", "model", "point_forecast"]
                        if c not in forecasts.columns]
        if missing_cols:
            raise AlignmentInconsistency(f"forecast table lacks columns {missing_cols}")

        frame = forecasts.copy()
        for col in ("lower", "upper"):
            if col not in frame.columns:
                frame[col] = np.nan
        frame["origin"] = pd.to_datetime(frame["origin"])
        frame["target_date"] = pd.to_datetime(frame["target_date"])

        dup_mask = frame.duplicated(subset=KEY_COLUMNS, keep=False)
        if dup_mask.any():
            first = frame.loc[dup_mask, KEY_COLUMNS].iloc[0]
            raise AlignmentInconsistency(
                f"{int(dup_mask.sum())} forecast rows share a key, e.g. model={first['model']} "
                f"origin={first['origin'].date()} target={first['target_date'].date()}"
            )

        recomputed = quarters_between(frame["origin"], frame["target_date"])
        stored = frame["horizon"].to_numpy(dtype=np.int64)
        mismatch = recomputed != stored
        if mismatch.any():
            row = frame.loc[mismatch].iloc[0]
            raise AlignmentInconsistency(
                f"{int(mismatch.sum())} row(s) with inconsistent horizon, e.g. model={row['model']} "
                f"origin={row['origin'].date()} target={row['target_date'].date()} "
                f"stored={int(row['horizon'])} recomputed={int(recomputed[int(np.argmax(mismatch))])}"
            )
        frame["horizon"] = stored

        if self.horizon is not None:
            frame = frame[(frame["horizon"] >= 1) & (frame["horizon"] <= self.horizon)]

        realised = pd.DataFrame({"target_date": pd.to_datetime(actual.index),
                                 "realized": actual.to_numpy(dtype=float)})
        aligned = frame.merge(realised, on="target_date", how="left", validate="many_to_one")
        aligned = aligned.sort_values(["model", "origin", "horizon"]).reset_index(drop=True)

        logger.debug("Aligned %d forecast rows, %d with realised values",
                     len(aligned), int(aligned["realized"].notna().sum()))
        return aligned[ALIGNED_COLUMNS]
