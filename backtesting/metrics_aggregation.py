"""Metrics aggregation for rolling-origin forecast evaluation.

Forecast errors from all origins are pooled per (model, horizon) and
summarised as root mean squared error. Only rows with a realised value
count; a (model, horizon) group without any such row produces no metric
row. The coverage report lists every configured combination so that
missing groups are visible instead of showing up as zero or NaN.

Features:
- RMSE per (model, horizon) with sample counts
- Coverage report against the expected number of evaluable origins
- Wide RMSE table (horizon x model) for reporting
- Plain-text performance summary
"""

import logging
from typing import Iterable, List, Optional, Sequence
from dataclasses import dataclass, asdict

import pandas as pd
import numpy as np

from helpers.temporal import shift_quarters

logger = logging.getLogger(__name__)

METRIC_COLUMNS = ["model", "horizon", "rmse", "sample_count"]
COVERAGE_COLUMNS = ["model", "horizon", "sample_count", "expected_count", "missing_count", "status"]


@dataclass(frozen=True)
class MetricRow:
    """Accuracy of one model at one horizon."""

    model: str
    horizon: int
    rmse: float
    sample_count: int

    def __post_init__(self):
        if self.sample_count < 1:
            raise ValueError("MetricRow requires at least one sample")
        if not self.rmse >= 0:
            raise ValueError(f"rmse must be non-negative, got {self.rmse}")


def root_mean_squared_error(forecast: Iterable[float], realized: Iterable[float]) -> float:
    """sqrt(mean((forecast - realized)^2))."""
    errors = np.asarray(forecast, dtype=float) - np.asarray(realized, dtype=float)
    if errors.size == 0:
        raise ValueError("cannot compute RMSE of an empty sample")
    return float(np.sqrt(np.mean(errors ** 2)))


class MetricsAggregator:
    """Aggregate aligned forecast errors into per-horizon metrics.

    Parameters
    ----------
    horizon : int, optional
        Ignore rows with a horizon above this value.
    """

    def __init__(self, horizon: Optional[int] = None):
        self.horizon = horizon

    def _scored(self, aligned: pd.DataFrame) -> pd.DataFrame:
        scored = aligned[aligned["realized"].notna()]
        if self.horizon is not None:
            scored = scored[scored["horizon"] <= self.horizon]
        return scored

    def compute_rows(self, aligned: pd.DataFrame) -> List[MetricRow]:
        """One MetricRow per (model, horizon) group with realised values."""
        rows = []
        scored = self._scored(aligned)
        for (model, horizon), group in scored.groupby(["model", "horizon"], sort=True):
            rows.append(MetricRow(
                model=str(model),
                horizon=int(horizon),
                rmse=root_mean_squared_error(group["point_forecast"], group["realized"]),
                sample_count=int(len(group)),
            ))
        return rows

    def aggregate(self, aligned: pd.DataFrame) -> pd.DataFrame:
        """Metrics table with columns ``model, horizon, rmse, sample_count``."""
        rows = self.compute_rows(aligned)
        logger.info("Aggregated %d (model, horizon) metric rows", len(rows))
        if not rows:
            return pd.DataFrame(columns=METRIC_COLUMNS)
        return pd.DataFrame([asdict(r) for r in rows], columns=METRIC_COLUMNS)

    def coverage_report(self,
                        aligned: pd.DataFrame,
                        models: Sequence[str],
                        horizon: int,
                        origins: Sequence[pd.Timestamp],
                        observed_dates: Sequence[pd.Timestamp]) -> pd.DataFrame:
        """Sample counts for every configured (model, horizon) combination.

        Parameters
        ----------
        aligned : pd.DataFrame
            Output of :meth:`ForecastAligner.align`
        models : sequence of str
            Configured model names
        horizon : int
            Maximum horizon H
        origins : sequence of pd.Timestamp
            Forecast origins that were attempted
        observed_dates : sequence of pd.Timestamp
            Dates with a realised value

        Returns
        -------
        pd.DataFrame
            ``model, horizon, sample_count, expected_count, missing_count,
            status`` where status is ``complete``, ``partial`` or ``no data``
        """
        observed = set(pd.to_datetime(list(observed_dates)))
        expected = {
            h: sum(1 for o in origins if shift_quarters(o, h) in observed)
            for h in range(1, horizon + 1)
        }
        scored = self._scored(aligned)
        counts = scored.groupby(["model", "horizon"]).size().to_dict()

        rows = []
        for model in models:
            for h in range(1, horizon + 1):
                n_obs = int(counts.get((model, h), 0))
                n_exp = int(expected[h])
                if n_obs == 0:
                    status = "no data"
                elif n_obs < n_exp:
                    status = "partial"
                else:
                    status = "complete"
                rows.append({
                    "model": model,
                    "horizon": h,
                    "sample_count": n_obs,
                    "expected_count": n_exp,
                    "missing_count": max(n_exp - n_obs, 0),
                    "status": status,
                })
        coverage = pd.DataFrame(rows, columns=COVERAGE_COLUMNS)
        gaps = coverage[coverage["status"] == "no data"]
        if not gaps.empty:
            logger.warning("No evaluable forecasts for %d (model, horizon) combination(s): %s",
                           len(gaps), ", ".join(f"{m}/h{h}" for m, h in zip(gaps["model"], gaps["horizon"])))
        return coverage


def rmse_table(metrics: pd.DataFrame) -> pd.DataFrame:
    """Wide RMSE table: one row per horizon, one column per model."""
    if metrics.empty:
        return pd.DataFrame()
    return metrics.pivot(index="horizon", columns="model", values="rmse").sort_index()


def aggregate_forecast_errors(aligned: pd.DataFrame, horizon: Optional[int] = None) -> pd.DataFrame:
    """Convenience wrapper around :meth:`MetricsAggregator.aggregate`.

    Parameters
    ----------
    aligned : pd.DataFrame
        Aligned forecast table
    horizon : int, optional
        Maximum horizon to include

    Returns
    -------
    pd.DataFrame
        Metrics table
    """
    return MetricsAggregator(horizon).aggregate(aligned)


def create_performance_summary(metrics: pd.DataFrame,
                               coverage: Optional[pd.DataFrame] = None) -> str:
    """Create a formatted performance summary.

    Parameters
    ----------
    metrics : pd.DataFrame
        Metrics table from :meth:`MetricsAggregator.aggregate`
    coverage : pd.DataFrame, optional
        Coverage report; incomplete combinations are listed

    Returns
    -------
    str
        Formatted performance summary
    """
    lines = []
    lines.append("Performance Summary")
    lines.append("=" * 50)

    table = rmse_table(metrics)
    if table.empty:
        lines.append("No evaluable forecasts.")
    else:
        lines.append("RMSE by horizon:")
        lines.append("-" * 30)
        lines.append(table.to_string(float_format=lambda v: f"{v:.4f}"))
        lines.append("")
        best = metrics.loc[metrics.groupby("horizon")["rmse"].idxmin()]
        lines.append("Lowest RMSE per horizon: " + ", ".join(
            f"h{int(h)}={m}" for h, m in zip(best["horizon"], best["model"])))

    if coverage is not None:
        incomplete = coverage[coverage["status"] != "complete"]
        if not incomplete.empty:
            lines.append("")
            lines.append("Incomplete combinations:")
            lines.append("-" * 30)
            for row in incomplete.itertuples(index=False):
                lines.append(f"  {row.model} h={row.horizon}: {row.sample_count}/{row.expected_count} ({row.status})")

    return "\n".join(lines)
