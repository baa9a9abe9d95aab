# okp_forecaster_src/plotting_utils.py

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import pandas as pd
from pathlib import Path
from typing import Dict, Optional
import logging

from .file_utils import ensure_dir

logger = logging.getLogger(__name__)

GREY_PALETTE: Dict[str, str] = {"Kalman": "#444444", "ARMA": "#888888", "RW": "#BBBBBB"}
LINESTYLES: Dict[str, str] = {"Kalman": "-", "ARMA": "--", "RW": ":"}


def plot_rmse_by_horizon(metrics: pd.DataFrame, out_path: Path,
                         palette: Optional[Dict[str, str]] = None) -> Optional[Path]:
    """
    Render RMSE against forecast horizon, one line per model.

    Parameters
    ----------
    metrics : pd.DataFrame
        Metrics table (``model, horizon, rmse, sample_count``)
    out_path : Path
        File path to save the PNG (parents are created if missing)
    palette : dict, optional
        Model -> colour; defaults to the grey palette

    Returns
    -------
    Path or None
        Written file, or None when there is nothing to plot
    """
    if metrics.empty:
        logger.warning("No metrics to plot, skipping %s", out_path)
        return None
    palette = {**GREY_PALETTE, **(palette or {})}

    ensure_dir(out_path.parent)
    fig, ax = plt.subplots(figsize=(7, 4))
    for model, group in metrics.groupby("model", sort=True):
        group = group.sort_values("horizon")
        ax.plot(group["horizon"], group["rmse"], marker="o",
                color=palette.get(model, "black"), linestyle=LINESTYLES.get(model, "-"), label=model)
    ax.set_xlabel("Horizon (quarters)")
    ax.set_ylabel("RMSE")
    ax.set_xticks(sorted(metrics["horizon"].unique()))
    ax.set_title("Out-of-sample RMSE by forecast horizon")
    ax.legend(frameon=False)
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close(fig)
    return out_path


def plot_forecast_paths(forecasts: pd.DataFrame,
                        actual: pd.DataFrame,
                        out_path: Path,
                        smoothed: Optional[pd.DataFrame] = None,
                        palette: Optional[Dict[str, str]] = None) -> Optional[Path]:
    """
    Render every forecast trajectory over the actual series (fan chart).

    Parameters
    ----------
    forecasts : pd.DataFrame
        Forecast records; one line per (model, origin) path
    actual : pd.DataFrame
        ``date, value`` of the observed series
    out_path : Path
        File path to save the PNG
    smoothed : pd.DataFrame, optional
        Full-sample smoothed signal (``date, value``)
    palette : dict, optional
        Model -> colour

    Returns
    -------
    Path or None
        Written file, or None when there are no forecasts

    Notes
    -----
    Each path starts at its origin's observed value so trajectories visibly
    branch off the actual series.
    """
    if forecasts.empty:
        logger.warning("No forecasts to plot, skipping %s", out_path)
        return None
    palette = {**GREY_PALETTE, **(palette or {})}
    observed = dict(zip(actual["date"], actual["value"]))

    ensure_dir(out_path.parent)
    fig, ax = plt.subplots(figsize=(9, 5))
    for model, model_rows in forecasts.groupby("model", sort=True):
        colour = palette.get(model, "black")
        style = LINESTYLES.get(model, "-")
        for i, (origin, path) in enumerate(model_rows.groupby("origin", sort=True)):
            path = path.sort_values("horizon")
            dates = [origin] + list(path["target_date"])
            values = [observed.get(origin, float("nan"))] + list(path["point_forecast"])
            ax.plot(dates, values, color=colour, linestyle=style, linewidth=0.8, alpha=0.7,
                    label=model if i == 0 else None)
    ax.plot(actual["date"], actual["value"], color="black", linewidth=1.6, label="Actual")
    if smoothed is not None and not smoothed.empty:
        ax.plot(smoothed["date"], smoothed["value"], color="black", linewidth=1.0,
                linestyle="-.", label="Kalman smoothed")
    ax.set_xlabel("Date")
    ax.set_ylabel("Value")
    ax.set_title("Rolling-origin forecast paths")
    ax.legend(frameon=False, ncol=2)
    fig.autofmt_xdate()
    plt.tight_layout()
    plt.savefig(out_path, dpi=300)
    plt.close(fig)
    return out_path
