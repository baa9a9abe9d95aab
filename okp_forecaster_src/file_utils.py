# okp_forecaster_src/file_utils.py

import json
import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

logger = logging.getLogger(__name__)

DATE_FORMAT = "%Y-%m-%d"


def ensure_dir(path: Path) -> None:
    """
    Create directory if it doesn't exist, including all parent directories.

    Parameters
    ----------
    path : Path
        Directory path to create
    """
    path.mkdir(parents=True, exist_ok=True)


def write_table(df: Optional[pd.DataFrame], path: Path) -> Optional[Path]:
    """Write one table as CSV with ISO dates; ``None`` tables are skipped."""
    if df is None:
        return None
    ensure_dir(path.parent)
    df.to_csv(path, index=False, date_format=DATE_FORMAT)
    logger.debug("Wrote %d rows to %s", len(df), path)
    return path


def write_result_tables(result, out_dir: Path) -> Dict[str, Path]:
    """
    Persist every table of an evaluation result as CSV.

    Parameters
    ----------
    result : EvaluationResult
        Output of the evaluation pipeline
    out_dir : Path
        Target directory (created if missing)

    Returns
    -------
    Dict[str, Path]
        Table name -> written file

    Notes
    -----
    Also writes ``fingerprint.json`` with the input data hash so that a
    results folder can be traced back to the series it was computed from.
    """
    ensure_dir(out_dir)
    tables = {
        "rmse": result.metrics,
        "coverage": result.coverage,
        "forecasts": result.forecasts,
        "aligned": result.aligned,
        "actual": result.actual,
        "fit_failures": result.failures,
        "yoy_actual": result.yoy_actual,
        "yoy_forecast": result.yoy_forecast,
        "kalman_smoothed": result.smoothed,
    }
    written: Dict[str, Path] = {}
    for name, df in tables.items():
        path = write_table(df, out_dir / f"{name}.csv")
        if path is not None:
            written[name] = path

    fingerprint_path = out_dir / "fingerprint.json"
    with fingerprint_path.open("w", encoding="utf-8") as f:
        json.dump(result.fingerprint.to_dict(), f, indent=2)
    written["fingerprint"] = fingerprint_path

    logger.info("Wrote %d result files to %s", len(written), out_dir)
    return written

