# okp_forecaster_src/parsing_utils.py

from typing import List, Optional, Sequence
import logging

from forecast_models.registry import DEFAULT_MODELS, get_model
from okp_forecaster_src.transform_utils import GROWTH_POLICIES

logger = logging.getLogger(__name__)


def parse_models_arg(s: Optional[str], default: Sequence[str] = DEFAULT_MODELS) -> List[str]:
    """
    Parse a comma-separated model list like 'Kalman,RW' into canonical names.

    Parameters
    ----------
    s : str, optional
        CLI models argument
    default : sequence of str
        Models used when ``s`` is empty

    Returns
    -------
    List[str]
        Canonical model names in the given order, without duplicates

    Raises
    ------
    ValueError
        If a name is not a known model

    Examples
    --------
    >>> parse_models_arg("rw, kalman")
    ['RW', 'Kalman']
    >>> parse_models_arg(None)
    ['Kalman', 'ARMA', 'RW']
    """
    if not s or not s.strip():
        return list(default)
    names: List[str] = []
    for token in s.split(","):
        token = token.strip()
        if not token:
            continue
        name = get_model(token).name
        if name not in names:
            names.append(name)
    return names or list(default)


def validate_growth_policy(policy: str) -> str:
    """
    Validate the denominator policy for forecast growth rates.

    Examples
    --------
    >>> validate_growth_policy("prefer_actual")
    'prefer_actual'
    """
    if policy not in GROWTH_POLICIES:
        raise ValueError(f"Invalid growth policy '{policy}'. Must be one of: {list(GROWTH_POLICIES)}")
    return policy


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize logging level specification.

    Parameters
    ----------
    log_level : str
        Logging level to validate

    Returns
    -------
    str
        Validated logging level

    Raises
    ------
    ValueError
        If the logging level is not supported
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = log_level.upper()
    if level_upper not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level_upper
