"""Model name -> adapter lookup.

This is the only place where model names are mapped to implementations;
everything downstream works with :class:`ModelAdapter` instances.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Type

from .base import ModelAdapter
from .drift import RandomWalkDriftAdapter
from .sarima import SarimaAdapter
from .structural import StructuralAdapter

logger = logging.getLogger(__name__)

DEFAULT_MODELS = ("Kalman", "ARMA", "RW")

_REGISTRY: Dict[str, Type[ModelAdapter]] = {
    "Kalman": StructuralAdapter,
    "ARMA": SarimaAdapter,
    "RW": RandomWalkDriftAdapter,
}


def list_models() -> List[str]:
    return list(_REGISTRY)


def get_model(name: str) -> Type[ModelAdapter]:
    """Resolve a model name (case-insensitive) to its adapter class."""
    for key, adapter_cls in _REGISTRY.items():
        if key.lower() == str(name).strip().lower():
            return adapter_cls
    raise ValueError(f"Unknown model '{name}'. Available: {list_models()}")


def _adapter_kwargs(name: str, config_manager, interval_level: float) -> Dict:
    kwargs = {"interval_level": interval_level}
    if config_manager is None:
        return kwargs
    if name == "ARMA":
        kwargs.update(
            order=tuple(config_manager.get("models.arma.order", [1, 1, 1])),
            seasonal_order=tuple(config_manager.get("models.arma.seasonal_order", [1, 0, 1, 4])),
            trend=config_manager.get("models.arma.trend", "c"),
            maxiter=config_manager.get("models.arma.maxiter", 200),
            fallback_maxiter=config_manager.get("models.arma.fallback_maxiter", 2000),
        )
    elif name == "Kalman":
        kwargs.update(
            seasonal_period=config_manager.get("models.kalman.seasonal_period", 4),
            estimate_slope=config_manager.get("models.kalman.estimate_slope", True),
            init_scale=config_manager.get("models.kalman.init_scale", 10.0),
            maxiter=config_manager.get("models.kalman.maxiter", 500),
        )
    return kwargs


def build_adapters(names: Optional[Sequence[str]] = None,
                   config_manager=None,
                   interval_level: float = 95.0) -> List[ModelAdapter]:
    """Instantiate adapters for ``names`` (default: Kalman, ARMA, RW).

    Parameters
    ----------
    names : sequence of str, optional
        Model names; order is preserved and duplicates are ignored.
    config_manager : ConfigurationManager, optional
        Source of per-model settings under ``models.<name>``.
    interval_level : float
        Prediction interval coverage passed to every adapter.
    """
    adapters: List[ModelAdapter] = []
    seen = set()
    for name in (names or DEFAULT_MODELS):
        adapter_cls = get_model(name)
        if adapter_cls.name in seen:
            continue
        seen.add(adapter_cls.name)
        adapters.append(adapter_cls(**_adapter_kwargs(adapter_cls.name, config_manager, interval_level)))
    logger.debug("Built adapters: %s", [a.name for a in adapters])
    return adapters
