# okp_forecaster_src/config_utils.py

import copy
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).with_name("defaults.yaml")


class ConfigurationError(ValueError):
    """Raised when a configuration file cannot be read or has the wrong shape."""


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping at the top level")
    return data


class ConfigurationManager:
    """
    Read-only view of the merged configuration.

    Values are addressed with dot paths, e.g. ``get("backtesting.rolling_origin.min_train_size")``.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, source: Optional[Path] = None):
        self._data = copy.deepcopy(data or {})
        self.source = source

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "ConfigurationManager":
        """
        Load packaged defaults and deep-merge an optional user file over them.

        Parameters
        ----------
        path : str or Path, optional
            User YAML file. Missing keys fall back to the packaged defaults.

        Returns
        -------
        ConfigurationManager
        """
        data = _read_yaml(DEFAULTS_PATH)
        source = None
        if path is not None:
            source = Path(path)
            data = _deep_merge(data, _read_yaml(source))
            logger.info("Loaded configuration overrides from %s", source)
        return cls(data, source)

    def get(self, key_path: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return copy.deepcopy(node)

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)


def load_config(path: Optional[Union[str, Path]] = None) -> ConfigurationManager:
    """Build the configuration manager for one run."""
    return ConfigurationManager.from_file(path)


def get_config_value(config_manager: Optional[ConfigurationManager], key_path: str,
                     default=None, args=None, cli_param=None):
    """
    Retrieves a configuration value, providing support for command-line overrides.
    The function prioritizes values in the following order:
    1. CLI argument (if provided)
    2. Configuration file
    3. Default value
    """
    # First priority: CLI argument
    if args is not None and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    # Second priority: Configuration file
    if config_manager is not None:
        config_value = config_manager.get(key_path, None)
        if config_value is not None:
            return config_value

    # Third priority: Default value
    return default
