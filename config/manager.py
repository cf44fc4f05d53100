"""YAML-backed configuration manager.

Settings are read from ``config/settings.yaml`` next to this module unless the
``FORECASTER_CONFIG`` environment variable points at another file. Values are
addressed with dot notation, e.g. ``backtesting.rolling_origin.step_size``.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "settings.yaml"
CONFIG_ENV_VAR = "FORECASTER_CONFIG"

_VALID_DECOMPOSITION_METHODS = ("stl", "x11")
_VALID_DECOMPOSITION_TYPES = ("additive", "multiplicative")


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be loaded."""
    pass


class ConfigurationManager:
    """Loads, queries and validates pipeline settings."""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Parameters
        ----------
        config_path : str or Path, optional
            YAML file to load. Defaults to ``$FORECASTER_CONFIG`` and then the
            bundled ``settings.yaml``.
        """
        if config_path is None:
            config_path = os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
        self.config_path = Path(config_path)
        self._data: Dict[str, Any] = self._load(self.config_path)

    @staticmethod
    def _load(path: Path) -> Dict[str, Any]:
        if not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping")
        logger.debug("Loaded configuration from %s", path)
        return data

    def get(self, key_path: str, default: Any = None) -> Any:
        """Return the value at a dot-separated key path, or ``default``."""
        node: Any = self._data
        for part in key_path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node if node is not None else default

    def set(self, key_path: str, value: Any) -> None:
        """Override a value in memory (used by CLI overrides and tests)."""
        parts = key_path.split(".")
        node = self._data
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def get_section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name) or {}
        return copy.deepcopy(section)

    def get_backtesting_config(self) -> Dict[str, Any]:
        return self.get_section("backtesting")

    def get_evaluation_config(self) -> Dict[str, Any]:
        return self.get_section("evaluation")

    def get_model_config(self) -> Dict[str, Any]:
        return self.get_section("model")

    def get_decomposition_config(self) -> Dict[str, Any]:
        return self.get_section("decomposition")

    def validate_configuration(self) -> Dict[str, List[str]]:
        """
        Check value ranges and enumerations.

        Returns
        -------
        Dict[str, List[str]]
            Section name -> list of problems. Empty when the configuration is valid.
        """
        errors: Dict[str, List[str]] = {}

        def add(section: str, message: str) -> None:
            errors.setdefault(section, []).append(message)

        bounds = self.get("transform.lambda_bounds", [-1.0, 2.0])
        if not (isinstance(bounds, (list, tuple)) and len(bounds) == 2 and float(bounds[0]) < float(bounds[1])):
            add("transform", f"lambda_bounds must be [lower, upper] with lower < upper, got {bounds}")

        method = str(self.get("decomposition.method", "stl")).lower()
        if method not in _VALID_DECOMPOSITION_METHODS:
            add("decomposition", f"method must be one of {_VALID_DECOMPOSITION_METHODS}, got '{method}'")
        dtype = str(self.get("decomposition.type", "additive")).lower()
        if dtype not in _VALID_DECOMPOSITION_TYPES:
            add("decomposition", f"type must be one of {_VALID_DECOMPOSITION_TYPES}, got '{dtype}'")

        for key in ("initial_window", "step_size", "forecast_horizon"):
            value = self.get(f"backtesting.rolling_origin.{key}", 1)
            if not isinstance(value, int) or value < 1:
                add("backtesting", f"rolling_origin.{key} must be a positive integer, got {value}")

        workers = self.get("backtesting.parallel.max_workers", 1)
        if not isinstance(workers, int) or workers < 1:
            add("backtesting", f"parallel.max_workers must be a positive integer, got {workers}")

        levels = self.get("model.forecast.confidence_levels", [95])
        if not levels or any(not (0 < int(lvl) < 100) for lvl in levels):
            add("model", f"forecast.confidence_levels must lie in (0, 100), got {levels}")

        max_iter = self.get("model.fitting.max_iterations", 1000)
        if not isinstance(max_iter, int) or max_iter < 1:
            add("model", f"fitting.max_iterations must be a positive integer, got {max_iter}")

        alpha = self.get("evaluation.diagnostic_tests.significance_level", 0.05)
        if not (0.0 < float(alpha) < 1.0):
            add("evaluation", f"diagnostic_tests.significance_level must lie in (0, 1), got {alpha}")

        return errors

    def get_configuration_summary(self) -> Dict[str, Any]:
        return {
            "config_path": str(self.config_path),
            "sections": sorted(self._data.keys()),
        }


_config_instance: Optional[ConfigurationManager] = None


def get_config(config_path: Optional[Union[str, Path]] = None, reload: bool = False) -> ConfigurationManager:
    """Return the shared ConfigurationManager, creating it on first use."""
    global _config_instance
    if _config_instance is None or reload or config_path is not None:
        _config_instance = ConfigurationManager(config_path)
    return _config_instance
