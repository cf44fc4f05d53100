"""Configuration management for the forecast evaluation pipeline."""

from .manager import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    ConfigurationError,
    ConfigurationManager,
    get_config,
)

__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "ConfigurationError",
    "ConfigurationManager",
    "get_config",
]
