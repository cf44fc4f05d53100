# forecaster_src/config_utils.py

import logging
from typing import Optional

from config import ConfigurationError, ConfigurationManager, get_config

logger = logging.getLogger(__name__)

# Initialized lazily by initialize_config()
config_manager: Optional[ConfigurationManager] = None


def initialize_config(config_path=None) -> Optional[ConfigurationManager]:
    """
    Initializes the global configuration manager.
    This function loads and validates the project's configuration file. If the configuration
    fails to load, it logs the error and proceeds with default settings.
    """
    global config_manager
    if config_manager is None or config_path is not None:
        try:
            config_manager = get_config(config_path)
            validation_errors = config_manager.validate_configuration()
            if validation_errors:
                logger.warning("Configuration validation warnings: %s", validation_errors)
        except ConfigurationError as e:
            logger.error("Failed to initialize configuration: %s. Using defaults.", e)
            config_manager = None
    return config_manager


def get_config_value(key_path: str, default=None, args=None, cli_param=None):
    """
    Retrieves a configuration value, providing support for command-line overrides.
    The function prioritizes values in the following order:
    1. CLI argument (if provided)
    2. Configuration file
    3. Default value
    """
    # First priority: CLI argument
    if args and cli_param and hasattr(args, cli_param):
        cli_value = getattr(args, cli_param)
        if cli_value is not None:
            return cli_value

    # Second priority: Configuration file
    if config_manager:
        config_value = config_manager.get(key_path, default)
        if config_value is not None:
            return config_value

    # Third priority: Default value
    return default
