"""Configuration loading."""

from accessgap.config.loader import (
    ConfigurationError,
    get_config_value,
    load_config,
    validate_config,
)

__all__ = ["ConfigurationError", "get_config_value", "load_config", "validate_config"]
