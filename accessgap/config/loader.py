"""Configuration file loader and validator."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml

from accessgap.core.exceptions import AccessGapError

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = Path("config.yaml")


class ConfigurationError(AccessGapError):
    """Raised when configuration is invalid."""

    pass


def expand_env_vars(value: Any) -> Any:
    """Recursively expand environment variables in configuration values.

    Supports ${VAR_NAME} syntax.

    Args:
        value: Configuration value (can be dict, list, str, etc.)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)

        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            if not env_value:
                logger.warning("environment_variable_not_set", var_name=var_name)
            value = value.replace(f"${{{var_name}}}", env_value)

        return value

    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]

    return value


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load and validate configuration from YAML file.

    Args:
        config_path: Path to configuration file (default: config.yaml)

    Returns:
        Configuration dictionary with environment variables expanded

    Raises:
        ConfigurationError: If configuration is invalid or file not found
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {config_path}\n"
            f"Copy config.example.yaml to get started."
        )

    try:
        with open(config_path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except OSError as e:
        raise ConfigurationError(f"Error reading configuration: {e}")

    if not config:
        raise ConfigurationError("Configuration file is empty")
    if not isinstance(config, dict):
        raise ConfigurationError("Configuration must be a mapping")

    config = expand_env_vars(config)
    validate_config(config)

    logger.info("configuration_loaded", config_path=str(config_path))
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """Validate configuration structure and required fields.

    Every section is optional: a missing identity provider puts discovery
    and remediation in unconfigured mode, a missing HR section disables
    system scans. A section that is present must be complete.

    Args:
        config: Configuration dictionary

    Raises:
        ConfigurationError: If configuration is invalid
    """
    idp = config.get("identity_provider")
    if idp:
        if not isinstance(idp, dict):
            raise ConfigurationError("identity_provider must be a mapping")
        if not idp.get("access_token"):
            missing = [k for k in ("tenant_id", "client_id", "client_secret") if not idp.get(k)]
            if missing:
                raise ConfigurationError(
                    "identity_provider requires access_token or "
                    f"tenant_id/client_id/client_secret (missing: {', '.join(missing)})"
                )
        timeout = idp.get("timeout", 15)
        if not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigurationError("identity_provider.timeout must be a positive number")

    hr = config.get("hr")
    if hr:
        if hr.get("base_url"):
            for field in ("api_key", "api_secret"):
                if not hr.get(field):
                    raise ConfigurationError(f"hr.{field} is required when hr.base_url is set")
        elif not hr.get("fallback_file"):
            raise ConfigurationError("hr requires base_url or fallback_file")

    email_config = get_config_value(config, "notifications.email", {}) or {}
    if email_config.get("enabled", False):
        for field in ("smtp_host", "from_address"):
            if field not in email_config:
                raise ConfigurationError(f"notifications.email.{field} is required when email is enabled")

    settings = config.get("settings")
    if settings is not None and not isinstance(settings, dict):
        raise ConfigurationError("settings must be a mapping")

    logger.info("configuration_validated")


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """Get a configuration value using dot notation.

    Example:
        >>> config = {"storage": {"database_url": "sqlite://"}}
        >>> get_config_value(config, "storage.database_url")
        'sqlite://'
    """
    keys = key_path.split(".")
    value = config

    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default

    return value
