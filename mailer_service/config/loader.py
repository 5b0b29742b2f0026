"""Configuration loader for the mailer service."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_LOCATIONS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from a YAML file and environment variables.

    Config file resolution:
    1. Use config_path if given (must exist)
    2. Try config.yaml in the current directory
    3. Try ./config/config.yaml
    4. Fall back to built-in defaults (every section is optional)

    Args:
        config_path: Optional path to configuration file

    Returns:
        Tuple of (AppConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If configuration is invalid or an explicit file is missing
    """
    config_file = _find_config_file(config_path)
    config_dict = _read_yaml(config_file) if config_file else {}

    app_config = build_app_config(config_dict)

    try:
        env_config = load_environment_config()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=["Copy .env.example to .env and fill in your SMTP settings"],
        ) from e

    return app_config, env_config


def build_app_config(config_dict: Dict[str, Any]) -> AppConfig:
    """
    Validate a raw configuration mapping into an AppConfig.

    Emits warnings for risky values and converts pydantic errors into a single
    ConfigurationError listing every problem.

    Raises:
        ConfigurationError: If validation fails
    """
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration root must be a mapping",
            suggestions=["Review config.example.yaml for the expected layout"],
        )

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=[_describe_error(error) for error in e.errors()],
            suggestions=[
                "Review config.example.yaml for correct format",
                "Verify field types match the expected schema",
                "Durations use forms like '30s', '15m', '1h', '1d' or 'PT15M'",
            ],
        ) from e


def _describe_error(error: Dict[str, Any]) -> str:
    """Turn one pydantic error dict into a user-facing line."""
    field_path = " -> ".join(str(loc) for loc in error["loc"]) or "<root>"
    error_type = error["type"]

    if error_type == "missing":
        return f"Missing required field: {field_path}"
    if error_type in ("string_type", "int_type", "int_parsing", "bool_type", "bool_parsing"):
        expected = error_type.split("_")[0]
        return f"Invalid type for '{field_path}': expected {expected}, got {error.get('input')!r}"
    if error_type == "extra_forbidden":
        return f"Unknown field: {field_path}"
    return f"{field_path}: {error['msg']}"


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r") as f:
            config_dict = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Configuration file not found: {config_file}",
            suggestions=[
                "Copy config.example.yaml to config.yaml",
                f"Ensure {config_file} exists and is readable",
            ],
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable", "Check file permissions"],
        ) from e

    # An empty file means "all defaults"
    return config_dict if config_dict is not None else {}


def _find_config_file(config_path: Optional[Path] = None) -> Optional[Path]:
    """
    Resolve the configuration file to read.

    Returns:
        Path to the configuration file, or None when no default location exists

    Raises:
        ConfigurationError: If an explicit config_path does not exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    "Copy config.example.yaml to config.yaml",
                    f"Ensure {config_path} exists",
                ],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    return None
