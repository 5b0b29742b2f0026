"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    retry = config_dict.get("retry") or {}
    if isinstance(retry, dict):
        if retry.get("enabled") is False:
            warning_messages.append(
                "Retry sweep is disabled; failed deliveries will only be retried manually"
            )

        interval = retry.get("sweep_interval")
        if isinstance(interval, str):
            try:
                if parse_duration(interval) > 3600:
                    warning_messages.append(
                        f"Long retry.sweep_interval ({interval}) delays retries far beyond "
                        "the 5 minute backoff cap"
                    )
            except DurationParseError:
                # Reported by model validation
                pass

    tracking = config_dict.get("tracking") or {}
    if isinstance(tracking, dict):
        retention_days = tracking.get("retention_days")
        if isinstance(retention_days, int) and retention_days < 7:
            warning_messages.append(
                f"Short tracking.retention_days ({retention_days}) removes delivery "
                "history before most bounce reports arrive"
            )

        max_retries = tracking.get("max_retries")
        if isinstance(max_retries, int) and max_retries > 5:
            warning_messages.append(
                f"High tracking.max_retries ({max_retries}) may repeatedly hit a failing SMTP relay"
            )

    email = config_dict.get("email") or {}
    if isinstance(email, dict) and email.get("use_tls") is False:
        warning_messages.append("email.use_tls is false; credentials will be sent in clear text")

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
