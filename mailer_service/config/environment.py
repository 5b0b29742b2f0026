"""Environment variable loading and validation."""

import os
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/mailer.db"
DEFAULT_FROM_ADDRESS = "no-reply@ally360.com"
DEFAULT_SENDER_NAME = "Ally 360"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class EnvironmentConfig:
    """Environment variable configuration holder (SMTP credentials, database, log level)."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_from: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        log_level: Optional[str] = None,
        database_url: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_from = smtp_from or DEFAULT_FROM_ADDRESS
        self.smtp_sender_name = smtp_sender_name or DEFAULT_SENDER_NAME
        self.log_level = log_level
        self.database_url = database_url or DEFAULT_DATABASE_URL


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - SMTP_HOST: SMTP server hostname
    - SMTP_PORT: SMTP server port (1-65535)

    Optional environment variables:
    - SMTP_USER / SMTP_PASS: SMTP credentials (both or neither)
    - SMTP_FROM: Sender address (default: no-reply@ally360.com)
    - SMTP_SENDER_NAME: Display name for the sender (default: Ally 360)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - DATABASE_URL: SQLAlchemy database URL (default: sqlite:///./data/mailer.db)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    smtp_host = os.getenv("SMTP_HOST")
    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER") or None
    smtp_pass = os.getenv("SMTP_PASS") or None
    smtp_from = os.getenv("SMTP_FROM") or None
    smtp_sender_name = os.getenv("SMTP_SENDER_NAME") or None
    log_level = os.getenv("LOG_LEVEL") or None
    database_url = os.getenv("DATABASE_URL") or None

    if not smtp_host:
        errors.append("Missing required environment variable: SMTP_HOST")

    smtp_port = None
    if not smtp_port_str:
        errors.append("Missing required environment variable: SMTP_PORT")
    else:
        try:
            smtp_port = int(smtp_port_str)
            if not 1 <= smtp_port <= 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if smtp_from:
        try:
            smtp_from = validate_email(smtp_from, check_deliverability=False).normalized
        except EmailNotValidError as e:
            errors.append(f"Invalid SMTP_FROM address '{smtp_from}': {e}")

    if log_level and log_level.upper() not in VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
        )

    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your SMTP settings",
                "Ensure SMTP_HOST and SMTP_PORT are set",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_from=smtp_from,
        smtp_sender_name=smtp_sender_name,
        log_level=log_level.upper() if log_level else None,
        database_url=database_url,
    )
