"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _checked_interval(value: str, min_seconds: int, max_seconds: int, name: str) -> int:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds=min_seconds, max_seconds=max_seconds, name=name)
        return seconds
    except DurationParseError as e:
        raise ValueError(str(e)) from e


class TrackingConfig(BaseModel):
    """Delivery record lifecycle settings."""

    max_retries: int = Field(
        3, ge=0, le=10, description="Failed sends allowed before a record becomes permanently failed"
    )
    retention_days: int = Field(
        90, ge=1, le=3650, description="Age in days after which records are hard-deleted"
    )
    cleanup_interval: str = Field("1d", description="How often the retention cleanup runs")

    # Computed field
    cleanup_interval_seconds: Optional[int] = None

    @field_validator("cleanup_interval")
    @classmethod
    def validate_cleanup_interval(cls, v: str) -> str:
        _checked_interval(v, 3600, 7 * 86400, "Cleanup interval")
        return v

    @model_validator(mode="after")
    def compute_cleanup_seconds(self):
        self.cleanup_interval_seconds = parse_duration(self.cleanup_interval)
        return self


class RetryConfig(BaseModel):
    """Background retry sweep settings."""

    enabled: bool = Field(True, description="Run the retry sweep in daemon mode")
    sweep_interval: str = Field("1m", description="How often failed records are re-examined")
    batch_size: int = Field(
        100, ge=1, le=10000, description="Maximum records redelivered per sweep"
    )

    # Computed field
    sweep_interval_seconds: Optional[int] = None

    @field_validator("sweep_interval")
    @classmethod
    def validate_sweep_interval(cls, v: str) -> str:
        _checked_interval(v, 30, 86400, "Retry sweep interval")
        return v

    @model_validator(mode="after")
    def compute_sweep_seconds(self):
        self.sweep_interval_seconds = parse_duration(self.sweep_interval)
        return self


class EmailConfig(BaseModel):
    """Email transport settings."""

    use_tls: bool = Field(True, description="Use TLS/STARTTLS for secure connection")
    provider: str = Field(
        "smtp", min_length=1, max_length=100, description="Provider label stored on sent records"
    )
    timeout_seconds: int = Field(
        30, ge=1, le=300, description="SMTP connection timeout in seconds"
    )

    @field_validator("provider")
    @classmethod
    def strip_provider(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("provider cannot be empty")
        return stripped


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the mailer service.

    Every section has defaults, so an empty mapping is a valid configuration.
    """

    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_retry_against_tracking(self):
        if self.retry.enabled and self.tracking.max_retries == 0:
            raise ValueError(
                "retry.enabled is true but tracking.max_retries is 0; "
                "no record would ever be eligible for retry"
            )
        return self
