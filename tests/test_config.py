"""Integration tests for configuration module."""

from pathlib import Path

import pytest

from mailer_service.config import (
    AppConfig,
    ConfigurationError,
    build_app_config,
    load_config,
)
from mailer_service.config.duration import (
    DurationParseError,
    humanize_seconds,
    parse_duration,
    validate_duration_range,
)
from mailer_service.config.environment import (
    DEFAULT_DATABASE_URL,
    DEFAULT_FROM_ADDRESS,
    DEFAULT_SENDER_NAME,
    load_environment_config,
)


# Test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, mock_env_vars):
        app_config, env_config = load_config(FIXTURES_DIR / "valid_config.yaml")

        assert app_config.tracking.max_retries == 3
        assert app_config.tracking.retention_days == 90
        assert app_config.tracking.cleanup_interval_seconds == 86400

        assert app_config.retry.enabled is True
        assert app_config.retry.sweep_interval_seconds == 120
        assert app_config.retry.batch_size == 50

        assert app_config.email.provider == "smtp-relay"
        assert app_config.email.timeout_seconds == 20

        assert app_config.logging.level == "INFO"
        assert app_config.logging.format == "key-value"

        assert env_config.smtp_host == "smtp.test.com"

    def test_load_minimal_config(self, mock_env_vars):
        """Sections left out of the file take their defaults."""
        app_config, _ = load_config(FIXTURES_DIR / "minimal_config.yaml")

        assert app_config.tracking.retention_days == 30
        assert app_config.tracking.max_retries == 3
        assert app_config.retry.sweep_interval == "1m"
        assert app_config.retry.sweep_interval_seconds == 60
        assert app_config.email.use_tls is True
        assert app_config.logging.level == "INFO"

    def test_load_iso8601_duration_config(self, mock_env_vars):
        app_config, _ = load_config(FIXTURES_DIR / "iso8601_duration_config.yaml")

        assert app_config.retry.sweep_interval == "PT5M"
        assert app_config.retry.sweep_interval_seconds == 300
        assert app_config.tracking.cleanup_interval_seconds == 86400

    def test_no_config_file_uses_defaults(self, mock_env_vars, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config == AppConfig()

    def test_default_location_is_picked_up(self, mock_env_vars, tmp_path, monkeypatch):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "config.yaml").write_text("tracking:\n  retention_days: 14\n")
        monkeypatch.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.tracking.retention_days == 14

    def test_empty_file_means_defaults(self, mock_env_vars, tmp_path):
        empty = tmp_path / "empty.yaml"
        empty.write_text("")

        app_config, _ = load_config(empty)

        assert app_config.tracking.max_retries == 3

    def test_config_file_not_found(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("nonexistent.yaml"))

        assert "not found" in str(exc_info.value).lower()
        assert "config.example.yaml" in str(exc_info.value)

    def test_invalid_yaml_syntax(self, tmp_path, mock_env_vars):
        invalid_yaml = tmp_path / "invalid.yaml"
        invalid_yaml.write_text("tracking:\n  max_retries: 'three\n    broken")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(invalid_yaml)

        assert "parse" in str(exc_info.value).lower()


class TestConfigurationValidation:
    """Test configuration validation rules."""

    def test_sweep_interval_too_short(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_sweep_interval.yaml")

        assert "too short" in str(exc_info.value).lower()

    def test_retry_enabled_without_retries(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_retry_without_retries.yaml")

        assert "max_retries is 0" in str(exc_info.value)

    def test_invalid_type_is_named(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_types.yaml")

        assert "tracking -> max_retries" in str(exc_info.value)
        assert exc_info.value.errors

    def test_invalid_log_format(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_log_format.yaml")

        assert "logging -> format" in str(exc_info.value)

    def test_root_must_be_mapping(self, mock_env_vars):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(FIXTURES_DIR / "invalid_root.yaml")

    def test_retry_disabled_allows_zero_retries(self):
        config = build_app_config({"tracking": {"max_retries": 0}, "retry": {"enabled": False}})

        assert config.tracking.max_retries == 0

    def test_risky_values_emit_warnings(self, mock_env_vars):
        with pytest.warns(UserWarning) as record:
            load_config(FIXTURES_DIR / "risky_config.yaml")

        messages = [str(w.message) for w in record]
        assert any("retention_days" in m for m in messages)
        assert any("use_tls" in m for m in messages)

    def test_error_rendering_lists_errors_and_suggestions(self):
        error = ConfigurationError("Broken", errors=["first", "second"], suggestions=["fix it"])

        rendered = str(error)
        assert rendered.startswith("Broken")
        assert "1. first" in rendered
        assert "2. second" in rendered
        assert "- fix it" in rendered


class TestDurationParsing:
    """Test duration parsing utilities."""

    def test_parse_human_readable(self):
        assert parse_duration("30s") == 30
        assert parse_duration("15m") == 900
        assert parse_duration("1h") == 3600
        assert parse_duration("2d") == 172800

    def test_parse_human_readable_combined(self):
        assert parse_duration("1h30m") == 5400
        assert parse_duration("1h 30m") == 5400

    def test_parse_iso8601(self):
        assert parse_duration("PT30S") == 30
        assert parse_duration("PT15M") == 900
        assert parse_duration("PT1H30M") == 5400
        assert parse_duration("P1D") == 86400

    @pytest.mark.parametrize("value", ["invalid", "15x", "1h foo", "", "P", "PT", "0m"])
    def test_parse_invalid(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_parse_non_string(self):
        with pytest.raises(DurationParseError, match="must be a string"):
            parse_duration(60)

    def test_validate_duration_range_too_short(self):
        with pytest.raises(DurationParseError) as exc_info:
            validate_duration_range(10, min_seconds=30, max_seconds=86400, name="Retry sweep interval")

        assert "Retry sweep interval too short" in str(exc_info.value)

    def test_validate_duration_range_too_long(self):
        with pytest.raises(DurationParseError) as exc_info:
            validate_duration_range(172800, min_seconds=30, max_seconds=86400)

        assert "too long" in str(exc_info.value)

    def test_validate_duration_range_valid(self):
        validate_duration_range(900, min_seconds=30, max_seconds=86400)

    def test_humanize_seconds(self):
        assert humanize_seconds(1) == "1 second"
        assert humanize_seconds(900) == "15 minutes"
        assert humanize_seconds(86400) == "1 day"


class TestEnvironmentVariables:
    """Test environment variable loading and validation."""

    def test_load_valid_environment_config(self, mock_env_vars):
        env_config = load_environment_config()

        assert env_config.smtp_host == "smtp.test.com"
        assert env_config.smtp_port == 587
        assert env_config.smtp_user == "user@test.com"
        assert env_config.smtp_pass == "testpass123"

    def test_defaults_for_optional_values(self, mock_env_vars):
        env_config = load_environment_config()

        assert env_config.smtp_from == DEFAULT_FROM_ADDRESS
        assert env_config.smtp_sender_name == DEFAULT_SENDER_NAME
        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.log_level is None

    def test_missing_required_env_vars(self, monkeypatch):
        monkeypatch.delenv("SMTP_HOST", raising=False)
        monkeypatch.delenv("SMTP_PORT", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert "SMTP_HOST" in str(exc_info.value)
        assert "SMTP_PORT" in str(exc_info.value)

    @pytest.mark.parametrize("port", ["invalid", "0", "70000"])
    def test_invalid_smtp_port(self, mock_env_vars, monkeypatch, port):
        monkeypatch.setenv("SMTP_PORT", port)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert "SMTP_PORT" in str(exc_info.value)

    def test_invalid_sender_address(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("SMTP_FROM", "not-an-address")

        with pytest.raises(ConfigurationError, match="SMTP_FROM"):
            load_environment_config()

    def test_credentials_must_come_in_pairs(self, mock_env_vars, monkeypatch):
        monkeypatch.delenv("SMTP_PASS")

        with pytest.raises(ConfigurationError, match="SMTP_USER is set but SMTP_PASS is not"):
            load_environment_config()

    def test_invalid_log_level(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            load_environment_config()

    def test_optional_env_vars(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("SMTP_FROM", "alerts@acme.io")
        monkeypatch.setenv("SMTP_SENDER_NAME", "Acme Alerts")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")

        env_config = load_environment_config()

        assert env_config.smtp_from == "alerts@acme.io"
        assert env_config.smtp_sender_name == "Acme Alerts"
        assert env_config.log_level == "DEBUG"
        assert env_config.database_url == "sqlite:///:memory:"
