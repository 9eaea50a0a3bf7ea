"""Tests for configuration validation."""

import pytest

from services.sourcing.app.core.config import Settings, validate_settings

SECRET = "x" * 40


class TestSettingsValidation:
    """Tests for validate_settings function."""

    def test_validate_settings_missing_database_url(self):
        """Test that missing DATABASE_URL raises ValueError."""
        settings = Settings(database_url="  ", jwt_secret_key=SECRET)

        with pytest.raises(ValueError) as exc_info:
            validate_settings(settings)

        assert "DATABASE_URL is required" in str(exc_info.value)

    def test_validate_settings_missing_jwt_secret(self):
        settings = Settings(database_url="sqlite:///:memory:", jwt_secret_key="")

        with pytest.raises(ValueError) as exc_info:
            validate_settings(settings)

        assert "JWT_SECRET_KEY is not set" in str(exc_info.value)

    def test_validate_settings_short_jwt_secret(self):
        """Test that a JWT secret under 32 characters is rejected."""
        settings = Settings(database_url="sqlite:///:memory:", jwt_secret_key="short")

        with pytest.raises(ValueError) as exc_info:
            validate_settings(settings)

        assert "must be at least 32 characters" in str(exc_info.value)

    def test_validate_settings_inverted_sla_ratios(self):
        settings = Settings(
            database_url="sqlite:///:memory:",
            jwt_secret_key=SECRET,
            sla_warning_ratio_default=2.0,
            sla_critical_ratio_default=1.5,
        )

        with pytest.raises(ValueError) as exc_info:
            validate_settings(settings)

        assert "SLA_CRITICAL_RATIO_DEFAULT" in str(exc_info.value)

    def test_validate_settings_pool_limit(self):
        settings = Settings(
            database_url="sqlite:///:memory:", jwt_secret_key=SECRET, approval_pool_limit=0
        )

        with pytest.raises(ValueError):
            validate_settings(settings)

    def test_validate_settings_cors_wildcard_in_production(self, capsys):
        """Test that wildcard CORS in production prints a warning but does not raise."""
        settings = Settings(
            database_url="sqlite:///:memory:",
            jwt_secret_key=SECRET,
            env="production",
            cors_allow_origins=["*"],
        )

        validate_settings(settings)

        captured = capsys.readouterr()
        assert "CORS allows all origins" in captured.out

    def test_validate_settings_success(self):
        validate_settings(Settings(database_url="sqlite:///:memory:", jwt_secret_key=SECRET))


class TestSettingsDefaults:
    def test_sla_defaults(self):
        settings = Settings()

        assert settings.sla_warning_ratio_default == 1.0
        assert settings.sla_critical_ratio_default == 1.5
        assert settings.priority_queue_default_limit == 15
        assert settings.priority_queue_max_limit == 50
        assert settings.escalation_queue_limit == 20

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("APPROVAL_OVERRIDE_MAX", "3")
        monkeypatch.setenv("SLA_SWEEP_INTERVAL_SEC", "60")

        settings = Settings()

        assert settings.approval_override_max == 3
        assert settings.sla_sweep_interval_sec == 60
