"""Tests for settings validation and helpers."""

import pytest
from pydantic import ValidationError

from daycycle.settings import MonitoringSettings, OrchestrationSettings, _Settings, get_settings
from daycycle.settings import _reload_settings


class TestDaycycleSettings:
    """Top-level settings."""

    def test_environment_list_is_normalised(self):
        settings = _Settings(environments=" prod, uat ,dev-2")

        assert settings.environments == "PROD,UAT,DEV-2"
        assert settings.get_environment_list() == ["PROD", "UAT", "DEV-2"]
        assert settings.is_environment_known("uat")
        assert not settings.is_environment_known("DR")

    def test_empty_environment_list_accepts_anything(self):
        settings = _Settings(environments="")

        assert settings.get_environment_list() == []
        assert settings.is_environment_known("ANYWHERE")

    def test_invalid_environment_name(self):
        with pytest.raises(ValidationError):
            _Settings(environments="PROD,bad name")

    def test_unknown_time_zone_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _Settings(time_zone="Mars/Olympus_Mons")

        assert "Unknown timezone" in str(exc_info.value)

    def test_timezone_info(self):
        settings = _Settings(time_zone="Europe/London")

        assert settings.timezone_info.zone == "Europe/London"

    def test_log_level_is_upper_cased(self):
        assert _Settings(log_level="debug").log_level == "DEBUG"

    def test_nested_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("MONITORING__HISTORY_LIMIT", "250")
        monkeypatch.setenv("ORCHESTRATION__MAX_STEP_RETRIES", "5")

        settings = _Settings()

        assert settings.monitoring.history_limit == 250
        assert settings.orchestration.max_step_retries == 5

    def test_get_settings_is_a_singleton(self):
        first = _reload_settings()

        assert get_settings() is first
        assert get_settings(force_reload=True) is not first


class TestMonitoringSettings:

    def test_defaults(self):
        settings = MonitoringSettings()

        assert settings.history_limit == 100
        assert settings.healthy_threshold == 90.0
        assert settings.warning_threshold == 70.0
        assert settings.metrics_record_limit == 10000
        assert settings.metrics_retention_days == 7

    def test_warning_threshold_above_healthy_is_rejected(self):
        with pytest.raises(ValidationError):
            MonitoringSettings(healthy_threshold=60.0, warning_threshold=80.0)


class TestOrchestrationSettings:

    def test_negative_retry_budget_is_rejected(self):
        with pytest.raises(ValidationError):
            OrchestrationSettings(max_step_retries=-1)
