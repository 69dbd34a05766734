from typing import Optional

from pydantic import Field

from .base import DaycycleBaseSettings
from .monitoring import MonitoringSettings
from .orchestration import OrchestrationSettings
from .store import StoreSettings


class _Settings(DaycycleBaseSettings):
    """Aggregated application settings."""

    orchestration: OrchestrationSettings = Field(
        default_factory=OrchestrationSettings,
        description="Retry, timeout and cutoff behaviour of the orchestrators"
    )
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings,
        description="Sampler and dashboard configuration"
    )
    store: StoreSettings = Field(
        default_factory=StoreSettings,
        description="State store configuration"
    )


_settings: Optional[_Settings] = None


def get_settings(force_reload: bool = False) -> _Settings:
    """Return the process-wide settings, loading them on first use.

    Services, orchestrators and the monitor call this when no settings are
    injected. Pass ``force_reload=True`` after changing environment variables.
    """
    global _settings

    if _settings is None or force_reload:
        _settings = _Settings()

    return _settings


def _reload_settings() -> _Settings:
    """Drop the cached settings and load them again (used by tests)."""
    global _settings
    _settings = None
    return get_settings(force_reload=True)
