"""Settings module providing configuration management for daycycle.

Built on Pydantic Settings. Each concern lives in its own file:

    - base.py: DaycycleBaseSettings with environment list, time zone and log level
    - orchestration.py: retry budgets, step timeouts, EOD cutoff waits (ORCHESTRATION_*)
    - monitoring.py: sampler cadence, history bound, dashboard windows (MONITORING_*)
    - store.py: state store backend selection (STORE_*)
    - main.py: _Settings aggregator and the get_settings() singleton

Configuration Sources (precedence order):
    1. Environment Variables (highest priority)
    2. ``.env`` file
    3. Default Values in code (lowest priority)

Nested values can also be set through the aggregate with a double underscore,
e.g. ``MONITORING__HISTORY_LIMIT=200``.

Quick Start:
    >>> from daycycle.settings import get_settings
    >>> settings = get_settings()
    >>> settings.orchestration.max_step_retries
    3
"""

from .main import _Settings, get_settings, _reload_settings
from .base import DaycycleBaseSettings
from .monitoring import MonitoringSettings
from .orchestration import OrchestrationSettings
from .store import StoreSettings

__all__ = [
    "get_settings",
    "DaycycleBaseSettings",
    "OrchestrationSettings",
    "MonitoringSettings",
    "StoreSettings",
]
