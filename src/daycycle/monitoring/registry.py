"""Registry of monitored operations."""

from datetime import datetime
from typing import Dict, List, Optional

from daycycle.monitoring.types import MonitoringContext, OperationMetrics


class ActiveOperationRegistry:
    """Keyed store of MonitoringContext entries.

    The registry is owned by one OperationMonitor and shared with nothing
    else. All access happens on the event loop thread, so plain dict
    operations are atomic with respect to other tasks; readers get list
    snapshots.

    Attributes:
        history_limit: Maximum samples kept per operation
    """

    def __init__(self, history_limit: int = 100):
        self.history_limit = history_limit
        self._entries: Dict[str, MonitoringContext] = {}

    def register(self, operation_code: str, start_time: datetime) -> MonitoringContext:
        """Insert (or reactivate) the entry for ``operation_code``."""
        entry = self._entries.get(operation_code)
        if entry is None:
            entry = MonitoringContext(
                operation_code=operation_code,
                start_time=start_time,
                history_limit=self.history_limit,
            )
            self._entries[operation_code] = entry
        entry.is_active = True
        return entry

    def deactivate(self, operation_code: str) -> Optional[MonitoringContext]:
        entry = self._entries.get(operation_code)
        if entry is not None:
            entry.is_active = False
        return entry

    def remove(self, operation_code: str) -> Optional[MonitoringContext]:
        return self._entries.pop(operation_code, None)

    def get(self, operation_code: str) -> Optional[MonitoringContext]:
        return self._entries.get(operation_code)

    def record(self, operation_code: str, metrics: OperationMetrics) -> None:
        entry = self._entries.get(operation_code)
        if entry is not None:
            entry.record(metrics)

    def active(self) -> List[MonitoringContext]:
        """Snapshot of the active entries."""
        return [entry for entry in list(self._entries.values()) if entry.is_active]

    def active_codes(self) -> List[str]:
        return [entry.operation_code for entry in self.active()]

    def history(self, operation_code: str) -> List[OperationMetrics]:
        entry = self._entries.get(operation_code)
        return entry.snapshot() if entry else []

    def __contains__(self, operation_code: str) -> bool:
        return operation_code in self._entries

    def __len__(self) -> int:
        return len(self._entries)
