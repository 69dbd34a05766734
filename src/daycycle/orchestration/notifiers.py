"""Notifier implementations.

Both notifiers return immediately; neither guarantees delivery beyond the
current process.
"""

from collections import deque
from typing import Deque, List, Optional

from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras
from daycycle.orchestration.types import OperationEvent

logger = get_logger(__name__)


class LoggingNotifier:
    """Writes every event to the log."""

    def __init__(self, logger_name: Optional[str] = None):
        self.logger = get_logger(logger_name) if logger_name else logger

    def notify(self, event: OperationEvent) -> None:
        level_failed = event.event_type in ("operation.failed", "step.failed")
        log = self.logger.warning if level_failed else self.logger.info
        log(
            f"notification.{event.event_type}",
            extra=sanitize_extras({
                "operation_code": event.operation_code,
                "operation_type": event.operation_type,
                "environment": event.environment,
                "status": event.status,
                "step_name": event.step_name,
                "service_id": event.service_id,
                "summary": event.message,
            }),
        )


class InMemoryNotifier:
    """Keeps the most recent events in a bounded outbox.

    Attributes:
        max_events: Outbox capacity; the oldest event is dropped first
    """

    def __init__(self, max_events: int = 1000):
        self.max_events = max_events
        self._outbox: Deque[OperationEvent] = deque(maxlen=max_events)

    def notify(self, event: OperationEvent) -> None:
        self._outbox.append(event)

    @property
    def events(self) -> List[OperationEvent]:
        return list(self._outbox)

    def events_of_type(self, event_type: str) -> List[OperationEvent]:
        return [event for event in self._outbox if event.event_type == event_type]

    def drain(self) -> List[OperationEvent]:
        """Return and clear the outbox."""
        events = list(self._outbox)
        self._outbox.clear()
        return events
