"""Tests for the bundled notifiers."""

import logging

from daycycle.constants import OperationStatus, OperationType
from daycycle.orchestration import InMemoryNotifier, LoggingNotifier
from daycycle.orchestration.types import OperationEvent


def _event(event_type="operation.started", code="SOD-1"):
    return OperationEvent(
        event_type=event_type,
        operation_code=code,
        operation_type=OperationType.SOD,
        environment="PROD",
        status=OperationStatus.RUNNING,
        message=f"{code} {event_type}",
    )


class TestInMemoryNotifier:

    def test_outbox_is_bounded(self):
        notifier = InMemoryNotifier(max_events=3)

        for i in range(5):
            notifier.notify(_event(code=f"SOD-{i}"))

        assert [e.operation_code for e in notifier.events] == ["SOD-2", "SOD-3", "SOD-4"]

    def test_drain_empties_outbox(self):
        notifier = InMemoryNotifier()
        notifier.notify(_event())
        notifier.notify(_event("operation.completed"))

        drained = notifier.drain()

        assert [e.event_type for e in drained] == ["operation.started", "operation.completed"]
        assert notifier.events == []

    def test_events_of_type(self):
        notifier = InMemoryNotifier()
        notifier.notify(_event())
        notifier.notify(_event("step.failed"))

        assert len(notifier.events_of_type("step.failed")) == 1


class TestLoggingNotifier:

    def test_failures_log_at_warning(self, caplog):
        notifier = LoggingNotifier("daycycle.tests.notifications")

        with caplog.at_level(logging.INFO, logger="daycycle.tests.notifications"):
            notifier.notify(_event())
            notifier.notify(_event("operation.failed"))

        levels = {r.getMessage(): r.levelno for r in caplog.records}
        assert levels["notification.operation.started"] == logging.INFO
        assert levels["notification.operation.failed"] == logging.WARNING
        failed = [r for r in caplog.records if r.getMessage() == "notification.operation.failed"][0]
        assert failed.operation_code == "SOD-1"
