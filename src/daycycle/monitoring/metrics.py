"""Metrics collection for SOD/EOD operations.

This module exports operation, step and rollback counts plus host resource
samples through OpenTelemetry instruments.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, Iterable, List, Optional

from opentelemetry.metrics import CallbackOptions, Observation

from daycycle.__version__ import __version__
from daycycle.constants import OperationStatus
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras
from daycycle.telemetry import get_meter
from daycycle.utils.datetime import utc_now

if TYPE_CHECKING:
    from daycycle.monitoring.types import ResourceUsage


@dataclass
class OperationRecord:
    """Outcome of one finished operation as seen by the collector.

    Attributes:
        operation_code: Operation identity
        operation_type: SOD or EOD
        environment: Target environment
        status: Final status
        duration_seconds: Wall-clock duration
        step_count: Number of action steps
        timestamp: When the outcome was recorded
    """

    operation_code: str
    operation_type: str
    environment: str
    status: str
    duration_seconds: float
    step_count: int = 0
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


class MetricsCollector:
    """Collector for operation and step metrics.

    Attributes:
        meter: OpenTelemetry meter
        active_count_provider: Callable returning the number of monitored
            operations, read by the active operations gauge
        max_records: Finished operations kept for summaries; the oldest
            are evicted first
    """

    def __init__(
        self,
        active_count_provider: Optional[Callable[[], int]] = None,
        meter_name: str = "daycycle",
        max_records: int = 10000,
    ):
        self.logger = get_logger(__name__)
        self.active_count_provider = active_count_provider
        self._records: Deque[OperationRecord] = deque(maxlen=max_records)
        self._latest_resources: Optional["ResourceUsage"] = None

        self.meter = get_meter(meter_name, __version__)
        self._setup_instruments()

    def _setup_instruments(self) -> None:
        """Setup OpenTelemetry instruments."""
        # Counters
        self.operation_counter = self.meter.create_counter(
            "daycycle_operations_total",
            description="Operations that reached a terminal status",
            unit="operations"
        )

        self.step_counter = self.meter.create_counter(
            "daycycle_steps_total",
            description="Operation steps that reached a final status",
            unit="steps"
        )

        self.retry_counter = self.meter.create_counter(
            "daycycle_step_retries_total",
            description="Retried step attempts",
            unit="attempts"
        )

        self.rollback_counter = self.meter.create_counter(
            "daycycle_rollback_steps_total",
            description="Rollback steps executed",
            unit="steps"
        )

        # Histograms
        self.operation_duration_histogram = self.meter.create_histogram(
            "daycycle_operation_duration_seconds",
            description="Duration of operations",
            unit="seconds"
        )

        self.step_duration_histogram = self.meter.create_histogram(
            "daycycle_step_duration_seconds",
            description="Duration of operation steps",
            unit="seconds"
        )

        # Gauges (via callbacks)
        self.meter.create_observable_gauge(
            "daycycle_active_operations",
            callbacks=[self._active_operations_callback],
            description="Operations currently monitored",
            unit="operations"
        )

        self.meter.create_observable_gauge(
            "daycycle_success_rate",
            callbacks=[self._success_rate_callback],
            description="Share of operations completed in the last 24 hours",
            unit="ratio"
        )

        self.meter.create_observable_gauge(
            "system_cpu_percent",
            callbacks=[self._cpu_usage_callback],
            description="Host CPU usage",
            unit="percent"
        )

        self.meter.create_observable_gauge(
            "system_memory_percent",
            callbacks=[self._memory_usage_callback],
            description="Host memory usage",
            unit="percent"
        )

    def record_operation(
        self,
        operation_code: str,
        operation_type: str,
        environment: str,
        status: str,
        duration_seconds: float,
        step_count: int = 0,
    ) -> OperationRecord:
        """Record a finished operation."""
        record = OperationRecord(
            operation_code=operation_code,
            operation_type=str(getattr(operation_type, "value", operation_type)),
            environment=environment,
            status=str(getattr(status, "value", status)),
            duration_seconds=duration_seconds,
            step_count=step_count,
        )
        self._records.append(record)

        attributes = {
            "operation_type": record.operation_type,
            "environment": record.environment,
            "status": record.status,
        }
        self.operation_counter.add(1, attributes)
        self.operation_duration_histogram.record(duration_seconds, attributes)

        self.logger.info("metrics.operation.recorded", extra=sanitize_extras(record.to_dict()))
        return record

    def record_step(
        self,
        operation_type: str,
        action: str,
        status: str,
        duration_seconds: Optional[float],
        retry_count: int = 0,
    ) -> None:
        """Record a step that reached a final status."""
        attributes = {
            "operation_type": str(getattr(operation_type, "value", operation_type)),
            "action": str(getattr(action, "value", action)),
            "status": str(getattr(status, "value", status)),
        }
        self.step_counter.add(1, attributes)
        if retry_count:
            self.retry_counter.add(retry_count, attributes)
        if duration_seconds is not None:
            self.step_duration_histogram.record(duration_seconds, attributes)

    def record_rollback(self, operation_type: str, environment: str, steps: Iterable[Any]) -> None:
        """Record the rollback steps of one rollback pass."""
        for step in steps:
            self.rollback_counter.add(
                1,
                {
                    "operation_type": str(getattr(operation_type, "value", operation_type)),
                    "environment": environment,
                    "status": str(getattr(step.status, "value", step.status)),
                },
            )

    def record_resource_usage(self, usage: "ResourceUsage") -> None:
        """Keep the latest resource sample for the resource gauges."""
        self._latest_resources = usage
        if usage.cpu_percent > 90:
            self.logger.warning(
                "metrics.resources.high_cpu",
                extra=sanitize_extras({"cpu_percent": usage.cpu_percent}),
            )
        if usage.memory_percent > 90:
            self.logger.warning(
                "metrics.resources.high_memory",
                extra=sanitize_extras({"memory_percent": usage.memory_percent}),
            )

    def _active_operations_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        """Callback for active operations gauge."""
        active = self.active_count_provider() if self.active_count_provider else 0
        yield Observation(active)

    def _success_rate_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        """Callback for success rate gauge."""
        summary = self.get_metrics_summary(timedelta(hours=24))
        yield Observation(summary["success_rate"])

    def _cpu_usage_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        if self._latest_resources is not None:
            yield Observation(self._latest_resources.cpu_percent)

    def _memory_usage_callback(self, options: CallbackOptions) -> Iterable[Observation]:
        if self._latest_resources is not None:
            yield Observation(self._latest_resources.memory_percent)

    def get_metrics_summary(self, time_window: timedelta = timedelta(hours=1)) -> Dict[str, Any]:
        """Get summary of recorded operations for a time window.

        Args:
            time_window: Time window to summarize

        Returns:
            Dictionary with operation counts, success rate and durations
        """
        cutoff = utc_now() - time_window
        recent = [r for r in self._records if r.timestamp > cutoff]

        if not recent:
            return {
                "total_operations": 0,
                "completed_operations": 0,
                "failed_operations": 0,
                "cancelled_operations": 0,
                "success_rate": 1.0,
                "average_duration_seconds": 0.0,
            }

        completed = [r for r in recent if r.status == OperationStatus.COMPLETED.value]
        failed = [r for r in recent if r.status == OperationStatus.FAILED.value]
        cancelled = [r for r in recent if r.status == OperationStatus.CANCELLED.value]

        return {
            "total_operations": len(recent),
            "completed_operations": len(completed),
            "failed_operations": len(failed),
            "cancelled_operations": len(cancelled),
            "success_rate": len(completed) / len(recent),
            "average_duration_seconds": sum(r.duration_seconds for r in recent) / len(recent),
            "operations_by_type": self._group_by_attribute(recent, "operation_type"),
            "operations_by_environment": self._group_by_attribute(recent, "environment"),
        }

    @staticmethod
    def _group_by_attribute(records: List[OperationRecord], attribute: str) -> Dict[str, int]:
        grouped: Dict[str, int] = {}
        for record in records:
            value = getattr(record, attribute)
            grouped[value] = grouped.get(value, 0) + 1
        return grouped

    def clear_old_records(self, retention_days: int = 7) -> int:
        """Drop records older than the retention period; returns how many were dropped."""
        cutoff = utc_now() - timedelta(days=retention_days)
        before = len(self._records)
        self._records = deque(
            (r for r in self._records if r.timestamp > cutoff), maxlen=self._records.maxlen
        )
        dropped = before - len(self._records)
        if not dropped:
            return 0

        self.logger.info(
            "metrics.records.cleared",
            extra=sanitize_extras({
                "retention_days": retention_days,
                "dropped_records": dropped,
                "remaining_records": len(self._records),
            }),
        )
        return dropped

