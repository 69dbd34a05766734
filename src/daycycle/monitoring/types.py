"""Monitoring and dashboard data types."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, List, Optional

from pydantic import Field, field_validator

from daycycle.constants import (
    INITIALIZING_PHASE,
    AlertSeverity,
    HealthStatus,
    OperationStatus,
    OperationType,
    TrendDirection,
    TrendMetric,
)
from daycycle.types.base import DaycycleBaseModel
from daycycle.utils.datetime import utc_now


class ResourceUsage(DaycycleBaseModel):
    """Host utilisation, each value a percentage clamped to 0-100."""

    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    disk_percent: float = 0.0
    network_percent: float = 0.0

    @field_validator("cpu_percent", "memory_percent", "disk_percent", "network_percent", mode="before")
    @classmethod
    def clamp_percentage(cls, v: float) -> float:
        if v is None:
            return 0.0
        return min(max(float(v), 0.0), 100.0)


class PerformanceSummary(DaycycleBaseModel):
    """Step timing statistics of one operation."""

    average_step_duration_seconds: float = 0.0
    min_step_duration_seconds: float = 0.0
    max_step_duration_seconds: float = 0.0
    failed_steps: int = 0
    retried_steps: int = 0
    skipped_steps: int = 0


class OperationMetrics(DaycycleBaseModel):
    """A point-in-time sample of an operation's progress.

    Attributes:
        operation_code: Operation identity
        status: Operation status at sampling time
        elapsed_seconds: Time since the operation started
        completed_steps: Completed action steps
        total_steps: Action steps (rollback steps excluded)
        progress_percentage: completed_steps / total_steps * 100
        current_phase: Phase of the running step, or "Initializing"
        estimated_completion: Extrapolated end time once progress > 0
        performance: Step timing statistics
        resources: Host utilisation sample
        sampled_at: When the sample was taken
    """

    operation_code: str
    status: OperationStatus
    elapsed_seconds: float = 0.0
    completed_steps: int = 0
    total_steps: int = 0
    progress_percentage: float = Field(default=0.0, ge=0.0, le=100.0)
    current_phase: str = INITIALIZING_PHASE
    estimated_completion: Optional[datetime] = None
    performance: PerformanceSummary = Field(default_factory=PerformanceSummary)
    resources: ResourceUsage = Field(default_factory=ResourceUsage)
    sampled_at: datetime = Field(default_factory=utc_now)


@dataclass
class MonitoringContext:
    """Registry entry for one monitored operation.

    ``history`` is append-only and bounded; the oldest sample is evicted
    first once ``maxlen`` is reached.
    """

    operation_code: str
    start_time: datetime
    history_limit: int = 100
    is_active: bool = True
    history: Deque[OperationMetrics] = field(init=False)

    def __post_init__(self):
        self.history = deque(maxlen=self.history_limit)

    def record(self, metrics: OperationMetrics) -> None:
        self.history.append(metrics)

    @property
    def latest(self) -> Optional[OperationMetrics]:
        return self.history[-1] if self.history else None

    def snapshot(self) -> List[OperationMetrics]:
        return list(self.history)


class ActiveOperationSummary(DaycycleBaseModel):
    operation_code: str
    operation_type: OperationType
    environment: str
    status: OperationStatus
    start_time: datetime
    progress_percentage: float = 0.0
    current_phase: str = INITIALIZING_PHASE
    estimated_completion: Optional[datetime] = None


class OperationSummary(DaycycleBaseModel):
    operation_code: str
    operation_type: OperationType
    environment: str
    status: OperationStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_minutes: Optional[float] = None
    has_errors: bool = False
    service_count: int = 0


class SystemHealth(DaycycleBaseModel):
    """Fleet health from HealthCheck actions."""

    status: HealthStatus = HealthStatus.UNKNOWN
    total_services: int = 0
    healthy_services: int = 0
    unhealthy_services: int = 0
    health_percentage: float = 0.0
    unhealthy_service_ids: List[int] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=utc_now)


class PerformanceTrend(DaycycleBaseModel):
    """One bucket of a trend series."""

    metric: TrendMetric
    bucket_start: datetime
    value: float
    sample_count: int = 0
    trend: TrendDirection = TrendDirection.STABLE


class Alert(DaycycleBaseModel):
    severity: AlertSeverity
    operation_code: str
    message: str
    occurred_at: datetime


class AlertSummary(DaycycleBaseModel):
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    recent_alerts: List[Alert] = Field(default_factory=list)


class OperationDashboard(DaycycleBaseModel):
    """Everything a dashboard needs in one payload."""

    active_operations: List[ActiveOperationSummary] = Field(default_factory=list)
    recent_operations: List[OperationSummary] = Field(default_factory=list)
    system_health: SystemHealth = Field(default_factory=SystemHealth)
    performance_trends: List[PerformanceTrend] = Field(default_factory=list)
    alert_summary: AlertSummary = Field(default_factory=AlertSummary)
    resources: ResourceUsage = Field(default_factory=ResourceUsage)
    generated_at: datetime = Field(default_factory=utc_now)
