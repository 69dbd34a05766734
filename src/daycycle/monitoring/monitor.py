"""Operation monitor.

Keeps a registry of monitored operations, samples them on a fixed interval
from an explicit background task and assembles dashboard aggregates from the
state store. Sampling failures for one operation are logged and never stop
the sampling of the others.
"""

import asyncio
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Dict, List, Optional

from daycycle.common.exceptions import monitoring_error, operation_not_found_error
from daycycle.constants import (
    INITIALIZING_PHASE,
    TREND_TOLERANCE,
    AlertSeverity,
    HealthStatus,
    OperationStatus,
    ServiceAction,
    StepStatus,
    TrendDirection,
    TrendMetric,
)
from daycycle.graph.types import ServiceDescriptor
from daycycle.logging import get_logger
from daycycle.monitoring.registry import ActiveOperationRegistry
from daycycle.monitoring.resources import PsutilResourceSampler
from daycycle.monitoring.types import (
    ActiveOperationSummary,
    Alert,
    AlertSummary,
    OperationDashboard,
    OperationMetrics,
    OperationSummary,
    PerformanceSummary,
    PerformanceTrend,
    ResourceUsage,
    SystemHealth,
)
from daycycle.observability.context import sanitize_extras
from daycycle.settings import get_settings
from daycycle.types.operations import Operation, OperationStep
from daycycle.utils.datetime import elapsed_seconds, ensure_utc, floor_to_bucket, utc_now
from daycycle.utils.decorators import with_timeout

if TYPE_CHECKING:
    from daycycle.monitoring.metrics import MetricsCollector
    from daycycle.protocols.providers import ActionExecutor, ResourceSampler
    from daycycle.protocols.store import OperationStore
    from daycycle.settings import _Settings

logger = get_logger(__name__)


def compute_operation_metrics(
    operation: Operation,
    steps: List[OperationStep],
    resources: Optional[ResourceUsage] = None,
    now: Optional[datetime] = None,
) -> OperationMetrics:
    """Derive an OperationMetrics sample from persisted records.

    Rollback steps are left out of progress and timing figures.
    """
    now = now or utc_now()
    actions = [s for s in steps if not s.is_rollback]
    completed = [s for s in actions if s.status == StepStatus.COMPLETED]
    total = len(actions)
    progress = round(len(completed) / total * 100, 2) if total else 0.0

    end = ensure_utc(operation.end_time) if operation.end_time else now
    elapsed = elapsed_seconds(operation.start_time, end)

    estimated_completion = None
    if progress > 0:
        estimated_completion = ensure_utc(operation.start_time) + timedelta(
            seconds=elapsed / progress * 100
        )

    running = [s for s in actions if s.status == StepStatus.RUNNING]
    started = [s for s in actions if s.start_time is not None]
    if running:
        current_phase = running[0].phase_name or INITIALIZING_PHASE
    elif started:
        latest = max(started, key=lambda s: (ensure_utc(s.start_time), s.step_order))
        current_phase = latest.phase_name or INITIALIZING_PHASE
    else:
        current_phase = INITIALIZING_PHASE

    durations = [s.duration_seconds for s in actions if s.duration_seconds is not None]
    performance = PerformanceSummary(
        average_step_duration_seconds=round(sum(durations) / len(durations), 3) if durations else 0.0,
        min_step_duration_seconds=min(durations, default=0.0),
        max_step_duration_seconds=max(durations, default=0.0),
        failed_steps=sum(1 for s in actions if s.status == StepStatus.FAILED),
        retried_steps=sum(1 for s in actions if s.retry_count > 0),
        skipped_steps=sum(1 for s in actions if s.status == StepStatus.SKIPPED),
    )

    return OperationMetrics(
        operation_code=operation.operation_code,
        status=operation.status,
        elapsed_seconds=round(elapsed, 3),
        completed_steps=len(completed),
        total_steps=total,
        progress_percentage=progress,
        current_phase=current_phase,
        estimated_completion=estimated_completion,
        performance=performance,
        resources=resources or ResourceUsage(),
        sampled_at=now,
    )


class OperationMonitor:
    """Tracks live operations and builds dashboards.

    Use ``start()``/``stop()`` (or ``async with``) to run the periodic
    sampler; ``get_metrics`` and ``get_dashboard`` work without it.

    Attributes:
        store: State store read for operations, steps and services
        settings: Application settings
        executor: Optional action executor used for health checks
        resource_sampler: Source of host utilisation samples
        registry: Monitored operations and their sample history
        metrics: Optional OpenTelemetry metrics collector
    """

    def __init__(
        self,
        store: "OperationStore",
        settings: Optional["_Settings"] = None,
        executor: Optional["ActionExecutor"] = None,
        resource_sampler: Optional["ResourceSampler"] = None,
        registry: Optional[ActiveOperationRegistry] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.executor = executor
        monitoring = self.settings.monitoring
        self.resource_sampler = resource_sampler or PsutilResourceSampler(
            network_capacity_mbps=monitoring.network_capacity_mbps
        )
        self.registry = registry or ActiveOperationRegistry(history_limit=monitoring.history_limit)
        self.metrics = metrics
        if metrics is not None and metrics.active_count_provider is None:
            metrics.active_count_provider = lambda: len(self.registry.active())
        self.logger = logger
        self._task: Optional[asyncio.Task] = None
        self._running = False

    # ------------------------------------------------------------------
    # Sampler lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic sampler task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())
        self.logger.info(
            "monitor.sampler.started",
            extra=sanitize_extras({"interval_seconds": self.settings.monitoring.sampling_interval_seconds}),
        )

    async def stop(self) -> None:
        """Stop the sampler task and wait for it to finish."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.logger.info("monitor.sampler.stopped")

    async def __aenter__(self) -> "OperationMonitor":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def _run(self) -> None:
        interval = self.settings.monitoring.sampling_interval_seconds
        while self._running:
            await self.sample_active()
            if self.metrics is not None:
                self.metrics.clear_old_records(self.settings.monitoring.metrics_retention_days)
            await asyncio.sleep(interval)

    async def sample_active(self) -> int:
        """Take one sample of every active operation; returns how many succeeded."""
        entries = self.registry.active()
        if not entries:
            return 0
        resources = self._sample_resources()
        sampled = 0
        for entry in entries:
            try:
                await self._record_sample(entry.operation_code, resources)
                sampled += 1
            except Exception as exc:
                error = monitoring_error(
                    f"Sampling failed for operation {entry.operation_code}: {exc}",
                    operation_code=entry.operation_code,
                    cause=exc,
                )
                self.logger.warning(
                    "monitor.sample.failed",
                    extra=sanitize_extras({
                        "operation_code": entry.operation_code,
                        "error_code": error.error_code.value,
                        "error": str(exc),
                    }),
                )
        return sampled

    async def _record_sample(self, operation_code: str, resources: ResourceUsage) -> OperationMetrics:
        metrics = await self._compute(operation_code, resources)
        self.registry.record(operation_code, metrics)
        return metrics

    # ------------------------------------------------------------------
    # Monitoring API
    # ------------------------------------------------------------------

    async def start_monitoring(self, operation_code: str) -> OperationMetrics:
        """Register an operation and take its baseline sample.

        Raises:
            DaycycleError: OPERATION_NOT_FOUND for unknown codes
        """
        operation = await self.store.get_operation(operation_code)
        if operation is None:
            raise operation_not_found_error(operation_code)
        self.registry.register(operation_code, ensure_utc(operation.start_time))
        baseline = await self._record_sample(operation_code, self._sample_resources())
        self.logger.info(
            "monitor.operation.started",
            extra=sanitize_extras({"operation_code": operation_code}),
        )
        return baseline

    async def stop_monitoring(self, operation_code: str) -> Optional[OperationMetrics]:
        """Take a final sample and drop the operation from the registry."""
        if operation_code not in self.registry:
            return None
        final: Optional[OperationMetrics] = None
        try:
            final = await self._record_sample(operation_code, self._sample_resources())
        except Exception as exc:
            self.logger.warning(
                "monitor.final_sample.failed",
                extra=sanitize_extras({
                    "operation_code": operation_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                }),
            )
        finally:
            self.registry.remove(operation_code)
        self.logger.info(
            "monitor.operation.stopped",
            extra=sanitize_extras({"operation_code": operation_code}),
        )
        return final

    async def get_metrics(self, operation_code: str) -> OperationMetrics:
        """Recompute metrics for an operation from the state store.

        Raises:
            DaycycleError: OPERATION_NOT_FOUND for unknown codes
        """
        return await self._compute(operation_code, self._sample_resources())

    def get_history(self, operation_code: str) -> List[OperationMetrics]:
        """Stored samples of a monitored operation, oldest first."""
        return self.registry.history(operation_code)

    async def _compute(self, operation_code: str, resources: ResourceUsage) -> OperationMetrics:
        operation = await self.store.get_operation(operation_code)
        if operation is None:
            raise operation_not_found_error(operation_code)
        steps = await self.store.list_steps(operation_code)
        return compute_operation_metrics(operation, steps, resources)

    def _sample_resources(self) -> ResourceUsage:
        try:
            usage = self.resource_sampler.sample()
        except Exception as exc:
            self.logger.warning(
                "monitor.resources.unavailable",
                extra=sanitize_extras({"error": str(exc), "error_type": type(exc).__name__}),
            )
            return ResourceUsage()
        if self.metrics is not None:
            self.metrics.record_resource_usage(usage)
        return usage

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    async def get_dashboard(self) -> OperationDashboard:
        """Assemble the dashboard from the registry and the state store."""
        now = utc_now()
        monitoring = self.settings.monitoring
        resources = self._sample_resources()

        recent_ops = await self.store.list_operations(
            since=now - timedelta(hours=monitoring.recent_window_hours),
            limit=monitoring.recent_limit,
        )

        dashboard = OperationDashboard(
            active_operations=await self._active_summaries(resources, now),
            recent_operations=[self._summarize(op) for op in recent_ops],
            system_health=await self.get_system_health(),
            performance_trends=await self.get_performance_trends(now),
            alert_summary=await self._alert_summary(recent_ops),
            resources=resources,
            generated_at=now,
        )
        self.logger.debug(
            "monitor.dashboard.generated",
            extra=sanitize_extras({
                "active_operations": len(dashboard.active_operations),
                "recent_operations": len(dashboard.recent_operations),
                "health": dashboard.system_health.status,
            }),
        )
        return dashboard

    async def _active_summaries(self, resources: ResourceUsage, now: datetime) -> List[ActiveOperationSummary]:
        summaries: List[ActiveOperationSummary] = []
        for entry in self.registry.active():
            try:
                operation = await self.store.get_operation(entry.operation_code)
                if operation is None:
                    continue
                steps = await self.store.list_steps(entry.operation_code)
            except Exception as exc:
                self.logger.warning(
                    "monitor.dashboard.active_failed",
                    extra=sanitize_extras({
                        "operation_code": entry.operation_code,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    }),
                )
                continue
            metrics = compute_operation_metrics(operation, steps, resources, now)
            summaries.append(
                ActiveOperationSummary(
                    operation_code=operation.operation_code,
                    operation_type=operation.operation_type,
                    environment=operation.environment,
                    status=operation.status,
                    start_time=operation.start_time,
                    progress_percentage=metrics.progress_percentage,
                    current_phase=metrics.current_phase,
                    estimated_completion=metrics.estimated_completion,
                )
            )
        return summaries

    @staticmethod
    def _summarize(operation: Operation) -> OperationSummary:
        duration = None
        if operation.end_time is not None:
            duration = round(elapsed_seconds(operation.start_time, operation.end_time) / 60, 2)
        return OperationSummary(
            operation_code=operation.operation_code,
            operation_type=operation.operation_type,
            environment=operation.environment,
            status=operation.status,
            start_time=operation.start_time,
            end_time=operation.end_time,
            duration_minutes=duration,
            has_errors=operation.status == OperationStatus.FAILED or bool(operation.error_details),
            service_count=len(operation.services_involved),
        )

    async def get_system_health(self) -> SystemHealth:
        """Run a HealthCheck against every enabled service."""
        if self.executor is None:
            return SystemHealth(status=HealthStatus.UNKNOWN)
        services = [s for s in await self.store.list_services() if s.is_enabled]
        if not services:
            return SystemHealth(status=HealthStatus.UNKNOWN)

        results = await asyncio.gather(*(self._check_health(s) for s in services))
        unhealthy = [s.service_id for s, ok in zip(services, results) if not ok]
        healthy = len(services) - len(unhealthy)
        percentage = round(healthy / len(services) * 100, 2)

        monitoring = self.settings.monitoring
        if percentage >= monitoring.healthy_threshold:
            status = HealthStatus.HEALTHY
        elif percentage >= monitoring.warning_threshold:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.CRITICAL

        return SystemHealth(
            status=status,
            total_services=len(services),
            healthy_services=healthy,
            unhealthy_services=len(unhealthy),
            health_percentage=percentage,
            unhealthy_service_ids=unhealthy,
        )

    async def _check_health(self, descriptor: ServiceDescriptor) -> bool:
        timeout = self.settings.monitoring.health_check_timeout_seconds
        try:
            result = await with_timeout(timeout)(self.executor.execute)(
                descriptor.service_id, ServiceAction.HEALTH_CHECK
            )
        except Exception as exc:
            self.logger.debug(
                "monitor.health_check.failed",
                extra=sanitize_extras({
                    "service_id": descriptor.service_id,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                }),
            )
            return False
        return bool(result.succeeded)

    async def get_performance_trends(self, now: Optional[datetime] = None) -> List[PerformanceTrend]:
        """Duration and success-rate series over the trend window."""
        now = now or utc_now()
        monitoring = self.settings.monitoring
        operations = await self.store.list_operations(
            since=now - timedelta(days=monitoring.trend_window_days)
        )
        finished = [op for op in operations if op.is_terminal and op.end_time is not None]

        buckets: Dict[datetime, List[Operation]] = defaultdict(list)
        for operation in finished:
            buckets[floor_to_bucket(operation.start_time, monitoring.trend_bucket_hours)].append(operation)

        trends: List[PerformanceTrend] = []
        for metric in (TrendMetric.OPERATION_DURATION, TrendMetric.SUCCESS_RATE):
            previous: Optional[float] = None
            for bucket_start in sorted(buckets):
                members = buckets[bucket_start]
                if metric == TrendMetric.OPERATION_DURATION:
                    value = sum(
                        elapsed_seconds(op.start_time, op.end_time) for op in members
                    ) / len(members) / 60
                else:
                    completed = sum(1 for op in members if op.status == OperationStatus.COMPLETED)
                    value = completed / len(members) * 100
                trends.append(
                    PerformanceTrend(
                        metric=metric,
                        bucket_start=bucket_start,
                        value=round(value, 2),
                        sample_count=len(members),
                        trend=self._trend_direction(metric, previous, value),
                    )
                )
                previous = value
        return trends

    @staticmethod
    def _trend_direction(metric: TrendMetric, previous: Optional[float], value: float) -> TrendDirection:
        if previous is None or previous == value:
            return TrendDirection.STABLE
        change = (value - previous) / abs(previous) if previous else 1.0
        if abs(change) <= TREND_TOLERANCE:
            return TrendDirection.STABLE
        # Shorter durations and higher success rates are improvements
        better = change < 0 if metric == TrendMetric.OPERATION_DURATION else change > 0
        return TrendDirection.IMPROVING if better else TrendDirection.DEGRADING

    async def _alert_summary(self, operations: List[Operation]) -> AlertSummary:
        alerts: List[Alert] = []
        for operation in operations:
            status = OperationStatus(operation.status)
            occurred = operation.end_time or operation.start_time
            label = f"{operation.operation_type} operation {operation.operation_code} in {operation.environment}"

            if status == OperationStatus.FAILED:
                alerts.append(Alert(
                    severity=AlertSeverity.CRITICAL,
                    operation_code=operation.operation_code,
                    message=f"{label} failed: {operation.error_details or 'no details'}",
                    occurred_at=occurred,
                ))
                continue
            if status == OperationStatus.CANCELLED:
                alerts.append(Alert(
                    severity=AlertSeverity.WARNING,
                    operation_code=operation.operation_code,
                    message=f"{label} was cancelled",
                    occurred_at=occurred,
                ))
                continue

            try:
                steps = [s for s in await self.store.list_steps(operation.operation_code) if not s.is_rollback]
            except Exception as exc:
                self.logger.warning(
                    "monitor.dashboard.alert_failed",
                    extra=sanitize_extras({
                        "operation_code": operation.operation_code,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    }),
                )
                continue
            retried = sum(1 for s in steps if s.retry_count > 0)
            skipped = sum(1 for s in steps if s.status == StepStatus.SKIPPED)
            if retried or skipped:
                alerts.append(Alert(
                    severity=AlertSeverity.WARNING,
                    operation_code=operation.operation_code,
                    message=f"{label} has {retried} retried and {skipped} skipped step(s)",
                    occurred_at=occurred,
                ))
            elif status == OperationStatus.COMPLETED:
                alerts.append(Alert(
                    severity=AlertSeverity.INFO,
                    operation_code=operation.operation_code,
                    message=f"{label} completed",
                    occurred_at=occurred,
                ))

        alerts.sort(key=lambda a: ensure_utc(a.occurred_at), reverse=True)
        return AlertSummary(
            critical_count=sum(1 for a in alerts if a.severity == AlertSeverity.CRITICAL),
            warning_count=sum(1 for a in alerts if a.severity == AlertSeverity.WARNING),
            info_count=sum(1 for a in alerts if a.severity == AlertSeverity.INFO),
            recent_alerts=alerts[: self.settings.monitoring.recent_alert_limit],
        )
