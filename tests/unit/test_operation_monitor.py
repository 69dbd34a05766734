"""Unit tests for OperationMonitor, its registry and dashboard aggregates."""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import AsyncMock, Mock

from conftest import FakeExecutor

from daycycle.common.exceptions import DaycycleError, ErrorCode
from daycycle.constants import (
    INITIALIZING_PHASE,
    AlertSeverity,
    HealthStatus,
    OperationStatus,
    OperationType,
    StepStatus,
    TrendDirection,
    TrendMetric,
)
from daycycle.monitoring import (
    ActiveOperationRegistry,
    MetricsCollector,
    OperationMetrics,
    OperationMonitor,
    ResourceUsage,
    StaticResourceSampler,
    compute_operation_metrics,
)
from daycycle.orchestration import SODOrchestrator, SODRequest
from daycycle.types.operations import Operation, OperationStep
from daycycle.utils.datetime import utc_now


def _operation(code="SOD-1", status=OperationStatus.RUNNING, start=None, end=None, **kwargs):
    start = start or utc_now() - timedelta(minutes=10)
    return Operation(
        operation_code=code,
        operation_type=kwargs.pop("operation_type", OperationType.SOD),
        business_date=start.date(),
        environment="PROD",
        start_time=start,
        end_time=end,
        status=status,
        **kwargs,
    )


def _step(order, status, phase, start=None, end=None, **kwargs):
    return OperationStep(
        operation_code=kwargs.pop("operation_code", "SOD-1"),
        step_order=order,
        step_name=f"Starting Service{order}",
        service_id=order,
        phase_number=phase,
        phase_name=f"Phase {phase}",
        status=status,
        start_time=start,
        end_time=end,
        **kwargs,
    )


async def _persist(store, operation, steps=()):
    async with store.session() as session:
        session.add_operation(operation)
        for step in steps:
            session.add_step(step)
        await session.save_changes()


@pytest.fixture
def monitor(store, settings, executor):
    return OperationMonitor(
        store,
        settings,
        executor=executor,
        resource_sampler=StaticResourceSampler(ResourceUsage(cpu_percent=12.5, memory_percent=40)),
    )


class TestComputeOperationMetrics:
    """Pure metric derivation."""

    def test_progress_and_current_phase_of_running_step(self):
        now = utc_now()
        operation = _operation(start=now - timedelta(seconds=100))
        steps = [
            _step(1, StepStatus.COMPLETED, 1, now - timedelta(seconds=100), now - timedelta(seconds=60)),
            _step(2, StepStatus.RUNNING, 2, now - timedelta(seconds=50)),
            _step(3, StepStatus.PENDING, 3),
            _step(4, StepStatus.PENDING, 3),
        ]

        metrics = compute_operation_metrics(operation, steps, now=now)

        assert metrics.progress_percentage == 25.0
        assert metrics.completed_steps == 1
        assert metrics.total_steps == 4
        assert metrics.current_phase == "Phase 2"
        assert metrics.elapsed_seconds == pytest.approx(100, abs=1)
        assert metrics.estimated_completion == operation.start_time + timedelta(seconds=400)
        assert metrics.performance.average_step_duration_seconds == pytest.approx(40)

    def test_no_started_steps_is_initializing(self):
        metrics = compute_operation_metrics(_operation(), [_step(1, StepStatus.PENDING, 1)])

        assert metrics.current_phase == INITIALIZING_PHASE
        assert metrics.progress_percentage == 0.0
        assert metrics.estimated_completion is None

    def test_rollback_steps_are_excluded(self):
        now = utc_now()
        steps = [
            _step(1, StepStatus.COMPLETED, 1, now, now),
            _step(2, StepStatus.FAILED, 2, now, now, retry_count=2),
            _step(3, StepStatus.COMPLETED, 1, now, now, is_rollback=True, rollback_of=1),
        ]

        metrics = compute_operation_metrics(_operation(status=OperationStatus.FAILED, end=now), steps)

        assert metrics.total_steps == 2
        assert metrics.progress_percentage == 50.0
        assert metrics.performance.failed_steps == 1
        assert metrics.performance.retried_steps == 1

    def test_empty_operation(self):
        metrics = compute_operation_metrics(_operation(), [])

        assert metrics.progress_percentage == 0.0
        assert metrics.total_steps == 0


class TestActiveOperationRegistry:
    """Keyed store with bounded history."""

    def test_history_is_fifo_bounded(self):
        registry = ActiveOperationRegistry(history_limit=100)
        registry.register("SOD-1", utc_now())

        for i in range(150):
            registry.record(
                "SOD-1",
                OperationMetrics(operation_code="SOD-1", status=OperationStatus.RUNNING, elapsed_seconds=i),
            )

        history = registry.history("SOD-1")
        assert len(history) == 100
        assert history[0].elapsed_seconds == 50
        assert history[-1].elapsed_seconds == 149

    def test_deactivate_and_remove(self):
        registry = ActiveOperationRegistry()
        registry.register("A", utc_now())
        registry.register("B", utc_now())

        registry.deactivate("A")
        assert registry.active_codes() == ["B"]
        assert "A" in registry

        registry.remove("A")
        assert "A" not in registry
        assert len(registry) == 1


class TestOperationMonitor:
    """Monitoring lifecycle and sampling."""

    async def test_start_monitoring_unknown_operation(self, monitor):
        with pytest.raises(DaycycleError) as exc_info:
            await monitor.start_monitoring("missing")

        assert exc_info.value.error_code == ErrorCode.OPERATION_NOT_FOUND

    async def test_get_metrics_unknown_operation(self, monitor):
        with pytest.raises(DaycycleError) as exc_info:
            await monitor.get_metrics("missing")

        assert exc_info.value.error_code == ErrorCode.OPERATION_NOT_FOUND

    async def test_start_monitoring_takes_baseline_with_resources(self, monitor, store):
        await _persist(store, _operation())

        baseline = await monitor.start_monitoring("SOD-1")

        assert baseline.resources.cpu_percent == 12.5
        assert monitor.registry.active_codes() == ["SOD-1"]
        assert len(monitor.get_history("SOD-1")) == 1

    async def test_history_keeps_latest_hundred_samples(self, monitor, store):
        await _persist(store, _operation())
        await monitor.start_monitoring("SOD-1")

        for _ in range(120):
            await monitor.sample_active()

        assert len(monitor.get_history("SOD-1")) == 100

    async def test_one_failing_entry_does_not_stop_others(self, monitor, store):
        await _persist(store, _operation())
        await monitor.start_monitoring("SOD-1")
        monitor.registry.register("GHOST", utc_now())

        sampled = await monitor.sample_active()

        assert sampled == 1
        assert len(monitor.get_history("SOD-1")) == 2

    async def test_stop_monitoring_removes_entry(self, monitor, store):
        await _persist(store, _operation())
        await monitor.start_monitoring("SOD-1")

        final = await monitor.stop_monitoring("SOD-1")

        assert final is not None
        assert "SOD-1" not in monitor.registry
        assert await monitor.stop_monitoring("SOD-1") is None

    async def test_stop_monitoring_removes_entry_when_final_sample_fails(self, monitor, store):
        await _persist(store, _operation())
        await monitor.start_monitoring("SOD-1")
        store.list_steps = AsyncMock(side_effect=RuntimeError("connection lost"))

        assert await monitor.stop_monitoring("SOD-1") is None
        assert "SOD-1" not in monitor.registry
        assert await monitor.sample_active() == 0

    async def test_sampler_failure_yields_empty_sample(self, store, settings):
        sampler = Mock()
        sampler.sample.side_effect = OSError("no /proc")
        monitor = OperationMonitor(store, settings, resource_sampler=sampler)
        await _persist(store, _operation())

        metrics = await monitor.get_metrics("SOD-1")

        assert metrics.resources == ResourceUsage()

    async def test_background_sampler_collects_samples(self, monitor, store):
        await _persist(store, _operation())
        await monitor.start_monitoring("SOD-1")

        async with monitor:
            assert monitor.is_running
            await asyncio.sleep(0.2)

        assert not monitor.is_running
        assert len(monitor.get_history("SOD-1")) > 2

    async def test_background_sampler_prunes_old_metric_records(self, store, settings):
        metrics = MetricsCollector()
        old = metrics.record_operation("SOD-OLD", "SOD", "PROD", "Completed", 1.0)
        old.timestamp = utc_now() - timedelta(days=30)
        monitor = OperationMonitor(store, settings, resource_sampler=StaticResourceSampler(), metrics=metrics)

        async with monitor:
            await asyncio.sleep(0.1)

        assert metrics.get_metrics_summary(timedelta(days=365))["total_operations"] == 0

    async def test_progress_never_decreases_while_running(self, store, settings):
        monitor = OperationMonitor(store, settings, resource_sampler=StaticResourceSampler())
        history = []
        remove = monitor.registry.remove

        def keep_history(operation_code):
            history.extend(monitor.get_history(operation_code))
            return remove(operation_code)

        monitor.registry.remove = keep_history

        class SamplingExecutor(FakeExecutor):
            async def execute(self, service_id, action):
                result = await super().execute(service_id, action)
                await monitor.sample_active()
                return result

        orchestrator = SODOrchestrator(store, SamplingExecutor(), settings=settings, monitor=monitor)

        await orchestrator.execute(SODRequest(environment="PROD"), "SOD-M")

        running = [m.progress_percentage for m in history if m.status == OperationStatus.RUNNING]
        assert len(running) >= 5
        assert running == sorted(running)
        assert running[-1] == 75.0
        assert history[-1].progress_percentage == 100.0

    async def test_orchestrator_drives_monitor(self, store, settings, executor):
        metrics = MetricsCollector()
        monitor = OperationMonitor(
            store, settings, resource_sampler=StaticResourceSampler(), metrics=metrics
        )
        orchestrator = SODOrchestrator(store, executor, settings=settings, monitor=monitor, metrics=metrics)

        await orchestrator.execute(SODRequest(environment="PROD"), "SOD-M")

        assert "SOD-M" not in monitor.registry
        final = await monitor.get_metrics("SOD-M")
        assert final.progress_percentage == 100.0
        assert final.current_phase == "Phase 4"
        assert metrics.get_metrics_summary()["completed_operations"] == 1
        assert metrics.active_count_provider() == 0


class TestDashboard:
    """Dashboard aggregates."""

    async def test_recent_operations_and_alerts(self, store, settings):
        executor = FakeExecutor(fail_services={3})
        orchestrator = SODOrchestrator(store, executor, settings=settings)
        await orchestrator.execute(SODRequest(environment="PROD"), "SOD-FAIL")
        executor.fail_services = set()
        await orchestrator.execute(SODRequest(environment="PROD"), "SOD-OK")
        monitor = OperationMonitor(store, settings, resource_sampler=StaticResourceSampler())

        dashboard = await monitor.get_dashboard()

        codes = {summary.operation_code: summary for summary in dashboard.recent_operations}
        assert set(codes) == {"SOD-FAIL", "SOD-OK"}
        assert codes["SOD-FAIL"].has_errors is True
        assert codes["SOD-OK"].service_count == 4
        assert dashboard.alert_summary.critical_count == 1
        assert dashboard.alert_summary.info_count == 1
        assert dashboard.alert_summary.recent_alerts[0].operation_code == "SOD-OK"
        assert dashboard.system_health.status == HealthStatus.UNKNOWN

    async def test_retried_steps_raise_warning_alert(self, store, settings, monitor):
        now = utc_now()
        await _persist(
            store,
            _operation(status=OperationStatus.COMPLETED, end=now),
            [_step(1, StepStatus.COMPLETED, 1, now, now, retry_count=1)],
        )

        dashboard = await monitor.get_dashboard()

        assert dashboard.alert_summary.warning_count == 1
        assert dashboard.alert_summary.recent_alerts[0].severity == AlertSeverity.WARNING

    async def test_system_health_thresholds(self, monitor, executor):
        executor.unhealthy = {2}

        health = await monitor.get_system_health()

        assert health.total_services == 4
        assert health.healthy_services == 3
        assert health.health_percentage == 75.0
        assert health.status == HealthStatus.WARNING
        assert health.unhealthy_service_ids == [2]

    async def test_health_check_exception_counts_as_unhealthy(self, monitor, executor):
        executor.raise_for = {1: ConnectionError("host unreachable"), 2: ConnectionError("host unreachable")}

        health = await monitor.get_system_health()

        assert health.status == HealthStatus.CRITICAL
        assert health.unhealthy_services == 2

    async def test_active_operations_on_dashboard(self, monitor, store):
        now = utc_now()
        await _persist(
            store,
            _operation(),
            [_step(1, StepStatus.COMPLETED, 1, now, now), _step(2, StepStatus.RUNNING, 2, now)],
        )
        await monitor.start_monitoring("SOD-1")

        dashboard = await monitor.get_dashboard()

        assert len(dashboard.active_operations) == 1
        active = dashboard.active_operations[0]
        assert active.progress_percentage == 50.0
        assert active.current_phase == "Phase 2"
        assert dashboard.resources.cpu_percent == 12.5

    async def test_dashboard_skips_unreadable_active_operation(self, monitor, store):
        await _persist(store, _operation())
        await _persist(store, _operation("SOD-2"))
        await monitor.start_monitoring("SOD-1")
        await monitor.start_monitoring("SOD-2")
        list_steps = store.list_steps

        async def flaky_list_steps(operation_code):
            if operation_code == "SOD-2":
                raise RuntimeError("connection lost")
            return await list_steps(operation_code)

        store.list_steps = flaky_list_steps

        dashboard = await monitor.get_dashboard()

        assert [a.operation_code for a in dashboard.active_operations] == ["SOD-1"]
        assert len(dashboard.recent_operations) == 2

    async def test_performance_trends_compare_buckets(self, monitor, store):
        now = utc_now()
        earlier = now - timedelta(days=3)
        later = now - timedelta(days=1)
        await _persist(store, _operation("SOD-A", OperationStatus.COMPLETED, earlier, earlier + timedelta(minutes=10)))
        await _persist(store, _operation("SOD-B", OperationStatus.FAILED, later, later + timedelta(minutes=20)))

        trends = await monitor.get_performance_trends(now)

        durations = [t for t in trends if t.metric == TrendMetric.OPERATION_DURATION]
        success = [t for t in trends if t.metric == TrendMetric.SUCCESS_RATE]
        assert [t.value for t in durations] == [10.0, 20.0]
        assert [t.trend for t in durations] == [TrendDirection.STABLE, TrendDirection.DEGRADING]
        assert [t.value for t in success] == [100.0, 0.0]
        assert success[1].trend == TrendDirection.DEGRADING

    @pytest.mark.parametrize(
        "metric,previous,value,expected",
        [
            (TrendMetric.OPERATION_DURATION, None, 10.0, TrendDirection.STABLE),
            (TrendMetric.OPERATION_DURATION, 10.0, 10.4, TrendDirection.STABLE),
            (TrendMetric.OPERATION_DURATION, 10.0, 8.0, TrendDirection.IMPROVING),
            (TrendMetric.SUCCESS_RATE, 50.0, 100.0, TrendDirection.IMPROVING),
            (TrendMetric.SUCCESS_RATE, 0.0, 50.0, TrendDirection.IMPROVING),
        ],
    )
    def test_trend_direction(self, metric, previous, value, expected):
        assert OperationMonitor._trend_direction(metric, previous, value) == expected
