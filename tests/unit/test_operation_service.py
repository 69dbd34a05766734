"""Tests for the OperationService facade and the module-level api."""

import pytest

from conftest import FakeExecutor

from daycycle import api
from daycycle.api import OperationService, new_operation_code
from daycycle.common.exceptions import DaycycleError, ErrorCode
from daycycle.constants import InitiationMethod, OperationStatus, OperationType
from daycycle.monitoring import StaticResourceSampler
from daycycle.observability.context import ExecutionRequestContext
from daycycle.orchestration import EODRequest, InMemoryNotifier, SODRequest
from daycycle.store import InMemoryOperationStore


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def service(store, executor, settings, notifier):
    return OperationService(
        store,
        executor,
        settings=settings,
        notifier=notifier,
        resource_sampler=StaticResourceSampler(),
    )


@pytest.fixture
def reset_api():
    api.operations._operation_service = None
    yield
    api.operations._operation_service = None


def test_new_operation_code_is_prefixed_and_unique():
    first = new_operation_code(OperationType.EOD)

    assert first.startswith("EOD-")
    assert first != new_operation_code(OperationType.EOD)


class TestOperationService:
    """Facade routing and context handling."""

    def test_metrics_collector_is_bounded_by_settings(self, service, settings):
        assert service.metrics._records.maxlen == settings.monitoring.metrics_record_limit

    async def test_execute_sod_generates_code(self, service, store):
        result = await service.execute_sod(SODRequest(environment="prod"))

        assert result.status == OperationStatus.COMPLETED
        assert result.operation_code.startswith("SOD-")
        operation = await service.get_operation(result.operation_code)
        assert operation.initiation_method == InitiationMethod.API
        assert operation.initiated_by == "system"

    async def test_context_user_becomes_initiator(self, service):
        ctx = ExecutionRequestContext(request_id="req-42", user_id="operator-7")

        result = await service.execute_sod(SODRequest(environment="PROD"), "SOD-CTX", ctx=ctx)

        operation = await service.get_operation(result.operation_code)
        assert operation.initiated_by == "operator-7"

    async def test_execute_eod_shares_monitor_and_notifier(self, service, notifier, executor):
        result = await service.execute_eod(EODRequest(environment="PROD"), "EOD-1", initiated_by="scheduler")

        assert result.status == OperationStatus.COMPLETED
        assert [call[0] for call in executor.mutating_calls()] == [4, 3, 2, 1]
        assert notifier.events_of_type("operation.completed")[0].operation_code == "EOD-1"
        metrics = await service.get_operation_metrics("EOD-1")
        assert metrics.progress_percentage == 100.0

    async def test_rollback_is_routed_by_operation_type(self, store, settings):
        executor = FakeExecutor()
        service = OperationService(store, executor, settings=settings, resource_sampler=StaticResourceSampler())
        await service.execute_eod(EODRequest(environment="PROD"), "EOD-R")
        executor.calls.clear()

        rollback_steps = await service.rollback_operation("EOD-R")

        assert len(rollback_steps) == 4
        assert executor.calls == [(1, "Start"), (2, "Start"), (3, "Start"), (4, "Start")]

    async def test_cancel_of_finished_operation_returns_false(self, service):
        await service.execute_sod(SODRequest(environment="PROD"), "SOD-DONE")

        assert await service.cancel_operation("SOD-DONE") is False

    async def test_unknown_operation(self, service):
        with pytest.raises(DaycycleError) as exc_info:
            await service.get_operation("nope")
        assert exc_info.value.error_code == ErrorCode.OPERATION_NOT_FOUND

        with pytest.raises(DaycycleError):
            await service.list_steps("nope")
        with pytest.raises(DaycycleError):
            await service.cancel_operation("nope")

    async def test_dependency_queries(self, service):
        graph = await service.resolve_dependencies("prod", OperationType.SOD)
        validation = await service.validate_dependencies("PROD", OperationType.SOD)
        plan = await service.get_execution_plan("PROD", OperationType.EOD, service_ids=[1, 2])

        assert graph.environment == "PROD"
        assert validation.is_valid
        assert plan.service_ids == [2, 1]

    async def test_dashboard_lists_recent_operations(self, service):
        await service.execute_sod(SODRequest(environment="PROD"), "SOD-D")

        async with service:
            assert service.monitor.is_running
            dashboard = await service.get_dashboard(ctx="req-dash")

        assert [s.operation_code for s in dashboard.recent_operations] == ["SOD-D"]
        assert dashboard.system_health.total_services == 4
        assert not service.monitor.is_running


class TestModuleApi:
    """configure() and the module-level functions."""

    async def test_requires_configuration(self, reset_api):
        with pytest.raises(DaycycleError) as exc_info:
            api.get_operation_service()

        assert exc_info.value.error_code == ErrorCode.CONFIG_ERROR

    async def test_configure_then_execute(self, reset_api, chain_services, settings):
        store = InMemoryOperationStore(chain_services)
        configured = api.configure(FakeExecutor(), store=store, settings=settings)

        result = await api.execute_sod(SODRequest(environment="PROD"), "SOD-API")

        assert api.get_operation_service() is configured
        assert result.status == OperationStatus.COMPLETED
        assert (await api.get_operation_metrics("SOD-API")).completed_steps == 4
        assert await api.cancel_operation("SOD-API") is False
        dashboard = await api.get_dashboard()
        assert dashboard.recent_operations[0].operation_code == "SOD-API"

    def test_configure_builds_store_from_settings(self, reset_api, settings):
        configured = api.configure(FakeExecutor(), settings=settings)

        assert isinstance(configured.store, InMemoryOperationStore)
