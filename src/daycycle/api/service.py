import uuid
from typing import Any, List, Optional

from daycycle.constants import InitiationMethod, OperationType
from daycycle.common.exceptions import operation_not_found_error
from daycycle.graph import DependencyManager, ServiceDependencyGraph, ServiceExecutionPlan, ValidationResult
from daycycle.monitoring import MetricsCollector, OperationDashboard, OperationMetrics, OperationMonitor
from daycycle.observability.context import execution_request_scope, resolve_request_context
from daycycle.orchestration import (
    EODOrchestrator,
    EODRequest,
    OperationResult,
    SODOrchestrator,
    SODRequest,
)
from daycycle.protocols.providers import ActionExecutor, Notifier, ResourceSampler, TransactionGateway
from daycycle.protocols.store import OperationStore
from daycycle.settings import _Settings, get_settings
from daycycle.types.operations import Operation, OperationStep


def new_operation_code(operation_type: OperationType) -> str:
    """Generate a unique operation code such as ``SOD-3f2a...``."""
    return f"{OperationType(operation_type).value}-{uuid.uuid4().hex}"


class OperationService:
    """Boundary facade over the dependency manager, orchestrators and monitor.

    Every public call runs inside ``execution_request_scope`` so logs and
    spans carry the caller's request id. ``ctx`` accepts an
    ExecutionRequestContext, a mapping, a request id string or None.

    Attributes:
        store: Shared state store
        settings: Application settings
        metrics: OpenTelemetry metrics collector shared by all components
        monitor: Operation monitor
        dependencies: Graph build/validate/plan over the store
        sod: Start-of-Day orchestrator
        eod: End-of-Day orchestrator
    """

    def __init__(
        self,
        store: OperationStore,
        executor: ActionExecutor,
        settings: Optional[_Settings] = None,
        notifier: Optional[Notifier] = None,
        resource_sampler: Optional[ResourceSampler] = None,
        transaction_gateway: Optional[TransactionGateway] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.metrics = metrics or MetricsCollector(
            max_records=self.settings.monitoring.metrics_record_limit
        )
        self.monitor = OperationMonitor(
            store,
            self.settings,
            executor=executor,
            resource_sampler=resource_sampler,
            metrics=self.metrics,
        )
        self.dependencies = DependencyManager(store, self.settings)
        shared = dict(
            settings=self.settings,
            notifier=notifier,
            monitor=self.monitor,
            metrics=self.metrics,
        )
        self.sod = SODOrchestrator(store, executor, **shared)
        self.eod = EODOrchestrator(store, executor, transaction_gateway=transaction_gateway, **shared)

    async def start(self) -> None:
        """Start the monitor's periodic sampler."""
        await self.monitor.start()

    async def stop(self) -> None:
        await self.monitor.stop()

    async def __aenter__(self) -> "OperationService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Dependencies and plans
    # ------------------------------------------------------------------

    async def resolve_dependencies(
        self,
        environment: str,
        operation_type: OperationType,
        *,
        ctx: Optional[Any] = None,
    ) -> ServiceDependencyGraph:
        """Build the dependency graph of ``environment`` for one operation type."""
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.dependencies.resolve"):
            return await self.dependencies.resolve_dependencies(environment.upper(), operation_type)

    async def validate_dependencies(
        self,
        environment: str,
        operation_type: OperationType,
        *,
        ctx: Optional[Any] = None,
    ) -> ValidationResult:
        """Validate the stored dependency graph of ``environment``."""
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.dependencies.validate"):
            environment = environment.upper()
            services = await self.dependencies.load_services(environment)
            return self.dependencies.validate_dependencies(
                services, operation_type, environment=environment
            )

    async def get_execution_plan(
        self,
        environment: str,
        operation_type: OperationType,
        service_ids: Optional[List[int]] = None,
        *,
        ctx: Optional[Any] = None,
    ) -> ServiceExecutionPlan:
        """Plan the services of ``environment``, optionally restricted to ``service_ids``."""
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.plan"):
            environment = environment.upper()
            services = await self.dependencies.load_services(environment)
            return self.dependencies.get_execution_plan(
                services, operation_type, service_ids=service_ids, environment=environment
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def execute_sod(
        self,
        request: SODRequest,
        operation_code: Optional[str] = None,
        initiated_by: str = "system",
        initiation_method: InitiationMethod = InitiationMethod.API,
        *,
        ctx: Optional[Any] = None,
    ) -> OperationResult:
        """Run a Start-of-Day operation to its terminal status."""
        context = resolve_request_context(ctx)
        context.environment = context.environment or request.environment
        with execution_request_scope(context, operation="daycycle.operation.sod"):
            return await self.sod.execute(
                request,
                operation_code or new_operation_code(OperationType.SOD),
                initiated_by=context.user_id or initiated_by,
                initiation_method=initiation_method,
            )

    async def execute_eod(
        self,
        request: EODRequest,
        operation_code: Optional[str] = None,
        initiated_by: str = "system",
        initiation_method: InitiationMethod = InitiationMethod.API,
        *,
        ctx: Optional[Any] = None,
    ) -> OperationResult:
        """Run an End-of-Day operation, cutoff included."""
        context = resolve_request_context(ctx)
        context.environment = context.environment or request.environment
        with execution_request_scope(context, operation="daycycle.operation.eod"):
            return await self.eod.execute(
                request,
                operation_code or new_operation_code(OperationType.EOD),
                initiated_by=context.user_id or initiated_by,
                initiation_method=initiation_method,
            )

    async def cancel_operation(self, operation_code: str, *, ctx: Optional[Any] = None) -> bool:
        """Ask whichever orchestrator drives ``operation_code`` to stop."""
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.operation.cancel"):
            orchestrator = await self._orchestrator_for(operation_code)
            return await orchestrator.cancel(operation_code)

    async def rollback_operation(
        self,
        operation_code: str,
        *,
        ctx: Optional[Any] = None,
    ) -> List[OperationStep]:
        """Compensate the completed steps of a terminal operation."""
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.operation.rollback"):
            orchestrator = await self._orchestrator_for(operation_code)
            return await orchestrator.rollback(operation_code)

    async def _orchestrator_for(self, operation_code: str):
        for orchestrator in (self.sod, self.eod):
            if orchestrator.is_running(operation_code):
                return orchestrator
        operation = await self.store.get_operation(operation_code)
        if operation is None:
            raise operation_not_found_error(operation_code)
        return self.eod if operation.operation_type == OperationType.EOD else self.sod

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_operation(self, operation_code: str, *, ctx: Optional[Any] = None) -> Operation:
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.operation.get"):
            operation = await self.store.get_operation(operation_code)
            if operation is None:
                raise operation_not_found_error(operation_code)
            return operation

    async def list_steps(self, operation_code: str, *, ctx: Optional[Any] = None) -> List[OperationStep]:
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.operation.steps"):
            if await self.store.get_operation(operation_code) is None:
                raise operation_not_found_error(operation_code)
            return await self.store.list_steps(operation_code)

    async def get_operation_metrics(
        self,
        operation_code: str,
        *,
        ctx: Optional[Any] = None,
    ) -> OperationMetrics:
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.monitoring.metrics"):
            return await self.monitor.get_metrics(operation_code)

    async def get_dashboard(self, *, ctx: Optional[Any] = None) -> OperationDashboard:
        context = resolve_request_context(ctx)
        with execution_request_scope(context, operation="daycycle.monitoring.dashboard"):
            return await self.monitor.get_dashboard()
