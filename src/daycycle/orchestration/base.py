"""Shared SOD/EOD orchestration.

An orchestrator drives one operation at a time per operation code through
``Initiated -> Running -> {Completed | Failed | Cancelled}``:

    1. Pre-conditions are checked before anything is written.
    2. The plan is expanded into one step per service and persisted with the
       operation in ``Initiated``.
    3. Phases run in order. Parallel phases are gathered, sequential phases
       stop at their first failure.
    4. A failed operation gets a best-effort rollback pass over its completed
       steps in reverse order.

Every transition is written through a store session. No lock is held while
the action executor is called.
"""

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from daycycle.common.exceptions import (
    DaycycleError,
    ErrorCode,
    operation_conflict_error,
    operation_not_found_error,
    rollback_error,
    step_execution_error,
    validation_error,
)
from daycycle.constants import (
    FORWARD_ACTIONS,
    ROLLBACK_ACTIONS,
    DependencyKind,
    InitiationMethod,
    OperationStatus,
    OperationType,
    ServiceAction,
    StepStatus,
)
from daycycle.graph.manager import DependencyManager
from daycycle.graph.types import (
    ServiceDescriptor,
    ServiceExecutionPlan,
    ValidatedGraph,
    ValidationResult,
)
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras
from daycycle.observability.instrumentation import operation_instrumentation, step_instrumentation
from daycycle.orchestration.types import (
    ActionResult,
    OperationEvent,
    OperationRequest,
    OperationResult,
)
from daycycle.settings import get_settings
from daycycle.types.operations import Operation, OperationStep
from daycycle.utils.datetime import business_date, elapsed_seconds, utc_now
from daycycle.utils.decorators import traced, with_timeout

if TYPE_CHECKING:
    from daycycle.monitoring.metrics import MetricsCollector
    from daycycle.monitoring.monitor import OperationMonitor
    from daycycle.protocols.providers import ActionExecutor, Notifier
    from daycycle.protocols.store import OperationStore
    from daycycle.settings import _Settings

logger = get_logger(__name__)


@dataclass
class _Run:
    """In-flight state of one operation owned by the orchestrator."""

    operation: Operation
    plan: ServiceExecutionPlan
    validated: ValidatedGraph
    descriptors: Dict[int, ServiceDescriptor]
    steps: List[OperationStep]
    cancel_event: asyncio.Event
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def step_for(self, service_id: int) -> OperationStep:
        return next(step for step in self.steps if step.service_id == service_id)


class BaseOrchestrator:
    """Drives SOD or EOD operations.

    Subclasses set ``operation_type`` and the verb used in step names.

    Attributes:
        store: State store for descriptors, operations and steps
        executor: Action executor that performs Start/Stop/HealthCheck
        settings: Application settings
        notifier: Optional event sink
        monitor: Optional monitor told when operations start and stop
        metrics: Optional OpenTelemetry metrics collector
    """

    operation_type: OperationType = OperationType.SOD
    step_verb: str = "Starting"

    def __init__(
        self,
        store: "OperationStore",
        executor: "ActionExecutor",
        settings: Optional["_Settings"] = None,
        notifier: Optional["Notifier"] = None,
        monitor: Optional["OperationMonitor"] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.executor = executor
        self.settings = settings or get_settings()
        self.notifier = notifier
        self.monitor = monitor
        self.metrics = metrics
        self.dependencies = DependencyManager(store, self.settings)
        self.logger = logger
        self._active: Dict[str, asyncio.Event] = {}

    @property
    def forward_action(self) -> ServiceAction:
        return FORWARD_ACTIONS[self.operation_type]

    @property
    def compensating_action(self) -> ServiceAction:
        return ROLLBACK_ACTIONS[self.operation_type]

    def step_name(self, descriptor: ServiceDescriptor) -> str:
        return f"{self.step_verb} {descriptor.name}"

    def is_running(self, operation_code: str) -> bool:
        """True while this orchestrator is driving ``operation_code``."""
        return operation_code in self._active

    async def get_service_sequence(
        self,
        environment: str,
        service_ids: Optional[List[int]] = None,
    ) -> List[ServiceDescriptor]:
        """Descriptors of ``environment`` in planned execution order.

        Raises:
            DaycycleError: CIRCULAR_DEPENDENCY when no order exists
        """
        services = await self.dependencies.load_services(environment.upper())
        plan = self.dependencies.get_execution_plan(
            services, self.operation_type, service_ids=service_ids, environment=environment.upper()
        )
        by_id = {s.service_id: s for s in services}
        return [by_id[service_id] for service_id in plan.service_ids]

    # ------------------------------------------------------------------
    # Pre-conditions
    # ------------------------------------------------------------------

    async def validate_pre_conditions(
        self,
        environment: str,
        request: Optional[OperationRequest] = None,
    ) -> ValidationResult:
        """Check whether an operation may start in ``environment``.

        Nothing is written. The returned result lists every problem found;
        ``blocking_errors`` are the ones force execution cannot bypass.
        """
        result, _ = await self._check_pre_conditions(environment, request)
        return result

    async def _check_pre_conditions(
        self,
        environment: str,
        request: Optional[OperationRequest],
    ) -> Tuple[ValidationResult, Dict[int, ServiceDescriptor]]:
        environment = environment.upper()
        result = ValidationResult()

        if not self.settings.is_environment_known(environment):
            result.add_error(
                f"Unknown environment {environment}; expected one of "
                f"{', '.join(self.settings.get_environment_list())}",
                blocking=True,
            )
            result.details["unknown_environment"] = environment
            return result, {}

        services = await self.dependencies.load_services(environment)
        descriptors = {s.service_id: s for s in services}

        graph_result = self.dependencies.validate_dependencies(
            services, self.operation_type, environment=environment
        )
        result.merge(graph_result)

        in_scope = (
            set(graph_result.validated_graph.graph.nodes)
            if graph_result.validated_graph is not None
            else {s.service_id for s in services if s.is_enabled}
        )
        if not in_scope:
            result.add_error(
                f"No enabled services found for environment {environment}",
                blocking=True,
            )

        running = await self.store.list_operations(
            environment=environment, status=OperationStatus.RUNNING
        )
        for other in running:
            result.add_error(
                f"Operation {other.operation_code} ({other.operation_type}) is already running "
                f"in environment {environment}"
            )

        if request is not None and request.service_ids:
            unknown = sorted(set(request.service_ids) - in_scope)
            if unknown:
                result.add_error(
                    f"Service IDs {unknown} are not enabled services of environment {environment}"
                )

        self.logger.info(
            "orchestrator.preconditions.checked",
            extra=sanitize_extras({
                "operation_type": self.operation_type,
                "environment": environment,
                "is_valid": result.is_valid,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
            }),
        )
        return result, descriptors

    @staticmethod
    def _rejection_code(result: ValidationResult) -> ErrorCode:
        if "unknown_environment" in result.details:
            return ErrorCode.UNKNOWN_ENVIRONMENT
        if result.details.get("hard_cycles"):
            return ErrorCode.CIRCULAR_DEPENDENCY
        return ErrorCode.VALIDATION_ERROR

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        request: OperationRequest,
        operation_code: str,
        initiated_by: str = "system",
        initiation_method: InitiationMethod = InitiationMethod.MANUAL,
    ) -> OperationResult:
        """Run an operation to a terminal status.

        Args:
            request: What to run and how
            operation_code: Unique identity of the new operation
            initiated_by: Identity recorded on the operation
            initiation_method: Manual, Scheduled or API

        Returns:
            OperationResult describing the terminal status

        Raises:
            DaycycleError: VALIDATION_* codes when pre-conditions fail (nothing
                is persisted), OPERATION_CONFLICT when the code is already in
                use, PLAN_INVALID when no valid plan can be built
        """
        if operation_code in self._active:
            raise operation_conflict_error(operation_code)

        cancel_event = asyncio.Event()
        self._active[operation_code] = cancel_event
        try:
            if await self.store.get_operation(operation_code) is not None:
                raise operation_conflict_error(operation_code)

            with operation_instrumentation(
                operation_code=operation_code,
                operation_type=OperationType(self.operation_type).value,
                environment=request.environment,
            ):
                run = await self._prepare(
                    request, operation_code, initiated_by, initiation_method, cancel_event
                )
                return await self._drive(run, request)
        finally:
            self._active.pop(operation_code, None)

    async def _prepare(
        self,
        request: OperationRequest,
        operation_code: str,
        initiated_by: str,
        initiation_method: InitiationMethod,
        cancel_event: asyncio.Event,
    ) -> _Run:
        validation, descriptors = await self._check_pre_conditions(request.environment, request)

        if not validation.is_valid:
            if not (request.force_execution and validation.can_proceed_with_force):
                self.logger.warning(
                    "orchestrator.preconditions.rejected",
                    extra=sanitize_extras({
                        "operation_code": operation_code,
                        "environment": request.environment,
                        "force_execution": request.force_execution,
                        "errors": validation.errors,
                    }),
                )
                raise validation_error(
                    f"Pre-condition validation failed for {OperationType(self.operation_type).value} "
                    f"in environment {request.environment}",
                    errors=validation.errors,
                    warnings=validation.warnings,
                    error_code=self._rejection_code(validation),
                    details={"operation_code": operation_code},
                )
            self.logger.warning(
                "orchestrator.preconditions.forced",
                extra=sanitize_extras({
                    "operation_code": operation_code,
                    "bypassed_errors": validation.errors,
                }),
            )

        validated = validation.validated_graph
        plan = self.dependencies.planner.create_plan(validated, service_ids=request.service_ids)

        now = utc_now()
        operation = Operation(
            operation_code=operation_code,
            operation_type=self.operation_type,
            business_date=business_date(self.settings.time_zone, now),
            environment=request.environment,
            start_time=now,
            status=OperationStatus.INITIATED,
            initiated_by=initiated_by,
            initiation_method=initiation_method,
            comment=request.comment,
            dry_run=request.dry_run,
            services_involved=plan.service_ids,
        )

        steps: List[OperationStep] = []
        for phase in plan.phases:
            for service_id in phase.service_ids:
                steps.append(
                    OperationStep(
                        operation_code=operation_code,
                        step_order=len(steps) + 1,
                        step_name=self.step_name(descriptors[service_id]),
                        service_id=service_id,
                        action=self.forward_action,
                        phase_number=phase.phase_number,
                        phase_name=phase.name,
                    )
                )

        async with self.store.session() as session:
            session.add_operation(operation)
            for step in steps:
                session.add_step(step)
            await session.save_changes()

        self.logger.info(
            "orchestrator.operation.initiated",
            extra=sanitize_extras({
                "operation_code": operation_code,
                "operation_type": self.operation_type,
                "environment": request.environment,
                "step_count": len(steps),
                "phase_count": len(plan.phases),
                "dry_run": request.dry_run,
            }),
        )

        return _Run(
            operation=operation,
            plan=plan,
            validated=validated,
            descriptors=descriptors,
            steps=steps,
            cancel_event=cancel_event,
            errors=list(validation.errors),
            warnings=[*validation.warnings, *plan.warnings],
        )

    async def _drive(self, run: _Run, request: OperationRequest) -> OperationResult:
        operation = run.operation
        operation.status = OperationStatus.RUNNING
        await self._save(operation=operation)
        self._notify("operation.started", operation, f"{operation.operation_type} operation started")
        await self._monitor_hook("start_monitoring", operation.operation_code)

        failure: Optional[str] = None
        cancelled = False
        rollback_steps: List[OperationStep] = []
        try:
            try:
                await self._before_phases(run, request)
                failure, cancelled = await self._run_phases(run)
            except DaycycleError as exc:
                failure = exc.message
                self.logger.error(
                    "orchestrator.operation.aborted",
                    extra=sanitize_extras({
                        "operation_code": operation.operation_code,
                        "error_code": exc.error_code.value,
                        "error_message": exc.message,
                    }),
                )

            reason = "operation failed" if failure else "operation cancelled"
            remaining = [s for s in run.steps if s.status == StepStatus.PENDING]
            for step in remaining:
                step.status = StepStatus.SKIPPED
                step.details = f"Skipped: {reason}"
            operation.end_time = utc_now()
            if failure:
                operation.status = OperationStatus.FAILED
                operation.error_details = failure
            elif cancelled:
                operation.status = OperationStatus.CANCELLED
            else:
                operation.status = OperationStatus.COMPLETED
            await self._save(operation=operation, steps=remaining)

            self._record_operation(run)
            if failure:
                self._notify("operation.failed", operation, failure)
                rollback_steps = await self._rollback(operation, run.steps)
            elif cancelled:
                self._notify("operation.cancelled", operation, "Operation cancelled on request")
            else:
                self._notify(
                    "operation.completed", operation, f"{operation.operation_type} operation completed"
                )
        finally:
            await self._monitor_hook("stop_monitoring", operation.operation_code)

        self.logger.info(
            "orchestrator.operation.finished",
            extra=sanitize_extras({
                "operation_code": operation.operation_code,
                "status": operation.status,
                "duration_seconds": elapsed_seconds(operation.start_time, operation.end_time),
                "rolled_back_steps": len(rollback_steps),
            }),
        )
        return self._build_result(run, failure, rollback_steps)

    async def _before_phases(self, run: _Run, request: OperationRequest) -> None:
        """Hook run after the operation enters Running; EOD applies its cutoff here."""

    async def _run_phases(self, run: _Run) -> Tuple[Optional[str], bool]:
        """Run every phase; returns (failure description, cancelled)."""
        for phase in run.plan.phases:
            if run.cancel_event.is_set():
                return None, True

            self.logger.info(
                "orchestrator.phase.start",
                extra=sanitize_extras({
                    "operation_code": run.operation.operation_code,
                    "phase": phase.name,
                    "parallel": phase.can_run_in_parallel,
                    "service_count": len(phase.service_ids),
                }),
            )
            phase_steps = [run.step_for(service_id) for service_id in phase.service_ids]

            if phase.can_run_in_parallel:
                # Every sibling settles before the phase is judged
                outcomes = await asyncio.gather(
                    *(self._run_step(run, step) for step in phase_steps),
                    return_exceptions=True,
                )
                for step, outcome in zip(phase_steps, outcomes):
                    if isinstance(outcome, Exception):
                        await self._fail_step(run, step, outcome)
                    elif isinstance(outcome, BaseException):
                        raise outcome
            else:
                for step in phase_steps:
                    if run.cancel_event.is_set():
                        return None, True
                    try:
                        await self._run_step(run, step)
                    except Exception as exc:
                        await self._fail_step(run, step, exc)
                    if step.status == StepStatus.FAILED:
                        break

            failed = [step for step in phase_steps if step.status == StepStatus.FAILED]
            if failed:
                first = failed[0]
                return f"Step '{first.step_name}' failed: {first.error_message}", False
        return None, False

    def _unmet_prerequisite(self, run: _Run, step: OperationStep) -> Optional[OperationStep]:
        """First planned Hard prerequisite of ``step`` that did not complete."""
        planned = {s.service_id: s for s in run.steps}
        for edge in run.validated.graph.predecessors(step.service_id):
            if DependencyKind(edge.kind) != DependencyKind.HARD:
                continue
            prerequisite = planned.get(edge.from_service_id)
            if prerequisite is not None and prerequisite.status != StepStatus.COMPLETED:
                return prerequisite
        return None

    @traced(
        "daycycle.orchestrator.step",
        attribute_getter=lambda self, run, step: {
            "daycycle.operation_code": step.operation_code,
            "daycycle.service_id": step.service_id,
            "daycycle.action": step.action,
        },
    )
    async def _run_step(self, run: _Run, step: OperationStep) -> None:
        operation = run.operation
        descriptor = run.descriptors[step.service_id]
        action = ServiceAction(step.action)

        blocker = self._unmet_prerequisite(run, step)
        if blocker is not None:
            step.status = StepStatus.SKIPPED
            step.details = f"Skipped: prerequisite '{blocker.step_name}' did not complete"
            await self._save(steps=[step])
            return

        step.status = StepStatus.RUNNING
        step.start_time = utc_now()
        await self._save(steps=[step])

        if operation.dry_run:
            step.status = StepStatus.COMPLETED
            step.details = f"Dry run: {action.value} of {descriptor.name} would succeed"
            step.end_time = utc_now()
            await self._save(steps=[step])
            self._record_step(step)
            return

        max_retries = (
            descriptor.max_retries
            if descriptor.max_retries is not None
            else self.settings.orchestration.max_step_retries
        )
        with step_instrumentation(
            operation_code=operation.operation_code,
            operation_type=OperationType(self.operation_type).value,
            step_name=step.step_name,
            service_id=step.service_id,
            action=action.value,
            metrics=self.metrics,
        ):
            while True:
                result = await self._attempt(descriptor, action)
                if result.succeeded:
                    step.status = StepStatus.COMPLETED
                    step.details = result.detail or f"{action.value} of {descriptor.name} succeeded"
                    step.error_message = None
                    break

                step.error_message = result.error_message or f"{action.value} of {descriptor.name} failed"
                if result.retryable and step.retry_count < max_retries:
                    step.retry_count += 1
                    self.logger.warning(
                        "orchestrator.step.retry",
                        extra=sanitize_extras({
                            "operation_code": operation.operation_code,
                            "step_name": step.step_name,
                            "retry_count": step.retry_count,
                            "max_retries": max_retries,
                            "error_message": step.error_message,
                        }),
                    )
                    await self._save(steps=[step])
                    await asyncio.sleep(self.settings.orchestration.retry_delay_seconds)
                    continue

                if (
                    self.settings.orchestration.skip_non_critical_failures
                    and not descriptor.is_critical_for(self.operation_type)
                ):
                    step.status = StepStatus.SKIPPED
                    step.details = "Skipped after failure of a non-critical service"
                else:
                    step.status = StepStatus.FAILED
                break

        step.end_time = utc_now()
        await self._save(steps=[step])
        self._record_step(step)

        if step.status == StepStatus.FAILED:
            self.logger.error(
                "orchestrator.step.failed",
                extra=sanitize_extras({
                    "operation_code": operation.operation_code,
                    "step_name": step.step_name,
                    "retry_count": step.retry_count,
                    "error_message": step.error_message,
                }),
            )
            self._notify(
                "step.failed", operation, step.error_message or "Step failed", step=step
            )

    async def _fail_step(self, run: _Run, step: OperationStep, exc: Exception) -> None:
        """Record a step whose execution raised, usually on a store write."""
        step.status = StepStatus.FAILED
        step.error_message = exc.message if isinstance(exc, DaycycleError) else f"{type(exc).__name__}: {exc}"
        step.end_time = step.end_time or utc_now()
        self.logger.error(
            "orchestrator.step.failed",
            extra=sanitize_extras({
                "operation_code": run.operation.operation_code,
                "step_name": step.step_name,
                "error_type": type(exc).__name__,
                "error_message": step.error_message,
            }),
        )
        try:
            await self._save(steps=[step])
        except Exception as save_exc:
            self.logger.warning(
                "orchestrator.step.persist_failed",
                extra=sanitize_extras({
                    "operation_code": run.operation.operation_code,
                    "step_name": step.step_name,
                    "error": str(save_exc),
                }),
            )
        self._record_step(step)
        self._notify("step.failed", run.operation, step.error_message, step=step)

    async def _attempt(self, descriptor: ServiceDescriptor, action: ServiceAction) -> ActionResult:
        """One executor call bounded by the step timeout; never raises."""
        timeout = descriptor.timeout_seconds or self.settings.orchestration.step_timeout_seconds
        try:
            return await with_timeout(timeout)(self.executor.execute)(descriptor.service_id, action)
        except asyncio.TimeoutError:
            error = step_execution_error(
                f"{action.value} of {descriptor.name} timed out after {timeout} seconds",
                service_id=descriptor.service_id,
                action=action.value,
                timed_out=True,
            )
        except DaycycleError as exc:
            error = exc
        except Exception as exc:
            error = step_execution_error(
                f"{action.value} of {descriptor.name} raised {type(exc).__name__}: {exc}",
                service_id=descriptor.service_id,
                action=action.value,
                cause=exc,
            )
        return ActionResult(
            succeeded=False,
            error_message=error.message,
            retryable=error.is_retryable,
        )

    # ------------------------------------------------------------------
    # Cancellation and rollback
    # ------------------------------------------------------------------

    async def cancel(self, operation_code: str) -> bool:
        """Request cooperative cancellation.

        Returns:
            True when the operation is being driven here and will stop at the
            next phase or step boundary, False when it is already terminal

        Raises:
            DaycycleError: OPERATION_NOT_FOUND for unknown codes
        """
        event = self._active.get(operation_code)
        if event is not None:
            event.set()
            self.logger.info(
                "orchestrator.operation.cancel_requested",
                extra=sanitize_extras({"operation_code": operation_code}),
            )
            return True

        operation = await self.store.get_operation(operation_code)
        if operation is None:
            raise operation_not_found_error(operation_code)
        return False

    async def rollback(self, operation_code: str) -> List[OperationStep]:
        """Compensate the completed steps of a terminal operation.

        Steps that already have a rollback record are left alone, so calling
        this twice does not repeat compensations.

        Raises:
            DaycycleError: OPERATION_NOT_FOUND, or OPERATION_NOT_TERMINAL while
                the operation is still running
        """
        operation = await self.store.get_operation(operation_code)
        if operation is None:
            raise operation_not_found_error(operation_code)
        if operation_code in self._active or not operation.is_terminal:
            raise DaycycleError(
                f"Operation {operation_code} is {operation.status}; only terminal operations can be rolled back",
                error_code=ErrorCode.OPERATION_NOT_TERMINAL,
                details={"operation_code": operation_code, "status": operation.status},
            )
        steps = await self.store.list_steps(operation_code)
        return await self._rollback(operation, steps)

    async def _rollback(self, operation: Operation, steps: List[OperationStep]) -> List[OperationStep]:
        """Best-effort compensation in reverse (phase, order); never raises."""
        compensated = {s.rollback_of for s in steps if s.is_rollback}
        targets = [
            s for s in steps
            if not s.is_rollback
            and s.status == StepStatus.COMPLETED
            and s.step_order not in compensated
        ]
        targets.sort(key=lambda s: (s.phase_number or 0, s.step_order), reverse=True)
        next_order = max((s.step_order for s in steps), default=0) + 1
        action = self.compensating_action

        self.logger.info(
            "orchestrator.rollback.start",
            extra=sanitize_extras({
                "operation_code": operation.operation_code,
                "step_count": len(targets),
                "dry_run": operation.dry_run,
            }),
        )

        recorded: List[OperationStep] = []
        for target in targets:
            rollback_step = OperationStep(
                operation_code=operation.operation_code,
                step_order=next_order,
                step_name=f"Rollback {target.step_name}",
                service_id=target.service_id,
                action=action,
                phase_number=target.phase_number,
                phase_name=target.phase_name,
                status=StepStatus.RUNNING,
                start_time=utc_now(),
                is_rollback=True,
                rollback_of=target.step_order,
            )
            next_order += 1
            added = False
            try:
                await self._save(new_steps=[rollback_step])
                added = True
                await self._compensate(operation, rollback_step, action)
            except Exception as exc:
                rollback_step.status = StepStatus.FAILED
                rollback_step.error_message = (
                    exc.message if isinstance(exc, DaycycleError) else f"{type(exc).__name__}: {exc}"
                )
                self.logger.warning(
                    "orchestrator.rollback.step_failed",
                    extra=sanitize_extras({
                        "operation_code": operation.operation_code,
                        "step_name": rollback_step.step_name,
                        "error_type": type(exc).__name__,
                        "error_message": rollback_step.error_message,
                    }),
                )
            rollback_step.end_time = utc_now()
            if added:
                try:
                    await self._save(steps=[rollback_step])
                except Exception as exc:
                    self.logger.warning(
                        "orchestrator.rollback.persist_failed",
                        extra=sanitize_extras({
                            "operation_code": operation.operation_code,
                            "step_name": rollback_step.step_name,
                            "error": str(exc),
                        }),
                    )
            recorded.append(rollback_step)

        await self._after_rollback(operation)

        if self.metrics is not None:
            self.metrics.record_rollback(operation.operation_type, operation.environment, recorded)
        failed = [s for s in recorded if s.status == StepStatus.FAILED]
        self._notify(
            "operation.rolled_back",
            operation,
            f"Rollback recorded {len(recorded)} step(s), {len(failed)} failed",
            payload={"rolled_back_steps": [s.rollback_of for s in recorded]},
        )
        return recorded

    async def _compensate(self, operation: Operation, step: OperationStep, action: ServiceAction) -> None:
        descriptor = await self.store.get_service(step.service_id)
        name = descriptor.name if descriptor else f"service {step.service_id}"

        if operation.dry_run:
            step.status = StepStatus.COMPLETED
            step.details = f"Dry run: {action.value} of {name} would succeed"
            return

        if descriptor is None:
            descriptor = ServiceDescriptor(service_id=step.service_id, name=name)
        result = await self._attempt(descriptor, action)
        if result.succeeded:
            step.status = StepStatus.COMPLETED
            step.details = result.detail or f"{action.value} of {name} succeeded"
            return

        step.status = StepStatus.FAILED
        step.error_message = result.error_message
        error = rollback_error(
            f"Rollback step '{step.step_name}' failed: {result.error_message}",
            operation_code=operation.operation_code,
            step_name=step.step_name,
        )
        self.logger.warning(
            "orchestrator.rollback.step_failed",
            extra=sanitize_extras({
                "operation_code": operation.operation_code,
                "step_name": step.step_name,
                "error_code": error.error_code.value,
                "error_message": error.message,
            }),
        )

    async def _after_rollback(self, operation: Operation) -> None:
        """Hook run after the rollback steps; EOD re-opens transactions here."""

    # ------------------------------------------------------------------
    # Persistence, notifications and results
    # ------------------------------------------------------------------

    async def _save(
        self,
        operation: Optional[Operation] = None,
        steps: Optional[List[OperationStep]] = None,
        new_steps: Optional[List[OperationStep]] = None,
    ) -> None:
        async with self.store.session() as session:
            if operation is not None:
                session.update_operation(operation)
            for step in new_steps or []:
                session.add_step(step)
            for step in steps or []:
                session.update_step(step)
            await session.save_changes()

    def _notify(
        self,
        event_type: str,
        operation: Operation,
        message: str,
        step: Optional[OperationStep] = None,
        payload: Optional[Dict[str, object]] = None,
    ) -> None:
        if self.notifier is None:
            return
        event = OperationEvent(
            event_type=event_type,
            operation_code=operation.operation_code,
            operation_type=operation.operation_type,
            environment=operation.environment,
            status=operation.status,
            message=message,
            step_name=step.step_name if step else None,
            service_id=step.service_id if step else None,
            action=step.action if step else None,
            payload=payload or {},
        )
        try:
            self.notifier.notify(event)
        except Exception as exc:
            self.logger.warning(
                "orchestrator.notify_failed",
                extra=sanitize_extras({
                    "operation_code": operation.operation_code,
                    "event_type": event_type,
                    "error": str(exc),
                }),
            )

    async def _monitor_hook(self, method: str, operation_code: str) -> None:
        if self.monitor is None:
            return
        try:
            await getattr(self.monitor, method)(operation_code)
        except Exception as exc:
            self.logger.warning(
                "orchestrator.monitor_hook_failed",
                extra=sanitize_extras({
                    "operation_code": operation_code,
                    "hook": method,
                    "error": str(exc),
                }),
            )

    def _record_step(self, step: OperationStep) -> None:
        if self.metrics is not None:
            self.metrics.record_step(
                self.operation_type, step.action, step.status, step.duration_seconds, step.retry_count
            )

    def _record_operation(self, run: _Run) -> None:
        if self.metrics is None:
            return
        operation = run.operation
        self.metrics.record_operation(
            operation.operation_code,
            operation.operation_type,
            operation.environment,
            operation.status,
            elapsed_seconds(operation.start_time, operation.end_time),
            step_count=len(run.steps),
        )

    def _build_result(
        self,
        run: _Run,
        failure: Optional[str],
        rollback_steps: List[OperationStep],
    ) -> OperationResult:
        operation = run.operation
        status = OperationStatus(operation.status)
        counts = {
            state: sum(1 for s in run.steps if s.status == state)
            for state in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)
        }
        operation_label = OperationType(operation.operation_type).value
        if status == OperationStatus.COMPLETED:
            message = f"{operation_label} operation completed successfully"
        elif status == OperationStatus.CANCELLED:
            message = f"{operation_label} operation cancelled"
        else:
            message = f"{operation_label} operation failed: {failure}"

        return OperationResult(
            operation_code=operation.operation_code,
            operation_type=operation.operation_type,
            status=status,
            message=message,
            start_time=operation.start_time,
            end_time=operation.end_time,
            estimated_duration_minutes=round(run.plan.total_estimated_duration_seconds / 60, 2),
            errors=[*run.errors, *([failure] if failure else [])],
            warnings=run.warnings,
            completed_steps=counts[StepStatus.COMPLETED],
            failed_steps=counts[StepStatus.FAILED],
            skipped_steps=counts[StepStatus.SKIPPED],
            rolled_back_steps=len(rollback_steps),
        )
