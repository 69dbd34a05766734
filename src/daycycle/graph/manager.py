"""Dependency manager.

Ties the builder, validator and planner together and reads service
descriptors from the state store.
"""

from typing import TYPE_CHECKING, Iterable, List, Optional

from daycycle.common.exceptions import ErrorCode, validation_error
from daycycle.constants import OperationType
from daycycle.graph.builder import DependencyGraphBuilder
from daycycle.graph.planner import ExecutionPlanner
from daycycle.graph.types import (
    ServiceDependencyGraph,
    ServiceDescriptor,
    ServiceExecutionPlan,
    ValidationResult,
)
from daycycle.graph.validator import DependencyValidator
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras

if TYPE_CHECKING:
    from daycycle.protocols.store import OperationStore
    from daycycle.settings import _Settings

logger = get_logger(__name__)


class DependencyManager:
    """Resolves, validates and plans service dependencies.

    Attributes:
        store: State store the service descriptors are read from
        settings: Application settings
        builder: Graph builder
        validator: Graph validator
        planner: Execution planner
    """

    def __init__(self, store: "OperationStore", settings: "_Settings"):
        self.store = store
        self.settings = settings
        self.builder = DependencyGraphBuilder()
        self.validator = DependencyValidator(
            max_critical_depth=settings.orchestration.max_critical_depth
        )
        self.planner = ExecutionPlanner(max_phases=settings.orchestration.max_phases)
        self.logger = logger

    async def load_services(self, environment: Optional[str] = None) -> List[ServiceDescriptor]:
        """Read the descriptors visible in ``environment`` from the store."""
        return await self.store.list_services(environment)

    async def resolve_dependencies(
        self,
        environment: str,
        operation_type: OperationType,
    ) -> ServiceDependencyGraph:
        """Build the dependency graph of the services stored for ``environment``."""
        services = await self.load_services(environment)
        return self.builder.build(services, operation_type, environment=environment)

    def validate_dependencies(
        self,
        services: Iterable[ServiceDescriptor],
        operation_type: OperationType,
        environment: Optional[str] = None,
    ) -> ValidationResult:
        """Build the graph for ``services`` and validate it."""
        graph = self.builder.build(services, operation_type, environment=environment)
        return self.validator.validate(graph)

    def get_execution_plan(
        self,
        services: Iterable[ServiceDescriptor],
        operation_type: OperationType,
        service_ids: Optional[Iterable[int]] = None,
        environment: Optional[str] = None,
    ) -> ServiceExecutionPlan:
        """Build, validate and plan ``services``.

        Non-blocking validation errors such as dangling references do not
        stop planning; they surface as plan warnings instead.

        Raises:
            DaycycleError: CIRCULAR_DEPENDENCY when the graph has a Hard cycle,
                PLAN_INVALID when planning fails
        """
        result = self.validate_dependencies(services, operation_type, environment=environment)
        if not result.can_proceed_with_force:
            self.logger.warning(
                "plan.rejected",
                extra=sanitize_extras({
                    "operation_type": operation_type,
                    "error_count": len(result.errors),
                }),
            )
            raise validation_error(
                "Dependency graph contains circular Hard dependencies",
                errors=result.errors,
                warnings=result.warnings,
                error_code=ErrorCode.CIRCULAR_DEPENDENCY,
            )

        plan = self.planner.create_plan(result.validated_graph, service_ids=service_ids)
        extra_warnings = [w for w in [*result.errors, *result.warnings] if w not in plan.warnings]
        if extra_warnings:
            plan = plan.model_copy(update={"warnings": [*plan.warnings, *extra_warnings]})
        return plan
