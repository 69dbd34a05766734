"""Type definitions for the service dependency graph and execution plans.

Graph values are immutable once built. ``ValidatedGraph`` can only come out of
the validator and is the sole input the planner accepts, so "the graph has no
Hard cycle" holds by construction for every plan.
"""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import Field, field_validator, model_validator

from daycycle.constants import (
    DEFAULT_DEPENDENCY_CONDITION,
    UNRESOLVED_LEVEL,
    DependencyKind,
    OperationType,
)
from daycycle.types.base import DaycycleBaseModel, FrozenModel


class DependencyRef(DaycycleBaseModel):
    """A declared "depends-on" reference inside a service descriptor."""

    service_id: int
    kind: DependencyKind = DependencyKind.HARD
    condition: Optional[str] = DEFAULT_DEPENDENCY_CONDITION


class ServiceDescriptor(DaycycleBaseModel):
    """Configuration record for one managed service.

    Attributes:
        service_id: Numeric identity, also the planner's tie-break key
        name: Display name
        service_type: Category (e.g. Database, Application, Gateway)
        host: Host the service runs on
        environment: Environment the service belongs to; None means all
        is_enabled: Disabled services are left out of every graph
        is_critical_for_sod: Criticality during Start of Day
        is_critical_for_eod: Criticality during End of Day
        sod_dependencies: Prerequisites for Start of Day
        eod_dependencies: Prerequisites for End of Day
        sod_duration_seconds: Estimated start duration
        eod_duration_seconds: Estimated stop duration
        allow_parallel_execution: Whether the service may share a parallel phase
        timeout_seconds: Per-step timeout override
        max_retries: Per-step retry budget override
    """

    service_id: int
    name: str
    service_type: str = "Application"
    host: Optional[str] = None
    environment: Optional[str] = None
    is_enabled: bool = True
    is_critical_for_sod: bool = False
    is_critical_for_eod: bool = False
    sod_dependencies: List[DependencyRef] = Field(default_factory=list)
    eod_dependencies: List[DependencyRef] = Field(default_factory=list)
    sod_duration_seconds: int = Field(default=60, ge=0)
    eod_duration_seconds: int = Field(default=60, ge=0)
    allow_parallel_execution: bool = True
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    max_retries: Optional[int] = Field(default=None, ge=0)

    @field_validator("sod_dependencies", "eod_dependencies", mode="before")
    @classmethod
    def coerce_dependency_refs(cls, v: Any) -> Any:
        """Accept bare service ids as Hard references."""
        if v is None:
            return []
        return [{"service_id": item} if isinstance(item, int) else item for item in v]

    def dependencies_for(self, operation_type: OperationType) -> List[DependencyRef]:
        if operation_type == OperationType.SOD:
            return list(self.sod_dependencies)
        return list(self.eod_dependencies)

    def is_critical_for(self, operation_type: OperationType) -> bool:
        if operation_type == OperationType.SOD:
            return self.is_critical_for_sod
        return self.is_critical_for_eod

    def duration_for(self, operation_type: OperationType) -> int:
        if operation_type == OperationType.SOD:
            return self.sod_duration_seconds
        return self.eod_duration_seconds


class ServiceNode(FrozenModel):
    """Graph-internal view of a descriptor for one operation type."""

    service_id: int
    name: str
    service_type: str
    is_critical: bool
    estimated_duration_seconds: int
    allow_parallel_execution: bool = True
    dependency_level: int = UNRESOLVED_LEVEL

    @property
    def is_level_resolved(self) -> bool:
        return self.dependency_level != UNRESOLVED_LEVEL


class ServiceDependency(FrozenModel):
    """Directed edge: ``from_service_id`` must be handled before ``to_service_id``."""

    from_service_id: int
    to_service_id: int
    kind: DependencyKind = DependencyKind.HARD
    condition: Optional[str] = None
    is_resolved: bool = True

    @property
    def key(self) -> Tuple[int, int]:
        return (self.from_service_id, self.to_service_id)


class ServiceDependencyGraph(FrozenModel):
    """Nodes, edges and derived facts for one environment and operation type.

    Invariant: when ``has_circular_dependencies`` is False a topological
    ordering over the Hard/Soft edges exists.
    """

    operation_type: OperationType
    environment: Optional[str] = None
    nodes: Dict[int, ServiceNode] = Field(default_factory=dict)
    dependencies: List[ServiceDependency] = Field(default_factory=list)
    max_depth: int = 0
    has_circular_dependencies: bool = False
    excluded_services: Dict[int, str] = Field(default_factory=dict)

    @property
    def resolved_dependencies(self) -> List[ServiceDependency]:
        return [d for d in self.dependencies if d.is_resolved]

    @property
    def dangling_dependencies(self) -> List[ServiceDependency]:
        return [d for d in self.dependencies if not d.is_resolved]

    def predecessors(self, service_id: int) -> List[ServiceDependency]:
        return [d for d in self.resolved_dependencies if d.to_service_id == service_id]

    def successors(self, service_id: int) -> List[ServiceDependency]:
        return [d for d in self.resolved_dependencies if d.from_service_id == service_id]

    def describe(self, service_id: int) -> str:
        """Human readable ``name (id)`` label used in messages."""
        node = self.nodes.get(service_id)
        return f"{node.name} ({service_id})" if node else f"service {service_id}"


class ValidatedGraph(FrozenModel):
    """A graph with no Hard-only cycles and well-defined levels.

    ``relaxed_edges`` are the Soft/Optional edges dropped to break the
    remaining cycles; ``levels`` are recomputed without them.
    """

    graph: ServiceDependencyGraph
    levels: Dict[int, int]
    relaxed_edges: FrozenSet[Tuple[int, int]] = Field(default_factory=frozenset)

    @model_validator(mode="after")
    def check_levels(self) -> "ValidatedGraph":
        missing = set(self.graph.nodes) - set(self.levels)
        if missing:
            raise ValueError(f"Levels missing for services {sorted(missing)}")
        if any(level < 0 for level in self.levels.values()):
            raise ValueError("Validated graph levels must be non-negative")
        return self

    def ordering_edges(self) -> List[ServiceDependency]:
        """Resolved Hard/Soft edges that still constrain ordering."""
        return [
            d for d in self.graph.resolved_dependencies
            if DependencyKind(d.kind).affects_ordering and d.key not in self.relaxed_edges
        ]


class ValidationResult(DaycycleBaseModel):
    """Outcome of validating a dependency graph or an operation request.

    ``blocking_errors`` is the subset of ``errors`` that forced execution can
    never bypass (Hard cycles, unknown environment, no services in scope).
    """

    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    blocking_errors: List[str] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)
    validated_graph: Optional[ValidatedGraph] = Field(default=None, exclude=True)

    def add_error(self, message: str, blocking: bool = False) -> None:
        self.errors = [*self.errors, message]
        if blocking:
            self.blocking_errors = [*self.blocking_errors, message]
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings = [*self.warnings, message]

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        """Fold another result into this one and return self."""
        self.errors = [*self.errors, *other.errors]
        self.warnings = [*self.warnings, *other.warnings]
        self.blocking_errors = [*self.blocking_errors, *other.blocking_errors]
        self.details = {**self.details, **other.details}
        self.is_valid = self.is_valid and other.is_valid
        if other.validated_graph is not None:
            self.validated_graph = other.validated_graph
        return self

    @property
    def can_proceed_with_force(self) -> bool:
        return not self.blocking_errors and self.validated_graph is not None


class ExecutionPhase(FrozenModel):
    """A set of services acted on together."""

    phase_number: int = Field(ge=1)
    name: str
    service_ids: List[int]
    can_run_in_parallel: bool
    estimated_duration_seconds: int = Field(ge=0)


class ServiceExecutionPlan(FrozenModel):
    """Ordered phases for one operation type.

    A plan validates its own shape on construction: phases are numbered
    1..N in order, no service appears twice and the totals add up.
    """

    operation_type: OperationType
    phases: List[ExecutionPhase] = Field(default_factory=list)
    total_estimated_duration_seconds: int = 0
    total_services: int = 0
    critical_services: int = 0
    warnings: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_shape(self) -> "ServiceExecutionPlan":
        numbers = [phase.phase_number for phase in self.phases]
        if numbers != list(range(1, len(self.phases) + 1)):
            raise ValueError(f"Phases must be numbered consecutively from 1, got {numbers}")

        seen: List[int] = [sid for phase in self.phases for sid in phase.service_ids]
        if len(seen) != len(set(seen)):
            raise ValueError("A service may appear in only one phase")
        if len(seen) != self.total_services:
            raise ValueError(
                f"total_services ({self.total_services}) does not match planned services ({len(seen)})"
            )

        total = sum(phase.estimated_duration_seconds for phase in self.phases)
        if total != self.total_estimated_duration_seconds:
            raise ValueError(
                f"Total duration ({self.total_estimated_duration_seconds}) must equal the sum of phases ({total})"
            )
        return self

    def phase_of(self) -> Dict[int, int]:
        """Map service id -> phase number."""
        return {sid: phase.phase_number for phase in self.phases for sid in phase.service_ids}

    @property
    def service_ids(self) -> List[int]:
        return [sid for phase in self.phases for sid in phase.service_ids]
