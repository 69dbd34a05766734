"""Execution planner.

Compiles a validated dependency graph into ordered execution phases.
"""

import heapq
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from daycycle.common.exceptions import DaycycleError, ErrorCode
from daycycle.constants import DependencyKind, OperationType
from daycycle.graph.types import (
    ExecutionPhase,
    ServiceDependency,
    ServiceExecutionPlan,
    ValidatedGraph,
)
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras

logger = get_logger(__name__)


class ExecutionPlanner:
    """Builds execution plans from validated graphs.

    Each dependency level becomes one phase. A phase runs its members in
    parallel unless a Soft edge joins two of them or a member does not allow
    parallel execution; sequential phases record an explicit member order.
    Services without an ordering constraint are ordered by ascending id.

    Attributes:
        max_phases: Safety cap on the number of phases
    """

    def __init__(self, max_phases: int = 50):
        self.max_phases = max_phases
        self.logger = logger

    def create_plan(
        self,
        validated: ValidatedGraph,
        service_ids: Optional[Iterable[int]] = None,
    ) -> ServiceExecutionPlan:
        """Create an execution plan.

        Args:
            validated: Graph produced by DependencyValidator
            service_ids: Optional subset of services to plan; edges to
                services outside the subset are ignored

        Returns:
            ServiceExecutionPlan with phases in ascending order

        Raises:
            DaycycleError: PLAN_INVALID when the phase cap is exceeded or the
                resulting plan breaks a Hard edge
        """
        graph = validated.graph
        selected: Set[int] = set(graph.nodes)
        if service_ids is not None:
            selected &= set(service_ids)

        self.logger.debug(
            "plan.build.start",
            extra=sanitize_extras({
                "operation_type": graph.operation_type,
                "selected_count": len(selected),
            }),
        )

        by_level: Dict[int, List[int]] = defaultdict(list)
        for sid in sorted(selected):
            by_level[validated.levels[sid]].append(sid)

        if len(by_level) > self.max_phases:
            raise DaycycleError(
                f"Execution plan needs {len(by_level)} phases, more than the maximum of {self.max_phases}",
                error_code=ErrorCode.PLAN_INVALID,
                details={"phase_count": len(by_level), "max_phases": self.max_phases},
            )

        soft_edges = [
            d for d in graph.resolved_dependencies
            if DependencyKind(d.kind) == DependencyKind.SOFT
            and d.from_service_id in selected and d.to_service_id in selected
        ]

        phases: List[ExecutionPhase] = []
        for number, level in enumerate(sorted(by_level), start=1):
            members = by_level[level]
            intra = [
                d for d in soft_edges
                if d.from_service_id in members and d.to_service_id in members
            ]
            parallel = not intra and all(
                graph.nodes[sid].allow_parallel_execution for sid in members
            )
            ordered = members if parallel else self._order_members(members, intra)
            durations = [graph.nodes[sid].estimated_duration_seconds for sid in ordered]
            phases.append(
                ExecutionPhase(
                    phase_number=number,
                    name=f"Phase {number}",
                    service_ids=ordered,
                    can_run_in_parallel=parallel,
                    estimated_duration_seconds=(max(durations) if parallel else sum(durations)) if durations else 0,
                )
            )

        plan = ServiceExecutionPlan(
            operation_type=OperationType(graph.operation_type),
            phases=phases,
            total_estimated_duration_seconds=sum(p.estimated_duration_seconds for p in phases),
            total_services=len(selected),
            critical_services=sum(1 for sid in selected if graph.nodes[sid].is_critical),
            warnings=self._soft_ordering_warnings(validated, phases, soft_edges),
        )

        self._verify_hard_ordering(validated, plan)

        self.logger.info(
            "plan.created",
            extra=sanitize_extras({
                "operation_type": plan.operation_type,
                "phase_count": len(plan.phases),
                "total_services": plan.total_services,
                "critical_services": plan.critical_services,
                "estimated_duration_seconds": plan.total_estimated_duration_seconds,
            }),
        )
        return plan

    @staticmethod
    def _order_members(members: List[int], intra: List[ServiceDependency]) -> List[int]:
        """Order a sequential phase by its Soft edges, ascending id as tie-break.

        Soft edges inside a phase can only be edges relaxed to break a cycle,
        so leftover cycles are broken by taking the smallest remaining id.
        """
        successors: Dict[int, List[int]] = defaultdict(list)
        in_degree: Dict[int, int] = {sid: 0 for sid in members}
        for edge in intra:
            successors[edge.from_service_id].append(edge.to_service_id)
            in_degree[edge.to_service_id] += 1

        ready = [sid for sid in members if in_degree[sid] == 0]
        heapq.heapify(ready)
        ordered: List[int] = []
        remaining = set(members)

        while remaining:
            if not ready:
                forced = min(remaining)
                in_degree[forced] = 0
                ready.append(forced)
            current = heapq.heappop(ready)
            if current not in remaining:
                continue
            ordered.append(current)
            remaining.discard(current)
            for target in successors[current]:
                if target in remaining:
                    in_degree[target] -= 1
                    if in_degree[target] == 0:
                        heapq.heappush(ready, target)
        return ordered

    @staticmethod
    def _soft_ordering_warnings(
        validated: ValidatedGraph,
        phases: List[ExecutionPhase],
        soft_edges: List[ServiceDependency],
    ) -> List[str]:
        position: Dict[int, tuple] = {}
        for phase in phases:
            for index, sid in enumerate(phase.service_ids):
                position[sid] = (phase.phase_number, index if not phase.can_run_in_parallel else 0)

        graph = validated.graph
        warnings: List[str] = []
        for edge in soft_edges:
            before = position[edge.from_service_id]
            after = position[edge.to_service_id]
            if before >= after:
                warnings.append(
                    f"Soft dependency {graph.describe(edge.from_service_id)} -> "
                    f"{graph.describe(edge.to_service_id)} is not honoured by the plan order"
                )
        return warnings

    @staticmethod
    def _verify_hard_ordering(validated: ValidatedGraph, plan: ServiceExecutionPlan) -> None:
        phase_of = plan.phase_of()
        for edge in validated.graph.resolved_dependencies:
            if DependencyKind(edge.kind) != DependencyKind.HARD:
                continue
            if edge.from_service_id not in phase_of or edge.to_service_id not in phase_of:
                continue
            if phase_of[edge.from_service_id] >= phase_of[edge.to_service_id]:
                raise DaycycleError(
                    f"Plan places {validated.graph.describe(edge.to_service_id)} no later than its "
                    f"Hard prerequisite {validated.graph.describe(edge.from_service_id)}",
                    error_code=ErrorCode.PLAN_INVALID,
                    details={"edge": list(edge.key)},
                )
