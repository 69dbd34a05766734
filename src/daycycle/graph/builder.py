"""Dependency graph builder.

Turns a flat list of service descriptors into a ServiceDependencyGraph for one
operation type. The builder is permissive: unknown references are kept as
dangling edges and reported later by the validator.
"""

from collections import deque
from typing import Dict, Iterable, List, Optional, Tuple

from daycycle.constants import KIND_PRECEDENCE, UNRESOLVED_LEVEL, DependencyKind, OperationType
from daycycle.graph.types import (
    ServiceDependency,
    ServiceDependencyGraph,
    ServiceDescriptor,
    ServiceNode,
)
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras

logger = get_logger(__name__)


def compute_levels(
    node_ids: Iterable[int],
    edges: Iterable[Tuple[int, int]],
) -> Dict[int, int]:
    """Longest-path levels over ``(from, to)`` edges.

    Nodes that cannot be ordered (on or downstream of a cycle) get
    ``UNRESOLVED_LEVEL``.
    """
    ids = sorted(set(node_ids))
    successors: Dict[int, List[int]] = {sid: [] for sid in ids}
    in_degree: Dict[int, int] = {sid: 0 for sid in ids}
    for source, target in edges:
        if source not in successors or target not in in_degree:
            continue
        successors[source].append(target)
        in_degree[target] += 1

    levels: Dict[int, int] = {sid: UNRESOLVED_LEVEL for sid in ids}
    queue = deque(sid for sid in ids if in_degree[sid] == 0)
    for sid in queue:
        levels[sid] = 0

    while queue:
        current = queue.popleft()
        for target in successors[current]:
            levels[target] = max(levels[target], levels[current] + 1)
            in_degree[target] -= 1
            if in_degree[target] == 0:
                queue.append(target)

    for sid in ids:
        if in_degree[sid] > 0:
            levels[sid] = UNRESOLVED_LEVEL
    return levels


class DependencyGraphBuilder:
    """Builds dependency graphs from service descriptors.

    Edges point from the prerequisite to the dependent service, so a Hard
    edge ``u -> v`` means ``u`` must be handled before ``v``.
    """

    def __init__(self):
        self.logger = logger

    def build(
        self,
        descriptors: Iterable[ServiceDescriptor],
        operation_type: OperationType,
        environment: Optional[str] = None,
    ) -> ServiceDependencyGraph:
        """Build the graph for ``operation_type``.

        Args:
            descriptors: Service descriptors; disabled ones and ones scoped to
                another environment are recorded in ``excluded_services``
            operation_type: SOD or EOD; selects dependencies, criticality and duration
            environment: Environment the graph is scoped to (None = no filter)

        Returns:
            ServiceDependencyGraph with levels computed over Hard/Soft edges
        """
        operation_type = OperationType(operation_type)
        descriptors = list(descriptors)
        self.logger.debug(
            "graph.build.start",
            extra=sanitize_extras({
                "operation_type": operation_type,
                "environment": environment,
                "descriptor_count": len(descriptors),
            }),
        )

        in_scope: Dict[int, ServiceDescriptor] = {}
        excluded: Dict[int, str] = {}
        for descriptor in sorted(descriptors, key=lambda d: d.service_id):
            if not descriptor.is_enabled:
                excluded[descriptor.service_id] = "disabled"
            elif not self._in_environment(descriptor, environment):
                excluded[descriptor.service_id] = f"not in environment {environment}"
            else:
                in_scope[descriptor.service_id] = descriptor

        dependencies = self._create_edges(in_scope, operation_type)

        ordering = [
            d.key for d in dependencies
            if d.is_resolved and DependencyKind(d.kind).affects_ordering
        ]
        levels = compute_levels(in_scope.keys(), ordering)

        nodes = {
            sid: ServiceNode(
                service_id=sid,
                name=descriptor.name,
                service_type=descriptor.service_type,
                is_critical=descriptor.is_critical_for(operation_type),
                estimated_duration_seconds=descriptor.duration_for(operation_type),
                allow_parallel_execution=descriptor.allow_parallel_execution,
                dependency_level=levels[sid],
            )
            for sid, descriptor in in_scope.items()
        }

        has_cycle = any(level == UNRESOLVED_LEVEL for level in levels.values())
        max_depth = max((level for level in levels.values() if level >= 0), default=0)

        graph = ServiceDependencyGraph(
            operation_type=operation_type,
            environment=environment,
            nodes=nodes,
            dependencies=dependencies,
            max_depth=max_depth,
            has_circular_dependencies=has_cycle,
            excluded_services=excluded,
        )

        self.logger.debug(
            "graph.build.complete",
            extra=sanitize_extras({
                "node_count": len(nodes),
                "edge_count": len(dependencies),
                "dangling_count": len(graph.dangling_dependencies),
                "max_depth": max_depth,
                "has_circular_dependencies": has_cycle,
            }),
        )
        return graph

    @staticmethod
    def _in_environment(descriptor: ServiceDescriptor, environment: Optional[str]) -> bool:
        if environment is None or descriptor.environment is None:
            return True
        return descriptor.environment.upper() == environment.upper()

    def _create_edges(
        self,
        in_scope: Dict[int, ServiceDescriptor],
        operation_type: OperationType,
    ) -> List[ServiceDependency]:
        """Emit one edge per distinct (prerequisite, dependent) pair.

        The strongest kind wins when a reference is declared twice.
        """
        edges: Dict[Tuple[int, int], ServiceDependency] = {}
        for sid, descriptor in in_scope.items():
            for ref in descriptor.dependencies_for(operation_type):
                key = (ref.service_id, sid)
                candidate = ServiceDependency(
                    from_service_id=ref.service_id,
                    to_service_id=sid,
                    kind=ref.kind,
                    condition=ref.condition,
                    is_resolved=ref.service_id in in_scope,
                )
                existing = edges.get(key)
                if existing is None or (
                    KIND_PRECEDENCE[DependencyKind(candidate.kind)]
                    < KIND_PRECEDENCE[DependencyKind(existing.kind)]
                ):
                    edges[key] = candidate

                if not candidate.is_resolved:
                    self.logger.debug(
                        "graph.dangling_reference",
                        extra=sanitize_extras({
                            "service_id": sid,
                            "missing_service_id": ref.service_id,
                        }),
                    )

        return [edges[key] for key in sorted(edges, key=lambda k: (k[1], k[0]))]
