"""Dependency graph validation.

The validator reports dangling references and cycles without touching the
graph. Cycles made only of Hard edges make the graph invalid and block
planning; cycles that contain a Soft or Optional edge are warnings, and one of
their non-Hard edges is relaxed so the remaining edges still admit an order.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from daycycle.constants import UNRESOLVED_LEVEL, DependencyKind
from daycycle.graph.builder import compute_levels
from daycycle.graph.types import (
    ServiceDependency,
    ServiceDependencyGraph,
    ValidatedGraph,
    ValidationResult,
)
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras

logger = get_logger(__name__)

_WHITE, _GRAY, _BLACK = 0, 1, 2


class DependencyValidator:
    """Validates service dependency graphs.

    Attributes:
        max_critical_depth: Dependency level above which a critical service
            is reported as a warning (None disables the check)
    """

    def __init__(self, max_critical_depth: Optional[int] = None):
        self.max_critical_depth = max_critical_depth
        self.logger = logger

    def validate(self, graph: ServiceDependencyGraph) -> ValidationResult:
        """Validate ``graph``.

        Returns:
            ValidationResult whose ``validated_graph`` is set whenever the
            graph has no Hard-only cycle (dangling references do not prevent
            it, they only make the result invalid).
        """
        result = ValidationResult()

        self._check_dangling(graph, result)
        hard_cycles, soft_cycles, relaxed = self._check_cycles(graph, result)

        levels: Dict[int, int] = {sid: node.dependency_level for sid, node in graph.nodes.items()}
        if not hard_cycles:
            ordering = [
                d.key for d in graph.resolved_dependencies
                if DependencyKind(d.kind).affects_ordering and d.key not in relaxed
            ]
            levels = compute_levels(graph.nodes.keys(), ordering)
            result.validated_graph = ValidatedGraph(
                graph=graph,
                levels=levels,
                relaxed_edges=frozenset(relaxed),
            )

        self._check_critical_depth(graph, levels, result)

        result.details = {
            "operation_type": graph.operation_type,
            "node_count": len(graph.nodes),
            "edge_count": len(graph.dependencies),
            "max_depth": max((lvl for lvl in levels.values() if lvl >= 0), default=0),
            "has_circular_dependencies": graph.has_circular_dependencies,
            "hard_cycles": hard_cycles,
            "soft_cycles": soft_cycles,
            "dangling_edges": [list(d.key) for d in graph.dangling_dependencies],
            "relaxed_edges": sorted(list(key) for key in relaxed),
        }

        self.logger.info(
            "graph.validated",
            extra=sanitize_extras({
                "operation_type": graph.operation_type,
                "is_valid": result.is_valid,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
                "hard_cycle_count": len(hard_cycles),
            }),
        )
        return result

    def _check_dangling(self, graph: ServiceDependencyGraph, result: ValidationResult) -> None:
        for dependency in graph.dangling_dependencies:
            missing = dependency.from_service_id
            reason = graph.excluded_services.get(missing)
            if reason == "disabled":
                suffix = "which is disabled"
            elif reason:
                suffix = f"which is {reason}"
            else:
                suffix = "which is not found"
            result.add_error(
                f"Service {graph.describe(dependency.to_service_id)} depends on service ID {missing} {suffix}"
            )

    def _check_cycles(
        self,
        graph: ServiceDependencyGraph,
        result: ValidationResult,
    ) -> Tuple[List[List[int]], List[List[int]], Set[Tuple[int, int]]]:
        """Find every cycle, classify it and relax non-Hard cycles.

        Each found cycle loses one edge before the search repeats, so the
        loop ends after at most one pass per edge.
        """
        active: Dict[Tuple[int, int], ServiceDependency] = {
            d.key: d for d in graph.resolved_dependencies
        }
        relaxed: Set[Tuple[int, int]] = set()
        hard_cycles: List[List[int]] = []
        soft_cycles: List[List[int]] = []

        for _ in range(len(active) + 1):
            cycle = self._find_cycle(graph.nodes.keys(), active.values())
            if cycle is None:
                break

            members = [edge.from_service_id for edge in cycle]
            label = " -> ".join(
                [graph.describe(sid) for sid in members] + [graph.describe(members[0])]
            )

            soft_edges = [e for e in cycle if DependencyKind(e.kind) != DependencyKind.HARD]
            if soft_edges:
                soft_cycles.append(members)
                relaxed_edge = soft_edges[-1]
                relaxed.add(relaxed_edge.key)
                result.add_warning(
                    f"Circular non-Hard dependency detected: {label}; "
                    f"ignoring {relaxed_edge.kind} edge {graph.describe(relaxed_edge.from_service_id)} "
                    f"-> {graph.describe(relaxed_edge.to_service_id)} for ordering"
                )
                del active[relaxed_edge.key]
            else:
                hard_cycles.append(members)
                result.add_error(f"Circular Hard dependency detected: {label}", blocking=True)
                del active[cycle[-1].key]

            self.logger.debug(
                "graph.cycle_detected",
                extra=sanitize_extras({"members": members, "hard": not soft_edges}),
            )

        return hard_cycles, soft_cycles, relaxed

    @staticmethod
    def _find_cycle(
        node_ids: Iterable[int],
        edges: Iterable[ServiceDependency],
    ) -> Optional[List[ServiceDependency]]:
        """Depth-first search with an in-progress (gray) set.

        Returns the edges of the first cycle found, starting and ending at the
        same node, or None. Nodes and neighbours are visited in ascending id
        order so results are deterministic.
        """
        adjacency: Dict[int, List[ServiceDependency]] = defaultdict(list)
        for edge in edges:
            adjacency[edge.from_service_id].append(edge)
        for outgoing in adjacency.values():
            outgoing.sort(key=lambda e: e.to_service_id)

        color = {sid: _WHITE for sid in node_ids}
        path: List[ServiceDependency] = []

        def dfs(service_id: int) -> Optional[List[ServiceDependency]]:
            color[service_id] = _GRAY
            for edge in adjacency.get(service_id, []):
                target = edge.to_service_id
                state = color.get(target, _BLACK)
                if state == _GRAY:
                    start = next(
                        (i for i, e in enumerate(path) if e.from_service_id == target),
                        len(path),
                    )
                    return path[start:] + [edge]
                if state == _WHITE:
                    path.append(edge)
                    found = dfs(target)
                    if found:
                        return found
                    path.pop()
            color[service_id] = _BLACK
            return None

        for sid in sorted(color):
            if color[sid] == _WHITE:
                found = dfs(sid)
                if found:
                    return found
        return None

    def _check_critical_depth(
        self,
        graph: ServiceDependencyGraph,
        levels: Dict[int, int],
        result: ValidationResult,
    ) -> None:
        if self.max_critical_depth is None:
            return
        for sid in sorted(graph.nodes):
            node = graph.nodes[sid]
            level = levels.get(sid, UNRESOLVED_LEVEL)
            if node.is_critical and level > self.max_critical_depth:
                result.add_warning(
                    f"Critical service {graph.describe(sid)} has dependency level {level}, "
                    f"deeper than the recommended maximum of {self.max_critical_depth}"
                )
