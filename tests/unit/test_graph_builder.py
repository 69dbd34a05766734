"""Unit tests for DependencyGraphBuilder and compute_levels."""

from conftest import make_service

from daycycle.constants import UNRESOLVED_LEVEL, DependencyKind, OperationType
from daycycle.graph import DependencyGraphBuilder, compute_levels
from daycycle.graph.types import DependencyRef


class TestComputeLevels:
    """Longest-path levels over ordering edges."""

    def test_chain_levels(self):
        levels = compute_levels([1, 2, 3], [(1, 2), (2, 3)])
        assert levels == {1: 0, 2: 1, 3: 2}

    def test_longest_path_wins(self):
        # 1 -> 3 directly and via 2
        levels = compute_levels([1, 2, 3], [(1, 2), (2, 3), (1, 3)])
        assert levels[3] == 2

    def test_cycle_members_are_unresolved(self):
        levels = compute_levels([1, 2, 3], [(1, 2), (2, 1), (2, 3)])
        assert levels[1] == UNRESOLVED_LEVEL
        assert levels[2] == UNRESOLVED_LEVEL
        assert levels[3] == UNRESOLVED_LEVEL

    def test_edges_to_unknown_nodes_are_ignored(self):
        assert compute_levels([1], [(99, 1)]) == {1: 0}


class TestDependencyGraphBuilder:
    """Graph construction from descriptors."""

    def test_builds_edges_from_prerequisite_to_dependent(self, chain_services):
        graph = DependencyGraphBuilder().build(chain_services, OperationType.SOD)

        assert sorted(graph.nodes) == [1, 2, 3, 4]
        assert [d.key for d in graph.dependencies] == [(1, 2), (2, 3), (3, 4)]
        assert graph.nodes[4].dependency_level == 3
        assert graph.max_depth == 3
        assert graph.has_circular_dependencies is False

    def test_eod_uses_eod_dependencies_and_criticality(self, chain_services):
        graph = DependencyGraphBuilder().build(chain_services, OperationType.EOD)

        assert graph.nodes[4].dependency_level == 0
        assert graph.nodes[1].dependency_level == 3
        assert graph.nodes[1].is_critical is False

    def test_disabled_services_are_excluded_and_references_dangle(self):
        services = [
            make_service(1, "Database", is_enabled=False),
            make_service(2, "Core", sod=[1]),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD)

        assert list(graph.nodes) == [2]
        assert graph.excluded_services == {1: "disabled"}
        assert [d.key for d in graph.dangling_dependencies] == [(1, 2)]
        assert graph.nodes[2].dependency_level == 0

    def test_environment_scoping(self):
        services = [
            make_service(1, "Database", environment="UAT"),
            make_service(2, "Shared", environment=None),
            make_service(3, "Core"),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD, environment="prod")

        assert sorted(graph.nodes) == [2, 3]
        assert 1 in graph.excluded_services

    def test_optional_edges_do_not_affect_levels(self):
        services = [
            make_service(1, "Reporting"),
            make_service(2, "Core", sod=[DependencyRef(service_id=1, kind=DependencyKind.OPTIONAL)]),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD)

        assert graph.nodes[2].dependency_level == 0
        assert len(graph.dependencies) == 1

    def test_duplicate_reference_keeps_strongest_kind(self):
        services = [
            make_service(1, "Database"),
            make_service(
                2,
                "Core",
                sod=[DependencyRef(service_id=1, kind=DependencyKind.SOFT), 1],
            ),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD)

        assert len(graph.dependencies) == 1
        assert graph.dependencies[0].kind == DependencyKind.HARD

    def test_cycle_marks_graph(self):
        services = [
            make_service(1, "A", sod=[2]),
            make_service(2, "B", sod=[1]),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD)

        assert graph.has_circular_dependencies is True
        assert graph.nodes[1].dependency_level == UNRESOLVED_LEVEL
