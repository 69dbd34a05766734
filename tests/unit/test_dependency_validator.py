"""Unit tests for DependencyValidator."""

from conftest import make_service

from daycycle.constants import DependencyKind, OperationType
from daycycle.graph import DependencyGraphBuilder, DependencyValidator
from daycycle.graph.types import DependencyRef


def _validate(services, operation_type=OperationType.SOD, **kwargs):
    graph = DependencyGraphBuilder().build(services, operation_type)
    return DependencyValidator(**kwargs).validate(graph)


class TestDependencyValidator:
    """Cycle, dangling-reference and depth checks."""

    def test_acyclic_graph_is_valid(self, chain_services):
        result = _validate(chain_services)

        assert result.is_valid
        assert result.errors == []
        assert result.validated_graph is not None
        assert result.validated_graph.levels == {1: 0, 2: 1, 3: 2, 4: 3}

    def test_hard_cycle_is_blocking(self):
        services = [
            make_service(1, "A", sod=[2]),
            make_service(2, "B", sod=[1]),
        ]
        result = _validate(services)

        assert result.is_valid is False
        assert len(result.blocking_errors) == 1
        message = result.errors[0]
        assert "Circular Hard dependency" in message
        assert "A (1)" in message and "B (2)" in message
        assert result.validated_graph is None
        assert result.can_proceed_with_force is False
        assert result.details["hard_cycles"] == [[1, 2]]

    def test_self_dependency_is_a_cycle(self):
        result = _validate([make_service(1, "Loop", sod=[1])])

        assert result.is_valid is False
        assert result.details["hard_cycles"] == [[1]]

    def test_soft_cycle_is_relaxed_with_warning(self):
        services = [
            make_service(1, "A", sod=[DependencyRef(service_id=2, kind=DependencyKind.SOFT)]),
            make_service(2, "B", sod=[1]),
        ]
        result = _validate(services)

        assert result.is_valid
        assert any("Circular non-Hard dependency" in w for w in result.warnings)
        assert result.validated_graph is not None
        assert result.validated_graph.relaxed_edges == frozenset({(2, 1)})
        assert result.validated_graph.levels == {1: 0, 2: 1}

    def test_dangling_reference_is_non_blocking_error(self):
        services = [make_service(2, "Core", sod=[99])]
        result = _validate(services)

        assert result.is_valid is False
        assert result.blocking_errors == []
        assert "service ID 99" in result.errors[0]
        assert "not found" in result.errors[0]
        assert result.can_proceed_with_force is True

    def test_dangling_reference_to_disabled_service_says_so(self):
        services = [
            make_service(1, "Database", is_enabled=False),
            make_service(2, "Core", sod=[1]),
        ]
        result = _validate(services)

        assert "disabled" in result.errors[0]

    def test_critical_depth_warning(self, chain_services):
        services = [s.model_copy(update={"is_critical_for_sod": s.service_id == 4}) for s in chain_services]
        result = _validate(services, max_critical_depth=2)

        assert result.is_valid
        assert any("Gateway (4)" in w and "level 3" in w for w in result.warnings)

    def test_validation_does_not_mutate_graph(self):
        services = [
            make_service(1, "A", sod=[DependencyRef(service_id=2, kind=DependencyKind.SOFT)]),
            make_service(2, "B", sod=[1]),
        ]
        graph = DependencyGraphBuilder().build(services, OperationType.SOD)
        before = graph.model_dump()

        DependencyValidator().validate(graph)

        assert graph.model_dump() == before
