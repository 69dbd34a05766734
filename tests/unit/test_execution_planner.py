"""Unit tests for ExecutionPlanner and DependencyManager planning."""

import pytest
from unittest.mock import AsyncMock, Mock

from conftest import make_service

from daycycle.common.exceptions import DaycycleError, ErrorCode
from daycycle.constants import DependencyKind, OperationType
from daycycle.graph import DependencyGraphBuilder, DependencyManager, DependencyValidator, ExecutionPlanner
from daycycle.graph.types import DependencyRef


def _validated(services, operation_type=OperationType.SOD):
    graph = DependencyGraphBuilder().build(services, operation_type)
    result = DependencyValidator().validate(graph)
    assert result.validated_graph is not None
    return result.validated_graph


class TestExecutionPlanner:
    """Phase assignment and ordering."""

    def test_linear_chain_gives_one_phase_per_service(self):
        services = [
            make_service(1, "DB"),
            make_service(2, "App", sod=[1]),
            make_service(3, "Gateway", sod=[2]),
        ]
        plan = ExecutionPlanner().create_plan(_validated(services))

        assert [p.service_ids for p in plan.phases] == [[1], [2], [3]]
        assert [p.phase_number for p in plan.phases] == [1, 2, 3]
        assert plan.total_services == 3

    def test_independent_services_share_a_parallel_phase(self):
        services = [
            make_service(3, "Cards", sod_duration_seconds=30),
            make_service(1, "DB", sod_duration_seconds=90),
            make_service(2, "Treasury", sod_duration_seconds=60),
        ]
        plan = ExecutionPlanner().create_plan(_validated(services))

        assert len(plan.phases) == 1
        phase = plan.phases[0]
        assert phase.service_ids == [1, 2, 3]
        assert phase.can_run_in_parallel is True
        assert phase.estimated_duration_seconds == 90
        assert plan.total_estimated_duration_seconds == 90

    def test_non_parallel_member_makes_phase_sequential(self):
        services = [
            make_service(1, "DB", sod_duration_seconds=10),
            make_service(2, "Batch", allow_parallel_execution=False, sod_duration_seconds=20),
        ]
        plan = ExecutionPlanner().create_plan(_validated(services))

        phase = plan.phases[0]
        assert phase.can_run_in_parallel is False
        assert phase.estimated_duration_seconds == 30

    def test_relaxed_soft_edge_inside_phase_orders_members(self):
        # 2 -> 3 Hard and 3 -> 2 Soft: the Soft edge is relaxed, both stay ordered by level
        services = [
            make_service(1, "DB"),
            make_service(2, "Core", sod=[1, DependencyRef(service_id=3, kind=DependencyKind.SOFT)]),
            make_service(3, "Channels", sod=[1, 2]),
        ]
        plan = ExecutionPlanner().create_plan(_validated(services))

        phase_of = plan.phase_of()
        assert phase_of[1] < phase_of[2] < phase_of[3]
        assert any("Soft dependency" in w for w in plan.warnings)

    def test_hard_edges_always_point_forward(self, chain_services):
        validated = _validated(chain_services, OperationType.EOD)
        plan = ExecutionPlanner().create_plan(validated)

        phase_of = plan.phase_of()
        for edge in validated.graph.resolved_dependencies:
            assert phase_of[edge.from_service_id] < phase_of[edge.to_service_id]
        assert plan.service_ids == [4, 3, 2, 1]

    def test_service_filter_restricts_plan(self, chain_services):
        plan = ExecutionPlanner().create_plan(_validated(chain_services), service_ids=[2, 4])

        assert plan.service_ids == [2, 4]
        assert [p.phase_number for p in plan.phases] == [1, 2]
        assert plan.total_services == 2

    def test_phase_cap_raises_plan_invalid(self, chain_services):
        with pytest.raises(DaycycleError) as exc_info:
            ExecutionPlanner(max_phases=2).create_plan(_validated(chain_services))

        assert exc_info.value.error_code == ErrorCode.PLAN_INVALID

    def test_counts_critical_services(self, chain_services):
        plan = ExecutionPlanner().create_plan(_validated(chain_services))

        assert plan.critical_services == 1


class TestDependencyManager:
    """Planning through the manager over a store."""

    def _manager(self, settings, services):
        store = Mock()
        store.list_services = AsyncMock(return_value=services)
        return DependencyManager(store, settings), store

    def test_plan_rejects_hard_cycle(self, settings):
        services = [make_service(1, "A", sod=[2]), make_service(2, "B", sod=[1])]
        manager, _ = self._manager(settings, services)

        with pytest.raises(DaycycleError) as exc_info:
            manager.get_execution_plan(services, OperationType.SOD)

        error = exc_info.value
        assert error.error_code == ErrorCode.CIRCULAR_DEPENDENCY
        assert any("Circular Hard dependency" in e for e in error.details["errors"])

    def test_dangling_reference_surfaces_as_plan_warning(self, settings):
        services = [make_service(1, "DB"), make_service(2, "Core", sod=[1, 42])]
        manager, _ = self._manager(settings, services)

        plan = manager.get_execution_plan(services, OperationType.SOD)

        assert plan.service_ids == [1, 2]
        assert any("service ID 42" in w for w in plan.warnings)

    async def test_resolve_dependencies_reads_store(self, settings, chain_services):
        manager, store = self._manager(settings, chain_services)

        graph = await manager.resolve_dependencies("PROD", OperationType.SOD)

        store.list_services.assert_awaited_once_with("PROD")
        assert graph.environment == "PROD"
        assert len(graph.nodes) == 4
