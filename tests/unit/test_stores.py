"""Tests for the in-memory and SQLAlchemy operation stores."""

import asyncio
import threading
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_service

from daycycle.common.exceptions import DaycycleError, ErrorCode
from daycycle.constants import OperationStatus, OperationType, StepStatus, StoreBackend
from daycycle.protocols.store import OperationStore, StoreSession
from daycycle.settings import StoreSettings
from daycycle.store import InMemoryOperationStore, SqlOperationStore, create_store
from daycycle.types.operations import Operation, OperationStep

BASE_TIME = datetime(2024, 3, 1, 6, 0, tzinfo=timezone.utc)


def _operation(code, offset_hours=0, environment="PROD", status=OperationStatus.RUNNING):
    return Operation(
        operation_code=code,
        operation_type=OperationType.SOD,
        business_date=date(2024, 3, 1),
        environment=environment,
        start_time=BASE_TIME + timedelta(hours=offset_hours),
        status=status,
        services_involved=[1, 2],
    )


def _step(code, order, status=StepStatus.PENDING):
    return OperationStep(
        operation_code=code,
        step_order=order,
        step_name=f"Starting Service{order}",
        service_id=order,
        phase_number=order,
        phase_name=f"Phase {order}",
        status=status,
    )


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    if request.param == "memory":
        return InMemoryOperationStore()
    return SqlOperationStore("sqlite://")


async def _seed_services(store):
    async with store.session() as session:
        session.add_service(make_service(1, "Database", environment=None))
        session.add_service(make_service(2, "Core", sod=[1], environment="UAT"))
        await session.save_changes()


class TestOperationStores:
    """Behaviour shared by every store implementation."""

    async def test_satisfies_protocols(self, any_store):
        assert isinstance(any_store, OperationStore)
        assert isinstance(any_store.session(), StoreSession)

    async def test_operation_and_steps_round_trip(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            session.add_step(_step("SOD-1", 2))
            session.add_step(_step("SOD-1", 1))
            await session.save_changes()

        operation = await any_store.get_operation("SOD-1")
        steps = await any_store.list_steps("SOD-1")

        assert operation.services_involved == [1, 2]
        assert operation.start_time == BASE_TIME
        assert [s.step_order for s in steps] == [1, 2]

    async def test_updates_are_visible_after_save(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            session.add_step(_step("SOD-1", 1))
            await session.save_changes()

        operation = await any_store.get_operation("SOD-1")
        operation.status = OperationStatus.COMPLETED
        step = (await any_store.list_steps("SOD-1"))[0]
        step.status = StepStatus.COMPLETED
        async with any_store.session() as session:
            session.update_operation(operation)
            session.update_step(step)
            await session.save_changes()

        assert (await any_store.get_operation("SOD-1")).status == OperationStatus.COMPLETED
        assert (await any_store.list_steps("SOD-1"))[0].status == StepStatus.COMPLETED

    async def test_unsaved_changes_are_discarded(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))

        assert await any_store.get_operation("SOD-1") is None

    async def test_failed_commit_applies_nothing(self, any_store):
        """A bad change in a batch leaves the store untouched."""
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            session.add_step(_step("SOD-UNKNOWN", 1))
            with pytest.raises(DaycycleError) as exc_info:
                await session.save_changes()

        assert exc_info.value.error_code == ErrorCode.STORE_ERROR
        assert await any_store.get_operation("SOD-1") is None

    async def test_duplicate_operation_code_is_rejected(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            await session.save_changes()

        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            with pytest.raises(DaycycleError) as exc_info:
                await session.save_changes()

        assert exc_info.value.error_code == ErrorCode.STORE_ERROR

    async def test_update_of_unknown_step_is_rejected(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-1"))
            await session.save_changes()

        async with any_store.session() as session:
            session.update_step(_step("SOD-1", 9))
            with pytest.raises(DaycycleError):
                await session.save_changes()

    async def test_list_operations_filters_and_orders(self, any_store):
        async with any_store.session() as session:
            session.add_operation(_operation("SOD-OLD", offset_hours=-48))
            session.add_operation(_operation("SOD-UAT", offset_hours=-2, environment="UAT"))
            session.add_operation(_operation("SOD-NEW", status=OperationStatus.COMPLETED))
            await session.save_changes()

        everything = await any_store.list_operations()
        recent = await any_store.list_operations(since=BASE_TIME - timedelta(hours=24))
        prod = await any_store.list_operations(environment="prod")
        completed = await any_store.list_operations(status=OperationStatus.COMPLETED)
        limited = await any_store.list_operations(limit=1)

        assert [op.operation_code for op in everything] == ["SOD-NEW", "SOD-UAT", "SOD-OLD"]
        assert [op.operation_code for op in recent] == ["SOD-NEW", "SOD-UAT"]
        assert {op.operation_code for op in prod} == {"SOD-NEW", "SOD-OLD"}
        assert [op.operation_code for op in completed] == ["SOD-NEW"]
        assert [op.operation_code for op in limited] == ["SOD-NEW"]

    async def test_services_by_environment(self, any_store):
        await _seed_services(any_store)

        assert [s.service_id for s in await any_store.list_services()] == [1, 2]
        assert [s.service_id for s in await any_store.list_services("uat")] == [1, 2]
        assert [s.service_id for s in await any_store.list_services("PROD")] == [1]
        assert (await any_store.get_service(2)).sod_dependencies[0].service_id == 1
        assert await any_store.get_service(99) is None

    async def test_remove_service(self, any_store):
        await _seed_services(any_store)

        async with any_store.session() as session:
            session.remove_service(2)
            await session.save_changes()

        assert await any_store.get_service(2) is None


class TestInMemoryOperationStore:
    """Copy semantics of the in-memory store."""

    async def test_reads_return_copies(self):
        store = InMemoryOperationStore()
        async with store.session() as session:
            session.add_operation(_operation("SOD-1"))
            await session.save_changes()

        copy = await store.get_operation("SOD-1")
        copy.services_involved.append(99)

        assert (await store.get_operation("SOD-1")).services_involved == [1, 2]

    async def test_staged_objects_are_snapshotted(self):
        store = InMemoryOperationStore()
        operation = _operation("SOD-1")
        async with store.session() as session:
            session.add_operation(operation)
            operation.comment = "changed after staging"
            await session.save_changes()

        assert (await store.get_operation("SOD-1")).comment is None

    async def test_environment_agnostic_service_matches_every_environment(self):
        store = InMemoryOperationStore([make_service(7, "Shared HSM", environment=None)])

        assert [s.service_id for s in await store.list_services("DR")] == [7]


class TestSqlOperationStore:
    """Database work runs off the event loop."""

    async def test_commits_run_in_a_worker_thread(self, monkeypatch):
        store = SqlOperationStore("sqlite://")
        threads = []
        write = store._write

        def recording_write(changes):
            threads.append(threading.get_ident())
            write(changes)

        monkeypatch.setattr(store, "_write", recording_write)
        await _seed_services(store)

        assert threads and threads[0] != threading.get_ident()
        assert (await store.get_service(1)).name == "Database"

    async def test_concurrent_saves_are_serialised(self):
        store = SqlOperationStore("sqlite://")
        async with store.session() as session:
            session.add_operation(_operation("SOD-1"))
            for order in (1, 2, 3):
                session.add_step(_step("SOD-1", order))
            await session.save_changes()

        async def complete(order):
            async with store.session() as session:
                session.update_step(_step("SOD-1", order, status=StepStatus.COMPLETED))
                await session.save_changes()

        await asyncio.gather(*(complete(order) for order in (1, 2, 3)))

        assert [s.status for s in await store.list_steps("SOD-1")] == [StepStatus.COMPLETED] * 3

    async def test_read_errors_become_store_errors(self, monkeypatch):
        store = SqlOperationStore("sqlite://")

        def broken(*args):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "_payload", broken)

        with pytest.raises(DaycycleError) as exc_info:
            await store.get_operation("SOD-1")

        assert exc_info.value.error_code == ErrorCode.STORE_ERROR


class TestCreateStore:
    """Backend selection from settings."""

    def test_default_is_memory(self):
        assert isinstance(create_store(StoreSettings(backend=StoreBackend.MEMORY)), InMemoryOperationStore)

    def test_sql_backend(self):
        store = create_store(StoreSettings(backend="sql", url="sqlite://"))

        assert isinstance(store, SqlOperationStore)
        assert store.url == "sqlite://"
