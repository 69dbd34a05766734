"""SQLAlchemy-backed operation store.

Records are kept in three tables. Each row carries the indexed columns used
for filtering plus the full pydantic payload as JSON, so the schema does not
have to follow every model field. Database calls run in a worker thread,
one at a time, so the event loop is never blocked by I/O or commit retries.
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple, TypeVar

from sqlalchemy import DateTime, Integer, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from daycycle.common.exceptions import DaycycleError, store_error
from daycycle.constants import OperationStatus, OperationType, StepStatus
from daycycle.graph.types import ServiceDescriptor
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras
from daycycle.types.operations import Operation, OperationStep
from daycycle.utils.datetime import ensure_utc
from daycycle.utils.decorators import retry_with_backoff

logger = get_logger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class ServiceRow(Base):
    __tablename__ = "services"

    service_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    environment: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    payload: Mapped[str] = mapped_column(Text)


class OperationRow(Base):
    __tablename__ = "operations"

    operation_code: Mapped[str] = mapped_column(String(128), primary_key=True)
    operation_type: Mapped[str] = mapped_column(String(8))
    environment: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    payload: Mapped[str] = mapped_column(Text)


class OperationStepRow(Base):
    __tablename__ = "operation_steps"

    operation_code: Mapped[str] = mapped_column(String(128), primary_key=True)
    step_order: Mapped[int] = mapped_column(Integer, primary_key=True)
    status: Mapped[str] = mapped_column(String(16))
    payload: Mapped[str] = mapped_column(Text)


def _naive_utc(value: datetime) -> datetime:
    return ensure_utc(value).replace(tzinfo=None)


class SqlStoreSession:
    """Unit of work for SqlOperationStore; changes are written on save_changes()."""

    def __init__(self, store: "SqlOperationStore"):
        self._store = store
        self._changes: List[Tuple[str, object]] = []

    def add_service(self, descriptor: ServiceDescriptor) -> None:
        self._changes.append(("add_service", descriptor.model_copy(deep=True)))

    def remove_service(self, service_id: int) -> None:
        self._changes.append(("remove_service", service_id))

    def add_operation(self, operation: Operation) -> None:
        self._changes.append(("add_operation", operation.model_copy(deep=True)))

    def update_operation(self, operation: Operation) -> None:
        self._changes.append(("update_operation", operation.model_copy(deep=True)))

    def add_step(self, step: OperationStep) -> None:
        self._changes.append(("add_step", step.model_copy(deep=True)))

    def update_step(self, step: OperationStep) -> None:
        self._changes.append(("update_step", step.model_copy(deep=True)))

    async def save_changes(self) -> None:
        changes, self._changes = self._changes, []
        await self._store._call(self._store._commit, changes)

    def discard(self) -> None:
        self._changes = []

    async def __aenter__(self) -> "SqlStoreSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.discard()


class SqlOperationStore:
    """OperationStore persisted through SQLAlchemy.

    Attributes:
        url: SQLAlchemy database URL
        echo: Whether to echo SQL statements
    """

    def __init__(self, url: str = "sqlite://", echo: bool = False, engine: Optional[Engine] = None):
        self.url = url
        self.echo = echo
        self._engine = engine
        self._schema_ready = False
        self._lock: Optional[asyncio.Lock] = None

    @property
    def engine(self) -> Engine:
        """Get or create the SQLAlchemy engine with lazy initialization."""
        if self._engine is None:
            self._engine = self._create_engine()
        if not self._schema_ready:
            Base.metadata.create_all(self._engine)
            self._schema_ready = True
        return self._engine

    def _create_engine(self) -> Engine:
        try:
            if self.url.startswith("sqlite"):
                # A single shared connection keeps in-memory databases alive
                engine = create_engine(
                    self.url,
                    echo=self.echo,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                engine = create_engine(self.url, echo=self.echo, pool_pre_ping=True)
        except SQLAlchemyError as exc:
            raise store_error("Failed to create state store engine", cause=exc)

        logger.info("store.engine.created", extra=sanitize_extras({"dialect": engine.dialect.name}))
        return engine

    def session(self) -> SqlStoreSession:
        return SqlStoreSession(self)

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking database call in a worker thread, one call at a time."""
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            try:
                return await asyncio.to_thread(func, *args)
            except DaycycleError:
                raise
            except SQLAlchemyError as exc:
                raise store_error("State store call failed", cause=exc)

    def _commit(self, changes: List[Tuple[str, object]]) -> None:
        try:
            self._write(changes)
        except DaycycleError:
            raise
        except SQLAlchemyError as exc:
            raise store_error("Failed to save changes to the state store", cause=exc)

    @retry_with_backoff(max_retries=2, initial_delay=0.1, retry_on=(OperationalError,))
    def _write(self, changes: List[Tuple[str, object]]) -> None:
        with Session(self.engine) as session:
            try:
                for kind, item in changes:
                    getattr(self, f"_apply_{kind}")(session, item)
                session.commit()
            except Exception:
                session.rollback()
                raise

    @staticmethod
    def _apply_add_service(session: Session, descriptor: ServiceDescriptor) -> None:
        session.merge(
            ServiceRow(
                service_id=descriptor.service_id,
                environment=descriptor.environment.upper() if descriptor.environment else None,
                payload=descriptor.model_dump_json(),
            )
        )

    @staticmethod
    def _apply_remove_service(session: Session, service_id: int) -> None:
        row = session.get(ServiceRow, service_id)
        if row is not None:
            session.delete(row)

    @staticmethod
    def _operation_row(operation: Operation) -> OperationRow:
        return OperationRow(
            operation_code=operation.operation_code,
            operation_type=OperationType(operation.operation_type).value,
            environment=operation.environment.upper(),
            status=OperationStatus(operation.status).value,
            start_time=_naive_utc(operation.start_time),
            payload=operation.model_dump_json(),
        )

    def _apply_add_operation(self, session: Session, operation: Operation) -> None:
        if session.get(OperationRow, operation.operation_code) is not None:
            raise store_error(
                f"Operation {operation.operation_code} already exists",
                details={"operation_code": operation.operation_code},
            )
        session.add(self._operation_row(operation))
        session.flush()

    def _apply_update_operation(self, session: Session, operation: Operation) -> None:
        if session.get(OperationRow, operation.operation_code) is None:
            raise store_error(
                f"Cannot update unknown operation {operation.operation_code}",
                details={"operation_code": operation.operation_code},
            )
        session.merge(self._operation_row(operation))

    @staticmethod
    def _apply_add_step(session: Session, step: OperationStep) -> None:
        if session.get(OperationRow, step.operation_code) is None:
            raise store_error(
                f"Step {step.step_name} references unknown operation {step.operation_code}",
                details={"operation_code": step.operation_code},
            )
        if session.get(OperationStepRow, (step.operation_code, step.step_order)) is not None:
            raise store_error(
                f"Step {step.step_order} of operation {step.operation_code} already exists",
                details={"operation_code": step.operation_code, "step_order": step.step_order},
            )
        session.add(
            OperationStepRow(
                operation_code=step.operation_code,
                step_order=step.step_order,
                status=StepStatus(step.status).value,
                payload=step.model_dump_json(),
            )
        )
        session.flush()

    @staticmethod
    def _apply_update_step(session: Session, step: OperationStep) -> None:
        row = session.get(OperationStepRow, (step.operation_code, step.step_order))
        if row is None:
            raise store_error(
                f"Cannot update unknown step {step.step_order} of operation {step.operation_code}",
                details={"operation_code": step.operation_code, "step_order": step.step_order},
            )
        row.status = StepStatus(step.status).value
        row.payload = step.model_dump_json()

    def _payloads(self, statement) -> List[str]:
        with Session(self.engine) as session:
            return [row.payload for row in session.scalars(statement).all()]

    def _payload(self, model: type, key: Any) -> Optional[str]:
        with Session(self.engine) as session:
            row = session.get(model, key)
            return row.payload if row else None

    async def get_service(self, service_id: int) -> Optional[ServiceDescriptor]:
        payload = await self._call(self._payload, ServiceRow, service_id)
        return ServiceDescriptor.model_validate_json(payload) if payload else None

    async def list_services(self, environment: Optional[str] = None) -> List[ServiceDescriptor]:
        statement = select(ServiceRow).order_by(ServiceRow.service_id)
        if environment is not None:
            statement = statement.where(
                (ServiceRow.environment.is_(None)) | (ServiceRow.environment == environment.upper())
            )
        payloads = await self._call(self._payloads, statement)
        return [ServiceDescriptor.model_validate_json(payload) for payload in payloads]

    async def get_operation(self, operation_code: str) -> Optional[Operation]:
        payload = await self._call(self._payload, OperationRow, operation_code)
        return Operation.model_validate_json(payload) if payload else None

    async def list_operations(
        self,
        since: Optional[datetime] = None,
        environment: Optional[str] = None,
        status: Optional[OperationStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Operation]:
        statement = select(OperationRow).order_by(OperationRow.start_time.desc())
        if since is not None:
            statement = statement.where(OperationRow.start_time >= _naive_utc(since))
        if environment is not None:
            statement = statement.where(OperationRow.environment == environment.upper())
        if status is not None:
            statement = statement.where(OperationRow.status == OperationStatus(status).value)
        if limit is not None:
            statement = statement.limit(limit)
        payloads = await self._call(self._payloads, statement)
        return [Operation.model_validate_json(payload) for payload in payloads]

    async def list_steps(self, operation_code: str) -> List[OperationStep]:
        statement = (
            select(OperationStepRow)
            .where(OperationStepRow.operation_code == operation_code)
            .order_by(OperationStepRow.step_order)
        )
        payloads = await self._call(self._payloads, statement)
        return [OperationStep.model_validate_json(payload) for payload in payloads]
