"""In-process operation store.

Useful for tests, dry runs and single-process deployments. Commits are
serialised with an ``asyncio.Lock`` that is held only while staged changes
are applied, never across caller I/O.
"""

import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from daycycle.common.exceptions import store_error
from daycycle.constants import OperationStatus
from daycycle.graph.types import ServiceDescriptor
from daycycle.logging import get_logger
from daycycle.observability.context import sanitize_extras
from daycycle.types.operations import Operation, OperationStep
from daycycle.utils.datetime import ensure_utc

logger = get_logger(__name__)

_State = Tuple[
    Dict[int, ServiceDescriptor],
    Dict[str, Operation],
    Dict[Tuple[str, int], OperationStep],
]
_Change = Callable[[_State], None]


class InMemoryStoreSession:
    """Unit of work staging changes for an InMemoryOperationStore."""

    def __init__(self, store: "InMemoryOperationStore"):
        self._store = store
        self._changes: List[_Change] = []

    def add_service(self, descriptor: ServiceDescriptor) -> None:
        copy = descriptor.model_copy(deep=True)

        def apply(state: _State) -> None:
            state[0][copy.service_id] = copy

        self._changes.append(apply)

    def remove_service(self, service_id: int) -> None:
        def apply(state: _State) -> None:
            state[0].pop(service_id, None)

        self._changes.append(apply)

    def add_operation(self, operation: Operation) -> None:
        copy = operation.model_copy(deep=True)

        def apply(state: _State) -> None:
            if copy.operation_code in state[1]:
                raise store_error(
                    f"Operation {copy.operation_code} already exists",
                    details={"operation_code": copy.operation_code},
                )
            state[1][copy.operation_code] = copy

        self._changes.append(apply)

    def update_operation(self, operation: Operation) -> None:
        copy = operation.model_copy(deep=True)

        def apply(state: _State) -> None:
            if copy.operation_code not in state[1]:
                raise store_error(
                    f"Cannot update unknown operation {copy.operation_code}",
                    details={"operation_code": copy.operation_code},
                )
            state[1][copy.operation_code] = copy

        self._changes.append(apply)

    def add_step(self, step: OperationStep) -> None:
        copy = step.model_copy(deep=True)

        def apply(state: _State) -> None:
            if copy.operation_code not in state[1]:
                raise store_error(
                    f"Step {copy.step_name} references unknown operation {copy.operation_code}",
                    details={"operation_code": copy.operation_code},
                )
            key = (copy.operation_code, copy.step_order)
            if key in state[2]:
                raise store_error(
                    f"Step {copy.step_order} of operation {copy.operation_code} already exists",
                    details={"operation_code": copy.operation_code, "step_order": copy.step_order},
                )
            state[2][key] = copy

        self._changes.append(apply)

    def update_step(self, step: OperationStep) -> None:
        copy = step.model_copy(deep=True)

        def apply(state: _State) -> None:
            key = (copy.operation_code, copy.step_order)
            if key not in state[2]:
                raise store_error(
                    f"Cannot update unknown step {copy.step_order} of operation {copy.operation_code}",
                    details={"operation_code": copy.operation_code, "step_order": copy.step_order},
                )
            state[2][key] = copy

        self._changes.append(apply)

    async def save_changes(self) -> None:
        changes, self._changes = self._changes, []
        await self._store._commit(changes)

    def discard(self) -> None:
        self._changes = []

    async def __aenter__(self) -> "InMemoryStoreSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._changes:
            logger.debug(
                "store.session.discarded",
                extra=sanitize_extras({"pending_changes": len(self._changes)}),
            )
        self.discard()


class InMemoryOperationStore:
    """Dictionary-backed OperationStore."""

    def __init__(self, services: Optional[List[ServiceDescriptor]] = None):
        self._services: Dict[int, ServiceDescriptor] = {}
        self._operations: Dict[str, Operation] = {}
        self._steps: Dict[Tuple[str, int], OperationStep] = {}
        self._lock = asyncio.Lock()
        for descriptor in services or []:
            self._services[descriptor.service_id] = descriptor.model_copy(deep=True)

    def session(self) -> InMemoryStoreSession:
        return InMemoryStoreSession(self)

    async def _commit(self, changes: List[_Change]) -> None:
        """Apply changes to working copies and swap them in only if all succeed."""
        async with self._lock:
            state: _State = (dict(self._services), dict(self._operations), dict(self._steps))
            for change in changes:
                change(state)
            self._services, self._operations, self._steps = state

    async def get_service(self, service_id: int) -> Optional[ServiceDescriptor]:
        descriptor = self._services.get(service_id)
        return descriptor.model_copy(deep=True) if descriptor else None

    async def list_services(self, environment: Optional[str] = None) -> List[ServiceDescriptor]:
        result = []
        for sid in sorted(self._services):
            descriptor = self._services[sid]
            if (
                environment is None
                or descriptor.environment is None
                or descriptor.environment.upper() == environment.upper()
            ):
                result.append(descriptor.model_copy(deep=True))
        return result

    async def get_operation(self, operation_code: str) -> Optional[Operation]:
        operation = self._operations.get(operation_code)
        return operation.model_copy(deep=True) if operation else None

    async def list_operations(
        self,
        since: Optional[datetime] = None,
        environment: Optional[str] = None,
        status: Optional[OperationStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Operation]:
        operations = list(self._operations.values())
        if since is not None:
            cutoff = ensure_utc(since)
            operations = [op for op in operations if ensure_utc(op.start_time) >= cutoff]
        if environment is not None:
            operations = [op for op in operations if op.environment.upper() == environment.upper()]
        if status is not None:
            operations = [op for op in operations if op.status == status]
        operations.sort(key=lambda op: ensure_utc(op.start_time), reverse=True)
        if limit is not None:
            operations = operations[:limit]
        return [op.model_copy(deep=True) for op in operations]

    async def list_steps(self, operation_code: str) -> List[OperationStep]:
        steps = [step for (code, _), step in self._steps.items() if code == operation_code]
        steps.sort(key=lambda s: s.step_order)
        return [step.model_copy(deep=True) for step in steps]
