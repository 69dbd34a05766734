"""State store protocols.

The store is pure data access: reads return copies, writes are staged on a
session and applied together by ``save_changes``.
"""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from daycycle.constants import OperationStatus
    from daycycle.graph.types import ServiceDescriptor
    from daycycle.types.operations import Operation, OperationStep


@runtime_checkable
class StoreSession(Protocol):
    """Unit of work over the operation store.

    Use as ``async with store.session() as session``; staged changes that
    were not saved are discarded on exit.
    """

    def add_service(self, descriptor: "ServiceDescriptor") -> None:
        ...

    def remove_service(self, service_id: int) -> None:
        ...

    def add_operation(self, operation: "Operation") -> None:
        ...

    def update_operation(self, operation: "Operation") -> None:
        ...

    def add_step(self, step: "OperationStep") -> None:
        ...

    def update_step(self, step: "OperationStep") -> None:
        ...

    async def save_changes(self) -> None:
        """Apply every staged change atomically."""
        ...

    def discard(self) -> None:
        """Drop staged changes."""
        ...

    async def __aenter__(self) -> "StoreSession":
        ...

    async def __aexit__(self, exc_type, exc, tb) -> None:
        ...


@runtime_checkable
class OperationStore(Protocol):
    """Durable record of services, operations and their steps."""

    def session(self) -> StoreSession:
        ...

    async def get_service(self, service_id: int) -> Optional["ServiceDescriptor"]:
        ...

    async def list_services(self, environment: Optional[str] = None) -> List["ServiceDescriptor"]:
        """Services for ``environment`` (including environment-agnostic ones)."""
        ...

    async def get_operation(self, operation_code: str) -> Optional["Operation"]:
        ...

    async def list_operations(
        self,
        since: Optional[datetime] = None,
        environment: Optional[str] = None,
        status: Optional["OperationStatus"] = None,
        limit: Optional[int] = None,
    ) -> List["Operation"]:
        """Operations newest first, optionally filtered."""
        ...

    async def list_steps(self, operation_code: str) -> List["OperationStep"]:
        """Steps of an operation ordered by ``step_order``."""
        ...
