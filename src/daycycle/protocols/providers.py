"""Provider protocol definitions.

This module defines the interfaces of the collaborators the orchestration
core consumes but does not implement: the action executor, the notifier, the
resource sampler and the transaction gateway used by the EOD cutoff.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from daycycle.constants import ServiceAction
    from daycycle.monitoring.types import ResourceUsage
    from daycycle.orchestration.types import ActionResult, OperationEvent


@runtime_checkable
class ActionExecutor(Protocol):
    """Executes a lifecycle action against one service.

    Implementations own the transport to the remote host. Calls must be safe
    to retry: the orchestrator retries failed or timed out attempts.
    """

    async def execute(self, service_id: int, action: "ServiceAction") -> "ActionResult":
        """Run ``action`` for ``service_id``.

        Args:
            service_id: Identity of the target service
            action: Start, Stop, Restart or HealthCheck

        Returns:
            ActionResult with ``succeeded``, ``detail`` and ``error_message``.
            Set ``retryable=False`` for failures that cannot succeed on retry.
        """
        ...


@runtime_checkable
class Notifier(Protocol):
    """Fire-and-forget sink for operation events.

    ``notify`` must return promptly; delivery is the notifier's concern and
    the orchestrator never waits for confirmation.
    """

    def notify(self, event: "OperationEvent") -> None:
        ...


@runtime_checkable
class ResourceSampler(Protocol):
    """Source of host resource utilisation for monitoring samples."""

    def sample(self) -> "ResourceUsage":
        """Return CPU/memory/disk/network utilisation, each 0-100."""
        ...


@runtime_checkable
class TransactionGateway(Protocol):
    """Transaction processing controls used by the EOD cutoff."""

    async def stop_new_transactions(self, environment: str, cutoff_time: datetime) -> None:
        """Stop accepting transactions dated after ``cutoff_time``."""
        ...

    async def pending_transaction_count(self, environment: str, cutoff_time: datetime) -> int:
        """Number of in-flight transactions at or before the cutoff."""
        ...

    async def resume_transactions(self, environment: str) -> None:
        """Re-open transaction processing (EOD rollback)."""
        ...
