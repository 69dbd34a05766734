"""Protocol definitions for daycycle.

Protocols describe the external collaborators the orchestration core talks
to. They are runtime checkable so adapters can be verified with isinstance().
"""

from .providers import ActionExecutor, Notifier, ResourceSampler, TransactionGateway
from .store import OperationStore, StoreSession

__all__ = [
    "ActionExecutor",
    "Notifier",
    "ResourceSampler",
    "TransactionGateway",
    "OperationStore",
    "StoreSession",
]
