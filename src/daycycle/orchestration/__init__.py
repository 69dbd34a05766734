"""SOD/EOD orchestration.

    - base.py: BaseOrchestrator with the shared state machine and rollback
    - sod.py: SODOrchestrator (Start in dependency order)
    - eod.py: EODOrchestrator (transaction cutoff, then Stop)
    - notifiers.py: LoggingNotifier and InMemoryNotifier
    - types.py: requests, results and events
"""

from daycycle.orchestration.base import BaseOrchestrator
from daycycle.orchestration.eod import EODOrchestrator
from daycycle.orchestration.notifiers import InMemoryNotifier, LoggingNotifier
from daycycle.orchestration.sod import SODOrchestrator
from daycycle.orchestration.types import (
    ActionResult,
    CutoffResult,
    EODRequest,
    OperationEvent,
    OperationRequest,
    OperationResult,
    SODRequest,
)

__all__ = [
    "BaseOrchestrator",
    "SODOrchestrator",
    "EODOrchestrator",
    "LoggingNotifier",
    "InMemoryNotifier",
    "ActionResult",
    "CutoffResult",
    "EODRequest",
    "SODRequest",
    "OperationRequest",
    "OperationResult",
    "OperationEvent",
]
