"""Operation lifecycle constants and enumerations.

These enums describe the Start-of-Day / End-of-Day operations driven by the
orchestrators and the steps they expand into.
"""

from enum import Enum


class OperationType(str, Enum):
    """Kind of day-cycle operation.

    SOD brings the service fleet up in dependency order; EOD performs the
    cutover and shuts services down.
    """

    SOD = "SOD"
    EOD = "EOD"


class OperationStatus(str, Enum):
    """Lifecycle status of an operation.

    Transitions: INITIATED -> RUNNING -> {COMPLETED | FAILED | CANCELLED}.
    The last three are terminal.
    """

    INITIATED = "Initiated"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationStatus.COMPLETED, OperationStatus.FAILED, OperationStatus.CANCELLED)


class StepStatus(str, Enum):
    """Status of a single operation step."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"
    SKIPPED = "Skipped"


class ServiceAction(str, Enum):
    """Actions the injected action executor understands."""

    START = "Start"
    STOP = "Stop"
    RESTART = "Restart"
    HEALTH_CHECK = "HealthCheck"

    @property
    def is_mutating(self) -> bool:
        return self is not ServiceAction.HEALTH_CHECK


class InitiationMethod(str, Enum):
    """How an operation was triggered."""

    MANUAL = "Manual"
    SCHEDULED = "Scheduled"
    API = "API"


# Action applied to each service by operation type, and the compensating
# action used when rolling that step back.
FORWARD_ACTIONS = {
    OperationType.SOD: ServiceAction.START,
    OperationType.EOD: ServiceAction.STOP,
}

ROLLBACK_ACTIONS = {
    OperationType.SOD: ServiceAction.STOP,
    OperationType.EOD: ServiceAction.START,
}
