"""Request, result and event types of the SOD/EOD orchestrators."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from daycycle.constants import OperationStatus, OperationType, ServiceAction
from daycycle.types.base import DaycycleBaseModel
from daycycle.utils.datetime import utc_now


class ActionResult(DaycycleBaseModel):
    """What the action executor reports for one call.

    Attributes:
        succeeded: Whether the action took effect
        detail: Human readable outcome
        error_message: Failure description when ``succeeded`` is False
        retryable: False for failures that cannot succeed on retry
    """

    succeeded: bool
    detail: Optional[str] = None
    error_message: Optional[str] = None
    retryable: bool = True


class OperationRequest(DaycycleBaseModel):
    """Common request fields for SOD and EOD.

    Attributes:
        environment: Target environment
        service_ids: Optional subset of services to act on
        dry_run: Walk the state machine without calling the executor
        force_execution: Proceed despite non-blocking validation errors
        comment: Free-text comment stored on the operation
    """

    environment: str
    service_ids: Optional[List[int]] = None
    dry_run: bool = False
    force_execution: bool = False
    comment: Optional[str] = None

    @field_validator("environment")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("environment must not be empty")
        return v.upper()


class SODRequest(OperationRequest):
    """Start-of-Day request."""


class EODRequest(OperationRequest):
    """End-of-Day request with an optional transaction cutoff."""

    cutoff_time: Optional[datetime] = None


class CutoffResult(DaycycleBaseModel):
    """Outcome of the EOD transaction cutoff."""

    environment: str
    cutoff_time: datetime
    transactions_stopped: bool = False
    pending_transactions: int = 0
    waited_seconds: float = 0.0
    skipped: bool = False


class OperationResult(DaycycleBaseModel):
    """Summary handed back to the caller of ``execute``.

    Attributes:
        operation_code: Operation identity
        status: Final status
        message: One-line outcome
        start_time: When the operation was accepted
        end_time: When it reached its final status
        estimated_duration_minutes: Plan estimate
        errors: Validation errors bypassed with force, plus failure details
        warnings: Validation and plan warnings
        completed_steps: Number of Completed action steps
        failed_steps: Number of Failed action steps
        skipped_steps: Number of Skipped action steps
        rolled_back_steps: Number of rollback steps recorded
    """

    operation_code: str
    operation_type: OperationType
    status: OperationStatus
    message: str
    start_time: datetime
    end_time: Optional[datetime] = None
    estimated_duration_minutes: float = 0.0
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    rolled_back_steps: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == OperationStatus.COMPLETED


class OperationEvent(DaycycleBaseModel):
    """Notification handed to the notifier."""

    event_type: str
    operation_code: str
    operation_type: OperationType
    environment: str
    status: OperationStatus
    message: str
    step_name: Optional[str] = None
    service_id: Optional[int] = None
    action: Optional[ServiceAction] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utc_now)
