"""Durable operation records.

``Operation`` and ``OperationStep`` are what the state store persists. Only
the orchestrator that owns an operation mutates them.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from daycycle.constants import (
    InitiationMethod,
    OperationStatus,
    OperationType,
    ServiceAction,
    StepStatus,
)
from daycycle.types.base import DaycycleBaseModel


class Operation(DaycycleBaseModel):
    """One SOD or EOD run.

    Attributes:
        operation_code: Unique identity supplied by the caller
        operation_type: SOD or EOD
        business_date: Business date the run belongs to
        environment: Target banking environment
        start_time: When the operation was accepted
        end_time: When it reached a terminal status
        status: Lifecycle status
        initiated_by: Identity of the initiator
        initiation_method: Manual, Scheduled or API
        comment: Free-text comment from the request
        dry_run: Whether executor calls are simulated
        error_details: Failure description for Failed operations
        services_involved: Planned service ids
        cutoff_time: EOD transaction cutoff, when one was applied
    """

    operation_code: str
    operation_type: OperationType
    business_date: date
    environment: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: OperationStatus = OperationStatus.INITIATED
    initiated_by: str = "system"
    initiation_method: InitiationMethod = InitiationMethod.MANUAL
    comment: Optional[str] = None
    dry_run: bool = False
    error_details: Optional[str] = None
    services_involved: List[int] = Field(default_factory=list)
    cutoff_time: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return OperationStatus(self.status).is_terminal


class OperationStep(DaycycleBaseModel):
    """A single service action (or its compensation) within an operation."""

    operation_code: str
    step_order: int = Field(ge=1)
    step_name: str
    service_id: Optional[int] = None
    action: Optional[ServiceAction] = None
    phase_number: Optional[int] = None
    phase_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: StepStatus = StepStatus.PENDING
    retry_count: int = Field(default=0, ge=0)
    details: Optional[str] = None
    error_message: Optional[str] = None
    is_rollback: bool = False
    rollback_of: Optional[int] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return max((self.end_time - self.start_time).total_seconds(), 0.0)
