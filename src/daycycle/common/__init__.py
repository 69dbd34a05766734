"""Common utilities shared across daycycle modules."""

from daycycle.common.exceptions import (
    DaycycleError,
    ErrorCode,
    configuration_error,
    monitoring_error,
    operation_conflict_error,
    operation_failure,
    operation_not_found_error,
    rollback_error,
    service_not_found_error,
    step_execution_error,
    store_error,
    validation_error,
)

__all__ = [
    "DaycycleError",
    "ErrorCode",
    "configuration_error",
    "validation_error",
    "step_execution_error",
    "operation_failure",
    "operation_conflict_error",
    "rollback_error",
    "monitoring_error",
    "operation_not_found_error",
    "service_not_found_error",
    "store_error",
]
