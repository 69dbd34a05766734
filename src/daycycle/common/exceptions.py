from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Standard error codes for daycycle operations.

    This enum provides categorized error codes that can be used
    to identify error types without creating numerous exception classes.
    Each category has a specific number range for easy identification.

    Attributes:
        CONFIG_*: Configuration-related errors (1xxx)
        VALIDATION_*: Graph and request validation errors (2xxx)
        STEP_*: Step execution errors (3xxx)
        OPERATION_*: Operation lifecycle errors (4xxx)
        RESOURCE_*: Lookups of unknown records (5xxx)
        ROLLBACK_*: Compensation errors, logged only (6xxx)
        MONITORING_*: Sampler and dashboard errors, logged only (7xxx)
        STORE_*: State store errors (8xxx)
        RETRY_*: Transient/retryable errors (9xxx)
    """
    # Configuration errors (1xxx)
    CONFIG_ERROR = "CONFIG_001"
    CONFIG_INVALID = "CONFIG_002"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VALIDATION_001"
    UNKNOWN_ENVIRONMENT = "VALIDATION_002"
    CIRCULAR_DEPENDENCY = "VALIDATION_003"
    DANGLING_DEPENDENCY = "VALIDATION_004"
    PLAN_INVALID = "VALIDATION_005"

    # Step execution errors (3xxx)
    STEP_EXECUTION_ERROR = "STEP_001"
    TIMEOUT_ERROR = "STEP_002"

    # Operation errors (4xxx)
    OPERATION_FAILED = "OPERATION_001"
    OPERATION_CONFLICT = "OPERATION_002"
    OPERATION_NOT_TERMINAL = "OPERATION_003"

    # Resource errors (5xxx)
    OPERATION_NOT_FOUND = "RESOURCE_001"
    SERVICE_NOT_FOUND = "RESOURCE_002"

    # Rollback errors (6xxx)
    ROLLBACK_ERROR = "ROLLBACK_001"

    # Monitoring errors (7xxx)
    MONITORING_ERROR = "MONITORING_001"

    # Store errors (8xxx)
    STORE_ERROR = "STORE_001"

    # Retry/Transient errors (9xxx)
    RETRYABLE_ERROR = "RETRY_001"


class DaycycleError(Exception):
    """Base exception for all daycycle errors.

    Uses error codes for categorization instead of a deep exception
    hierarchy. Callers match on ``error_code``.

    Attributes:
        message: Error message
        error_code: Error code from ErrorCode enum
        details: Additional error details
        cause: Optional underlying exception
        is_retryable: Whether the error is transient and can be retried
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.OPERATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        is_retryable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause
        self.is_retryable = is_retryable

        # Lazy imports to avoid a circular dependency with logging
        from daycycle.logging import get_logger
        from daycycle.observability.context import sanitize_extras
        get_logger(__name__).debug(
            "error.created",
            extra=sanitize_extras({
                "error_code": error_code.value,
                "error_message": message,
                "is_retryable": is_retryable,
                "cause": type(cause).__name__ if cause is not None else None,
            }),
        )

    def __str__(self) -> str:
        """String representation of the error."""
        msg = f"[{self.error_code.value}] {self.message}"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {str(self.cause)})"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
            "is_retryable": self.is_retryable
        }

    @classmethod
    def from_error_code(
        cls,
        error_code: ErrorCode,
        message: str,
        **kwargs
    ) -> "DaycycleError":
        """Create exception from error code.

        Timeouts and transient errors default to retryable unless the caller
        says otherwise.
        """
        if error_code in [
            ErrorCode.TIMEOUT_ERROR,
            ErrorCode.RETRYABLE_ERROR,
        ]:
            kwargs.setdefault('is_retryable', True)

        return cls(message=message, error_code=error_code, **kwargs)


def _split_details(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    details = dict(kwargs.pop('details', None) or {})
    return details


def configuration_error(
    message: str,
    config_key: Optional[str] = None,
    **kwargs
) -> DaycycleError:
    """Create a configuration error.

    Args:
        message: Error message
        config_key: Configuration key that caused the error
        **kwargs: Additional DaycycleError arguments

    Returns:
        DaycycleError with CONFIG_ERROR code
    """
    details = _split_details(kwargs)
    if config_key:
        details["config_key"] = config_key

    return DaycycleError(
        message=message,
        error_code=ErrorCode.CONFIG_ERROR,
        details=details,
        **kwargs
    )


def validation_error(
    message: str,
    errors: Optional[List[str]] = None,
    warnings: Optional[List[str]] = None,
    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    **kwargs
) -> DaycycleError:
    """Create a validation error carrying the full error/warning lists.

    Args:
        message: Error message
        errors: Validation errors that blocked the request
        warnings: Validation warnings gathered alongside the errors
        error_code: Specific validation code
        **kwargs: Additional DaycycleError arguments

    Returns:
        DaycycleError with a VALIDATION_* code
    """
    details = _split_details(kwargs)
    details["errors"] = list(errors or [])
    details["warnings"] = list(warnings or [])

    return DaycycleError(
        message=message,
        error_code=error_code,
        details=details,
        **kwargs
    )


def step_execution_error(
    message: str,
    service_id: Optional[int] = None,
    action: Optional[str] = None,
    timed_out: bool = False,
    **kwargs
) -> DaycycleError:
    """Create a step execution error.

    Step failures are retryable by default; the orchestrator decides whether
    the retry budget allows another attempt.
    """
    details = _split_details(kwargs)
    if service_id is not None:
        details["service_id"] = service_id
    if action:
        details["action"] = action
    kwargs.setdefault("is_retryable", True)

    return DaycycleError(
        message=message,
        error_code=ErrorCode.TIMEOUT_ERROR if timed_out else ErrorCode.STEP_EXECUTION_ERROR,
        details=details,
        **kwargs
    )


def operation_failure(
    message: str,
    operation_code: Optional[str] = None,
    step_name: Optional[str] = None,
    **kwargs
) -> DaycycleError:
    """Create an operation failure error."""
    details = _split_details(kwargs)
    if operation_code:
        details["operation_code"] = operation_code
    if step_name:
        details["step_name"] = step_name

    return DaycycleError(
        message=message,
        error_code=ErrorCode.OPERATION_FAILED,
        details=details,
        **kwargs
    )


def operation_conflict_error(operation_code: str, **kwargs) -> DaycycleError:
    """Create an error for an operation code that is already being driven."""
    details = _split_details(kwargs)
    details["operation_code"] = operation_code
    return DaycycleError(
        message=f"Operation {operation_code} is already in progress",
        error_code=ErrorCode.OPERATION_CONFLICT,
        details=details,
        **kwargs
    )


def rollback_error(
    message: str,
    operation_code: Optional[str] = None,
    step_name: Optional[str] = None,
    **kwargs
) -> DaycycleError:
    """Create a rollback error. Callers log these and never raise them."""
    details = _split_details(kwargs)
    if operation_code:
        details["operation_code"] = operation_code
    if step_name:
        details["step_name"] = step_name

    return DaycycleError(
        message=message,
        error_code=ErrorCode.ROLLBACK_ERROR,
        details=details,
        **kwargs
    )


def monitoring_error(
    message: str,
    operation_code: Optional[str] = None,
    **kwargs
) -> DaycycleError:
    """Create a monitoring error. Callers log these and never raise them."""
    details = _split_details(kwargs)
    if operation_code:
        details["operation_code"] = operation_code

    return DaycycleError(
        message=message,
        error_code=ErrorCode.MONITORING_ERROR,
        details=details,
        **kwargs
    )


def operation_not_found_error(operation_code: str, **kwargs) -> DaycycleError:
    """Create a not-found error for an unknown operation code."""
    details = _split_details(kwargs)
    details["operation_code"] = operation_code

    return DaycycleError(
        message=f"Operation {operation_code} not found",
        error_code=ErrorCode.OPERATION_NOT_FOUND,
        details=details,
        **kwargs
    )


def service_not_found_error(service_id: int, **kwargs) -> DaycycleError:
    """Create a not-found error for an unknown service id."""
    details = _split_details(kwargs)
    details["service_id"] = service_id

    return DaycycleError(
        message=f"Service {service_id} not found",
        error_code=ErrorCode.SERVICE_NOT_FOUND,
        details=details,
        **kwargs
    )


def store_error(message: str, **kwargs) -> DaycycleError:
    """Create a state store error."""
    details = _split_details(kwargs)
    return DaycycleError(
        message=message,
        error_code=ErrorCode.STORE_ERROR,
        details=details,
        **kwargs
    )
