from .service import OperationService, new_operation_code
from .operations import (
    cancel_operation,
    configure,
    execute_eod,
    execute_sod,
    get_dashboard,
    get_operation_metrics,
    get_operation_service,
)

__all__ = [
    "OperationService",
    "new_operation_code",
    "configure",
    "get_operation_service",
    "execute_sod",
    "execute_eod",
    "cancel_operation",
    "get_operation_metrics",
    "get_dashboard",
]
