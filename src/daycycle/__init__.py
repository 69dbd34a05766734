from daycycle.__version__ import __version__

from daycycle.api import (
    OperationService,
    cancel_operation,
    configure,
    execute_eod,
    execute_sod,
    get_dashboard,
    get_operation_metrics,
)
from daycycle.constants import (
    DependencyKind,
    InitiationMethod,
    OperationStatus,
    OperationType,
    ServiceAction,
    StepStatus,
)
from daycycle.graph import (
    DependencyRef,
    ServiceDescriptor,
    ServiceExecutionPlan,
    ValidationResult,
)
from daycycle.orchestration import (
    ActionResult,
    EODOrchestrator,
    EODRequest,
    InMemoryNotifier,
    LoggingNotifier,
    OperationResult,
    SODOrchestrator,
    SODRequest,
)
from daycycle.monitoring import OperationDashboard, OperationMetrics, OperationMonitor
from daycycle.store import InMemoryOperationStore, SqlOperationStore, create_store

from daycycle.common.exceptions import DaycycleError, ErrorCode


__all__ = [
    "__version__",

    # Facade
    "OperationService",
    "configure",
    "execute_sod",
    "execute_eod",
    "cancel_operation",
    "get_operation_metrics",
    "get_dashboard",

    # Enums
    "OperationType",
    "OperationStatus",
    "StepStatus",
    "ServiceAction",
    "InitiationMethod",
    "DependencyKind",

    # Descriptors and plans
    "ServiceDescriptor",
    "DependencyRef",
    "ValidationResult",
    "ServiceExecutionPlan",

    # Orchestration
    "SODOrchestrator",
    "EODOrchestrator",
    "SODRequest",
    "EODRequest",
    "ActionResult",
    "OperationResult",
    "LoggingNotifier",
    "InMemoryNotifier",

    # Monitoring
    "OperationMonitor",
    "OperationMetrics",
    "OperationDashboard",

    # Stores
    "InMemoryOperationStore",
    "SqlOperationStore",
    "create_store",

    # Exceptions (public API)
    "DaycycleError",
    "ErrorCode",
]
