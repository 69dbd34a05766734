"""Constants module for daycycle.

This module contains all constant values and enumerations used throughout
the package. It has no dependencies on other daycycle modules.

Organization:
    - operations: operation/step lifecycle and service actions
    - dependencies: dependency edge kinds and level sentinels
    - monitoring: health, trend and alert classifications
    - store: state store backends
"""

from daycycle.constants.operations import (
    FORWARD_ACTIONS,
    ROLLBACK_ACTIONS,
    InitiationMethod,
    OperationStatus,
    OperationType,
    ServiceAction,
    StepStatus,
)
from daycycle.constants.dependencies import (
    DEFAULT_DEPENDENCY_CONDITION,
    KIND_PRECEDENCE,
    UNRESOLVED_LEVEL,
    DependencyKind,
)
from daycycle.constants.monitoring import (
    INITIALIZING_PHASE,
    TREND_TOLERANCE,
    AlertSeverity,
    HealthStatus,
    TrendDirection,
    TrendMetric,
)
from daycycle.constants.store import StoreBackend

__all__ = [
    # Operations
    "OperationType",
    "OperationStatus",
    "StepStatus",
    "ServiceAction",
    "InitiationMethod",
    "FORWARD_ACTIONS",
    "ROLLBACK_ACTIONS",
    # Dependencies
    "DependencyKind",
    "KIND_PRECEDENCE",
    "UNRESOLVED_LEVEL",
    "DEFAULT_DEPENDENCY_CONDITION",
    # Monitoring
    "HealthStatus",
    "TrendDirection",
    "AlertSeverity",
    "TrendMetric",
    "INITIALIZING_PHASE",
    "TREND_TOLERANCE",
    # Store
    "StoreBackend",
]
