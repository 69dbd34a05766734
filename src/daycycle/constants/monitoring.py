"""Monitoring and dashboard constants."""

from enum import Enum


class HealthStatus(str, Enum):
    """Aggregate fleet health derived from the healthy service percentage."""

    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


class TrendDirection(str, Enum):
    IMPROVING = "Improving"
    STABLE = "Stable"
    DEGRADING = "Degrading"


class AlertSeverity(str, Enum):
    CRITICAL = "Critical"
    WARNING = "Warning"
    INFO = "Info"


class TrendMetric(str, Enum):
    OPERATION_DURATION = "OperationDuration"
    SUCCESS_RATE = "SuccessRate"


INITIALIZING_PHASE = "Initializing"

# Relative change between consecutive trend buckets treated as noise.
TREND_TOLERANCE = 0.05
