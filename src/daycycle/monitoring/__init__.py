"""Operation monitoring.

    - types.py: metrics samples, dashboard models and MonitoringContext
    - registry.py: ActiveOperationRegistry of monitored operations
    - resources.py: psutil-backed and static resource samplers
    - metrics.py: OpenTelemetry counters, histograms and gauges
    - monitor.py: OperationMonitor sampling loop and dashboard assembly
"""

from daycycle.monitoring.metrics import MetricsCollector, OperationRecord
from daycycle.monitoring.monitor import OperationMonitor, compute_operation_metrics
from daycycle.monitoring.registry import ActiveOperationRegistry
from daycycle.monitoring.resources import PsutilResourceSampler, StaticResourceSampler
from daycycle.monitoring.types import (
    ActiveOperationSummary,
    Alert,
    AlertSummary,
    MonitoringContext,
    OperationDashboard,
    OperationMetrics,
    OperationSummary,
    PerformanceSummary,
    PerformanceTrend,
    ResourceUsage,
    SystemHealth,
)

__all__ = [
    "OperationMonitor",
    "compute_operation_metrics",
    "ActiveOperationRegistry",
    "MetricsCollector",
    "OperationRecord",
    "PsutilResourceSampler",
    "StaticResourceSampler",
    "MonitoringContext",
    "ResourceUsage",
    "PerformanceSummary",
    "OperationMetrics",
    "ActiveOperationSummary",
    "OperationSummary",
    "SystemHealth",
    "PerformanceTrend",
    "Alert",
    "AlertSummary",
    "OperationDashboard",
]
