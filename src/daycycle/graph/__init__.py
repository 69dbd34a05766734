"""Service dependency graphs and execution plans.

Data flows builder -> validator -> planner:

    - builder.py: descriptors to ServiceDependencyGraph
    - validator.py: cycle and dangling-reference checks, ValidatedGraph
    - planner.py: ValidatedGraph to ServiceExecutionPlan
    - manager.py: DependencyManager composing the three over the state store
"""

from daycycle.graph.builder import DependencyGraphBuilder, compute_levels
from daycycle.graph.manager import DependencyManager
from daycycle.graph.planner import ExecutionPlanner
from daycycle.graph.types import (
    DependencyRef,
    ExecutionPhase,
    ServiceDependency,
    ServiceDependencyGraph,
    ServiceDescriptor,
    ServiceExecutionPlan,
    ServiceNode,
    ValidatedGraph,
    ValidationResult,
)
from daycycle.graph.validator import DependencyValidator

__all__ = [
    "DependencyGraphBuilder",
    "DependencyValidator",
    "ExecutionPlanner",
    "DependencyManager",
    "compute_levels",
    "DependencyRef",
    "ServiceDescriptor",
    "ServiceNode",
    "ServiceDependency",
    "ServiceDependencyGraph",
    "ValidatedGraph",
    "ValidationResult",
    "ExecutionPhase",
    "ServiceExecutionPlan",
]
