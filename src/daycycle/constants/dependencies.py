"""Dependency graph constants."""

from enum import Enum


class DependencyKind(str, Enum):
    """Strength of a dependency edge.

    HARD: prerequisite must complete successfully before the dependent starts.
    SOFT: prerequisite should complete first, but its failure is tolerated.
    OPTIONAL: purely advisory, never affects ordering.
    """

    HARD = "Hard"
    SOFT = "Soft"
    OPTIONAL = "Optional"

    @property
    def affects_ordering(self) -> bool:
        return self in (DependencyKind.HARD, DependencyKind.SOFT)


# Strongest kind wins when a service declares the same reference twice.
KIND_PRECEDENCE = {
    DependencyKind.HARD: 0,
    DependencyKind.SOFT: 1,
    DependencyKind.OPTIONAL: 2,
}

# Level assigned to nodes that sit on, or downstream of, a Hard/Soft cycle.
UNRESOLVED_LEVEL = -1

DEFAULT_DEPENDENCY_CONDITION = "Running"
