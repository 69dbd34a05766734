"""Shared model types for daycycle."""

from daycycle.types.base import DaycycleBaseModel, FrozenModel
from daycycle.types.operations import Operation, OperationStep

__all__ = [
    "DaycycleBaseModel",
    "FrozenModel",
    "Operation",
    "OperationStep",
]
