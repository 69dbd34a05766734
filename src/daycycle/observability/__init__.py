"""Observability utilities for daycycle."""

from .context import (
    ExecutionRequestContext,
    execution_request_scope,
    resolve_request_context,
    sanitize_extras,
)
from .instrumentation import operation_instrumentation, step_instrumentation

__all__ = [
    "ExecutionRequestContext",
    "execution_request_scope",
    "resolve_request_context",
    "sanitize_extras",
    "operation_instrumentation",
    "step_instrumentation",
]
