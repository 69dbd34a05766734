"""Context injection for log records.

Request and operation identity live in context variables so that records
emitted from concurrently running operations each carry their own ids.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Dict, Optional

from daycycle.__version__ import __version__

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)
operation_code_var: ContextVar[Optional[str]] = ContextVar("operation_code", default=None)

# Deployment-wide tags (banking environment, region, ...)
_static_context: Dict[str, Any] = {}


class ContextFilter(logging.Filter):
    """Adds request, operation and deployment context to every record.

    Values passed explicitly through ``extra`` win over context values.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        record.user_id = user_id_var.get()
        record.package = "daycycle"
        record.package_version = __version__

        operation_code = operation_code_var.get()
        if operation_code and not hasattr(record, "operation_code"):
            record.operation_code = operation_code

        for key, value in _static_context.items():
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


def set_logging_context(
    environment: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Replace the deployment-wide tags attached to every record."""
    _static_context.clear()
    if environment is not None:
        _static_context["environment"] = environment
    if extra:
        _static_context.update(extra)


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def set_operation_context(operation_code: Optional[str]) -> None:
    """Bind the operation being driven by the current task."""
    operation_code_var.set(operation_code)


def clear_request_context() -> None:
    request_id_var.set(None)
    user_id_var.set(None)
    operation_code_var.set(None)
