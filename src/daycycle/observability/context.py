"""Request context carried through the OperationService boundary.

Each facade call resolves whatever the caller passed as ``ctx`` into an
ExecutionRequestContext and runs inside ``execution_request_scope``, which
binds the request id to log records and opens a span for the call.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Optional

from opentelemetry.trace import Status, StatusCode
from pydantic import Field

from daycycle.common.exceptions import DaycycleError
from daycycle.logging import get_logger
from daycycle.logging.filters import request_id_var, set_request_context, user_id_var
from daycycle.telemetry import get_tracer
from daycycle.types.base import DaycycleBaseModel

logger = get_logger(__name__)

_CONTEXT_KEYS = ("user_id", "correlation_id", "traceparent", "environment", "attributes")


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    enum_value = getattr(value, "value", None)
    if isinstance(enum_value, str):
        return enum_value
    return str(value)


class ExecutionRequestContext(DaycycleBaseModel):
    """Who asked for a facade call and how to correlate it.

    Attributes:
        request_id: Identity of the inbound request
        user_id: Operator or system principal; becomes ``initiated_by``
        correlation_id: Upstream correlation or W3C traceparent value
        environment: Banking environment the request targets, if known
        attributes: Free-form tags copied onto spans as ``ctx.*``
    """

    request_id: str
    user_id: Optional[str] = None
    correlation_id: Optional[str] = None
    environment: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    telemetry_base: Dict[str, str] = Field(default_factory=dict, exclude=True)

    @classmethod
    def generate(cls, **kwargs: Any) -> "ExecutionRequestContext":
        """Create a context with a fresh request id."""
        ctx = cls(request_id=str(uuid.uuid4()), **kwargs)
        ctx.telemetry_base = ctx.to_telemetry_dict()
        return ctx

    def to_telemetry_dict(self) -> Dict[str, str]:
        payload: Dict[str, str] = {"request_id": self.request_id}
        for key in ("user_id", "correlation_id", "environment"):
            value = getattr(self, key)
            if value:
                payload[key] = value
        payload.update(sanitize_extras(self.attributes, prefix="ctx."))
        return payload


@contextmanager
def execution_request_scope(
    ctx: ExecutionRequestContext,
    *,
    operation: Optional[str] = None,
) -> Iterator[ExecutionRequestContext]:
    """Bind ``ctx`` to log records and open a span named after ``operation``.

    Errors raised inside the scope are recorded on the span and re-raised.
    DaycycleError is an expected outcome at the boundary (unknown codes,
    rejected pre-conditions) and is logged as a warning; anything else is
    logged with its traceback. The caller's previous request id and user
    are restored on exit, so scopes nest.
    """
    ctx.telemetry_base = ctx.to_telemetry_dict()
    span_name = operation or "daycycle.request"
    previous = (request_id_var.get(), user_id_var.get())
    set_request_context(request_id=ctx.request_id, user_id=ctx.user_id)

    tracer = get_tracer("daycycle")
    try:
        with tracer.start_as_current_span(span_name) as span:
            span.set_attribute("daycycle.operation.name", span_name)
            for key, value in ctx.telemetry_base.items():
                span.set_attribute(f"daycycle.{key}", value)

            try:
                yield ctx
            except DaycycleError as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, exc.error_code.value))
                logger.warning(
                    "request.rejected",
                    extra={
                        **ctx.telemetry_base,
                        "operation.name": span_name,
                        "error_code": exc.error_code.value,
                        "error_message": exc.message,
                    },
                )
                raise
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR))
                logger.error(
                    "request.failed",
                    extra={**ctx.telemetry_base, "operation.name": span_name},
                    exc_info=True,
                )
                raise
    finally:
        request_id_var.set(previous[0])
        user_id_var.set(previous[1])


def _context_data(ctx: Any) -> Dict[str, Any]:
    if isinstance(ctx, Mapping):
        return dict(ctx)

    data: Dict[str, Any] = {}
    for key in ("request_id", "id"):
        if hasattr(ctx, key):
            data["request_id"] = getattr(ctx, key)
            break
    for key in _CONTEXT_KEYS:
        if hasattr(ctx, key):
            data[key] = getattr(ctx, key)
    return data


def resolve_request_context(ctx: Optional[Any]) -> ExecutionRequestContext:
    """Normalise ``ctx`` into an ExecutionRequestContext.

    Accepts an ExecutionRequestContext, None (a new request id is
    generated), a request id string, a mapping or any object exposing
    ``request_id``/``id`` and the optional context attributes.
    """
    if isinstance(ctx, ExecutionRequestContext):
        if not ctx.telemetry_base:
            ctx.telemetry_base = ctx.to_telemetry_dict()
        return ctx
    if ctx is None:
        return ExecutionRequestContext.generate()
    if isinstance(ctx, str):
        return ExecutionRequestContext(request_id=ctx)

    data = _context_data(ctx)
    request_id = data.get("request_id") or data.get("id")
    attributes = data.get("attributes") or {}
    if not isinstance(attributes, dict):
        attributes = {"value": str(attributes)}
    environment = data.get("environment")

    resolved = ExecutionRequestContext(
        request_id=str(request_id) if request_id else str(uuid.uuid4()),
        user_id=_stringify(data.get("user_id")),
        correlation_id=_stringify(data.get("correlation_id") or data.get("traceparent")),
        environment=str(environment).upper() if environment else None,
        attributes=attributes,
    )
    resolved.telemetry_base = resolved.to_telemetry_dict()
    return resolved


def sanitize_extras(
    extra: Optional[Dict[str, Any]],
    *,
    prefix: Optional[str] = None,
) -> Dict[str, str]:
    """Turn log ``extra`` values into strings, dropping None values.

    Enum members are replaced by their value.
    """
    if not extra:
        return {}

    result: Dict[str, str] = {}
    for key, value in extra.items():
        sanitized = _stringify(value)
        if sanitized is None:
            continue
        result[f"{prefix}{key}" if prefix else str(key)] = sanitized
    return result
