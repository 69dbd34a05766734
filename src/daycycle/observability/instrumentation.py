"""Context managers for per-operation and per-step instrumentation."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Dict, Iterator, Optional

from opentelemetry.trace import Status, StatusCode

from daycycle.logging import get_logger
from daycycle.logging.filters import operation_code_var
from daycycle.observability.context import sanitize_extras
from daycycle.telemetry import get_tracer

if TYPE_CHECKING:
    from daycycle.monitoring.metrics import MetricsCollector

logger = get_logger(__name__)


def _build_tags(
    *,
    operation_code: str,
    operation_type: Optional[str],
    action: Optional[str] = None,
    extra: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    tags: Dict[str, str] = {
        "operation_code": operation_code,
    }
    if operation_type:
        tags["operation_type"] = operation_type
    if action:
        tags["action"] = action
    if extra:
        tags.update(extra)
    return tags


@contextmanager
def operation_instrumentation(
    *,
    operation_code: str,
    operation_type: str,
    environment: str,
    attributes: Optional[Dict[str, str]] = None,
) -> Iterator[Dict[str, str]]:
    """Bind the operation code to logs and open the operation span."""
    tags = sanitize_extras(
        _build_tags(
            operation_code=operation_code,
            operation_type=operation_type,
            extra={"environment": environment, **(attributes or {})},
        )
    )

    token = operation_code_var.set(operation_code)
    tracer = get_tracer("daycycle")
    try:
        with tracer.start_as_current_span(f"daycycle.operation.{tags['operation_type']}") as span:
            for key, value in tags.items():
                span.set_attribute(f"daycycle.{key}", value)
            try:
                yield tags
            except Exception as exc:
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR))
                logger.error("operation.instrumentation.failed", extra=tags, exc_info=True)
                raise
    finally:
        operation_code_var.reset(token)


@contextmanager
def step_instrumentation(
    *,
    operation_code: str,
    operation_type: str,
    step_name: str,
    service_id: Optional[int],
    action: str,
    metrics: Optional["MetricsCollector"] = None,
) -> Iterator[Dict[str, str]]:
    """Instrument a single step: span, duration and error logging."""
    tags = sanitize_extras(
        _build_tags(
            operation_code=operation_code,
            operation_type=operation_type,
            action=action,
            extra={"service_id": service_id},
        )
    )
    telemetry_payload = {**tags, "step_name": step_name}

    start_time = time.perf_counter()
    tracer = get_tracer("daycycle")
    with tracer.start_as_current_span(f"daycycle.step.{tags['action']}") as span:
        for key, value in telemetry_payload.items():
            span.set_attribute(f"daycycle.{key}", value)
        try:
            yield telemetry_payload
        except Exception as exc:
            elapsed = time.perf_counter() - start_time
            if metrics is not None:
                metrics.step_duration_histogram.record(elapsed, {**tags, "status": "error"})
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR))
            logger.error(
                "step.instrumentation.failed",
                extra=telemetry_payload,
                exc_info=True,
            )
            raise

