"""OpenTelemetry entry points.

daycycle depends on the OpenTelemetry API only; without an SDK configured
by the host application, tracers and meters are no-ops.
"""

from typing import Dict, Optional

from opentelemetry import metrics, trace

from daycycle.__version__ import __version__

__all__ = [
    "get_tracer",
    "get_meter",
    "current_trace_ids",
]


def get_tracer(name: str = "daycycle", version: Optional[str] = None) -> trace.Tracer:
    return trace.get_tracer(name, version or __version__)


def get_meter(name: str = "daycycle", version: Optional[str] = None) -> metrics.Meter:
    return metrics.get_meter(name, version or __version__)


def current_trace_ids() -> Dict[str, str]:
    """Hex trace and span ids of the active span, or an empty dict."""
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": format(span_context.trace_id, "032x"),
        "span_id": format(span_context.span_id, "016x"),
    }
