"""Decorators for tracing, retrying and bounding calls."""

import asyncio
import functools
import time
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from opentelemetry.trace import SpanKind, Status, StatusCode

from daycycle.telemetry import get_tracer


F = TypeVar('F', bound=Callable[..., Any])
T = TypeVar('T')

_logger = None


def _get_logger():
    # Resolved lazily; daycycle.logging imports this package's siblings
    global _logger
    if _logger is None:
        from daycycle.logging import get_logger
        _logger = get_logger(__name__)
    return _logger


def traced(
    span_name: Optional[str] = None,
    *,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: Optional[Dict[str, Any]] = None,
    attribute_getter: Optional[Callable[..., Optional[Dict[str, Any]]]] = None,
) -> Callable[[F], F]:
    """Run the decorated function inside an OpenTelemetry span.

    Args:
        span_name: Span name; defaults to the module-qualified function name
        kind: Span kind
        attributes: Static attributes set on every span
        attribute_getter: Called with the function's arguments; its result
            is merged into the span attributes. Failures are logged and
            ignored.

    Example:
        >>> @traced("daycycle.orchestrator.step",
        ...         attribute_getter=lambda self, run, step: {"service_id": step.service_id})
        ... async def _run_step(self, run, step):
        ...     ...
    """

    def decorator(func: F) -> F:
        name = span_name or f"{func.__module__}.{func.__qualname__}"

        def _span_attributes(args: tuple, kwargs: dict) -> Dict[str, Any]:
            collected = {k: v for k, v in (attributes or {}).items() if v is not None}
            if attribute_getter is None:
                return collected
            try:
                dynamic = attribute_getter(*args, **kwargs) or {}
            except Exception as exc:  # pragma: no cover
                _get_logger().warning(
                    "trace.attributes.failed",
                    extra={"span_name": name, "error": str(exc)},
                )
                return collected
            collected.update({k: v for k, v in dynamic.items() if v is not None})
            return collected

        def _fail(span, exc: Exception) -> None:
            span.record_exception(exc)
            span.set_status(Status(StatusCode.ERROR, str(exc)))

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with get_tracer(func.__module__).start_as_current_span(
                    name, kind=kind, attributes=_span_attributes(args, kwargs)
                ) as span:
                    try:
                        return await func(*args, **kwargs)
                    except Exception as exc:
                        _fail(span, exc)
                        raise

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer(func.__module__).start_as_current_span(
                name, kind=kind, attributes=_span_attributes(args, kwargs)
            ) as span:
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    _fail(span, exc)
                    raise

        return sync_wrapper  # type: ignore[return-value]

    return decorator


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    retry_on: Optional[Tuple[Type[Exception], ...]] = None,
    retry_condition: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Retry a sync or async function with exponential backoff.

    The delay before retry ``n`` is ``min(initial_delay * exponential_base ** n, max_delay)``.
    Total attempts are ``max_retries + 1``. Exceptions that do not match
    ``retry_on``/``retry_condition`` propagate immediately.

    Used for infrastructure calls such as state store commits; service
    actions have their own per-step retry budget in the orchestrators.

    Example:
        >>> @retry_with_backoff(max_retries=2, initial_delay=0.1, retry_on=(OperationalError,))
        ... def _write(self, changes):
        ...     ...
    """
    def _should_retry(exc: Exception, attempt: int) -> bool:
        if attempt >= max_retries:
            return False
        if retry_on is not None and not isinstance(exc, retry_on):
            return False
        return retry_condition(exc) if retry_condition else True

    def _log_attempt(func: Callable, attempt: int, exc: Exception, delay: float) -> None:
        _get_logger().warning(
            "retry.attempt_failed",
            extra={
                "function": func.__qualname__,
                "attempt": attempt + 1,
                "max_attempts": max_retries + 1,
                "retry_in_seconds": delay,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )

    def _log_exhausted(func: Callable, exc: Exception) -> None:
        _get_logger().error(
            "retry.exhausted",
            extra={
                "function": func.__qualname__,
                "max_attempts": max_retries + 1,
                "error_type": type(exc).__name__,
            },
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    if not _should_retry(exc, attempt):
                        if attempt == max_retries and attempt > 0:
                            _log_exhausted(func, exc)
                        raise
                    _log_attempt(func, attempt, exc, delay)
                    await asyncio.sleep(delay)
                    delay = min(delay * exponential_base, max_delay)
                    attempt += 1

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    if not _should_retry(exc, attempt):
                        if attempt == max_retries and attempt > 0:
                            _log_exhausted(func, exc)
                        raise
                    _log_attempt(func, attempt, exc, delay)
                    time.sleep(delay)
                    delay = min(delay * exponential_base, max_delay)
                    attempt += 1

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def with_timeout(
    timeout_seconds: float,
    timeout_exception: Optional[Type[Exception]] = None
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Bound an async call by ``timeout_seconds``.

    Raises ``asyncio.TimeoutError`` (or ``timeout_exception`` with a
    descriptive message) when the call does not finish in time. Usually
    applied inline around an injected collaborator:

        >>> result = await with_timeout(step_timeout)(executor.execute)(service_id, action)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout_seconds)
            except asyncio.TimeoutError as exc:
                if timeout_exception is None:
                    raise
                raise timeout_exception(
                    f"{getattr(func, '__qualname__', 'call')} timed out after {timeout_seconds} seconds"
                ) from exc

        return wrapper
    return decorator
