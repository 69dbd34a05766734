from typing import Any, Optional

from daycycle.api.service import OperationService
from daycycle.common.exceptions import configuration_error
from daycycle.monitoring import OperationDashboard, OperationMetrics
from daycycle.orchestration import EODRequest, OperationResult, SODRequest
from daycycle.protocols.providers import ActionExecutor
from daycycle.protocols.store import OperationStore
from daycycle.settings import get_settings
from daycycle.store import create_store


_operation_service: Optional[OperationService] = None


def configure(
    executor: ActionExecutor,
    store: Optional[OperationStore] = None,
    **kwargs: Any,
) -> OperationService:
    """Create the module-level OperationService.

    Args:
        executor: Action executor for Start/Stop/HealthCheck calls
        store: State store; defaults to ``create_store()`` from settings
        **kwargs: Passed through to OperationService (notifier, sampler, ...)
    """
    global _operation_service
    settings = kwargs.pop("settings", None) or get_settings()
    _operation_service = OperationService(
        store or create_store(settings.store),
        executor,
        settings=settings,
        **kwargs,
    )
    return _operation_service


def get_operation_service() -> OperationService:
    if _operation_service is None:
        raise configuration_error(
            "Operation service is not configured; call daycycle.api.configure(executor) first"
        )
    return _operation_service


async def execute_sod(
    request: SODRequest,
    operation_code: Optional[str] = None,
    *,
    initiated_by: str = "system",
    ctx: Optional[Any] = None,
) -> OperationResult:
    """Run a Start-of-Day operation on the configured service."""
    return await get_operation_service().execute_sod(
        request, operation_code, initiated_by=initiated_by, ctx=ctx
    )


async def execute_eod(
    request: EODRequest,
    operation_code: Optional[str] = None,
    *,
    initiated_by: str = "system",
    ctx: Optional[Any] = None,
) -> OperationResult:
    """Run an End-of-Day operation on the configured service."""
    return await get_operation_service().execute_eod(
        request, operation_code, initiated_by=initiated_by, ctx=ctx
    )


async def cancel_operation(operation_code: str, *, ctx: Optional[Any] = None) -> bool:
    return await get_operation_service().cancel_operation(operation_code, ctx=ctx)


async def get_operation_metrics(operation_code: str, *, ctx: Optional[Any] = None) -> OperationMetrics:
    return await get_operation_service().get_operation_metrics(operation_code, ctx=ctx)


async def get_dashboard(*, ctx: Optional[Any] = None) -> OperationDashboard:
    return await get_operation_service().get_dashboard(ctx=ctx)
