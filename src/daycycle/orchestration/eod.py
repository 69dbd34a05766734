"""End-of-Day orchestrator.

EOD stops services in dependency order after a transaction cutoff: new
transactions are refused and in-flight ones are given time to drain before
the first phase starts.
"""

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from daycycle.common.exceptions import DaycycleError, ErrorCode, operation_failure, validation_error
from daycycle.constants import OperationType
from daycycle.graph.types import ServiceDescriptor
from daycycle.observability.context import sanitize_extras
from daycycle.orchestration.base import BaseOrchestrator, _Run
from daycycle.orchestration.types import CutoffResult, OperationRequest
from daycycle.types.operations import Operation
from daycycle.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from daycycle.protocols.providers import TransactionGateway


class EODOrchestrator(BaseOrchestrator):
    """Stops services after the transaction cutoff.

    Attributes:
        transaction_gateway: Optional transaction controls; without one the
            cutoff only records its timestamp
    """

    operation_type = OperationType.EOD
    step_verb = "Stopping"

    def __init__(self, *args, transaction_gateway: Optional["TransactionGateway"] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.transaction_gateway = transaction_gateway

    async def get_shutdown_sequence(
        self,
        environment: str,
        service_ids: Optional[List[int]] = None,
    ) -> List[ServiceDescriptor]:
        """Descriptors of ``environment`` in the order EOD would stop them."""
        return await self.get_service_sequence(environment, service_ids)

    async def execute_cutoff(
        self,
        environment: str,
        cutoff_time: Optional[datetime] = None,
    ) -> CutoffResult:
        """Stop new transactions and wait for in-flight ones to drain.

        Args:
            environment: Target environment
            cutoff_time: Cutoff moment; naive values are read in the configured
                time zone, None means now

        Returns:
            CutoffResult with the effective cutoff and the time waited

        Raises:
            DaycycleError: UNKNOWN_ENVIRONMENT, or TIMEOUT_ERROR when
                transactions are still pending after the configured wait
        """
        environment = environment.upper()
        if not self.settings.is_environment_known(environment):
            raise validation_error(
                f"Unknown environment {environment}",
                errors=[f"Unknown environment {environment}"],
                error_code=ErrorCode.UNKNOWN_ENVIRONMENT,
            )

        effective = ensure_utc(cutoff_time, self.settings.time_zone) if cutoff_time else utc_now()
        self.logger.info(
            "eod.cutoff.start",
            extra=sanitize_extras({"environment": environment, "cutoff_time": effective.isoformat()}),
        )

        gateway = self.transaction_gateway
        if gateway is None:
            self.logger.info(
                "eod.cutoff.no_gateway",
                extra=sanitize_extras({"environment": environment}),
            )
            return CutoffResult(environment=environment, cutoff_time=effective, skipped=True)

        await gateway.stop_new_transactions(environment, effective)

        orchestration = self.settings.orchestration
        loop = asyncio.get_running_loop()
        started = loop.time()
        while True:
            pending = await gateway.pending_transaction_count(environment, effective)
            waited = loop.time() - started
            if pending <= 0:
                break
            if waited >= orchestration.cutoff_wait_timeout_seconds:
                raise DaycycleError.from_error_code(
                    ErrorCode.TIMEOUT_ERROR,
                    f"{pending} transaction(s) still pending in {environment} after "
                    f"{orchestration.cutoff_wait_timeout_seconds} seconds",
                    details={"environment": environment, "pending_transactions": pending},
                )
            self.logger.debug(
                "eod.cutoff.waiting",
                extra=sanitize_extras({"environment": environment, "pending_transactions": pending}),
            )
            remaining = orchestration.cutoff_wait_timeout_seconds - waited
            await asyncio.sleep(min(orchestration.cutoff_poll_interval_seconds, remaining))

        self.logger.info(
            "eod.cutoff.complete",
            extra=sanitize_extras({"environment": environment, "waited_seconds": round(waited, 3)}),
        )
        return CutoffResult(
            environment=environment,
            cutoff_time=effective,
            transactions_stopped=True,
            pending_transactions=0,
            waited_seconds=waited,
        )

    async def _before_phases(self, run: _Run, request: OperationRequest) -> None:
        operation = run.operation
        requested = getattr(request, "cutoff_time", None)
        if operation.dry_run:
            self.logger.info(
                "eod.cutoff.skipped_dry_run",
                extra=sanitize_extras({"operation_code": operation.operation_code}),
            )
            if requested is not None:
                operation.cutoff_time = ensure_utc(requested, self.settings.time_zone)
                await self._save(operation=operation)
            return

        try:
            result = await self.execute_cutoff(operation.environment, requested)
        except DaycycleError:
            raise
        except Exception as exc:
            raise operation_failure(
                f"Transaction cutoff failed: {exc}",
                operation_code=operation.operation_code,
                step_name="Transaction Cutoff",
                cause=exc,
            )
        operation.cutoff_time = result.cutoff_time
        await self._save(operation=operation)

    async def _after_rollback(self, operation: Operation) -> None:
        if self.transaction_gateway is None or operation.dry_run:
            return
        try:
            await self.transaction_gateway.resume_transactions(operation.environment)
            self.logger.info(
                "eod.transactions.resumed",
                extra=sanitize_extras({"operation_code": operation.operation_code}),
            )
        except Exception as exc:
            self.logger.warning(
                "eod.transactions.resume_failed",
                extra=sanitize_extras({
                    "operation_code": operation.operation_code,
                    "error": str(exc),
                }),
            )
