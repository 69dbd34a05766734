"""Start-of-Day orchestrator."""

from typing import List, Optional

from daycycle.constants import OperationType
from daycycle.graph.types import ServiceDescriptor
from daycycle.orchestration.base import BaseOrchestrator


class SODOrchestrator(BaseOrchestrator):
    """Starts services in dependency order.

    Prerequisites are started first; rollback stops what was started.
    """

    operation_type = OperationType.SOD
    step_verb = "Starting"

    async def get_startup_sequence(
        self,
        environment: str,
        service_ids: Optional[List[int]] = None,
    ) -> List[ServiceDescriptor]:
        """Descriptors of ``environment`` in the order SOD would start them."""
        return await self.get_service_sequence(environment, service_ids)
