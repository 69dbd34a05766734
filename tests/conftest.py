"""Shared fixtures for daycycle tests."""

import asyncio
from typing import Dict, List, Optional, Set, Tuple

import pytest

from daycycle.constants import ServiceAction
from daycycle.graph.types import DependencyRef, ServiceDescriptor
from daycycle.orchestration.types import ActionResult
from daycycle.settings import _Settings
from daycycle.store import InMemoryOperationStore


class FakeExecutor:
    """Action executor that records calls and fails selected services."""

    def __init__(self, fail_services: Optional[Set[int]] = None, delay: float = 0.0):
        self.fail_services: Set[int] = set(fail_services or ())
        self.raise_for: Dict[int, Exception] = {}
        self.unhealthy: Set[int] = set()
        self.delay = delay
        self.calls: List[Tuple[int, str]] = []

    async def execute(self, service_id: int, action: ServiceAction) -> ActionResult:
        action = ServiceAction(action)
        self.calls.append((service_id, action.value))
        if self.delay:
            await asyncio.sleep(self.delay)
        if service_id in self.raise_for:
            raise self.raise_for[service_id]
        if action == ServiceAction.HEALTH_CHECK:
            return ActionResult(succeeded=service_id not in self.unhealthy)
        if service_id in self.fail_services:
            return ActionResult(succeeded=False, error_message=f"service {service_id} refused {action.value}")
        return ActionResult(succeeded=True, detail=f"{action.value} ok")

    def mutating_calls(self) -> List[Tuple[int, str]]:
        return [call for call in self.calls if call[1] != ServiceAction.HEALTH_CHECK.value]


def make_service(
    service_id: int,
    name: str,
    sod: Optional[List] = None,
    eod: Optional[List] = None,
    **kwargs,
) -> ServiceDescriptor:
    return ServiceDescriptor(
        service_id=service_id,
        name=name,
        environment=kwargs.pop("environment", "PROD"),
        sod_dependencies=sod or [],
        eod_dependencies=eod or [],
        **kwargs,
    )


@pytest.fixture
def settings() -> _Settings:
    return _Settings(
        environments="PROD,UAT",
        time_zone="UTC",
        orchestration={
            "max_step_retries": 0,
            "retry_delay_seconds": 0.0,
            "step_timeout_seconds": 2.0,
            "cutoff_wait_timeout_seconds": 0.2,
            "cutoff_poll_interval_seconds": 0.01,
        },
        monitoring={
            "sampling_interval_seconds": 0.05,
            "history_limit": 100,
            "health_check_timeout_seconds": 1.0,
        },
    )


@pytest.fixture
def chain_services() -> List[ServiceDescriptor]:
    """Four services started as Database -> Core -> Channels -> Gateway."""
    return [
        make_service(1, "Database", eod=[2], is_critical_for_sod=True),
        make_service(2, "Core", sod=[1], eod=[3]),
        make_service(3, "Channels", sod=[2], eod=[4]),
        make_service(4, "Gateway", sod=[3]),
    ]


@pytest.fixture
def store(chain_services) -> InMemoryOperationStore:
    return InMemoryOperationStore(chain_services)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def soft_ref():
    def _ref(service_id: int) -> DependencyRef:
        return DependencyRef(service_id=service_id, kind="Soft")
    return _ref
