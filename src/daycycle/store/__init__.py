"""Operation state stores.

Two implementations of the OperationStore protocol ship with daycycle:

    - InMemoryOperationStore: dictionaries guarded by an asyncio.Lock
    - SqlOperationStore: SQLAlchemy tables, in-memory SQLite by default

``create_store`` picks one from StoreSettings.
"""

from typing import Optional

from daycycle.common.exceptions import configuration_error
from daycycle.constants import StoreBackend
from daycycle.protocols.store import OperationStore
from daycycle.settings import StoreSettings
from daycycle.store.memory import InMemoryOperationStore, InMemoryStoreSession
from daycycle.store.sql import SqlOperationStore, SqlStoreSession


def create_store(settings: Optional[StoreSettings] = None) -> OperationStore:
    """Create the state store configured by ``settings``.

    Args:
        settings: Store settings (defaults to StoreSettings from the environment)

    Returns:
        An OperationStore implementation

    Raises:
        DaycycleError: CONFIG_ERROR for an unsupported backend
    """
    settings = settings or StoreSettings()
    backend = StoreBackend(settings.backend)
    if backend == StoreBackend.MEMORY:
        return InMemoryOperationStore()
    if backend == StoreBackend.SQL:
        return SqlOperationStore(url=settings.url, echo=settings.echo)
    raise configuration_error(f"Unsupported store backend: {backend}", config_key="STORE_BACKEND")


__all__ = [
    "create_store",
    "InMemoryOperationStore",
    "InMemoryStoreSession",
    "SqlOperationStore",
    "SqlStoreSession",
]
