from enum import Enum


class StoreBackend(str, Enum):
    """Operation store implementation selected by configuration."""

    MEMORY = "memory"
    SQL = "sql"
