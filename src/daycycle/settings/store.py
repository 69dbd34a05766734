from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from daycycle.constants import StoreBackend


class StoreSettings(BaseSettings):
    """State store selection (``STORE_`` prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
        extra="ignore"
    )

    backend: StoreBackend = Field(
        default=StoreBackend.MEMORY,
        description="'memory' for the in-process store, 'sql' for the SQLAlchemy store"
    )
    url: str = Field(
        default="sqlite://",
        description="SQLAlchemy database URL used by the 'sql' backend"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log"
    )
