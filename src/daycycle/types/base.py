"""Base model class for all daycycle models with serialization support."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class DaycycleBaseModel(BaseModel):
    """Base model for all daycycle models with built-in serialization.

    Provides common functionality for all daycycle models including:
    - Serialization to dictionary via to_dict()
    - Consistent configuration
    - Proper handling of nested models, enums and timestamps
    """
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_assignment=True,
        validate_default=True
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to a JSON-friendly dictionary.

        Nested models are converted recursively, enums are replaced by their
        values and timestamps by ISO-8601 strings.
        """
        data = self.model_dump(by_alias=False, exclude_none=True)

        def convert_nested(obj):
            if isinstance(obj, DaycycleBaseModel):
                return obj.to_dict()
            elif isinstance(obj, dict):
                return {k: convert_nested(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple, set, frozenset)):
                return [convert_nested(item) for item in obj]
            elif isinstance(obj, (datetime, date)):
                return obj.isoformat()
            elif isinstance(obj, Enum):
                return obj.value
            return obj

        return convert_nested(data)


class FrozenModel(DaycycleBaseModel):
    """Immutable variant used for graph and plan values."""
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        use_enum_values=True,
        validate_default=True,
        frozen=True
    )
