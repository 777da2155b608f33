"""
Model Base

Shared pydantic configuration for every persisted or engine-facing model.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ReviewModel(BaseModel):
    """Base model: snake_case attributes, camelCase JSON, no unknown keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready dict using the camelCase wire names."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
