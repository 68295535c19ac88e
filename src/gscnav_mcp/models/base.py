"""Base model with common configuration."""

from pydantic import BaseModel as PydanticBaseModel
from pydantic import ConfigDict


class BaseGSCModel(PydanticBaseModel):
    """Base model for all GSCNav models."""

    model_config = ConfigDict(
        # Use enum values instead of names
        use_enum_values=True,
        # Validate on assignment
        validate_assignment=True,
        # Allow population by field name
        populate_by_name=True,
        # Validate defaults
        validate_default=True,
    )
