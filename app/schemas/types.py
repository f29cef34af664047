"""
Shared Pydantic types for schema validation.

CamelModel: request bodies arrive with camelCase keys (``inventoryId``,
``uniqueId``) while handlers read snake_case attributes.
"""

from typing import Annotated
from pydantic import BaseModel, BeforeValidator, ConfigDict, StringConstraints
from pydantic.alias_generators import to_camel

# Coerces non-str ids (ints, UUIDs) to str
IdStr = Annotated[str, BeforeValidator(lambda v: str(v) if not isinstance(v, str) else v)]

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    """Base schema accepting both camelCase aliases and field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
