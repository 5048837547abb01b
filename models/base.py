"""
Shared pydantic base for the API schemas.
"""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """
    Response/request schema base.

    Strings are trimmed and assignments re-validated; schemas can be built
    straight from the pipeline dataclasses (from_attributes).
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
    )
