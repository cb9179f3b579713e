"""
Base DTO: snake_case attributes, camelCase JSON.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """DTO serialized with camelCase keys and populated from either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
