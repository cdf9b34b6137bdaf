"""
Shared response envelope and camelCase base model.

Every endpoint answers with `{success, message, data}` on success and
`{success: false, message, errors}` on rejection. Field names are
camelCase on the wire and snake_case in Python.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(CamelModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    errors: Optional[dict] = None
