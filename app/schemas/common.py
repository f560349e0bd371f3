"""Response envelope shared by every endpoint."""

from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ApiResponse(BaseModel, Generic[T]):
    """Schema for the JSON envelope: {success, message, data?, errors?}."""
    success: bool = True
    message: str = "OK"
    data: Optional[T] = None
    errors: Optional[List[Any]] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_users: int
    has_next: bool
    has_prev: bool


def error_envelope(message: str, errors: Optional[List[Any]] = None) -> dict:
    """Build a failure envelope."""
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body
