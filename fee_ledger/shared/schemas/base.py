from math import ceil
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class BaseSchema(BaseModel):
    """Reads ORM objects directly; accepts field names and aliases alike."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ErrorDetail(BaseSchema):
    field: str | None = None
    message: str


class SuccessResponse(BaseSchema, Generic[T]):
    """Envelope for every successful API answer."""

    success: bool = True
    data: T
    message: str | None = None


ApiResponse = SuccessResponse


class ErrorResponse(BaseSchema):
    """Envelope for failures; `errors` names the offending fields when known."""

    success: bool = False
    data: None = None
    message: str
    errors: list[ErrorDetail] = []


def page_offset(page: int, limit: int) -> int:
    """Row offset of a 1-based page."""
    return (page - 1) * limit


class PaginatedResponse(BaseSchema, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def create(cls, items: list[T], total: int, page: int, limit: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            pages=ceil(total / limit) if limit else 0,
        )
