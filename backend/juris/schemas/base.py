"""Shared Pydantic building blocks for the AI API schemas."""

from __future__ import annotations

import math
from typing import Generic, TypeVar
from datetime import datetime  # noqa: TC003 - Required at runtime for Pydantic
from uuid import UUID  # noqa: TC003 - Required at runtime for Pydantic

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Reads ORM rows directly; enums serialize as their values."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        use_enum_values=True,
    )


class BaseResponse(BaseSchema):
    """Persisted resource: identifier plus audit timestamps."""

    id: UUID = Field(..., examples=["0f8b5a52-3c1e-4c8e-9d59-5b0f6c1e2a77"])
    created_at: datetime
    updated_at: datetime


class PaginationParams(BaseSchema):
    page: int = Field(default=1, ge=1, description="1-indexed page number")
    size: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size


T = TypeVar("T")


class PaginatedResponse(BaseSchema, Generic[T]):
    """One page of a listing with the totals needed to page through it."""

    items: list[T]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    size: int = Field(..., ge=1)
    pages: int = Field(..., ge=0)

    @classmethod
    def create(cls, items: list[T], total: int, page: int, size: int) -> PaginatedResponse[T]:
        return cls(
            items=items,
            total=total,
            page=page,
            size=size,
            pages=math.ceil(total / size) if size else 0,
        )


class SuccessResponse(BaseSchema):
    success: bool = True
    message: str = Field(..., examples=["Conversation deleted successfully"])


__all__ = [
    "BaseResponse",
    "BaseSchema",
    "PaginatedResponse",
    "PaginationParams",
    "SuccessResponse",
]
