"""Shared schema building blocks: camelCase base model and response envelopes."""

from __future__ import annotations

import math
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for every API schema: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class RequestModel(CamelModel):
    """Request bodies reject unknown fields and carry enum members as plain values."""

    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit) if limit else 0)


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope: ``{"success": true, "data": ..., "message": ...}``."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class MessageResponse(CamelModel):
    success: bool = True
    message: str


class PageQuery(CamelModel):
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit
