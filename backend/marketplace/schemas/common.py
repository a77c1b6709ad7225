"""
Shared response envelope and pagination schemas.

Every endpoint answers with ``ApiResponse``: ``success`` plus an optional
human-readable ``message`` and the payload under ``data``. Error responses
use the same ``success``/``message`` keys with an ``error`` code instead of
``data``.
"""

from math import ceil
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard response envelope."""

    success: bool = Field(default=True, description="Whether the request succeeded")
    message: Optional[str] = Field(None, description="Human-readable outcome")
    data: Optional[T] = Field(None, description="Response payload")


class Page(BaseModel, Generic[T]):
    """One page of a paginated listing."""

    items: list[T] = Field(default_factory=list, description="Items on this page")
    total: int = Field(..., ge=0, description="Total matching items")
    page: int = Field(..., ge=1, description="Current page number")
    limit: int = Field(..., ge=1, description="Page size")
    pages: int = Field(0, ge=0, description="Total number of pages")

    @classmethod
    def build(cls, items: list, total: int, page: int, limit: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            pages=ceil(total / limit) if limit else 0,
        )


class ErrorResponse(BaseModel):
    """Error envelope produced by the exception handlers."""

    success: bool = False
    message: str
    error: str
    request_id: Optional[str] = None
    details: Optional[list[dict]] = None


def ok(data: Optional[T] = None, message: Optional[str] = None) -> ApiResponse[T]:
    """Wrap a payload in a successful envelope."""
    return ApiResponse(success=True, message=message, data=data)
