"""
BikeShop Service Hub - Common Schemas

Response envelope, pagination metadata and sweep results shared by all
endpoints and background jobs.
"""

import math
from datetime import datetime, timezone
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class PaginationMeta(BaseModel):
    """Pagination block included in list responses."""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PaginationMeta":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ResponseMeta(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    pagination: Optional[PaginationMeta] = None


class ApiResponse(BaseModel, Generic[T]):
    """Standard success envelope: {success, data, meta}."""
    success: bool = True
    data: T
    meta: ResponseMeta = Field(default_factory=ResponseMeta)


def envelope(data, pagination: Optional[PaginationMeta] = None) -> dict:
    """Wrap a payload in the success envelope."""
    return {
        "success": True,
        "data": data,
        "meta": ResponseMeta(pagination=pagination),
    }


class SweepResult(BaseModel):
    """Outcome of a batch status sweep."""
    processed: int = 0
    errors: List[str] = Field(default_factory=list)
