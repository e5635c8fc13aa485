import math
from typing import Generic, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

from slotdesk.config import settings

ItemT = TypeVar("ItemT")


class PageParams(BaseModel):
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PageParams:
    """FastAPI dependency for the `page` / `limit` query parameters."""
    return PageParams(page=page, limit=limit)


class Page(BaseModel, Generic[ItemT]):
    """List envelope: `{items, total, page, totalPages}`."""

    items: list[ItemT]
    total: int
    page: int
    total_pages: int = Field(serialization_alias="totalPages")

    @classmethod
    def build(cls, items: list[ItemT], total: int, params: PageParams) -> "Page[ItemT]":
        return cls(
            items=items,
            total=total,
            page=params.page,
            total_pages=math.ceil(total / params.limit) if total else 0,
        )
