import math
from typing import Any, Generic, List, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel, Field

T = TypeVar("T")

RESPONSE_SUCCESSFUL = 1
RESPONSE_FAILED = 0


class Pagination(BaseModel):
    skip: int = Field(0, ge=0)
    limit: int = Field(10, ge=1)


class Page(BaseModel, Generic[T]):
    items: List[T]
    total: int


class PageMeta(BaseModel, Generic[T]):
    total: int
    currentPage: int
    limit: int
    totalPages: int
    hasNext: bool
    hasPrevious: bool
    items: List[T]


class Envelope(BaseModel, Generic[T]):
    responseCode: int = RESPONSE_SUCCESSFUL
    responseText: str
    data: Optional[T] = None


class ErrorEnvelope(BaseModel):
    responseCode: int = RESPONSE_FAILED
    responseText: str
    statusCode: int
    timestamp: str
    path: str
    errorData: Optional[Any] = None


class PageParams(BaseModel):
    page: int
    limit: int

    def to_pagination(self) -> Pagination:
        return Pagination(skip=(self.page - 1) * self.limit, limit=self.limit)

    def shape(self, page: Page) -> dict:
        total_pages = math.ceil(page.total / self.limit)
        return {
            "total": page.total,
            "currentPage": self.page,
            "limit": self.limit,
            "totalPages": total_pages,
            "hasNext": self.page < total_pages,
            "hasPrevious": self.page > 1,
            "items": page.items,
        }


def page_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Page size"),
) -> PageParams:
    return PageParams(page=page, limit=limit)
