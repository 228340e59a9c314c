"""
Shared query and paging schemas
"""
from math import ceil
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, Field

from hbm_service.core.config import settings

T = TypeVar("T")


class QueryOptions(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default_factory=lambda: settings.DEFAULT_PAGE_SIZE, ge=1)
    sort_by: Optional[str] = None
    sort_order: Literal["asc", "desc"] = "desc"
    filters: Dict[str, Any] = Field(default_factory=dict)

    def with_filters(self, **filters) -> "QueryOptions":
        """Copy with extra equality filters; the new values win."""
        return self.model_copy(update={"filters": {**self.filters, **filters}})

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginatedResult(BaseModel, Generic[T]):
    items: List[T]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    class Config:
        arbitrary_types_allowed = True
