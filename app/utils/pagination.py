"""
Pagination utilities
"""

from typing import TypeVar, Generic, List
from pydantic import BaseModel, Field

from app.core.config import settings

T = TypeVar('T')


class PaginationParams(BaseModel):
    """Page number and size taken from the query string"""
    page: int = Field(1, ge=1, description="Page number")
    size: int = Field(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Page size")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of items plus the totals needed to render pagers"""
    items: List[T]
    total: int
    page: int
    size: int
    pages: int
