"""
Common dependencies for FastAPI
"""

from fastapi import Query, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.services.category_store import SQLAlchemyCategoryStore
from app.services.category_tree import CategoryTree
from .pagination import PaginationParams


def get_pagination_params(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(
        settings.DEFAULT_PAGE_SIZE,
        ge=1,
        le=settings.MAX_PAGE_SIZE,
        description="Page size"
    )
) -> PaginationParams:
    """Get pagination parameters from query"""
    return PaginationParams(page=page, size=size)


def get_category_tree(db: AsyncSession = Depends(get_db)) -> CategoryTree:
    """Category tree service bound to the request's database session"""
    return CategoryTree(SQLAlchemyCategoryStore(db))
