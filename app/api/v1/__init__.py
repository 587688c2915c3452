"""API v1 routes aggregation"""

from fastapi import APIRouter

from .categories.router import router as categories_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(categories_router, prefix="/categories", tags=["Categories"])

# Export router
router = api_router
