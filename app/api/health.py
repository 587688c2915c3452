"""Health check endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, Any
from datetime import datetime, timezone
import logging
import time

from app.core.config import settings
from app.core.database import get_db
from app.models.category import Category

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """Liveness probe"""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health/detailed")
async def detailed_health_check(
    db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Readiness probe: database round trip and category count"""
    report: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {}
    }

    started = time.perf_counter()
    try:
        categories = await db.scalar(select(func.count()).select_from(Category))
        report["components"]["database"] = {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            "categories": categories,
        }
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        report["components"]["database"] = {"status": "unhealthy", "error": str(e)}
        report["status"] = "unhealthy"

    return report
