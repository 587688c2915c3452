"""Category tree maintenance tasks"""

from celery.utils.log import get_task_logger
import asyncio

from app.core.celery_app import celery_app
from app.core.database import engine, get_db_context
from app.services.category_store import SQLAlchemyCategoryStore
from app.services.category_tree import CategoryTree

logger = get_task_logger(__name__)


async def run_repair() -> dict:
    """Repair pass against the configured database"""
    async with get_db_context() as db:
        report = await CategoryTree(SQLAlchemyCategoryStore(db)).repair()
    return report.model_dump()


async def run_verify() -> dict:
    """Verification pass against the configured database"""
    async with get_db_context() as db:
        report = await CategoryTree(SQLAlchemyCategoryStore(db)).verify()
    return report.model_dump()


def _run(coro) -> dict:
    """Run a coroutine on its own loop and release pooled connections before the loop closes"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.run_until_complete(engine.dispose())
        loop.close()


@celery_app.task
def repair_category_tree():
    """Rebuild level, path, children and leaf flags from parent references"""
    try:
        report = _run(run_repair())
        logger.info(
            f"Category repair scanned {report['scanned']} categories, "
            f"updated {report['updated']}"
        )
        return report
    except Exception as e:
        logger.error(f"Error repairing category tree: {str(e)}")
        raise


@celery_app.task
def verify_category_tree():
    """Report category tree inconsistencies without changing anything"""
    try:
        report = _run(run_verify())
        if not report["consistent"]:
            logger.warning(f"Category tree has {len(report['issues'])} consistency issues")
        return report
    except Exception as e:
        logger.error(f"Error verifying category tree: {str(e)}")
        raise
