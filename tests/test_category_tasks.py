"""Scheduled category maintenance"""

from contextlib import asynccontextmanager

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.celery_app import celery_app
from app.models.base import Base
from app.services.category_store import SQLAlchemyCategoryStore
from app.services.category_tree import CategoryTree
from app.tasks import category_tasks


@pytest.fixture
def task_db(db_session, monkeypatch):
    @asynccontextmanager
    async def session_context():
        yield db_session

    monkeypatch.setattr(category_tasks, "get_db_context", session_context)
    return db_session


def test_repair_is_scheduled():
    entry = celery_app.conf.beat_schedule["repair-category-tree"]

    assert entry["task"] == category_tasks.repair_category_tree.name
    assert entry["options"]["queue"] == "maintenance"


async def test_verify_and_repair_reports(task_db):
    store = SQLAlchemyCategoryStore(task_db)
    tree = CategoryTree(store)
    electronics = await tree.create("Electronics")
    mobiles = await tree.create("Mobiles", parent=electronics.id)

    record = await store.find_by_id(mobiles.id)
    record.level = 5
    await store.save(record)

    report = await category_tasks.run_verify()
    assert report["consistent"] is False
    assert report["issues"][0]["kind"] == "level_mismatch"

    report = await category_tasks.run_repair()
    assert report["updated_ids"] == [mobiles.id]

    report = await category_tasks.run_verify()
    assert report["consistent"] is True


def test_repair_task_runs_back_to_back(tmp_path, monkeypatch):
    pooled = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}")
    sessions = async_sessionmaker(pooled, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session_context():
        async with sessions() as session:
            yield session

    async def create_tables():
        async with pooled.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    monkeypatch.setattr(category_tasks, "engine", pooled)
    monkeypatch.setattr(category_tasks, "get_db_context", session_context)
    category_tasks._run(create_tables())

    first = category_tasks.repair_category_tree.apply().get()
    assert pooled.pool.checkedin() == 0

    second = category_tasks.repair_category_tree.apply().get()
    assert first["scanned"] == second["scanned"] == 0
    assert pooled.pool.checkedin() == 0
