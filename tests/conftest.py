"""Shared fixtures for category tests"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_categories.db")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.models.base import Base
from app.services.category_store import InMemoryCategoryStore
from app.services.category_tree import CategoryTree


@pytest.fixture
def store():
    return InMemoryCategoryStore()


@pytest.fixture
def tree(store):
    return CategoryTree(store, delete_policy="reject")


@pytest.fixture
async def catalog(tree):
    """Electronics > Mobiles > Accessories, plus an unrelated Books root"""
    electronics = await tree.create("Electronics")
    mobiles = await tree.create("Mobiles", parent=electronics.id)
    accessories = await tree.create("Accessories", parent=mobiles.id)
    books = await tree.create("Books")
    return {
        "electronics": electronics.id,
        "mobiles": mobiles.id,
        "accessories": accessories.id,
        "books": books.id,
    }


@pytest.fixture
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def client(store):
    from app.main import app
    from app.utils.dependencies import get_category_tree

    app.dependency_overrides[get_category_tree] = lambda: CategoryTree(store, delete_policy="reject")
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def check_invariants():
    """Assert every hierarchy invariant directly against stored records"""

    def _check(store: InMemoryCategoryStore):
        records = store.records
        slugs = [r.slug for r in records.values()]
        assert len(slugs) == len(set(slugs)), "duplicate slugs"

        for record in records.values():
            if record.parent is None:
                assert record.level == 0
                assert record.path == [record.id]
            else:
                parent = records[record.parent]
                assert record.level == parent.level + 1
                assert record.path == parent.path + [record.id]

            assert record.path.count(record.id) == 1

            actual_children = {r.id for r in records.values() if r.parent == record.id}
            assert set(record.children) == actual_children
            assert len(record.children) == len(actual_children)
            assert record.is_leaf == (not record.children)

    return _check
