"""Category stores and the tree over the SQL store"""

import pytest

from app.core.exceptions import CategoryValidationError, InvalidOperation
from app.schemas.category import CategoryRecord
from app.services.category_store import InMemoryCategoryStore, SQLAlchemyCategoryStore
from app.services.category_tree import CategoryTree


@pytest.fixture
def sql_store(db_session):
    return SQLAlchemyCategoryStore(db_session)


@pytest.fixture
def sql_tree(sql_store):
    return CategoryTree(sql_store, delete_policy="reject")


async def snapshot_store(sql_store):
    """In-memory copy of everything in the SQL store, for invariant checks"""
    return InMemoryCategoryStore(await sql_store.find_where())


async def seed(sql_store):
    records = [
        CategoryRecord(id="e", name="Electronics", slug="electronics", path=["e"], children=["m"], is_leaf=False),
        CategoryRecord(id="m", name="Mobiles", slug="mobiles", parent="e", level=1, path=["e", "m"], children=["a"], is_leaf=False),
        CategoryRecord(id="a", name="Accessories", slug="accessories", parent="m", level=2, path=["e", "m", "a"]),
        CategoryRecord(id="b", name="Books", slug="books", path=["b"], sort_order=1),
    ]
    for record in records:
        await sql_store.save(record)


class TestSQLAlchemyStore:

    async def test_save_and_lookup(self, sql_store):
        saved = await sql_store.save(CategoryRecord(name="Toys", slug="toys", path=[]))

        assert saved.id is not None
        assert saved.created_at is not None
        assert (await sql_store.find_by_id(saved.id)).name == "Toys"
        assert (await sql_store.find_by_slug("toys")).id == saved.id
        assert await sql_store.find_by_id("missing") is None
        assert await sql_store.find_by_slug("missing") is None

    async def test_save_replaces_existing(self, sql_store):
        await seed(sql_store)
        books = await sql_store.find_by_id("b")
        books.children = ["x"]
        books.is_leaf = False

        await sql_store.save(books)

        stored = await sql_store.find_by_id("b")
        assert stored.children == ["x"]
        assert stored.is_leaf is False

    async def test_filters(self, sql_store):
        await seed(sql_store)

        roots = await sql_store.find_where({"parent": None}, sort=[("name", 1)])
        assert [r.id for r in roots] == ["b", "e"]

        below_e = await sql_store.find_where({"path__contains": "e", "id__ne": "e"}, sort=[("level", 1)])
        assert [r.id for r in below_e] == ["m", "a"]

        picked = await sql_store.find_where({"id__in": ["a", "b"]}, sort=[("id", 1)])
        assert [r.id for r in picked] == ["a", "b"]

        assert await sql_store.count_where({"level": 0}) == 2
        assert await sql_store.count_where() == 4

    async def test_sort_and_paging(self, sql_store):
        await seed(sql_store)

        page = await sql_store.find_where(sort=[("sort_order", -1), ("name", 1)], skip=1, limit=2)
        assert [r.id for r in page] == ["a", "e"]

    async def test_unknown_filter_rejected(self, sql_store):
        with pytest.raises(CategoryValidationError):
            await sql_store.find_where({"colour": "red"})
        with pytest.raises(CategoryValidationError):
            await sql_store.find_where(sort=[("path", 1)])

    async def test_duplicate_slug_rejected(self, sql_store):
        await seed(sql_store)

        with pytest.raises(CategoryValidationError):
            await sql_store.save(CategoryRecord(id="dup", name="Books", slug="books", path=["dup"]))

        assert (await sql_store.find_by_slug("books")).id == "b"
        assert await sql_store.find_by_id("dup") is None

    async def test_delete(self, sql_store):
        await seed(sql_store)
        await sql_store.delete_by_id("b")
        await sql_store.delete_by_id("missing")

        assert await sql_store.find_by_id("b") is None
        assert await sql_store.count_where() == 3


class TestInMemoryStore:

    async def test_records_are_copies(self):
        store = InMemoryCategoryStore()
        saved = await store.save(CategoryRecord(id="t", name="Toys", slug="toys", path=["t"]))

        saved.children.append("x")
        assert store.records["t"].children == []

    async def test_sort_by_field(self):
        store = InMemoryCategoryStore([
            CategoryRecord(id="x", name="Child", slug="child", parent="r", path=["r", "x"], level=1),
            CategoryRecord(id="r", name="Root", slug="root", path=["r"]),
        ])
        ordered = await store.find_where(sort=[("id", 1)])
        assert [r.id for r in ordered] == ["r", "x"]

    async def test_created_at_kept_on_resave(self):
        store = InMemoryCategoryStore()
        first = await store.save(CategoryRecord(id="t", name="Toys", slug="toys", path=["t"]))
        second = await store.save(first.model_copy(update={"name": "Games"}))

        assert second.created_at == first.created_at
        assert second.updated_at >= first.updated_at


class TestTreeOverSQL:

    async def test_build_move_and_delete(self, sql_tree, sql_store, check_invariants):
        electronics = await sql_tree.create("Electronics")
        mobiles = await sql_tree.create("Mobiles", parent=electronics.id)
        accessories = await sql_tree.create("Accessories", parent=mobiles.id)
        books = await sql_tree.create("Books")
        check_invariants(await snapshot_store(sql_store))

        await sql_tree.reparent(mobiles.id, books.id)
        check_invariants(await snapshot_store(sql_store))
        moved = await sql_tree.get(accessories.id)
        assert moved.path == [books.id, mobiles.id, accessories.id]

        with pytest.raises(InvalidOperation):
            await sql_tree.reparent(books.id, accessories.id)

        deleted = await sql_tree.delete(books.id, policy="cascade")
        assert deleted == [accessories.id, mobiles.id, books.id]
        check_invariants(await snapshot_store(sql_store))
        assert [c.id for c in await sql_tree.get_tree()] == [electronics.id]

    async def test_slug_collision(self, sql_tree):
        first = await sql_tree.create("Home & Garden")
        second = await sql_tree.create("Home & Garden")

        assert first.slug == "home-and-garden"
        assert second.slug == f"home-and-garden-{second.id}"

    async def test_repair(self, sql_tree, sql_store, check_invariants):
        await seed(sql_store)
        mobiles = await sql_store.find_by_id("m")
        mobiles.children = []
        await sql_store.save(mobiles)

        report = await sql_tree.repair()

        assert report.updated_ids == ["m"]
        check_invariants(await snapshot_store(sql_store))
        assert (await sql_tree.verify()).consistent is True
