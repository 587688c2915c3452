"""Verification and repair of partially applied mutations"""

from datetime import datetime, timedelta

import pytest

from app.core.exceptions import ConsistencyFault
from app.schemas.category import CategoryRecord
from app.services.category_store import InMemoryCategoryStore
from app.services.category_tree import CategoryTree


class StoreUnavailable(Exception):
    pass


class FlakyStore(InMemoryCategoryStore):
    """Accepts a fixed number of writes, then fails every one after"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saves_left = None

    def _spend_write(self):
        if self.saves_left is None:
            return
        if self.saves_left <= 0:
            raise StoreUnavailable("store unavailable")
        self.saves_left -= 1

    async def save(self, record):
        self._spend_write()
        return await super().save(record)

    async def delete_by_id(self, category_id):
        self._spend_write()
        return await super().delete_by_id(category_id)


@pytest.fixture
def store():
    return FlakyStore()


def record(cid, parent=None, slug=None, **fields):
    return CategoryRecord(
        id=cid,
        name=f"Category {cid}",
        slug=slug or cid,
        parent=parent,
        **fields,
    )


async def test_consistent_tree_verifies_clean(tree, catalog):
    report = await tree.verify()

    assert report.scanned == 4
    assert report.consistent is True
    assert report.issues == []
    await tree.assert_consistent()


async def test_interrupted_reparent_after_detach(tree, store, catalog, check_invariants):
    store.saves_left = 1

    with pytest.raises(StoreUnavailable):
        await tree.reparent(catalog["mobiles"], catalog["books"])
    store.saves_left = None

    report = await tree.verify()
    assert report.consistent is False
    assert {(i.category_id, i.kind) for i in report.issues} >= {
        (catalog["electronics"], "children_mismatch"),
        (catalog["electronics"], "leaf_mismatch"),
    }
    with pytest.raises(ConsistencyFault):
        await tree.assert_consistent()

    repaired = await tree.repair()
    assert repaired.updated == 1
    assert repaired.updated_ids == [catalog["electronics"]]
    check_invariants(store)
    assert (await tree.get(catalog["electronics"])).children == [catalog["mobiles"]]


async def test_interrupted_reparent_before_node_write(tree, store, catalog, check_invariants):
    # detach, attach and the descendant rewrite succeed; the node itself does not
    store.saves_left = 3

    with pytest.raises(StoreUnavailable):
        await tree.reparent(catalog["mobiles"], catalog["books"])
    store.saves_left = None

    accessories = await tree.get(catalog["accessories"])
    assert accessories.path[0] == catalog["books"]

    report = await tree.repair()
    assert set(report.updated_ids) == {
        catalog["electronics"], catalog["books"], catalog["accessories"],
    }
    check_invariants(store)

    # parent references win: Mobiles never left Electronics
    accessories = await tree.get(catalog["accessories"])
    assert accessories.path == [catalog["electronics"], catalog["mobiles"], catalog["accessories"]]
    assert (await tree.get(catalog["books"])).is_leaf is True


async def test_interrupted_create_leaves_unregistered_child(tree, store, catalog, check_invariants):
    store.saves_left = 1

    with pytest.raises(StoreUnavailable):
        await tree.create("Laptops", parent=catalog["electronics"])
    store.saves_left = None

    laptops = await tree.get_by_slug("laptops")
    assert laptops.id not in (await tree.get(catalog["electronics"])).children

    await tree.repair()
    check_invariants(store)
    assert laptops.id in (await tree.get(catalog["electronics"])).children


async def test_interrupted_cascade_delete(tree, store, catalog, check_invariants):
    # Accessories is removed, Mobiles is not
    store.saves_left = 1

    with pytest.raises(StoreUnavailable):
        await tree.delete(catalog["electronics"], policy="cascade")
    store.saves_left = None

    assert catalog["accessories"] not in store.records
    report = await tree.repair()
    assert report.updated_ids == [catalog["mobiles"]]
    check_invariants(store)
    assert (await tree.get(catalog["mobiles"])).is_leaf is True


async def test_repair_is_idempotent(tree, store, catalog):
    store.records[catalog["accessories"]].level = 7
    store.records[catalog["mobiles"]].children = []
    store.records[catalog["books"]].is_leaf = False

    first = await tree.repair()
    assert first.updated == 3

    second = await tree.repair()
    assert second.updated == 0
    assert second.issues == []


async def test_verify_does_not_write(tree, store, catalog):
    store.records[catalog["accessories"]].path = ["wrong"]
    before = {cid: r.model_dump() for cid, r in store.records.items()}

    report = await tree.verify()

    assert [i.kind for i in report.issues] == ["path_mismatch"]
    assert {cid: r.model_dump() for cid, r in store.records.items()} == before


async def test_dangling_parent_becomes_root(check_invariants):
    store = InMemoryCategoryStore([
        record("orphan", parent="ghost", level=1, path=["ghost", "orphan"]),
        record("kid", parent="orphan", level=2, path=["ghost", "orphan", "kid"]),
    ])
    tree = CategoryTree(store)

    report = await tree.repair()

    kinds = {(i.category_id, i.kind) for i in report.issues}
    assert ("orphan", "dangling_parent") in kinds
    orphan = store.records["orphan"]
    assert orphan.parent is None
    assert orphan.path == ["orphan"]
    assert orphan.children == ["kid"]
    assert store.records["kid"].path == ["orphan", "kid"]
    check_invariants(store)


async def test_parent_cycle_is_broken(check_invariants):
    store = InMemoryCategoryStore([
        record("a", parent="b", level=1, path=["b", "a"]),
        record("b", parent="a", level=1, path=["a", "b"]),
    ])
    tree = CategoryTree(store)

    report = await tree.verify()
    assert ("a", "cycle") in {(i.category_id, i.kind) for i in report.issues}

    await tree.repair()

    assert store.records["a"].parent is None
    assert store.records["b"].parent == "a"
    assert store.records["b"].path == ["a", "b"]
    check_invariants(store)


async def test_duplicate_slug_renames_newer_record(check_invariants):
    created = datetime(2024, 1, 1)
    store = InMemoryCategoryStore([
        record("new", slug="toys", path=["new"], created_at=created + timedelta(days=1)),
        record("old", slug="toys", path=["old"], created_at=created),
    ])
    tree = CategoryTree(store)

    report = await tree.repair()

    assert [(i.category_id, i.kind) for i in report.issues] == [("new", "duplicate_slug")]
    assert store.records["old"].slug == "toys"
    assert store.records["new"].slug == "toys-new"
    check_invariants(store)


async def test_duplicate_slug_rename_skips_taken_fallback(check_invariants):
    created = datetime(2024, 1, 1)
    store = InMemoryCategoryStore([
        record("a", slug="x", path=["a"], created_at=created),
        record("b", slug="x", path=["b"], created_at=created + timedelta(days=1)),
        record("c", slug="x-b", path=["c"], created_at=created + timedelta(days=2)),
    ])
    tree = CategoryTree(store)

    await tree.repair()

    assert store.records["a"].slug == "x"
    assert store.records["b"].slug == "x-b-2"
    assert store.records["c"].slug == "x-b"
    assert (await tree.verify()).consistent is True
    check_invariants(store)


async def test_repair_on_empty_store(tree):
    report = await tree.repair()
    assert report.scanned == 0
    assert report.updated == 0
