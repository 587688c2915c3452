"""
Category hierarchy service

Maintains the denormalized tree kept on every category record:
``parent`` (authoritative edge), ``children`` (inverse cache), ``path``
(root ... self), ``level`` and ``is_leaf``. Mutations are ordered sequences of
single-record writes through a CategoryStore; they are not transactions. A
failure between writes leaves the tree partially updated until ``repair()``
runs, which rebuilds everything from the ``parent`` references.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from app.core.config import settings
from app.core.exceptions import (
    CategoryNotFound,
    CategoryValidationError,
    ConsistencyFault,
    InvalidOperation,
)
from app.schemas.category import (
    CategoryRecord,
    CategoryResponse,
    CategoryTreeNode,
    ConsistencyIssue,
    RepairReport,
    VerifyReport,
    NAME_MIN_LENGTH,
    NAME_MAX_LENGTH,
    DESCRIPTION_MAX_LENGTH,
)
from app.services.category_store import CategoryStore
from app.utils.helpers import generate_slug, normalize_text

logger = logging.getLogger(__name__)

DELETE_POLICIES = ("reject", "reassign", "cascade")

# Content fields update() may touch; structure changes go through reparent()
UPDATABLE_FIELDS = {"name", "description", "can_be_parent", "is_active", "is_featured", "sort_order"}
STRUCTURAL_FIELDS = {"id", "slug", "parent", "children", "level", "path", "is_leaf"}


def order_by_path(records: Iterable[CategoryRecord]) -> List[CategoryRecord]:
    """
    Depth-first ordering: ancestors before their descendants, siblings by name.

    Path entries that are not part of ``records`` (e.g. the common ancestors of
    a descendants query) contribute only their id, which is a shared prefix.
    """
    records = list(records)
    names = {r.id: r.name.lower() for r in records}
    return sorted(records, key=lambda r: [(names.get(pid, ""), pid) for pid in r.path])


def build_tree(records: Iterable[CategoryRecord]) -> List[CategoryTreeNode]:
    """Nest a path-ordered listing by grouping on parent"""
    records = order_by_path(records)
    nodes = {
        r.id: CategoryTreeNode(category=CategoryResponse.model_validate(r), children=[])
        for r in records
    }

    roots = []
    for record in records:
        node = nodes[record.id]
        if record.parent is not None and record.parent in nodes:
            nodes[record.parent].children.append(node)
        else:
            roots.append(node)
    return roots


class CategoryTree:
    """Hierarchy operations over a category store"""

    def __init__(self, store: CategoryStore, delete_policy: Optional[str] = None):
        self.store = store
        self.delete_policy = delete_policy or settings.CATEGORY_DELETE_POLICY

    # Helpers

    async def _load(self, category_id: str) -> CategoryRecord:
        record = await self.store.find_by_id(category_id)
        if record is None:
            raise CategoryNotFound(category_id)
        return record

    @staticmethod
    def _validate_name(name: Any) -> str:
        if not isinstance(name, str):
            raise CategoryValidationError("Category name is required", field="name")
        name = normalize_text(name)
        if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
            raise CategoryValidationError(
                f"Category name must be {NAME_MIN_LENGTH}-{NAME_MAX_LENGTH} characters",
                field="name",
            )
        return name

    @staticmethod
    def _validate_description(description: Any) -> Optional[str]:
        if description is None:
            return None
        if not isinstance(description, str):
            raise CategoryValidationError("Description must be text", field="description")
        description = description.strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            raise CategoryValidationError(
                f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters",
                field="description",
            )
        return description or None

    @staticmethod
    def _validate_sort_order(sort_order: Any) -> int:
        if not isinstance(sort_order, int) or isinstance(sort_order, bool) or sort_order < 0:
            raise CategoryValidationError("Sort order must be a non-negative integer", field="sort_order")
        return sort_order

    async def _unique_slug(self, name: str, category_id: str) -> str:
        """Slug from name, suffixed with this node's own id when taken by another node"""
        base = generate_slug(name)
        if not base:
            return category_id

        existing = await self.store.find_by_slug(base)
        if existing is None or existing.id == category_id:
            return base

        slug = f"{base}-{category_id}"
        existing = await self.store.find_by_slug(slug)
        if existing is not None and existing.id != category_id:
            # ids are unique so this means the store is already inconsistent
            raise CategoryValidationError(f"Slug '{slug}' already exists", field="slug")
        return slug

    @staticmethod
    def _place(node: CategoryRecord, parent: Optional[CategoryRecord]) -> None:
        """Set parent, path and level of node from its parent record"""
        if parent is None:
            node.parent = None
            node.path = [node.id]
            node.level = 0
        else:
            node.parent = parent.id
            node.path = [*parent.path, node.id]
            node.level = parent.level + 1

    async def _attach_child(self, parent_id: str, child_id: str) -> None:
        parent = await self.store.find_by_id(parent_id)
        if parent is None:
            logger.warning(f"Parent {parent_id} vanished before child {child_id} was attached")
            return
        if child_id not in parent.children:
            parent.children.append(child_id)
        parent.is_leaf = False
        await self.store.save(parent)

    async def _detach_child(self, parent_id: str, child_id: str) -> None:
        parent = await self.store.find_by_id(parent_id)
        if parent is None:
            return
        parent.children = [c for c in parent.children if c != child_id]
        parent.is_leaf = not parent.children
        await self.store.save(parent)

    # Mutations

    async def create(
        self,
        name: str,
        description: Optional[str] = None,
        parent: Optional[str] = None,
        can_be_parent: bool = True,
        is_active: bool = True,
        is_featured: bool = False,
        sort_order: int = 0,
    ) -> CategoryRecord:
        """Create a node, then register it in its parent's children"""
        name = self._validate_name(name)
        description = self._validate_description(description)
        sort_order = self._validate_sort_order(sort_order)

        parent_record = None
        if parent is not None:
            parent_record = await self.store.find_by_id(parent)
            if parent_record is None:
                raise CategoryNotFound(parent, message="Parent category not found")
            if not parent_record.can_be_parent:
                raise InvalidOperation("Selected category cannot be a parent")

        category_id = self.store.new_id()
        node = CategoryRecord(
            id=category_id,
            name=name,
            slug=await self._unique_slug(name, category_id),
            description=description,
            can_be_parent=can_be_parent,
            is_active=is_active,
            is_featured=is_featured,
            sort_order=sort_order,
        )
        self._place(node, parent_record)

        node = await self.store.save(node)
        if parent_record is not None:
            await self._attach_child(parent_record.id, node.id)

        logger.info(f"Created category {node.id} '{node.name}' at level {node.level}")
        return node

    async def update(self, category_id: str, fields: Dict[str, Any]) -> CategoryRecord:
        """Edit content fields; a name change regenerates the slug"""
        structural = STRUCTURAL_FIELDS.intersection(fields)
        if structural:
            raise InvalidOperation(
                f"Fields {sorted(structural)} cannot be updated directly; use reparent"
            )
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise CategoryValidationError(f"Unknown fields {sorted(unknown)}")

        node = await self._load(category_id)

        if "name" in fields:
            name = self._validate_name(fields["name"])
            if name != node.name:
                node.name = name
                node.slug = await self._unique_slug(name, node.id)
        if "description" in fields:
            node.description = self._validate_description(fields["description"])
        for flag in ("can_be_parent", "is_active", "is_featured"):
            if flag in fields and fields[flag] is not None:
                setattr(node, flag, bool(fields[flag]))
        if fields.get("sort_order") is not None:
            node.sort_order = self._validate_sort_order(fields["sort_order"])

        node = await self.store.save(node)
        logger.info(f"Updated category {node.id}")
        return node

    async def reparent(self, category_id: str, new_parent_id: Optional[str]) -> CategoryRecord:
        """
        Move a node (and its subtree) under a new parent, or promote it to root.

        All checks run before the first write. Writes then go: old parent's
        children, new parent's children, every descendant's path/level, and
        finally the node itself.
        """
        node = await self._load(category_id)
        if new_parent_id == category_id:
            raise InvalidOperation("Category cannot be its own parent")
        if node.parent == new_parent_id:
            return node

        new_parent = None
        if new_parent_id is not None:
            new_parent = await self.store.find_by_id(new_parent_id)
            if new_parent is None:
                raise CategoryNotFound(new_parent_id, message="New parent category not found")

        descendants = await self.store.find_where({"path__contains": category_id, "id__ne": category_id})

        if new_parent is not None:
            descendant_ids = {d.id for d in descendants}
            if category_id in new_parent.path or new_parent.id in descendant_ids:
                raise InvalidOperation("Cannot set a descendant as parent")
            if not new_parent.can_be_parent:
                raise InvalidOperation("Selected category cannot be a parent")

        old_parent_id = node.parent

        # 1. old parent
        if old_parent_id is not None:
            await self._detach_child(old_parent_id, category_id)

        # 2. new parent
        if new_parent is not None:
            await self._attach_child(new_parent.id, category_id)

        # 3. the node
        self._place(node, new_parent)

        # 4. subtree keeps its shape below the node
        for descendant in descendants:
            if category_id not in descendant.path:
                continue
            below = descendant.path[descendant.path.index(category_id) + 1:]
            descendant.path = [*node.path, *below]
            descendant.level = len(descendant.path) - 1
            await self.store.save(descendant)
        logger.debug(f"Recomputed {len(descendants)} descendants of {category_id}")

        # 5. persist the node
        node = await self.store.save(node)
        logger.info(f"Moved category {category_id} from {old_parent_id} to {new_parent_id}")
        return node

    async def delete(self, category_id: str, policy: Optional[str] = None) -> List[str]:
        """
        Delete a node according to the delete policy and return deleted ids.

        reject   - refuse when the node has children
        reassign - children move to the node's parent (or become roots)
        cascade  - the whole subtree is removed, deepest first
        """
        policy = policy or self.delete_policy
        if policy not in DELETE_POLICIES:
            raise CategoryValidationError(f"Unknown delete policy '{policy}'", field="policy")

        node = await self._load(category_id)
        children = await self.store.find_where({"parent": category_id})

        if children and policy == "reject":
            raise InvalidOperation(
                f"Cannot delete category with {len(children)} subcategories. "
                f"Please delete subcategories first."
            )

        # Children move to the grandparent, or become roots when there is none
        new_parent_id = None
        if children and policy == "reassign" and node.parent is not None:
            grandparent = await self.store.find_by_id(node.parent)
            if grandparent is not None:
                if not grandparent.can_be_parent:
                    raise InvalidOperation("Parent category cannot accept the subcategories")
                new_parent_id = grandparent.id

        deleted = []
        if policy == "reassign":
            for child in children:
                await self.reparent(child.id, new_parent_id)
        elif policy == "cascade":
            subtree = {r.id: r for r in await self.store.find_where({"path__contains": category_id})}
            subtree.update({c.id: c for c in children})
            subtree.pop(category_id, None)
            for record in sorted(subtree.values(), key=lambda r: r.level, reverse=True):
                await self.store.delete_by_id(record.id)
                deleted.append(record.id)

        await self.store.delete_by_id(category_id)
        deleted.append(category_id)

        if node.parent is not None:
            await self._detach_child(node.parent, category_id)

        logger.info(f"Deleted category {category_id} ({policy}), {len(deleted)} removed")
        return deleted

    async def toggle_active(self, category_id: str) -> Tuple[CategoryRecord, int]:
        """Flip is_active; deactivation also deactivates every descendant"""
        node = await self._load(category_id)
        node.is_active = not node.is_active
        node = await self.store.save(node)

        affected = 1
        if not node.is_active:
            for descendant in await self.store.find_where({"path__contains": category_id, "id__ne": category_id}):
                if descendant.is_active:
                    descendant.is_active = False
                    await self.store.save(descendant)
                    affected += 1

        return node, affected

    async def toggle_featured(self, category_id: str) -> CategoryRecord:
        node = await self._load(category_id)
        node.is_featured = not node.is_featured
        return await self.store.save(node)

    async def refresh_children(self, category_id: str) -> CategoryRecord:
        """Rebuild one node's children cache from the parent references"""
        node = await self._load(category_id)
        actual = [c.id for c in await self.store.find_where({"parent": category_id}, sort=[("id", 1)])]
        kept = [c for c in dict.fromkeys(node.children) if c in actual]
        node.children = kept + [c for c in actual if c not in kept]
        node.is_leaf = not node.children
        return await self.store.save(node)

    # Queries

    async def get(self, category_id: str) -> CategoryRecord:
        return await self._load(category_id)

    async def get_by_slug(self, slug: str) -> CategoryRecord:
        record = await self.store.find_by_slug(slug)
        if record is None:
            raise CategoryNotFound(message=f"Category '{slug}' not found")
        return record

    async def get_children(self, category_id: str) -> List[CategoryRecord]:
        await self._load(category_id)
        children = await self.store.find_where({"parent": category_id})
        return sorted(children, key=lambda r: (r.name.lower(), r.id))

    async def get_descendants(self, category_id: str) -> List[CategoryRecord]:
        await self._load(category_id)
        records = await self.store.find_where({"path__contains": category_id, "id__ne": category_id})
        return order_by_path(records)

    async def get_ancestors(self, category_id: str) -> List[CategoryRecord]:
        node = await self._load(category_id)
        return await self._records_along(node.path, exclude=category_id)

    async def get_breadcrumbs(self, category_id: str) -> List[CategoryRecord]:
        node = await self._load(category_id)
        return await self._records_along(node.path)

    async def _records_along(self, path: List[str], exclude: Optional[str] = None) -> List[CategoryRecord]:
        ids = [pid for pid in path if pid != exclude]
        if not ids:
            return []
        position = {pid: i for i, pid in enumerate(path)}
        records = await self.store.find_where({"id__in": ids})
        return sorted(records, key=lambda r: position[r.id])

    async def get_tree(self) -> List[CategoryRecord]:
        return order_by_path(await self.store.find_where())

    async def list_categories(
        self,
        filters: Optional[Dict[str, Any]] = None,
        page: int = 1,
        size: int = 50,
        sort_by: str = "sort_order",
        sort_order: str = "asc",
    ) -> Tuple[List[CategoryRecord], int]:
        """Filtered page of categories plus total count"""
        direction = -1 if sort_order == "desc" else 1
        sort = [(sort_by, direction)]
        if sort_by != "name":
            sort.append(("name", 1))

        filters = {k: v for k, v in (filters or {}).items()}
        total = await self.store.count_where(filters)
        items = await self.store.find_where(filters, sort=sort, skip=(page - 1) * size, limit=size)
        return items, total

    async def get_parent_options(self, level: int = 0, exclude_id: Optional[str] = None) -> List[CategoryRecord]:
        """Active categories at a level that may accept children"""
        filters: Dict[str, Any] = {"is_active": True, "level": level, "can_be_parent": True}
        if exclude_id:
            filters["id__ne"] = exclude_id
        return await self.store.find_where(filters, sort=[("sort_order", 1), ("name", 1)])

    async def get_featured(self, limit: Optional[int] = None) -> List[CategoryRecord]:
        return await self.store.find_where(
            {"is_active": True, "is_featured": True},
            sort=[("sort_order", 1), ("name", 1)],
            limit=limit or settings.FEATURED_CATEGORIES_LIMIT,
        )

    # Verification and repair

    @staticmethod
    def _reconcile(records: List[CategoryRecord]) -> Tuple[Dict[str, CategoryRecord], List[ConsistencyIssue]]:
        """Expected state of every record derived from parent references alone"""
        by_id = {r.id: r for r in records}
        ordered_ids = sorted(by_id)
        issues: List[ConsistencyIssue] = []

        parent_of: Dict[str, Optional[str]] = {}
        for cid in ordered_ids:
            parent = by_id[cid].parent
            if parent is not None and parent not in by_id:
                issues.append(ConsistencyIssue(
                    category_id=cid, kind="dangling_parent",
                    detail=f"parent {parent} does not exist",
                ))
                parent = None
            parent_of[cid] = parent

        paths: Dict[str, List[str]] = {}
        for cid in ordered_ids:
            chain, seen, current = [], set(), cid
            while current is not None and current not in paths:
                if current in seen:
                    issues.append(ConsistencyIssue(
                        category_id=current, kind="cycle",
                        detail=f"parent chain loops back to {current}",
                    ))
                    parent_of[current] = None
                    paths[current] = [current]
                    break
                seen.add(current)
                chain.append(current)
                current = parent_of[current]
            for node_id in reversed(chain):
                if node_id not in paths:
                    parent = parent_of[node_id]
                    paths[node_id] = [*(paths[parent] if parent else []), node_id]

        kids: Dict[str, List[str]] = {cid: [] for cid in ordered_ids}
        for cid in ordered_ids:
            if parent_of[cid] is not None:
                kids[parent_of[cid]].append(cid)

        # Duplicate slugs: the earliest created keeps the plain slug
        slug_owner: Dict[str, str] = {}
        new_slug: Dict[str, str] = {}
        taken = {r.slug for r in records}
        by_age = sorted(records, key=lambda r: (r.created_at is not None, r.created_at, r.id))
        for record in by_age:
            if record.slug in slug_owner:
                candidate = f"{record.slug}-{record.id}"
                attempt = 2
                while candidate in taken:
                    candidate = f"{record.slug}-{record.id}-{attempt}"
                    attempt += 1
                new_slug[record.id] = candidate
                taken.add(candidate)
                issues.append(ConsistencyIssue(
                    category_id=record.id, kind="duplicate_slug",
                    detail=f"slug '{record.slug}' also used by {slug_owner[record.slug]}",
                ))
            else:
                slug_owner[record.slug] = record.id

        expected: Dict[str, CategoryRecord] = {}
        for cid in ordered_ids:
            stored = by_id[cid]
            actual_kids = kids[cid]
            kept = [c for c in dict.fromkeys(stored.children) if c in actual_kids]
            children = kept + [c for c in actual_kids if c not in kept]
            path = paths[cid]

            if len(path) - 1 != stored.level:
                issues.append(ConsistencyIssue(
                    category_id=cid, kind="level_mismatch",
                    detail=f"level {stored.level}, expected {len(path) - 1}",
                ))
            if path != stored.path:
                issues.append(ConsistencyIssue(
                    category_id=cid, kind="path_mismatch",
                    detail=f"path {stored.path}, expected {path}",
                ))
            if children != stored.children:
                issues.append(ConsistencyIssue(
                    category_id=cid, kind="children_mismatch",
                    detail=f"children {stored.children}, expected {children}",
                ))
            if stored.is_leaf != (not children):
                issues.append(ConsistencyIssue(
                    category_id=cid, kind="leaf_mismatch",
                    detail=f"is_leaf {stored.is_leaf} with {len(children)} children",
                ))

            expected[cid] = stored.model_copy(update={
                "parent": parent_of[cid],
                "path": path,
                "level": len(path) - 1,
                "children": children,
                "is_leaf": not children,
                "slug": new_slug.get(cid, stored.slug),
            })

        return expected, issues

    async def verify(self) -> VerifyReport:
        """Scan the whole collection and report invariant violations without writing"""
        records = await self.store.find_where()
        _, issues = self._reconcile(records)
        return VerifyReport(scanned=len(records), consistent=not issues, issues=issues)

    async def assert_consistent(self) -> None:
        report = await self.verify()
        if not report.consistent:
            raise ConsistencyFault(report.issues)

    async def repair(self) -> RepairReport:
        """
        Rebuild level, path, children, is_leaf (and duplicate slugs) from the
        parent references of every record. Missing parents make a node a root.
        Idempotent: a second run finds nothing to save.
        """
        records = await self.store.find_where()
        expected, issues = self._reconcile(records)

        for issue in issues:
            logger.warning(f"Repairing category {issue.category_id}: {issue.kind} ({issue.detail})")

        tree_fields = {"parent", "path", "level", "children", "is_leaf", "slug"}
        updated_ids = []
        # Renamed slugs are written first so the kept slug is free when its owner saves
        for record in sorted(records, key=lambda r: expected[r.id].slug == r.slug):
            target = expected[record.id]
            if record.model_dump(include=tree_fields) != target.model_dump(include=tree_fields):
                await self.store.save(target)
                updated_ids.append(record.id)

        logger.info(f"Category repair scanned {len(records)}, updated {len(updated_ids)}")
        return RepairReport(
            scanned=len(records),
            updated=len(updated_ids),
            issues=issues,
            updated_ids=updated_ids,
        )
