"""
Category storage backends

The tree service only talks to the CategoryStore interface: point lookup by id
or slug, filtered/sorted scan, single-record save and delete. Every save is an
independent write; nothing here spans several records atomically.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, func, and_, cast, String
import logging
import uuid

from app.core.exceptions import CategoryValidationError
from app.models.base import utcnow
from app.models.category import Category
from app.schemas.category import CategoryRecord

logger = logging.getLogger(__name__)

# Fields usable in equality filters and sorts
FILTER_FIELDS = {
    "id", "name", "slug", "parent", "level",
    "is_leaf", "can_be_parent", "is_active", "is_featured",
}
SORT_FIELDS = {"id", "name", "slug", "level", "sort_order", "created_at", "updated_at"}
FILTER_OPERATORS = {"id__in", "id__ne", "path__contains"}

Filters = Dict[str, Any]
Sort = Sequence[Tuple[str, int]]


def check_query(filters: Optional[Filters], sort: Optional[Sort]) -> None:
    """Reject filter or sort keys the stores do not understand"""
    for key in (filters or {}):
        if key not in FILTER_FIELDS and key not in FILTER_OPERATORS:
            raise CategoryValidationError(f"Unsupported filter '{key}'", field=key)
    for field, direction in (sort or ()):
        if field not in SORT_FIELDS:
            raise CategoryValidationError(f"Unsupported sort field '{field}'", field=field)
        if direction not in (1, -1):
            raise CategoryValidationError(f"Sort direction must be 1 or -1, got {direction}", field=field)


class CategoryStore(ABC):
    """Persistent collection of category records"""

    def new_id(self) -> str:
        """Mint a fresh identifier for a record that is about to be inserted"""
        return str(uuid.uuid4())

    @abstractmethod
    async def find_by_id(self, category_id: str) -> Optional[CategoryRecord]:
        ...

    @abstractmethod
    async def find_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        ...

    @abstractmethod
    async def find_where(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[CategoryRecord]:
        """
        Scan records matching every filter

        Filters are field equality checks plus ``id__in`` (list), ``id__ne``
        and ``path__contains`` (an id that must appear in the record's path).
        Sort is a sequence of ``(field, 1 | -1)`` pairs.
        """

    @abstractmethod
    async def count_where(self, filters: Optional[Filters] = None) -> int:
        ...

    @abstractmethod
    async def save(self, record: CategoryRecord) -> CategoryRecord:
        """Insert or fully replace a record, returning the stored version"""

    @abstractmethod
    async def delete_by_id(self, category_id: str) -> None:
        ...


class InMemoryCategoryStore(CategoryStore):
    """Dict backed store, used by tests and for running the tree without a database"""

    def __init__(self, records: Optional[List[CategoryRecord]] = None):
        self.records: Dict[str, CategoryRecord] = {}
        for record in records or []:
            self.records[record.id] = record.model_copy(deep=True)

    async def find_by_id(self, category_id: str) -> Optional[CategoryRecord]:
        record = self.records.get(category_id)
        return record.model_copy(deep=True) if record else None

    async def find_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        for record in self.records.values():
            if record.slug == slug:
                return record.model_copy(deep=True)
        return None

    def _matches(self, record: CategoryRecord, filters: Filters) -> bool:
        for key, value in filters.items():
            if key == "id__in":
                if record.id not in value:
                    return False
            elif key == "id__ne":
                if record.id == value:
                    return False
            elif key == "path__contains":
                if value not in record.path:
                    return False
            elif getattr(record, key) != value:
                return False
        return True

    async def find_where(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[CategoryRecord]:
        check_query(filters, sort)
        matched = [r for r in self.records.values() if self._matches(r, filters or {})]

        # Stable sorts applied from the least significant key up; nulls sort first
        for field, direction in reversed(list(sort or ())):
            matched.sort(
                key=lambda r: (getattr(r, field) is not None, getattr(r, field)),
                reverse=direction == -1,
            )

        end = skip + limit if limit is not None else None
        return [r.model_copy(deep=True) for r in matched[skip:end]]

    async def count_where(self, filters: Optional[Filters] = None) -> int:
        check_query(filters, None)
        return sum(1 for r in self.records.values() if self._matches(r, filters or {}))

    async def save(self, record: CategoryRecord) -> CategoryRecord:
        stored = record.model_copy(deep=True)
        if stored.id is None:
            stored.id = self.new_id()

        for other in self.records.values():
            if other.slug == stored.slug and other.id != stored.id:
                raise CategoryValidationError(f"Slug '{stored.slug}' already exists", field="slug")

        now = utcnow()
        existing = self.records.get(stored.id)
        stored.created_at = existing.created_at if existing else (stored.created_at or now)
        stored.updated_at = now

        self.records[stored.id] = stored
        return stored.model_copy(deep=True)

    async def delete_by_id(self, category_id: str) -> None:
        self.records.pop(category_id, None)


class SQLAlchemyCategoryStore(CategoryStore):
    """Store over the categories table, one commit per save"""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _conditions(self, filters: Filters) -> list:
        conditions = []
        for key, value in filters.items():
            if key == "id__in":
                conditions.append(Category.id.in_(list(value)))
            elif key == "id__ne":
                conditions.append(Category.id != value)
            elif key == "path__contains":
                # JSON array text contains the quoted id
                conditions.append(
                    cast(Category.path, String).contains(f'"{value}"', autoescape=True)
                )
            elif value is None:
                conditions.append(getattr(Category, key).is_(None))
            else:
                conditions.append(getattr(Category, key) == value)
        return conditions

    async def find_by_id(self, category_id: str) -> Optional[CategoryRecord]:
        category = await self.db.get(Category, category_id)
        return CategoryRecord.model_validate(category) if category else None

    async def find_by_slug(self, slug: str) -> Optional[CategoryRecord]:
        result = await self.db.execute(select(Category).where(Category.slug == slug))
        category = result.scalar_one_or_none()
        return CategoryRecord.model_validate(category) if category else None

    async def find_where(
        self,
        filters: Optional[Filters] = None,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[CategoryRecord]:
        check_query(filters, sort)

        stmt = select(Category)
        conditions = self._conditions(filters or {})
        if conditions:
            stmt = stmt.where(and_(*conditions))

        for field, direction in sort or ():
            column = getattr(Category, field)
            stmt = stmt.order_by(column.asc() if direction == 1 else column.desc())

        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.db.execute(stmt)
        return [CategoryRecord.model_validate(c) for c in result.scalars().all()]

    async def count_where(self, filters: Optional[Filters] = None) -> int:
        check_query(filters, None)

        stmt = select(func.count()).select_from(Category)
        conditions = self._conditions(filters or {})
        if conditions:
            stmt = stmt.where(and_(*conditions))

        return await self.db.scalar(stmt) or 0

    async def save(self, record: CategoryRecord) -> CategoryRecord:
        data = record.model_dump(exclude={"created_at", "updated_at"})
        if data["id"] is None:
            data["id"] = self.new_id()

        now = utcnow()
        category = await self.db.get(Category, data["id"])
        if category is None:
            category = Category(**data, created_at=record.created_at or now, updated_at=now)
            self.db.add(category)
        else:
            category.update_from_dict(data, exclude=["id"])
            category.updated_at = now

        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Integrity error saving category {data['id']}: {str(e)}")
            raise CategoryValidationError(
                f"Slug '{data['slug']}' already exists", field="slug"
            ) from e

        return CategoryRecord.model_validate(category)

    async def delete_by_id(self, category_id: str) -> None:
        category = await self.db.get(Category, category_id)
        if category is None:
            return
        await self.db.delete(category)
        await self.db.commit()
