"""Services package"""

from .category_store import CategoryStore, InMemoryCategoryStore, SQLAlchemyCategoryStore
from .category_tree import CategoryTree, build_tree, order_by_path

__all__ = [
    "CategoryStore",
    "InMemoryCategoryStore",
    "SQLAlchemyCategoryStore",
    "CategoryTree",
    "build_tree",
    "order_by_path",
]
