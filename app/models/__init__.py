"""Models package initialization"""

from .base import Base
from .category import Category

__all__ = [
    "Base",
    "Category",
]
