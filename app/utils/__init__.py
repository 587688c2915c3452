"""Utilities package"""

from .helpers import generate_slug, normalize_text, calculate_pages
from .pagination import PaginationParams, PaginatedResponse

__all__ = [
    "generate_slug",
    "normalize_text",
    "calculate_pages",
    "PaginationParams",
    "PaginatedResponse",
]
