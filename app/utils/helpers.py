"""
Helper utilities
"""

import re
import slugify as python_slugify

# Zero-width characters that survive str.split()
ZERO_WIDTH_PATTERN = re.compile(r'[\u200b\u200c\u200d\ufeff]')


def generate_slug(text: str) -> str:
    """
    Generate URL-friendly slug from text

    Lowercases, transliterates to ASCII and collapses every run of
    non-alphanumeric characters into a single hyphen.

    Args:
        text: Input text

    Returns:
        Slug (may be empty when the text has no alphanumerics)
    """
    return python_slugify.slugify(text, replacements=[["&", "and"]])


def normalize_text(text: str) -> str:
    """Normalize text input"""
    # Remove extra whitespace
    text = " ".join(text.split())

    # Remove zero-width characters
    text = ZERO_WIDTH_PATTERN.sub('', text)

    return text.strip()


def calculate_pages(total: int, size: int) -> int:
    """Number of pages needed for total items"""
    return (total + size - 1) // size if size > 0 else 1
