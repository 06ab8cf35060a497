# mflix/utils/helpers.py

import logging
import math
from typing import Iterable, List

logger = logging.getLogger(__name__)

# --- Pagination Helpers ---

def calculate_skip(page: int, limit: int) -> int:
    """
    Calculates the number of documents to skip for pagination.

    Args:
        page: The current page number (0-based).
        limit: The number of items per page.

    Returns:
        The number of documents to skip.

    Raises:
        ValueError: If page is negative or limit is not a positive integer.
    """
    if not isinstance(page, int) or page < 0:
        raise ValueError("Page number must be a non-negative integer.")
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("Page limit must be a positive integer.")
    return page * limit

def calculate_total_pages(total_items: int, limit: int) -> int:
    """
    Calculates the total number of pages required.

    Raises:
        ValueError: If limit is not a positive integer or total_items is negative.
    """
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("Page limit must be a positive integer.")
    if total_items < 0:
        raise ValueError("Total items cannot be negative.")
    return math.ceil(total_items / limit)


# --- Text Processing ---

def clean_terms(values: Iterable[str]) -> List[str]:
    """Strips whitespace and drops empty entries, keeping order and the first of any duplicates."""
    seen = set()
    cleaned = []
    for value in values:
        term = value.strip() if value else ""
        if term and term not in seen:
            seen.add(term)
            cleaned.append(term)
    return cleaned
