"""
Pagination math shared by every list operation.

Both helpers default missing, falsy or non-positive input and never raise.
"""

import math
from typing import Any, Dict, Optional, Tuple

from crudkit.core.config import settings

DEFAULT_PAGINATION = {
    "page": settings.DEFAULT_PAGE,
    "take": settings.DEFAULT_PAGE_SIZE,
    "total_records": 0,
}


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value) if value else 0
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def resolve_page_and_take(page: Optional[int], take: Optional[int]) -> Tuple[int, int]:
    """Apply defaults to a raw (page, take) pair."""
    return (
        _positive_int(page, DEFAULT_PAGINATION["page"]),
        _positive_int(take, DEFAULT_PAGINATION["take"]),
    )


def compute_skip_take(page: Optional[int], take: Optional[int]) -> Tuple[int, int]:
    """Return the (skip, take) pair for a page request."""
    current_page, current_take = resolve_page_and_take(page, take)
    return (current_page - 1) * current_take, current_take


def build_meta(page: Optional[int], take: Optional[int], total_records: Optional[int]) -> Dict[str, Any]:
    """
    Build the pagination metadata block of a list response.

    ``nextPage`` is ``None`` on the last page (and when there are no records).
    """
    current_page, current_take = resolve_page_and_take(page, take)
    total = max(int(total_records or DEFAULT_PAGINATION["total_records"]), 0)

    total_pages = math.ceil(total / current_take)
    next_page = current_page + 1 if current_page < total_pages else None

    return {
        "currentPage": current_page,
        "totalPages": total_pages,
        "totalRecords": total,
        "nextPage": next_page,
        "take": current_take,
    }
