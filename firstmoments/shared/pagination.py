"""
Pagination helpers shared by list endpoints.
"""
import math
from typing import Tuple

from firstmoments.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def normalize_page(page: int, limit: int) -> Tuple[int, int]:
    """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE"""
    page = max(1, page or 1)
    limit = limit or DEFAULT_PAGE_SIZE
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    return page, limit


def get_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> dict:
    """
    Build the pagination block returned with every list.

    total_pages is ceil(total / limit), so an empty result has zero pages.
    """
    total_pages = math.ceil(total / limit) if limit > 0 else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
