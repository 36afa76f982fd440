import math
from typing import Optional

DEFAULT_PER_PAGE = 30
MAX_PER_PAGE = 100
# Keeps LIMIT/OFFSET well inside PostgreSQL's bigint range
MAX_PAGE = 1_000_000


def effective_page(page: Optional[int]) -> int:
    if page is None or page < 1:
        return 1
    return min(page, MAX_PAGE)


def effective_per_page(per_page: Optional[int]) -> int:
    if per_page is None:
        return DEFAULT_PER_PAGE
    return max(1, min(per_page, MAX_PER_PAGE))


def is_descending(order: Optional[str]) -> bool:
    """Only an explicit "asc" sorts ascending."""
    return (order or "").strip().lower() != "asc"


def total_pages(total_count: int, per_page: int) -> int:
    return math.ceil(total_count / per_page) if per_page else 0
