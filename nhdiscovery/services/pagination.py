"""Page math shared by every paginated listing."""

import math


def total_pages_for(count: int, per_page: int) -> int:
    """Number of pages needed for count items, never less than one."""
    return max(1, math.ceil(count / per_page))


def paginate(items: list, page: int, per_page: int) -> list:
    """Slice out 1-based page `page`."""
    start = (page - 1) * per_page
    return items[start:start + per_page]
