import math
from typing import Optional, Tuple

from breakfast_api.core.config import settings
from breakfast_api.core.errors import ValidationError


def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.default_page_size
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return min(limit, settings.max_page_size)


def page_window(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Translate a 1-based page number into (offset, limit)."""
    size = clamp_limit(limit)
    number = page or 1
    if number < 1:
        raise ValidationError("page must be at least 1")
    return (number - 1) * size, size


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
