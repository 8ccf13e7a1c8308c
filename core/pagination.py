"""
core/pagination.py -- Page/limit contract shared by the list endpoints.

The list endpoints accept ?page=N&limit=M. limit must be one of
ALLOWED_LIMITS; page starts at 1 and stops at MAX_PAGE. Stores receive
(offset, limit) and return the matching rows plus a total count; PageInfo
turns that into the metadata block clients use to render pagers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from core.database import MAX_ROW_ID
from core.errors import ValidationError

ALLOWED_LIMITS: tuple[int, ...] = (10, 20, 30, 40, 50)
DEFAULT_LIMIT = 10
# Highest page whose offset still fits a SQLite integer at the largest limit.
MAX_PAGE = MAX_ROW_ID // max(ALLOWED_LIMITS)


def check_limit(limit: int) -> int:
    """Return limit unchanged, or raise ValidationError for unsupported values."""
    if limit not in ALLOWED_LIMITS:
        options = ", ".join(str(n) for n in ALLOWED_LIMITS)
        raise ValidationError(f"Invalid limit. Available options: {options}", code="invalid_limit")
    return limit


def offset_for(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


@dataclass(frozen=True)
class PageInfo:
    current_page: int
    total_pages: int
    total: int
    has_next: bool
    has_prev: bool
    limit: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageInfo":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total=total,
            has_next=page < total_pages,
            has_prev=page > 1,
            limit=limit,
        )
