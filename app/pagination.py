"""
Pagination resolver.

Turns raw ``page`` / ``limit`` query values into a ``PageWindow`` (the
offset and row range to request from the database) and, once the total
is known, into the page metadata returned to callers.

``limit == 0`` is a sentinel for "no pagination": every matching row is
returned and ``pages`` is reported as 1 regardless of the total.
"""
import math
from dataclasses import dataclass
from typing import Any

from app.config import settings


def _coerce(value: Any, default: int, *, allow_zero: bool = False) -> int:
    """Parse *value* as an int; absent, non-numeric or too small -> *default*."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if allow_zero and number == 0:
        return 0
    return number if number >= 1 else default


@dataclass(frozen=True)
class PageWindow:
    page: int
    limit: int

    @property
    def unpaginated(self) -> bool:
        return self.limit == 0

    @property
    def offset(self) -> int:
        return 0 if self.unpaginated else (self.page - 1) * self.limit

    @property
    def range(self) -> tuple[int, int] | None:
        """Inclusive ``[start, end]`` row range, or None when unpaginated."""
        if self.unpaginated:
            return None
        return self.offset, self.offset + self.limit - 1

    def apply(self, query):
        """Add OFFSET/LIMIT to a SQLAlchemy select (no-op when unpaginated)."""
        if self.unpaginated:
            return query
        return query.offset(self.offset).limit(self.limit)

    def slice(self, rows: list) -> list:
        """Same window applied to an already materialised list."""
        if self.unpaginated:
            return list(rows)
        return list(rows[self.offset:self.offset + self.limit])

    def pages_for(self, total: int) -> int:
        if self.unpaginated:
            return 1
        return math.ceil(total / self.limit)

    def meta(self, total: int) -> dict:
        pages = self.pages_for(total)
        next_page = self.page + 1
        prev_page = self.page - 1
        return {
            "total": total,
            "page": self.page,
            "pages": pages,
            "limit": self.limit,
            "hasMore": self.page < pages,
            "nextPage": next_page if 1 <= next_page <= pages else None,
            "prevPage": prev_page if 1 <= prev_page <= pages else None,
        }


def resolve(page: Any = None, limit: Any = None, default_limit: int | None = None) -> PageWindow:
    """
    Resolve raw pagination input.

    *default_limit* is the component default (5 for articles, 10 for
    everything else); it also replaces a limit that is non-numeric or
    negative.  Limits above ``settings.MAX_PAGE_SIZE`` are clamped.
    """
    if default_limit is None:
        default_limit = settings.DEFAULT_PAGE_SIZE
    resolved_page = _coerce(page, 1)
    resolved_limit = _coerce(limit, default_limit, allow_zero=True)
    if resolved_limit:
        resolved_limit = min(resolved_limit, settings.MAX_PAGE_SIZE)
    return PageWindow(page=resolved_page, limit=resolved_limit)
