"""
registry/pagination.py -- Offset pagination with a lookahead row.

Pagination validates the page/per_page pair once, at the boundary, and then
hands the store an offset and a limit of per_page + 1. If the extra row
comes back, there is at least one more page. That avoids a COUNT(*) over
the joined result and stays correct when rows are added or removed between
two page fetches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, TypeVar

from core.config import get_settings
from core.errors import ValidationError

T = TypeVar("T")

# LIMIT/OFFSET are bound as signed 64-bit integers by SQLite and PostgreSQL.
MAX_SQL_INT = 2**63 - 1


@dataclass(frozen=True)
class Pagination:
    page: int
    per_page: int

    @classmethod
    def from_params(cls, page: Optional[int] = None, per_page: Optional[int] = None) -> Pagination:
        """Build a Pagination from raw query values, applying defaults and limits.

        page is 1-indexed. page < 1 is rejected rather than clamped, and so
        is a per_page outside 1..MAX_PER_PAGE. A page whose offset would not
        fit in a 64-bit SQL integer is rejected as out of range.
        """
        settings = get_settings()
        page = 1 if page is None else page
        per_page = settings.default_per_page if per_page is None else per_page
        if page < 1:
            raise ValidationError("page", "page indexing starts from 1, page 0 is invalid")
        if per_page < 1:
            raise ValidationError("per_page", "per_page must be at least 1")
        if per_page > settings.max_per_page:
            raise ValidationError("per_page", f"cannot request more than {settings.max_per_page} items")
        if (page - 1) * per_page > MAX_SQL_INT - per_page - 1:
            raise ValidationError("page", "page is out of range")
        return cls(page=page, per_page=per_page)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        """Rows to fetch: one page plus the lookahead row."""
        return self.per_page + 1

    def split(self, rows: Sequence[T]) -> tuple[list[T], bool]:
        """Trim the lookahead row. Returns (page_rows, more)."""
        return list(rows[: self.per_page]), len(rows) > self.per_page
