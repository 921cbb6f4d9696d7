"""Page/limit handling shared by the listing endpoints."""
import math
from dataclasses import dataclass
from typing import Any, Optional

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @classmethod
    def from_query(cls, page: Any, limit: Any, default_limit: int) -> "PageRequest":
        """Coerce raw query values; anything missing or non-positive falls back to defaults."""
        return cls(
            page=_positive_int(page) or 1,
            limit=min(_positive_int(limit) or default_limit, MAX_PAGE_SIZE),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit) if total else 0


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None
