"""Common schema definitions."""
from typing import Optional

from pydantic import BaseModel

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def _lenient_int(value: Optional[str]) -> int:
    """Parse a query parameter, treating anything unparseable as 0."""
    try:
        return int(value) if value is not None else 0
    except (TypeError, ValueError):
        return 0


class PageParams(BaseModel):
    """Normalized pagination window."""
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_query(cls, page: Optional[str], page_size: Optional[str]) -> "PageParams":
        """
        Build from raw query values.

        A missing, unparseable or non-positive page means page 1; page sizes
        fall back to the default when not positive and are capped at the max.
        """
        page_num = _lenient_int(page)
        if page_num < 1:
            page_num = 1

        size = _lenient_int(page_size)
        if size > MAX_PAGE_SIZE:
            size = MAX_PAGE_SIZE
        elif size <= 0:
            size = DEFAULT_PAGE_SIZE

        return cls(page=page_num, page_size=size)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size
