"""Pagination utilities for search endpoints.

Searches are offset-based at the service layer. Page-based query
parameters from HTTP clients are normalized with ``PaginationParams`` and
converted to an offset; results report their position with ``OffsetPage``.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional


# Default pagination limits
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class PaginationParams:
    """Parameters for page-based pagination.

    Attributes:
        page: Current page number (1-indexed)
        page_size: Number of items per page
        max_page_size: Maximum allowed page size
    """

    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE

    def __post_init__(self):
        """Validate and normalize pagination parameters."""
        # Ensure page is at least 1
        if self.page < 1:
            self.page = 1

        # Ensure page_size is at least 1
        if self.page_size < 1:
            self.page_size = 1

        # Clamp page_size to maximum
        if self.page_size > self.max_page_size:
            self.page_size = self.max_page_size

    @property
    def offset(self) -> int:
        """Calculate offset from page and page_size."""
        return (self.page - 1) * self.page_size

    @classmethod
    def from_query_params(
        cls,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> "PaginationParams":
        """Create PaginationParams from query parameters."""
        return cls(
            page=page or 1,
            page_size=page_size or DEFAULT_PAGE_SIZE,
            max_page_size=max_page_size,
        )


@dataclass
class OffsetPage:
    """Position of a result window within the full match set.

    Attributes:
        limit: Requested window size
        offset: Index of the first returned item
        total: Total number of matches
        returned: Number of items actually returned
    """

    limit: int
    offset: int
    total: int
    returned: int

    @property
    def page(self) -> int:
        """1-based page number derived from offset and limit."""
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.limit)

    @property
    def has_next(self) -> bool:
        return self.offset + self.returned < self.total

    @property
    def has_previous(self) -> bool:
        return self.offset > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "limit": self.limit,
            "offset": self.offset,
            "page": self.page,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_previous": self.has_previous,
        }


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "OffsetPage",
    "PaginationParams",
]
