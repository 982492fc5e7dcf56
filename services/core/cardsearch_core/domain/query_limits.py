"""Query limits and timeout configuration for the text index.

Provides safeguards to prevent runaway queries:
- Statement timeout to stop long-running tsquery scans
- Max results limit to bound the size of a result window
"""

from dataclasses import dataclass
from typing import Any, Optional

from cardsearch_core.domain.exceptions import SearchUnavailableError


# Default limits
DEFAULT_QUERY_TIMEOUT = 10000  # 10 seconds
DEFAULT_MAX_RESULTS = 100
MAX_QUERY_TIMEOUT = 30000  # 30 seconds
MAX_RESULTS_LIMIT = 1000
MIN_QUERY_TIMEOUT = 100  # 100ms minimum


@dataclass
class QueryLimits:
    """Configuration for query limits and timeouts.

    Attributes:
        timeout_ms: Statement timeout in milliseconds
        max_results: Maximum number of results to return
        max_timeout_ms: Maximum allowed timeout (for clamping)
        max_results_limit: Maximum allowed results (for clamping)
    """

    timeout_ms: int = DEFAULT_QUERY_TIMEOUT
    max_results: int = DEFAULT_MAX_RESULTS
    max_timeout_ms: int = MAX_QUERY_TIMEOUT
    max_results_limit: int = MAX_RESULTS_LIMIT

    def __post_init__(self):
        """Validate and normalize limits."""
        # Ensure timeout is within bounds
        if self.timeout_ms < MIN_QUERY_TIMEOUT:
            self.timeout_ms = MIN_QUERY_TIMEOUT
        if self.timeout_ms > self.max_timeout_ms:
            self.timeout_ms = self.max_timeout_ms

        # Ensure max_results is within bounds
        if self.max_results < 1:
            self.max_results = 1
        if self.max_results > self.max_results_limit:
            self.max_results = self.max_results_limit

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeout_ms": self.timeout_ms,
            "max_results": self.max_results,
        }

    def clamp_limit(self, limit: int) -> int:
        """Bound a requested window size by max_results."""
        return min(limit, self.max_results)

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None) -> "QueryLimits":
        """Create QueryLimits from application settings.

        Settings used:
            search_query_timeout_ms: Statement timeout in milliseconds
            search_max_results: Maximum number of results
        """
        if settings is None:
            from cardsearch_core.config import get_settings

            settings = get_settings()

        return cls(
            timeout_ms=settings.search_query_timeout_ms,
            max_results=settings.search_max_results,
        )


class QueryTimeoutError(SearchUnavailableError):
    """Exception raised when a query exceeds its statement timeout.

    Attributes:
        query_type: Type of query that timed out
        timeout_ms: Timeout value in milliseconds
    """

    def __init__(
        self,
        query_type: str,
        timeout_ms: int,
        message: Optional[str] = None,
    ):
        self.query_type = query_type
        self.timeout_ms = timeout_ms

        if message is None:
            message = f"{query_type} query timed out after {timeout_ms}ms"

        super().__init__(message, {"query_type": query_type, "timeout_ms": timeout_ms})

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "error_type": "query_timeout",
            "query_type": self.query_type,
            "timeout_ms": self.timeout_ms,
            "message": str(self),
        }


__all__ = [
    "DEFAULT_MAX_RESULTS",
    "DEFAULT_QUERY_TIMEOUT",
    "QueryLimits",
    "QueryTimeoutError",
]
