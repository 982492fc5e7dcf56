"""Exception hierarchy for the search subsystem."""

from typing import Any, Optional


class CardSearchError(Exception):
    """Base exception for all search and indexing errors."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class SearchValidationError(CardSearchError):
    """Request parameters are out of range or malformed.

    Raised before the query compiler runs. Free-text queries never raise
    this error; they degrade to a simpler query instead.
    """

    def __init__(
        self,
        message: str,
        code: str = "INVALID_PARAMETER",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.code = code
        super().__init__(message, details)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API response."""
        return {
            "error_type": "validation_error",
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class SearchUnavailableError(CardSearchError):
    """The text index backend is unreachable or timed out.

    Retryable: callers decide whether to try again.
    """

    retryable = True


class ReindexError(CardSearchError):
    """A full reindex could not list entities from the system of record."""

    pass


__all__ = [
    "CardSearchError",
    "ReindexError",
    "SearchUnavailableError",
    "SearchValidationError",
]
