"""Sanitization and escaping of user-supplied search text.

Everything that reaches the query compiler goes through
``sanitize_search_query`` first. Sanitizing is idempotent and never raises:
invalid input yields an empty string.
"""

import re
from typing import Any

MAX_QUERY_LENGTH = 500

# Control characters, quotes, backslashes, percent signs and angle brackets
_UNSAFE_CHARS_RE = re.compile(r"[\x00-\x1f\x7f\"'\\%<>]")
_WHITESPACE_RE = re.compile(r"\s+")

# Characters with operator meaning in tsquery
_RESERVED_CHARS_RE = re.compile(r"([&|!():<>])")


def sanitize_search_query(query: Any) -> str:
    """Strip unsafe characters, normalize whitespace and bound the length.

    Args:
        query: Raw user input. Non-string values are treated as empty.

    Returns:
        The sanitized query, at most MAX_QUERY_LENGTH characters.
    """
    if not query or not isinstance(query, str):
        return ""

    sanitized = _UNSAFE_CHARS_RE.sub("", query)
    sanitized = _WHITESPACE_RE.sub(" ", sanitized).strip()

    # Truncation can expose a trailing space, strip again to stay idempotent
    return sanitized[:MAX_QUERY_LENGTH].strip()


def escape_search_term(term: str) -> str:
    """Escape a single token so it can never be read as a tsquery operator."""
    escaped = term.replace("'", "''")
    escaped = escaped.replace("\\", "\\\\")
    return _RESERVED_CHARS_RE.sub(r"\\\1", escaped)


def split_terms(sanitized: str) -> list[str]:
    """Split sanitized text on whitespace, dropping empty tokens."""
    return [term for term in sanitized.split(" ") if term]


__all__ = [
    "MAX_QUERY_LENGTH",
    "escape_search_term",
    "sanitize_search_query",
    "split_terms",
]
