"""Structural validation of compiled tsquery expressions."""

import re

from cardsearch_core.domain.query.sanitize import MAX_QUERY_LENGTH

_ESCAPED_CHAR_RE = re.compile(r"\\.", re.DOTALL)
_PROXIMITY_OPERATOR_RE = re.compile(r"<(?:-|\d+)>")

_INVALID_PATTERNS = [
    re.compile(r"[&|!]\s*[&|]"),  # doubled binary operator, or ! before one
    re.compile(r"!\s*!"),  # double negation
    re.compile(r"^\s*[&|]"),  # binary operator opens the expression
    re.compile(r"[&|!]\s*$"),  # operator closes the expression
    re.compile(r"\(\s*[&|]"),  # binary operator opens a group
    re.compile(r"[&|!]\s*\)"),  # operator closes a group
    re.compile(r"\(\s*\)"),  # empty group
]


def _literal_free(query: str) -> str:
    """Replace escaped characters with a plain letter and proximity with &."""
    without_escapes = _ESCAPED_CHAR_RE.sub("x", query)
    return _PROXIMITY_OPERATOR_RE.sub("&", without_escapes)


def is_valid_tsquery(query: str) -> bool:
    """Check that a compiled query is structurally well formed.

    Checks, in order: non-empty, bounded length, balanced parentheses,
    and operator placement. Backslash-escaped characters are literal text
    and never count as operators or parentheses.
    """
    if not query or not query.strip():
        return False
    if len(query) > MAX_QUERY_LENGTH:
        return False

    normalized = _literal_free(query)

    depth = 0
    for char in normalized:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if depth < 0:
            return False
    if depth != 0:
        return False

    return not any(pattern.search(normalized) for pattern in _INVALID_PATTERNS)


__all__ = ["is_valid_tsquery"]
