"""Query analytics: term extraction and a rough complexity score."""

import re

from cardsearch_core.domain.query.sanitize import sanitize_search_query, split_terms

MAX_EXTRACTED_TERMS = 10

_OPERATOR_CHARS_RE = re.compile(r"[&|!()<>:*+\-]")
_OPERATOR_WORDS = {"and", "or", "not"}
_BOOLEAN_RE = re.compile(r"\b(AND|OR|NOT)\b|[&|!]", re.IGNORECASE)
_PROXIMITY_RE = re.compile(r"<(?:-|\d+)>|\bNEAR\b", re.IGNORECASE)
_GROUPING_RE = re.compile(r"[()]")


def extract_search_terms(query: str) -> list[str]:
    """Lowercased search words with operators removed, at most 10."""
    sanitized = sanitize_search_query(query).lower()
    cleaned = _OPERATOR_CHARS_RE.sub(" ", sanitized)
    terms = [term for term in split_terms(" ".join(cleaned.split())) if term not in _OPERATOR_WORDS]
    return terms[:MAX_EXTRACTED_TERMS]


def calculate_query_complexity(query: str) -> float:
    """Score a query between 0 and 1.

    Length, boolean operators, proximity operators, grouping and the number
    of terms each add to the score. An empty query scores 0.
    """
    if not query or not isinstance(query, str) or not query.strip():
        return 0.0

    score = min(len(query) / 100, 0.3)
    if _BOOLEAN_RE.search(query):
        score += 0.2
    if _PROXIMITY_RE.search(query):
        score += 0.2
    if _GROUPING_RE.search(query):
        score += 0.15
    score += min(len(extract_search_terms(query)) / 10, 0.15)

    return round(min(score, 1.0), 3)


__all__ = [
    "MAX_EXTRACTED_TERMS",
    "calculate_query_complexity",
    "extract_search_terms",
]
