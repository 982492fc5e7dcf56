"""Query sanitizing, compiling, validation and highlight utilities."""

from cardsearch_core.domain.query.analytics import (
    calculate_query_complexity,
    extract_search_terms,
)
from cardsearch_core.domain.query.compiler import (
    build_advanced_query,
    build_boolean_query,
    build_prefix_query,
    build_proximity_query,
    build_simple_query,
    compile_query,
)
from cardsearch_core.domain.query.highlight import (
    build_highlight_text,
    parse_highlights,
    strip_markers,
)
from cardsearch_core.domain.query.sanitize import (
    escape_search_term,
    sanitize_search_query,
)
from cardsearch_core.domain.query.validate import is_valid_tsquery

__all__ = [
    "build_advanced_query",
    "build_boolean_query",
    "build_highlight_text",
    "build_prefix_query",
    "build_proximity_query",
    "build_simple_query",
    "calculate_query_complexity",
    "compile_query",
    "escape_search_term",
    "extract_search_terms",
    "is_valid_tsquery",
    "parse_highlights",
    "sanitize_search_query",
    "strip_markers",
]
