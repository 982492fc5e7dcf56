"""Compile user search input into PostgreSQL tsquery expressions.

Each strategy takes raw user text (or a structured advanced query) and
returns a tsquery string, or ``""`` when nothing usable remains. Every
token is escaped with ``escape_search_term`` so user text can never inject
operators; only the compiler itself emits ``& | ! <-> <N> ( )``.

Usage:
    compile_query("software AND NOT intern", SearchMode.BOOLEAN)
    # -> "software & !intern"
"""

import logging
import re
from typing import Callable, Optional, Union

from cardsearch_core.domain.query.sanitize import (
    escape_search_term,
    sanitize_search_query,
    split_terms,
)
from cardsearch_core.domain.query.validate import is_valid_tsquery
from cardsearch_core.domain.schemas.search import AdvancedQuery, SearchMode

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


MAX_SIMPLE_TERMS = 10
MAX_PROXIMITY_TERMS = 5
# Largest phrase distance PostgreSQL accepts in <N>
MAX_PROXIMITY_DISTANCE = 16384
MAX_MUST_HAVE = 5
MAX_SHOULD_HAVE = 5
MAX_MUST_NOT_HAVE = 3
MIN_PREFIX_LENGTH = 2

_BOOLEAN_TOKEN_RE = re.compile(r"[()]|[^\s()]+")

_AND_WORDS = {"AND", "&", "&&"}
_OR_WORDS = {"OR", "|", "||"}
_NOT_WORDS = {"NOT", "!"}

_BINARY = {"&", "|"}


# =============================================================================
# SIMPLE / PROXIMITY / PREFIX
# =============================================================================


def build_simple_query(raw_query: str) -> str:
    """AND together up to MAX_SIMPLE_TERMS escaped terms."""
    terms = split_terms(sanitize_search_query(raw_query))[:MAX_SIMPLE_TERMS]
    return " & ".join(escape_search_term(term) for term in terms)


def build_proximity_query(raw_query: str, distance: int = 0) -> str:
    """Chain terms with ``<->`` (adjacent) or ``<N>`` (exactly N apart).

    ``distance`` is clamped to [0, MAX_PROXIMITY_DISTANCE].
    """
    terms = [
        escape_search_term(term)
        for term in split_terms(sanitize_search_query(raw_query))[:MAX_PROXIMITY_TERMS]
    ]
    if len(terms) < 2:
        return terms[0] if terms else ""

    distance = min(max(distance or 0, 0), MAX_PROXIMITY_DISTANCE)
    operator = f" <{distance}> " if distance > 0 else " <-> "
    return operator.join(terms)


def build_prefix_query(raw_query: str) -> str:
    """Build an autocomplete query: the last word matches as a prefix."""
    sanitized = sanitize_search_query(raw_query)
    if len(sanitized) < MIN_PREFIX_LENGTH:
        return ""

    terms = [escape_search_term(term) for term in split_terms(sanitized)]
    terms = terms[:MAX_SIMPLE_TERMS]
    terms[-1] = f"{terms[-1]}:*"
    return " & ".join(terms)


# =============================================================================
# BOOLEAN
# =============================================================================


def _is_operand_end(token: Optional[str]) -> bool:
    return token is not None and token not in _BINARY and token not in ("!", "(")


def _strip_dangling(out: list[str]) -> None:
    while out and (out[-1] in _BINARY or out[-1] == "!"):
        out.pop()


def _classify(word: str) -> list[str]:
    """Map a raw boolean-mode word to output tokens."""
    upper = word.upper()
    if upper in _AND_WORDS:
        return ["&"]
    if upper in _OR_WORDS:
        return ["|"]
    if upper in _NOT_WORDS:
        return ["!"]
    if len(word) > 1 and word[0] == "+":
        return [escape_search_term(word[1:])]
    if len(word) > 1 and word[0] in "-!":
        return ["!", escape_search_term(word[1:])]
    if word in ("+", "-"):
        return []
    return [escape_search_term(word)]


def _assemble(tokens: list[str]) -> list[str]:
    """Place implicit ANDs, drop dangling operators and empty groups."""
    out: list[str] = []
    depth = 0

    for token in tokens:
        previous = out[-1] if out else None

        if token in _BINARY:
            if _is_operand_end(previous):
                out.append(token)
            continue

        if token == "!":
            if previous == "!":
                continue
            if _is_operand_end(previous):
                out.append("&")
            out.append("!")
            continue

        if token == "(":
            if _is_operand_end(previous):
                out.append("&")
            out.append("(")
            depth += 1
            continue

        if token == ")":
            if depth == 0:
                continue
            _strip_dangling(out)
            depth -= 1
            if out and out[-1] == "(":
                out.pop()
            else:
                out.append(")")
            continue

        if _is_operand_end(previous):
            out.append("&")
        out.append(token)

    while depth > 0:
        _strip_dangling(out)
        depth -= 1
        if out and out[-1] == "(":
            out.pop()
        else:
            out.append(")")

    _strip_dangling(out)
    return out


def _render(tokens: list[str]) -> str:
    parts = []
    for token in tokens:
        if token in _BINARY:
            parts.append(f" {token} ")
        else:
            parts.append(token)
    return "".join(parts)


def build_boolean_query(raw_query: str) -> str:
    """Compile AND/OR/NOT, ``+required`` and ``-excluded`` syntax.

    Falls back to the simple strategy when the assembled expression does not
    validate, so a malformed boolean query degrades instead of failing.
    """
    sanitized = sanitize_search_query(raw_query)
    if not sanitized:
        return ""

    tokens: list[str] = []
    for word in _BOOLEAN_TOKEN_RE.findall(sanitized):
        if word in ("(", ")"):
            tokens.append(word)
        else:
            tokens.extend(_classify(word))

    compiled = _render(_assemble(tokens))
    if is_valid_tsquery(compiled):
        return compiled

    logger.debug(f"Boolean query {sanitized!r} did not validate, using simple")
    return build_simple_query(sanitized)


# =============================================================================
# ADVANCED
# =============================================================================


def _phrase(entry: str) -> str:
    terms = split_terms(sanitize_search_query(entry))
    return " <-> ".join(escape_search_term(term) for term in terms)


def _phrases(entries: Optional[list[str]], cap: int) -> list[str]:
    phrases = [_phrase(entry) for entry in (entries or [])[:cap]]
    return [phrase for phrase in phrases if phrase]


def build_advanced_query(advanced: Optional[AdvancedQuery]) -> str:
    """Compile required, optional and excluded term groups.

    ``must_have`` renders as ``(a & b)``, ``should_have`` as ``(a | b)`` and
    ``must_not_have`` as ``!(a | b)``. A free-text ``q`` is compiled with the
    simple strategy and placed first. Returns ``""`` when nothing is usable.
    """
    if advanced is None:
        return ""

    groups = []
    if advanced.q:
        simple = build_simple_query(advanced.q)
        if simple:
            groups.append(simple)

    must = _phrases(advanced.must_have, MAX_MUST_HAVE)
    if must:
        groups.append(f"({' & '.join(must)})")

    should = _phrases(advanced.should_have, MAX_SHOULD_HAVE)
    if should:
        groups.append(f"({' | '.join(should)})")

    must_not = _phrases(advanced.must_not_have, MAX_MUST_NOT_HAVE)
    if must_not:
        groups.append(f"!({' | '.join(must_not)})")

    return " & ".join(groups)


# =============================================================================
# DISPATCH
# =============================================================================


Compiler = Callable[[str, int, Optional[AdvancedQuery]], str]

COMPILERS: dict[SearchMode, Compiler] = {
    SearchMode.SIMPLE: lambda raw, distance, advanced: build_simple_query(raw),
    SearchMode.BOOLEAN: lambda raw, distance, advanced: build_boolean_query(raw),
    SearchMode.PROXIMITY: lambda raw, distance, advanced: build_proximity_query(
        raw, distance
    ),
    SearchMode.ADVANCED: lambda raw, distance, advanced: build_advanced_query(advanced),
}


def compile_query(
    raw_query: str,
    mode: Union[SearchMode, str, None] = SearchMode.SIMPLE,
    distance: int = 0,
    advanced: Optional[AdvancedQuery] = None,
) -> str:
    """Compile a query with the strategy for ``mode``.

    Unknown modes use the simple strategy. A non-empty result that does not
    validate is recompiled with the simple strategy.
    """
    search_mode = SearchMode.parse(mode)
    compiled = COMPILERS[search_mode](raw_query, distance, advanced)

    if compiled and not is_valid_tsquery(compiled):
        logger.debug(f"Compiled {search_mode.value} query failed validation: {compiled!r}")
        compiled = build_simple_query(raw_query)
    return compiled


__all__ = [
    "COMPILERS",
    "MAX_MUST_HAVE",
    "MAX_MUST_NOT_HAVE",
    "MAX_PROXIMITY_DISTANCE",
    "MAX_PROXIMITY_TERMS",
    "MAX_SHOULD_HAVE",
    "MAX_SIMPLE_TERMS",
    "build_advanced_query",
    "build_boolean_query",
    "build_prefix_query",
    "build_proximity_query",
    "build_simple_query",
    "compile_query",
]
