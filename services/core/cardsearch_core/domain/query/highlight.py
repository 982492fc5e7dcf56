"""Highlight text building and snippet parsing.

The builder produces the text handed to ``ts_headline``; the parser splits
the marked-up headline into plain and highlighted segments.
"""

import re
from typing import Optional

from cardsearch_core.domain.schemas.search import HighlightSegment

START_TAG = "<b>"
STOP_TAG = "</b>"
NOTES_EXCERPT_LENGTH = 200


def _is_present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def build_highlight_text(
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    title: Optional[str] = None,
    company: Optional[str] = None,
    notes: Optional[str] = None,
) -> str:
    """Join the present fields in priority order.

    Order: full name, title, company, then the first 200 characters of notes.
    """
    parts = [first_name, last_name, title, company]
    if _is_present(notes):
        parts.append(notes[:NOTES_EXCERPT_LENGTH])
    return " ".join(part.strip() for part in parts if _is_present(part))


def _marker_pattern(start_tag: str, stop_tag: str) -> re.Pattern:
    return re.compile(f"{re.escape(start_tag)}(.*?){re.escape(stop_tag)}", re.DOTALL)


def parse_highlights(
    text: str, start_tag: str = START_TAG, stop_tag: str = STOP_TAG
) -> list[HighlightSegment]:
    """Split a headline into ordered plain and highlighted segments.

    Marker tags are removed; joining the segment texts gives
    ``strip_markers(text)``. Empty segments are never emitted.
    """
    if not text:
        return []

    segments: list[HighlightSegment] = []
    position = 0
    for match in _marker_pattern(start_tag, stop_tag).finditer(text):
        if match.start() > position:
            segments.append(HighlightSegment(text[position : match.start()], False))
        if match.group(1):
            segments.append(HighlightSegment(match.group(1), True))
        position = match.end()

    if position < len(text):
        segments.append(HighlightSegment(text[position:], False))
    return segments


def strip_markers(text: str, start_tag: str = START_TAG, stop_tag: str = STOP_TAG) -> str:
    """Remove matched marker pairs, keeping the text they wrapped."""
    if not text:
        return ""
    return _marker_pattern(start_tag, stop_tag).sub(r"\1", text)


__all__ = [
    "NOTES_EXCERPT_LENGTH",
    "START_TAG",
    "STOP_TAG",
    "build_highlight_text",
    "parse_highlights",
    "strip_markers",
]
