"""API schemas."""

from cardsearch_core.api.schemas.search import (
    AdvancedSearchRequest,
    IndexOperationResponse,
    ReindexResponse,
    SearchResponse,
    SuggestResponse,
)

__all__ = [
    "AdvancedSearchRequest",
    "IndexOperationResponse",
    "ReindexResponse",
    "SearchResponse",
    "SuggestResponse",
]
