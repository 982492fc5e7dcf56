"""Domain services for CardSearch."""

from cardsearch_core.domain.services.documents import transform
from cardsearch_core.domain.services.indexing import IndexingService
from cardsearch_core.domain.services.search import SearchService

__all__ = [
    "IndexingService",
    "SearchService",
    "transform",
]
