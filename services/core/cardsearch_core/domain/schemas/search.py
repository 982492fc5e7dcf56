"""Domain types for search documents, requests and results.

Entity records are the plain input to the document transformer. Requests and
results are request-scoped and never persisted.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from cardsearch_core.domain.pagination import OffsetPage


# =============================================================================
# ENUMS
# =============================================================================


class DocumentType(str, Enum):
    """Kinds of indexed documents."""

    CARD = "card"
    COMPANY = "company"


class SearchMode(str, Enum):
    """Query compilation strategies."""

    SIMPLE = "simple"
    BOOLEAN = "boolean"
    PROXIMITY = "proximity"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: Union[str, "SearchMode", None]) -> "SearchMode":
        """Parse a mode name, defaulting to SIMPLE for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.SIMPLE


class FilterOperator(str, Enum):
    """Comparison applied by a structured filter."""

    EQ = "eq"
    NE = "ne"
    IN = "in"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# =============================================================================
# ENTITY RECORDS
# =============================================================================


@dataclass(frozen=True)
class CardRecord:
    """A scanned contact card as stored in the system of record."""

    id: str
    owner_id: str
    name: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    extracted_text: Optional[str] = None
    notes: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    address: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    company_names: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class CompanyRecord:
    """An enriched company record."""

    id: str
    name: Optional[str] = None
    domain: Optional[str] = None
    description: Optional[str] = None
    industry: Optional[str] = None
    size: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    founded: Optional[Union[int, str]] = None
    keywords: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


EntityRecord = Union[CardRecord, CompanyRecord]


# =============================================================================
# DOCUMENTS
# =============================================================================


@dataclass(frozen=True)
class SearchDocument:
    """Canonical indexable representation of a card or company."""

    id: str
    type: DocumentType
    title: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def owner_id(self) -> Optional[str]:
        """Owner of the document, None for companies."""
        if self.type != DocumentType.CARD:
            return None
        return self.metadata.get("owner_id")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# =============================================================================
# REQUESTS
# =============================================================================


@dataclass
class SearchFilter:
    """A structured filter, e.g. ``metadata.enriched == True``."""

    field: str
    value: Any
    operator: FilterOperator = FilterOperator.EQ


@dataclass
class SortSpec:
    field: str
    direction: SortDirection = SortDirection.DESC


@dataclass
class AdvancedQuery:
    """Structured query with required, optional and excluded terms."""

    must_have: list[str] = field(default_factory=list)
    should_have: list[str] = field(default_factory=list)
    must_not_have: list[str] = field(default_factory=list)
    q: Optional[str] = None


@dataclass
class SearchRequest:
    """A typed search request.

    String parsing of HTTP parameters happens before this is built.
    """

    raw_query: str = ""
    mode: SearchMode = SearchMode.SIMPLE
    index: DocumentType = DocumentType.CARD
    fields: Optional[list[str]] = None
    highlight: bool = False
    sort: list[SortSpec] = field(default_factory=list)
    filters: list[SearchFilter] = field(default_factory=list)
    limit: int = 20
    offset: int = 0
    distance: int = 0
    advanced: Optional[AdvancedQuery] = None


# =============================================================================
# BACKEND RESULTS
# =============================================================================


@dataclass
class IndexHit:
    """One ranked row returned by the text index."""

    document: SearchDocument
    rank: float
    matched_fields: list[str] = field(default_factory=list)


@dataclass
class IndexHits:
    total: int
    hits: list[IndexHit] = field(default_factory=list)


# =============================================================================
# SEARCH RESULTS
# =============================================================================


@dataclass
class HighlightSegment:
    """A run of snippet text, flagged when it matched the query."""

    text: str
    highlighted: bool

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "highlighted": self.highlighted}


@dataclass
class SearchResultItem:
    entity: SearchDocument
    rank: float
    highlights: Optional[list[HighlightSegment]] = None
    matched_fields: Optional[list[str]] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "entity": self.entity.to_dict(),
            "rank": self.rank,
        }
        if self.highlights is not None:
            result["highlights"] = [segment.to_dict() for segment in self.highlights]
        if self.matched_fields is not None:
            result["matched_fields"] = self.matched_fields
        return result


@dataclass
class SearchMeta:
    processed_query: str
    execution_time_ms: float
    total_matches: int
    mode: SearchMode
    has_more: bool
    complexity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_query": self.processed_query,
            "execution_time_ms": self.execution_time_ms,
            "total_matches": self.total_matches,
            "mode": self.mode.value,
            "has_more": self.has_more,
            "complexity": self.complexity,
        }


@dataclass
class SearchResult:
    items: list[SearchResultItem]
    meta: SearchMeta
    pagination: OffsetPage

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "meta": self.meta.to_dict(),
            "pagination": self.pagination.to_dict(),
        }


# =============================================================================
# INDEXING RESULTS
# =============================================================================


@dataclass
class IndexingError:
    id: str
    type: DocumentType
    error: str


@dataclass
class IndexingReport:
    """Outcome of a bulk indexing operation."""

    indexed: int = 0
    failed: int = 0
    errors: list[IndexingError] = field(default_factory=list)

    def record_failure(self, entity_id: str, doc_type: DocumentType, error: str) -> None:
        self.failed += 1
        self.errors.append(IndexingError(id=entity_id, type=doc_type, error=error))

    def merge(self, other: "IndexingReport") -> None:
        self.indexed += other.indexed
        self.failed += other.failed
        self.errors.extend(other.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexed": self.indexed,
            "failed": self.failed,
            "errors": [
                {"id": e.id, "type": e.type.value, "error": e.error} for e in self.errors
            ],
        }


@dataclass
class TypeStats:
    total: int = 0
    last_updated: Optional[datetime] = None


@dataclass
class IndexStats:
    """Per-type document counts and freshness."""

    by_type: dict[DocumentType, TypeStats] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result = {}
        for doc_type in DocumentType:
            stats = self.by_type.get(doc_type, TypeStats())
            result[doc_type.value] = {
                "total": stats.total,
                "last_updated": (
                    stats.last_updated.isoformat() if stats.last_updated else None
                ),
            }
        return result


__all__ = [
    "AdvancedQuery",
    "CardRecord",
    "CompanyRecord",
    "DocumentType",
    "EntityRecord",
    "FilterOperator",
    "HighlightSegment",
    "IndexHit",
    "IndexHits",
    "IndexingError",
    "IndexingReport",
    "IndexStats",
    "SearchDocument",
    "SearchFilter",
    "SearchMeta",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "SearchResultItem",
    "SortDirection",
    "SortSpec",
    "TypeStats",
]
