"""Search service for full-text search over cards and companies.

This service provides:
1. Request validation (pagination bounds, query length, sort/filter/field names)
2. Owner scoping so a caller only ever searches their own cards
3. Query compilation with fallback to the simple strategy
4. Ranked execution against the text index
5. Optional highlighted snippets per hit
6. Prefix suggestions for autocomplete

Usage:
    service = SearchService(index=PostgresTextIndex(engine))

    result = service.search(
        SearchRequest(raw_query="software AND NOT intern", mode=SearchMode.BOOLEAN),
        owner_id="user-1",
    )

    titles = service.suggest("sof", index=DocumentType.CARD, owner_id="user-1")
"""

import logging
import re
import time
from enum import Enum
from typing import Any, Optional

from cardsearch_core.domain.exceptions import SearchValidationError
from cardsearch_core.domain.pagination import OffsetPage
from cardsearch_core.domain.query.analytics import (
    calculate_query_complexity,
    extract_search_terms,
)
from cardsearch_core.domain.query.compiler import (
    MAX_PROXIMITY_DISTANCE,
    build_prefix_query,
    compile_query,
)
from cardsearch_core.domain.query.highlight import build_highlight_text, parse_highlights
from cardsearch_core.domain.query.sanitize import MAX_QUERY_LENGTH
from cardsearch_core.domain.schemas.search import (
    AdvancedQuery,
    DocumentType,
    FilterOperator,
    HighlightSegment,
    IndexHit,
    SearchDocument,
    SearchFilter,
    SearchMeta,
    SearchMode,
    SearchRequest,
    SearchResult,
    SearchResultItem,
    SortDirection,
    SortSpec,
)
from cardsearch_core.infrastructure.text_index import FIELD_WEIGHTS, TextIndexBackend

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_LIMIT = 20
MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_SUGGEST_LIMIT = 10
MAX_SUGGEST_LIMIT = 20

# Accepted sort names -> canonical backend names
SORT_FIELDS = {
    "rank": "rank",
    "relevance": "rank",
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "title": "title",
}

# Accepted filter names -> canonical backend names
FILTER_FIELDS = {
    "owner_id": "owner_id",
    "userId": "owner_id",
    "metadata.userId": "owner_id",
    "metadata.owner_id": "owner_id",
    "type": "doc_type",
}

_METADATA_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SCALAR_TYPES = (str, int, float, bool)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _document_type(value: Any) -> DocumentType:
    try:
        return DocumentType(_enum_value(value))
    except ValueError:
        raise SearchValidationError(
            f"Unknown index: {value}",
            code="INVALID_INDEX",
            details={"allowed": [t.value for t in DocumentType]},
        )


# =============================================================================
# SERVICE
# =============================================================================


class SearchService:
    """Service for ranked full-text search.

    Malformed request parameters are rejected with SearchValidationError.
    Malformed free text never is: it degrades to a simpler query.
    """

    def __init__(self, index: TextIndexBackend):
        """Initialize the search service.

        Args:
            index: Text index backend.
        """
        self.index = index

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _validate_pagination(self, limit: int, offset: int) -> None:
        if not isinstance(limit, int) or limit < MIN_LIMIT or limit > MAX_LIMIT:
            raise SearchValidationError(
                f"limit must be between {MIN_LIMIT} and {MAX_LIMIT}",
                details={"limit": limit},
            )
        if not isinstance(offset, int) or offset < 0:
            raise SearchValidationError(
                "offset must be zero or greater", details={"offset": offset}
            )

    def _validate_distance(self, distance: int) -> None:
        if not isinstance(distance, int) or not 0 <= distance <= MAX_PROXIMITY_DISTANCE:
            raise SearchValidationError(
                f"distance must be between 0 and {MAX_PROXIMITY_DISTANCE}",
                code="INVALID_DISTANCE",
                details={"distance": distance},
            )

    def _validate_query_length(self, request: SearchRequest) -> None:
        texts = [request.raw_query or ""]
        if request.advanced is not None:
            advanced = request.advanced
            texts.append(advanced.q or "")
            texts.extend([*advanced.must_have, *advanced.should_have, *advanced.must_not_have])

        for text_value in texts:
            if len(text_value) > MAX_QUERY_LENGTH:
                raise SearchValidationError(
                    f"Query must be at most {MAX_QUERY_LENGTH} characters",
                    code="QUERY_TOO_LONG",
                    details={"length": len(text_value)},
                )

    def _normalize_sort(self, sort: list[SortSpec]) -> list[SortSpec]:
        normalized = []
        for spec in sort or []:
            field = SORT_FIELDS.get(spec.field)
            if field is None:
                raise SearchValidationError(
                    f"Unknown sort field: {spec.field}",
                    code="INVALID_SORT",
                    details={"allowed": sorted(SORT_FIELDS)},
                )
            try:
                direction = SortDirection(str(_enum_value(spec.direction)).lower())
            except ValueError:
                raise SearchValidationError(
                    f"Sort direction must be asc or desc, got {spec.direction}",
                    code="INVALID_SORT",
                )
            normalized.append(SortSpec(field=field, direction=direction))
        return normalized

    def _normalize_filter(self, search_filter: SearchFilter) -> SearchFilter:
        field = FILTER_FIELDS.get(search_filter.field)
        if field is None:
            if not search_filter.field.startswith("metadata."):
                raise SearchValidationError(
                    f"Unknown filter field: {search_filter.field}", code="INVALID_FILTER"
                )
            key = search_filter.field.split(".", 1)[1]
            if not _METADATA_KEY_RE.match(key):
                raise SearchValidationError(
                    f"Invalid metadata key: {key}", code="INVALID_FILTER"
                )
            field = f"metadata.{key}"

        try:
            operator = FilterOperator(str(_enum_value(search_filter.operator)).lower())
        except ValueError:
            raise SearchValidationError(
                f"Unknown filter operator: {search_filter.operator}", code="INVALID_FILTER"
            )

        value = search_filter.value
        if operator == FilterOperator.IN:
            if not isinstance(value, (list, tuple)) or not value:
                raise SearchValidationError(
                    f"Filter {search_filter.field} with 'in' needs a non-empty list",
                    code="INVALID_FILTER",
                )
            if not all(isinstance(item, _SCALAR_TYPES) for item in value):
                raise SearchValidationError(
                    f"Filter {search_filter.field} values must be scalars", code="INVALID_FILTER"
                )
            value = list(value)
        elif not isinstance(value, _SCALAR_TYPES):
            raise SearchValidationError(
                f"Filter {search_filter.field} value must be a scalar", code="INVALID_FILTER"
            )

        return SearchFilter(field=field, value=value, operator=operator)

    def _scoped_filters(
        self,
        filters: list[SearchFilter],
        doc_type: DocumentType,
        owner_id: Optional[str],
    ) -> list[SearchFilter]:
        normalized = [self._normalize_filter(f) for f in filters or []]
        if doc_type != DocumentType.CARD:
            return normalized

        if not owner_id:
            raise SearchValidationError(
                "Card searches require an authenticated owner", code="OWNER_REQUIRED"
            )
        # Caller-supplied owner filters are replaced, never trusted
        scoped = [f for f in normalized if f.field != "owner_id"]
        scoped.append(SearchFilter(field="owner_id", value=str(owner_id)))
        return scoped

    def _validate_fields(self, fields: Optional[list[str]]) -> Optional[list[str]]:
        if not fields:
            return None
        unknown = [name for name in fields if name not in FIELD_WEIGHTS]
        if unknown:
            raise SearchValidationError(
                f"Unknown search fields: {', '.join(unknown)}",
                code="INVALID_FIELDS",
                details={"allowed": list(FIELD_WEIGHTS)},
            )
        return list(dict.fromkeys(fields))

    # =========================================================================
    # COMPILATION
    # =========================================================================

    def _compile(self, request: SearchRequest) -> str:
        mode = SearchMode.parse(request.mode)
        advanced = request.advanced
        if mode == SearchMode.ADVANCED and advanced is None and request.raw_query:
            advanced = AdvancedQuery(q=request.raw_query)

        return compile_query(
            request.raw_query or "",
            mode,
            distance=request.distance,
            advanced=advanced,
        )

    # =========================================================================
    # HIGHLIGHTS
    # =========================================================================

    @staticmethod
    def _highlight_source(document: SearchDocument) -> str:
        metadata = document.metadata
        if document.type == DocumentType.CARD:
            return build_highlight_text(
                first_name=metadata.get("person_name"),
                title=metadata.get("job_title"),
                company=metadata.get("company_name"),
                notes=document.content,
            )
        return build_highlight_text(
            first_name=document.title,
            title=metadata.get("industry"),
            notes=metadata.get("description"),
        )

    def _highlight(
        self, hits: list[IndexHit], compiled: str
    ) -> list[list[HighlightSegment]]:
        sources = [self._highlight_source(hit.document) for hit in hits]
        snippets = self.index.headlines(sources, compiled)
        return [parse_highlights(snippet) for snippet in snippets]

    # =========================================================================
    # SEARCH
    # =========================================================================

    def search(self, request: SearchRequest, owner_id: Optional[str] = None) -> SearchResult:
        """Run a full-text search.

        Args:
            request: Typed search request.
            owner_id: Authenticated caller; required for card searches.

        Returns:
            SearchResult with ranked items, query metadata and pagination.

        Raises:
            SearchValidationError: If request parameters are out of range.
            SearchUnavailableError: If the text index cannot be reached.
        """
        started = time.perf_counter()

        self._validate_pagination(request.limit, request.offset)
        self._validate_query_length(request)
        self._validate_distance(request.distance)
        doc_type = _document_type(request.index)
        sort = self._normalize_sort(request.sort)
        fields = self._validate_fields(request.fields)
        filters = self._scoped_filters(request.filters, doc_type, owner_id)

        mode = SearchMode.parse(request.mode)
        compiled = self._compile(request)
        complexity = calculate_query_complexity(request.raw_query or "")
        logger.debug(
            f"Search {doc_type.value} mode={mode.value} compiled={compiled!r} "
            f"terms={extract_search_terms(request.raw_query or '')} complexity={complexity}"
        )

        if not compiled:
            return self._assemble(
                request, mode, compiled, complexity, started, total=0, items=[]
            )

        hits = self.index.execute_compiled_query(
            compiled,
            doc_type,
            filters=filters,
            sort=sort,
            fields=fields,
            limit=request.limit,
            offset=request.offset,
        )

        highlights = (
            self._highlight(hits.hits, compiled)
            if request.highlight and hits.hits
            else [None] * len(hits.hits)
        )
        items = [
            SearchResultItem(
                entity=hit.document,
                rank=hit.rank,
                highlights=segments,
                matched_fields=list(hit.matched_fields) if fields else None,
            )
            for hit, segments in zip(hits.hits, highlights)
        ]

        result = self._assemble(
            request, mode, compiled, complexity, started, total=hits.total, items=items
        )
        logger.info(
            f"Search {doc_type.value} returned {len(items)} of {hits.total} "
            f"in {result.meta.execution_time_ms}ms"
        )
        return result

    @staticmethod
    def _assemble(
        request: SearchRequest,
        mode: SearchMode,
        compiled: str,
        complexity: float,
        started: float,
        total: int,
        items: list[SearchResultItem],
    ) -> SearchResult:
        page = OffsetPage(
            limit=request.limit,
            offset=request.offset,
            total=total,
            returned=len(items),
        )
        meta = SearchMeta(
            processed_query=compiled,
            execution_time_ms=round((time.perf_counter() - started) * 1000, 2),
            total_matches=total,
            mode=mode,
            has_more=page.has_next,
            complexity=complexity,
        )
        return SearchResult(items=items, meta=meta, pagination=page)

    def suggest(
        self,
        prefix: str,
        index: DocumentType = DocumentType.CARD,
        owner_id: Optional[str] = None,
        limit: int = DEFAULT_SUGGEST_LIMIT,
    ) -> list[str]:
        """Return document titles matching a prefix query.

        Args:
            prefix: Partial user input; the last word matches as a prefix.
            index: Document type to search.
            owner_id: Authenticated caller; required for card suggestions.
            limit: Maximum number of suggestions.

        Returns:
            Distinct titles in rank order. Empty for prefixes under two characters.
        """
        if not isinstance(limit, int) or limit < MIN_LIMIT or limit > MAX_SUGGEST_LIMIT:
            raise SearchValidationError(
                f"limit must be between {MIN_LIMIT} and {MAX_SUGGEST_LIMIT}",
                details={"limit": limit},
            )
        if prefix and len(prefix) > MAX_QUERY_LENGTH:
            raise SearchValidationError(
                f"Query must be at most {MAX_QUERY_LENGTH} characters", code="QUERY_TOO_LONG"
            )

        doc_type = _document_type(index)
        filters = self._scoped_filters([], doc_type, owner_id)

        compiled = build_prefix_query(prefix)
        if not compiled:
            return []

        hits = self.index.execute_compiled_query(
            compiled,
            doc_type,
            filters=filters,
            sort=[],
            fields=None,
            limit=limit,
            offset=0,
        )
        return list(dict.fromkeys(hit.document.title for hit in hits.hits))

    # =========================================================================
    # STATUS
    # =========================================================================

    def health_check(self) -> dict[str, Any]:
        """Report whether the text index is reachable."""
        reachable = self.index.ping()
        return {
            "status": "healthy" if reachable else "unhealthy",
            "backend": "postgresql",
            "reachable": reachable,
        }

    def get_index_info(self) -> dict[str, Any]:
        """Describe the text index."""
        return self.index.index_info()


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "DEFAULT_LIMIT",
    "FILTER_FIELDS",
    "MAX_LIMIT",
    "SORT_FIELDS",
    "SearchService",
]
