"""Search API routes.

Provides endpoints for:
- GET /search - Full-text search from query-string parameters
- POST /search/advanced - Structured must/should/must-not search
- GET /search/suggest - Prefix suggestions for autocomplete
- POST /search/index/{doc_type}/{entity_id} - Index one entity
- DELETE /search/index/{doc_type}/{entity_id} - Remove one document
- POST /search/reindex - Rebuild the index from the system of record
- GET /search/stats, /search/health, /search/info - Index status
"""

import json
from contextlib import contextmanager
from typing import Annotated, Any, Iterator, Optional

from celery import Celery
from fastapi import APIRouter, HTTPException, Query, Response, status

from cardsearch_core.api.deps import (
    IndexingServiceDep,
    OwnerId,
    OwnerIdOptional,
    RateLimited,
    SearchServiceDep,
)
from cardsearch_core.api.schemas.search import (
    AdvancedSearchRequest,
    HealthResponse,
    IndexOperationResponse,
    IndexStatsResponse,
    ReindexResponse,
    SearchResponse,
    SuggestResponse,
)
from cardsearch_core.config import get_settings
from cardsearch_core.domain.exceptions import (
    ReindexError,
    SearchUnavailableError,
    SearchValidationError,
)
from cardsearch_core.domain.pagination import PaginationParams
from cardsearch_core.domain.schemas.search import (
    AdvancedQuery,
    DocumentType,
    SearchFilter,
    SearchMode,
    SearchRequest,
    SortSpec,
)
from cardsearch_core.domain.services.search import DEFAULT_LIMIT, MAX_LIMIT, SearchService
from cardsearch_core.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


# =============================================================================
# HELPERS
# =============================================================================


def get_celery_app() -> Celery:
    """Get a Celery app instance."""
    settings = get_settings()
    return Celery(broker=settings.celery_broker_url, backend=settings.celery_result_backend)


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map domain errors onto HTTP responses."""
    try:
        yield
    except SearchValidationError as e:
        status_code = (
            status.HTTP_401_UNAUTHORIZED
            if e.code == "OWNER_REQUIRED"
            else status.HTTP_400_BAD_REQUEST
        )
        raise HTTPException(status_code=status_code, detail=e.to_dict())
    except SearchUnavailableError as e:
        logger.warning("search backend unavailable", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": e.message, "retryable": True},
        )


def _bad_request(message: str, code: str = "INVALID_PARAMETER") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=SearchValidationError(message, code=code).to_dict(),
    )


def parse_document_type(value: str) -> DocumentType:
    try:
        return DocumentType(value.lower())
    except ValueError:
        raise _bad_request(f"Unknown index: {value}", code="INVALID_INDEX")


def parse_fields(value: Optional[str]) -> Optional[list[str]]:
    """Parse a comma-separated field list."""
    if not value:
        return None
    fields = [name.strip() for name in value.split(",") if name.strip()]
    return fields or None


def parse_sort(sort: Optional[str], sort_by: Optional[str]) -> list[SortSpec]:
    """Parse sorting from ``sort=field:dir[,field:dir]`` or ``sortBy=field&sort=dir``."""
    if sort_by:
        return [SortSpec(field=sort_by, direction=(sort or "desc").lower())]
    if not sort:
        return []

    specs = []
    for entry in sort.split(","):
        entry = entry.strip()
        if not entry:
            continue
        field, _, direction = entry.partition(":")
        specs.append(SortSpec(field=field.strip(), direction=(direction.strip() or "desc").lower()))
    return specs


def parse_filters(value: Optional[str]) -> list[SearchFilter]:
    """Parse the ``filters`` JSON array.

    Raises:
        HTTPException: 400 when the value is not a JSON array of filter objects.
    """
    if not value:
        return []
    try:
        raw = json.loads(value)
    except json.JSONDecodeError:
        raise _bad_request("filters must be a JSON array", code="INVALID_FILTER")

    if not isinstance(raw, list):
        raise _bad_request("filters must be a JSON array", code="INVALID_FILTER")

    filters = []
    for item in raw:
        if not isinstance(item, dict) or "field" not in item or "value" not in item:
            raise _bad_request(
                "each filter needs 'field' and 'value'", code="INVALID_FILTER"
            )
        filters.append(
            SearchFilter(
                field=str(item["field"]),
                value=item["value"],
                operator=str(item.get("operator", "eq")).lower(),
            )
        )
    return filters


def _window(limit: int, offset: int, page: Optional[int]) -> tuple[int, int]:
    """Resolve limit/offset, converting page-based parameters when given."""
    if page is None:
        return limit, offset
    params = PaginationParams.from_query_params(
        page=page, page_size=limit, max_page_size=MAX_LIMIT
    )
    return params.page_size, params.offset


def _run_search(
    search_service: SearchService,
    request: SearchRequest,
    owner_id: Optional[str],
) -> dict[str, Any]:
    with translate_errors():
        result = search_service.search(request, owner_id=owner_id)

    logger.info(
        "search served",
        index=request.index.value,
        mode=result.meta.mode.value,
        total=result.meta.total_matches,
        returned=len(result.items),
        execution_time_ms=result.meta.execution_time_ms,
    )
    return result.to_dict()


# =============================================================================
# SEARCH
# =============================================================================


@router.get(
    "",
    response_model=SearchResponse,
    dependencies=[RateLimited],
    summary="Search cards or companies",
    description="Full-text search with simple, boolean, proximity or advanced query modes.",
)
def search(
    search_service: SearchServiceDep,
    owner_id: OwnerIdOptional,
    q: Annotated[str, Query(description="Search text")] = "",
    mode: Annotated[str, Query(description="simple, boolean, proximity or advanced")] = "simple",
    index: Annotated[str, Query(description="card or company")] = "card",
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
    page: Optional[int] = None,
    fields: Annotated[Optional[str], Query(description="Comma-separated: title,content")] = None,
    highlight: bool = False,
    sort: Annotated[Optional[str], Query(description="field:dir list, or dir with sortBy")] = None,
    sortBy: Optional[str] = None,
    filters: Annotated[Optional[str], Query(description="JSON array of filters")] = None,
    distance: Annotated[int, Query(description="Proximity distance, 0 = adjacent")] = 0,
):
    """Search the caller's cards, or companies."""
    limit, offset = _window(limit, offset, page)
    request = SearchRequest(
        raw_query=q,
        mode=SearchMode.parse(mode),
        index=parse_document_type(index),
        fields=parse_fields(fields),
        highlight=highlight,
        sort=parse_sort(sort, sortBy),
        filters=parse_filters(filters),
        limit=limit,
        offset=offset,
        distance=distance,
    )
    return _run_search(search_service, request, owner_id)


@router.post(
    "/advanced",
    response_model=SearchResponse,
    dependencies=[RateLimited],
    summary="Structured search",
    description="Search with required, optional and excluded terms or phrases.",
)
def advanced_search(
    body: AdvancedSearchRequest,
    search_service: SearchServiceDep,
    owner_id: OwnerIdOptional,
):
    """Search with a structured advanced query."""
    limit, offset = _window(body.limit, body.offset, body.page)
    request = SearchRequest(
        raw_query=body.q or "",
        mode=SearchMode.ADVANCED,
        index=parse_document_type(body.index),
        fields=body.fields,
        highlight=body.highlight,
        sort=[SortSpec(field=s.field, direction=s.direction.lower()) for s in body.sort],
        filters=[
            SearchFilter(field=f.field, value=f.value, operator=f.operator.lower())
            for f in body.filters
        ],
        limit=limit,
        offset=offset,
        advanced=AdvancedQuery(
            must_have=body.must_have,
            should_have=body.should_have,
            must_not_have=body.must_not_have,
            q=body.q,
        ),
    )
    return _run_search(search_service, request, owner_id)


@router.get(
    "/suggest",
    response_model=SuggestResponse,
    dependencies=[RateLimited],
    summary="Autocomplete suggestions",
)
def suggest(
    search_service: SearchServiceDep,
    owner_id: OwnerIdOptional,
    q: Annotated[str, Query(description="Partial input, at least 2 characters")] = "",
    index: str = "card",
    limit: int = 10,
):
    """Suggest document titles for partial input."""
    with translate_errors():
        suggestions = search_service.suggest(
            q, index=parse_document_type(index), owner_id=owner_id, limit=limit
        )
    return SuggestResponse(suggestions=suggestions)


# =============================================================================
# INDEX MANAGEMENT
# =============================================================================


@router.post(
    "/index/{doc_type}/{entity_id}",
    response_model=IndexOperationResponse,
    summary="Index one entity",
)
def index_entity(
    doc_type: str,
    entity_id: str,
    owner_id: OwnerId,
    indexing_service: IndexingServiceDep,
):
    """Load an entity from the system of record and (re)index it."""
    document_type = parse_document_type(doc_type)
    with translate_errors():
        indexed = indexing_service.index_by_id(document_type, entity_id)

    if not indexed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{document_type.value} {entity_id} not found",
        )
    logger.info("document indexed", doc_type=document_type.value, entity_id=entity_id)
    return IndexOperationResponse(doc_type=document_type.value, id=entity_id, indexed=True)


@router.delete(
    "/index/{doc_type}/{entity_id}",
    response_model=IndexOperationResponse,
    summary="Remove one document",
)
def remove_entity(
    doc_type: str,
    entity_id: str,
    owner_id: OwnerId,
    indexing_service: IndexingServiceDep,
):
    """Remove a document from the index. Missing documents are not an error."""
    document_type = parse_document_type(doc_type)
    with translate_errors():
        removed = indexing_service.remove_one(entity_id, document_type)
    return IndexOperationResponse(doc_type=document_type.value, id=entity_id, removed=removed)


@router.post(
    "/reindex",
    response_model=ReindexResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Rebuild the index",
    description="Queue a full reindex on the worker, or run it inline with wait=true.",
)
def reindex(
    response: Response,
    owner_id: OwnerId,
    indexing_service: IndexingServiceDep,
    wait: bool = False,
):
    """Re-index every card and company."""
    if not wait:
        task = get_celery_app().send_task("index.reindex_all", queue="index")
        logger.info("reindex queued", job_id=task.id)
        return ReindexResponse(status="queued", job_id=task.id)

    try:
        with translate_errors():
            report = indexing_service.reindex_all()
    except ReindexError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": e.message, **e.details},
        )

    response.status_code = status.HTTP_200_OK
    return ReindexResponse(status="completed", **report.to_dict())


# =============================================================================
# STATUS
# =============================================================================


@router.get("/stats", response_model=IndexStatsResponse, summary="Index statistics")
def index_stats(owner_id: OwnerId, indexing_service: IndexingServiceDep):
    """Document counts and last update time per type."""
    with translate_errors():
        stats = indexing_service.get_index_stats()
    return IndexStatsResponse(**stats.to_dict())


@router.get("/health", response_model=HealthResponse, summary="Text index health")
def search_health(response: Response, search_service: SearchServiceDep):
    """Report whether the text index is reachable."""
    health = search_service.health_check()
    if not health["reachable"]:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(**health)


@router.get("/info", summary="Text index description")
def search_info(owner_id: OwnerId, search_service: SearchServiceDep) -> dict[str, Any]:
    """Describe the text index table."""
    with translate_errors():
        return search_service.get_index_info()
