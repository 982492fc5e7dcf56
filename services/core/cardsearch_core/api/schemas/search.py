"""Search API schemas."""

from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# REQUESTS
# =============================================================================


class SortField(BaseModel):
    """One sort key."""

    field: str = Field(..., description="rank, createdAt, updatedAt or title")
    direction: str = Field(default="desc", description="'asc' or 'desc'")


class FilterField(BaseModel):
    """One structured filter."""

    field: str = Field(
        ...,
        description="Filter field, e.g. 'type' or 'metadata.enriched'",
    )
    value: Any = Field(..., description="Value to compare against")
    operator: str = Field(default="eq", description="'eq', 'ne' or 'in'")


class AdvancedSearchRequest(BaseModel):
    """Request schema for the structured advanced search endpoint."""

    q: Optional[str] = Field(
        default=None,
        description="Free text, compiled with the simple strategy and ANDed first",
    )
    must_have: list[str] = Field(
        default_factory=list,
        description="Terms or phrases that must all match (max 5)",
    )
    should_have: list[str] = Field(
        default_factory=list,
        description="Terms or phrases of which at least one must match (max 5)",
    )
    must_not_have: list[str] = Field(
        default_factory=list,
        description="Terms or phrases that must not match (max 3)",
    )
    index: str = Field(default="card", description="Document type: 'card' or 'company'")
    fields: Optional[list[str]] = Field(
        default=None,
        description="Restrict matching to these fields ('title', 'content')",
    )
    highlight: bool = Field(default=False, description="Include highlighted snippets")
    sort: list[SortField] = Field(default_factory=list)
    filters: list[FilterField] = Field(default_factory=list)
    offset: int = Field(default=0, description="Pagination offset")
    limit: int = Field(default=20, description="Maximum results to return (1-100)")
    page: Optional[int] = Field(
        default=None,
        description="1-based page number; overrides offset when given",
    )


# =============================================================================
# RESPONSES
# =============================================================================


class HighlightSegmentResponse(BaseModel):
    text: str
    highlighted: bool


class SearchDocumentResponse(BaseModel):
    """An indexed card or company."""

    id: str
    type: str
    title: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SearchItemResponse(BaseModel):
    entity: SearchDocumentResponse
    rank: float = Field(..., description="ts_rank relevance score")
    highlights: Optional[list[HighlightSegmentResponse]] = None
    matched_fields: Optional[list[str]] = None


class SearchMetaResponse(BaseModel):
    processed_query: str = Field(..., description="Compiled tsquery expression")
    execution_time_ms: float
    total_matches: int
    mode: str
    has_more: bool
    complexity: float = Field(..., description="Query complexity score between 0 and 1")


class SearchPaginationResponse(BaseModel):
    limit: int
    offset: int
    page: int
    total_pages: int
    has_next: bool
    has_previous: bool


class SearchResponse(BaseModel):
    """Response schema for search endpoints."""

    items: list[SearchItemResponse]
    meta: SearchMetaResponse
    pagination: SearchPaginationResponse


class SuggestResponse(BaseModel):
    suggestions: list[str] = Field(..., description="Matching document titles")


class IndexOperationResponse(BaseModel):
    """Result of indexing or removing one document."""

    doc_type: str
    id: str
    indexed: Optional[bool] = None
    removed: Optional[bool] = None


class IndexingErrorResponse(BaseModel):
    id: str
    type: str
    error: str


class ReindexResponse(BaseModel):
    """Result of a synchronous reindex, or the queued job id."""

    status: str = Field(..., description="'completed' or 'queued'")
    job_id: Optional[str] = None
    indexed: Optional[int] = None
    failed: Optional[int] = None
    errors: list[IndexingErrorResponse] = Field(default_factory=list)


class TypeStatsResponse(BaseModel):
    total: int
    last_updated: Optional[str] = None


class IndexStatsResponse(BaseModel):
    card: TypeStatsResponse
    company: TypeStatsResponse


class HealthResponse(BaseModel):
    status: str
    backend: str
    reachable: bool
