"""API dependencies for dependency injection."""

from functools import lru_cache
from typing import Annotated, Optional

import redis
from fastapi import Depends, Header, HTTPException, Request, status

from cardsearch_core.config import Settings, get_settings
from cardsearch_core.domain.query_limits import QueryLimits
from cardsearch_core.domain.services.indexing import IndexingService
from cardsearch_core.domain.services.search import SearchService
from cardsearch_core.infra.db import get_engine, get_sync_session_factory
from cardsearch_core.infrastructure.entity_source import EntitySource, SqlEntitySource
from cardsearch_core.infrastructure.rate_limiter import (
    RateLimitConfig,
    RateLimitExceeded,
    SearchRateLimiter,
)
from cardsearch_core.infrastructure.text_index import PostgresTextIndex, TextIndexBackend


@lru_cache
def get_text_index() -> TextIndexBackend:
    """Get the shared text index backend."""
    settings = get_settings()
    return PostgresTextIndex(
        engine=get_engine(),
        text_config=settings.search_text_config,
        limits=QueryLimits.from_settings(settings),
    )


def get_entity_source() -> EntitySource:
    """Get the system-of-record reader."""
    return SqlEntitySource(get_sync_session_factory())


def get_search_service(
    index: Annotated[TextIndexBackend, Depends(get_text_index)],
) -> SearchService:
    """Get the search service."""
    return SearchService(index=index)


def get_indexing_service(
    index: Annotated[TextIndexBackend, Depends(get_text_index)],
    entity_source: Annotated[EntitySource, Depends(get_entity_source)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> IndexingService:
    """Get the indexing service."""
    return IndexingService(
        index=index,
        entity_source=entity_source,
        concurrency=settings.reindex_concurrency,
        batch_size=settings.reindex_batch_size,
    )


def get_owner_id_optional(
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> Optional[str]:
    """Get the caller identity set by the upstream authentication layer."""
    if x_user_id is None or not x_user_id.strip():
        return None
    return x_user_id.strip()


def get_owner_id(
    owner_id: Annotated[Optional[str], Depends(get_owner_id_optional)],
) -> str:
    """Get the authenticated caller.

    Raises:
        HTTPException: If no identity was provided.
    """
    if owner_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return owner_id


@lru_cache
def get_rate_limiter() -> SearchRateLimiter:
    """Get the process-wide search rate limiter."""
    settings = get_settings()
    return SearchRateLimiter(
        redis.from_url(settings.redis_url),
        RateLimitConfig(requests_per_minute=settings.search_rate_limit_per_minute),
    )


def enforce_search_rate_limit(
    request: Request,
    owner_id: Annotated[Optional[str], Depends(get_owner_id_optional)],
    limiter: Annotated[SearchRateLimiter, Depends(get_rate_limiter)],
) -> None:
    """Count a search request against the caller's window.

    Raises:
        HTTPException: 429 when the caller is over the limit.
    """
    client = request.client.host if request.client else "unknown"
    client_key = f"user:{owner_id}" if owner_id else f"ip:{client}"
    try:
        limiter.acquire(client_key)
    except RateLimitExceeded as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": str(e)},
            headers={"Retry-After": str(e.retry_after)},
        )


# Type aliases for cleaner route signatures
OwnerId = Annotated[str, Depends(get_owner_id)]
OwnerIdOptional = Annotated[Optional[str], Depends(get_owner_id_optional)]
SearchServiceDep = Annotated[SearchService, Depends(get_search_service)]
IndexingServiceDep = Annotated[IndexingService, Depends(get_indexing_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
RateLimited = Depends(enforce_search_rate_limit)
