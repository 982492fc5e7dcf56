"""Indexing tasks for the PostgreSQL text index.

These tasks keep the card and company search documents in sync with the
system of record. Upserts and removals are queued by the core API when an
entity changes; ``reindex_all`` rebuilds everything.
"""

from typing import Any

from cardsearch_worker.celery_app import app


def _indexing_service():
    """Build an IndexingService wired to the database."""
    # Import here to avoid circular imports
    from cardsearch_core.config import get_settings
    from cardsearch_core.domain.query_limits import QueryLimits
    from cardsearch_core.domain.services.indexing import IndexingService
    from cardsearch_core.infra.db import get_engine, get_sync_session_factory
    from cardsearch_core.infrastructure.entity_source import SqlEntitySource
    from cardsearch_core.infrastructure.text_index import PostgresTextIndex

    settings = get_settings()
    index = PostgresTextIndex(
        engine=get_engine(),
        text_config=settings.search_text_config,
        limits=QueryLimits.from_settings(settings),
    )
    return IndexingService(
        index=index,
        entity_source=SqlEntitySource(get_sync_session_factory()),
        concurrency=settings.reindex_concurrency,
        batch_size=settings.reindex_batch_size,
    )


@app.task(name="index.upsert_document", bind=True, max_retries=3)
def upsert_document(self, doc_type: str, entity_id: str) -> dict[str, Any]:
    """Load a card or company and (re)index it.

    Args:
        doc_type: Type of document ("card" or "company").
        entity_id: ID of the entity to index.

    Returns:
        Dictionary with status and details.
    """
    from cardsearch_core.domain.exceptions import SearchUnavailableError
    from cardsearch_core.domain.schemas.search import DocumentType

    try:
        document_type = DocumentType(doc_type)
    except ValueError:
        return {
            "status": "error",
            "doc_type": doc_type,
            "entity_id": entity_id,
            "error": f"Unknown document type: {doc_type}",
        }

    try:
        service = _indexing_service()
        indexed = service.index_by_id(document_type, entity_id)
    except SearchUnavailableError as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
        return {
            "status": "error",
            "doc_type": doc_type,
            "entity_id": entity_id,
            "error": exc.message,
        }

    if not indexed:
        return {
            "status": "not_found",
            "doc_type": doc_type,
            "entity_id": entity_id,
            "error": f"Entity {doc_type}:{entity_id} not found",
        }
    return {
        "status": "success",
        "doc_type": doc_type,
        "entity_id": entity_id,
    }


@app.task(name="index.remove_document", bind=True, max_retries=3)
def remove_document(self, doc_type: str, entity_id: str) -> dict[str, Any]:
    """Remove a card or company from the index.

    Args:
        doc_type: Type of document ("card" or "company").
        entity_id: ID of the entity to remove.

    Returns:
        Dictionary with status and details. Removing a document that is not
        indexed reports "not_found".
    """
    from cardsearch_core.domain.exceptions import SearchUnavailableError
    from cardsearch_core.domain.schemas.search import DocumentType

    try:
        document_type = DocumentType(doc_type)
    except ValueError:
        return {
            "status": "error",
            "doc_type": doc_type,
            "entity_id": entity_id,
            "error": f"Unknown document type: {doc_type}",
        }

    try:
        removed = _indexing_service().remove_one(entity_id, document_type)
    except SearchUnavailableError as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
        return {
            "status": "error",
            "doc_type": doc_type,
            "entity_id": entity_id,
            "error": exc.message,
        }

    return {
        "status": "success" if removed else "not_found",
        "doc_type": doc_type,
        "entity_id": entity_id,
    }


@app.task(name="index.reindex_all", bind=True, max_retries=3)
def reindex_all(self) -> dict[str, Any]:
    """Rebuild the text index from every card and company.

    Returns:
        Dictionary with status and the indexing report.
    """
    from cardsearch_core.domain.exceptions import ReindexError, SearchUnavailableError

    try:
        service = _indexing_service()
        service.ensure_index()
        report = service.reindex_all()
    except (ReindexError, SearchUnavailableError) as exc:
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))
        return {
            "status": "error",
            "error": exc.message,
        }

    return {
        "status": "success" if report.failed == 0 else "partial",
        **report.to_dict(),
    }
