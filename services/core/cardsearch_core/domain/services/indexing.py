"""Indexing service for the card and company text index.

This service handles:
1. Transforming entities into search documents
2. Upserting documents to the text index
3. Removing documents from the text index
4. Full reindexing with bounded concurrency

Usage:
    service = IndexingService(index=PostgresTextIndex(engine), entity_source=source)

    # Index a single card
    service.index_one(card_record)

    # Re-index everything from the system of record
    report = service.reindex_all()

    # Remove a deleted company
    service.remove_one(company_id, DocumentType.COMPANY)
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, Optional

from cardsearch_core.domain.exceptions import (
    CardSearchError,
    ReindexError,
    SearchUnavailableError,
)
from cardsearch_core.domain.schemas.search import (
    CardRecord,
    DocumentType,
    EntityRecord,
    IndexingReport,
    IndexStats,
    SearchDocument,
)
from cardsearch_core.domain.services.documents import transform
from cardsearch_core.infrastructure.entity_source import EntitySource
from cardsearch_core.infrastructure.text_index import TextIndexBackend

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_REINDEX_CONCURRENCY = 4
DEFAULT_REINDEX_BATCH_SIZE = 200


# =============================================================================
# SERVICE
# =============================================================================


class IndexingService:
    """Service for keeping the text index in sync with cards and companies.

    Every upsert fully replaces the stored document, so operations can run
    concurrently for different entities without coordination.
    """

    def __init__(
        self,
        index: TextIndexBackend,
        entity_source: Optional[EntitySource] = None,
        concurrency: int = DEFAULT_REINDEX_CONCURRENCY,
        batch_size: int = DEFAULT_REINDEX_BATCH_SIZE,
    ):
        """Initialize the indexing service.

        Args:
            index: Text index backend.
            entity_source: System of record, needed for index_by_id and reindex_all.
            concurrency: Maximum parallel batch upserts during reindex_all.
            batch_size: Documents per batch upsert.
        """
        self.index = index
        self.entity_source = entity_source
        self.concurrency = max(1, concurrency)
        self.batch_size = max(1, batch_size)

    def _require_source(self) -> EntitySource:
        if self.entity_source is None:
            raise CardSearchError("IndexingService has no entity source configured")
        return self.entity_source

    # =========================================================================
    # INDEX MANAGEMENT
    # =========================================================================

    def ensure_index(self) -> bool:
        """Create the index storage if it does not exist."""
        return self.index.ensure_schema()

    def get_index_stats(self) -> IndexStats:
        """Per-type document counts and last update times."""
        return self.index.stats()

    # =========================================================================
    # SINGLE DOCUMENTS
    # =========================================================================

    def index_one(self, entity: EntityRecord) -> SearchDocument:
        """Transform and upsert one entity.

        Returns:
            The document that was written.

        Raises:
            SearchUnavailableError: If the backend cannot be reached.
        """
        document = transform(entity)
        self.index.upsert_document(document)
        logger.debug(f"Indexed {document.type.value} {document.id}")
        return document

    def index_by_id(self, doc_type: DocumentType, entity_id: str) -> bool:
        """Load an entity from the system of record and index it.

        Returns:
            True if indexed, False if the entity does not exist.
        """
        source = self._require_source()
        doc_type = DocumentType(doc_type)

        if doc_type == DocumentType.CARD:
            entity = source.get_card(entity_id)
        else:
            entity = source.get_company(entity_id)

        if entity is None:
            logger.info(f"Skipping index of missing {doc_type.value} {entity_id}")
            return False

        self.index_one(entity)
        return True

    def remove_one(self, entity_id: str, doc_type: DocumentType) -> bool:
        """Remove a document. Removing a missing document is a no-op.

        Returns:
            True if a document was removed.
        """
        removed = self.index.delete_document(DocumentType(doc_type), str(entity_id))
        if removed:
            logger.debug(f"Removed {DocumentType(doc_type).value} {entity_id} from index")
        return removed

    # =========================================================================
    # BULK OPERATIONS
    # =========================================================================

    def _transform_all(
        self, entities: Iterable[EntityRecord], report: IndexingReport
    ) -> list[SearchDocument]:
        documents = []
        for entity in entities:
            try:
                documents.append(transform(entity))
            except Exception as e:
                doc_type = (
                    DocumentType.CARD if isinstance(entity, CardRecord) else DocumentType.COMPANY
                )
                entity_id = str(getattr(entity, "id", ""))
                logger.warning(f"Failed to transform {doc_type.value} {entity_id}: {e}")
                report.record_failure(entity_id, doc_type, str(e))
        return documents

    def _upsert_batch(self, batch: list[SearchDocument]) -> IndexingReport:
        report = IndexingReport()
        try:
            report.indexed = self.index.upsert_documents(batch)
        except SearchUnavailableError as e:
            logger.error(f"Batch upsert of {len(batch)} documents failed: {e}")
            for document in batch:
                report.record_failure(document.id, document.type, str(e))
        except Exception as e:
            # One bad row rejects the whole statement; isolate it
            logger.warning(
                f"Batch upsert of {len(batch)} documents failed, retrying one by one: {e}"
            )
            for document in batch:
                report.merge(self._upsert_single(document))
        return report

    def _upsert_single(self, document: SearchDocument) -> IndexingReport:
        report = IndexingReport()
        try:
            self.index.upsert_document(document)
            report.indexed = 1
        except Exception as e:
            logger.error(f"Upsert of {document.type.value} {document.id} failed: {e}")
            report.record_failure(document.id, document.type, str(e))
        return report

    def _batches(self, documents: list[SearchDocument]) -> list[list[SearchDocument]]:
        return [
            documents[start : start + self.batch_size]
            for start in range(0, len(documents), self.batch_size)
        ]

    def index_many(self, entities: Iterable[EntityRecord]) -> IndexingReport:
        """Transform and upsert many entities in batches.

        A failing entity or batch is recorded in the report; the rest
        continue.
        """
        report = IndexingReport()
        documents = self._transform_all(entities, report)
        for batch in self._batches(documents):
            report.merge(self._upsert_batch(batch))
        return report

    def reindex_all(self) -> IndexingReport:
        """Re-index every card and company from the system of record.

        Batches are upserted by a bounded thread pool; one failed batch does
        not cancel the others. Documents for deleted entities are left in
        place.

        Raises:
            ReindexError: If listing entities fails.
        """
        source = self._require_source()

        try:
            cards = source.list_cards()
            companies = source.list_companies()
        except Exception as e:
            logger.error(f"Reindex aborted, could not list entities: {e}")
            raise ReindexError("Failed to list entities for reindex", {"error": str(e)}) from e

        report = IndexingReport()
        documents = self._transform_all([*cards, *companies], report)
        batches = self._batches(documents)

        logger.info(
            f"Reindexing {len(cards)} cards and {len(companies)} companies "
            f"in {len(batches)} batches"
        )

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = [executor.submit(self._upsert_batch, batch) for batch in batches]
            for future in as_completed(futures):
                report.merge(future.result())

        logger.info(f"Reindex finished: {report.indexed} indexed, {report.failed} failed")
        return report


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "DEFAULT_REINDEX_BATCH_SIZE",
    "DEFAULT_REINDEX_CONCURRENCY",
    "IndexingService",
]
