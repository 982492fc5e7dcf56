"""PostgreSQL full-text index backend for CardSearch.

This module provides:
- ``TextIndexBackend``: the capability set the indexing and search services use
- ``PostgresTextIndex``: implementation over the ``search_documents`` table

Documents live in one table keyed by (doc_type, id). PostgreSQL maintains a
weighted ``tsvector`` column (title at weight A, content at weight B) with a
GIN index; queries rank with ``ts_rank`` and snippets come from
``ts_headline``.

Usage:
    from cardsearch_core.infra.db import get_engine
    from cardsearch_core.infrastructure.text_index import PostgresTextIndex

    index = PostgresTextIndex(engine=get_engine())
    index.ensure_schema()
    hits = index.execute_compiled_query(
        "software & engineer", DocumentType.CARD, filters=[], sort=[],
        fields=None, limit=20, offset=0,
    )
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from sqlalchemy import and_, cast, delete, func, literal, literal_column, not_, or_, select
from sqlalchemy.dialects.postgresql import REGCLASS, REGCONFIG
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.sql.elements import ColumnElement

from cardsearch_core.domain.exceptions import SearchUnavailableError, SearchValidationError
from cardsearch_core.domain.models import SearchDocumentRecord
from cardsearch_core.domain.query.highlight import START_TAG, STOP_TAG
from cardsearch_core.domain.query_limits import QueryLimits, QueryTimeoutError
from cardsearch_core.domain.schemas.search import (
    DocumentType,
    FilterOperator,
    IndexHit,
    IndexHits,
    IndexStats,
    SearchDocument,
    SearchFilter,
    SortDirection,
    SortSpec,
    TypeStats,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


SEARCH_TABLE = SearchDocumentRecord.__table__

# Searchable field name -> tsvector weight label
FIELD_WEIGHTS = {"title": "a", "content": "b"}

HEADLINE_OPTIONS = (
    f"StartSel={START_TAG}, StopSel={STOP_TAG}, MaxWords=35, MinWords=15, MaxFragments=2"
)

_TSQUERY_SYNTAX_ERRORS = (
    "syntax error in tsquery",
    "invalid input syntax for type tsquery",
    "no operand in tsquery",
    "no operator in tsquery",
)
_TIMEOUT_ERROR = "canceling statement due to statement timeout"


# =============================================================================
# PROTOCOL
# =============================================================================


class TextIndexBackend(Protocol):
    """Capabilities the services need from a text index."""

    def ensure_schema(self) -> bool:
        ...

    def upsert_document(self, document: SearchDocument) -> None:
        ...

    def upsert_documents(self, documents: list[SearchDocument]) -> int:
        ...

    def delete_document(self, doc_type: DocumentType, doc_id: str) -> bool:
        ...

    def execute_compiled_query(
        self,
        query_expr: str,
        doc_type: DocumentType,
        filters: list[SearchFilter],
        sort: list[SortSpec],
        fields: Optional[list[str]],
        limit: int,
        offset: int,
    ) -> IndexHits:
        ...

    def headlines(self, texts: list[str], query_expr: str) -> list[str]:
        ...

    def stats(self) -> IndexStats:
        ...

    def index_info(self) -> dict[str, Any]:
        ...

    def ping(self) -> bool:
        ...


# =============================================================================
# POSTGRES IMPLEMENTATION
# =============================================================================


class PostgresTextIndex:
    """Text index stored in PostgreSQL.

    Each call checks out its own pooled connection, so one instance can be
    shared between threads.
    """

    def __init__(
        self,
        engine: Engine,
        text_config: str = "english",
        limits: Optional[QueryLimits] = None,
    ):
        """Initialize the backend.

        Args:
            engine: SQLAlchemy engine for the PostgreSQL database.
            text_config: Text search configuration name (e.g. "english").
            limits: Statement timeout and result caps.
        """
        if not text_config.isidentifier():
            raise ValueError(f"Invalid text search configuration: {text_config!r}")
        self.engine = engine
        self.text_config = text_config
        self.limits = limits or QueryLimits()

    # =========================================================================
    # SQL HELPERS
    # =========================================================================

    def _regconfig(self) -> ColumnElement:
        return cast(literal(self.text_config), REGCONFIG)

    def _tsquery(self, query_expr: str) -> ColumnElement:
        return func.to_tsquery(self._regconfig(), literal(query_expr))

    @staticmethod
    def _weighted(weights: list[str]) -> ColumnElement:
        labels = ",".join(sorted(set(weights)))
        return func.ts_filter(
            SEARCH_TABLE.c.search_vector,
            literal_column(f"'{{{labels}}}'::\"char\"[]"),
        )

    def _set_timeout(self, conn: Connection) -> None:
        conn.execute(
            select(func.set_config("statement_timeout", str(self.limits.timeout_ms), True))
        )

    def _raise_unavailable(self, operation: str, exc: Exception) -> None:
        message = str(exc).lower()
        if _TIMEOUT_ERROR in message:
            logger.warning(f"Text index {operation} timed out after {self.limits.timeout_ms}ms")
            raise QueryTimeoutError(operation, self.limits.timeout_ms) from exc
        if isinstance(exc, (OperationalError, InterfaceError)):
            logger.error(f"Text index {operation} failed: {exc}")
            raise SearchUnavailableError(
                f"Text index unavailable during {operation}",
                {"operation": operation},
            ) from exc

    @staticmethod
    def _is_tsquery_syntax_error(exc: Exception) -> bool:
        message = str(exc).lower()
        return any(marker in message for marker in _TSQUERY_SYNTAX_ERRORS)

    @staticmethod
    def _document_row(document: SearchDocument) -> dict[str, Any]:
        return {
            "doc_type": document.type.value,
            "id": document.id,
            "owner_id": document.owner_id,
            "title": document.title,
            "content": document.content,
            "metadata": document.metadata,
            "created_at": document.created_at,
            "updated_at": document.updated_at,
        }

    @staticmethod
    def _row_document(row: Any) -> SearchDocument:
        return SearchDocument(
            id=row.id,
            type=DocumentType(row.doc_type),
            title=row.title,
            content=row.content,
            metadata=dict(row.metadata or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    # =========================================================================
    # SCHEMA
    # =========================================================================

    def ensure_schema(self) -> bool:
        """Create the documents table and its indexes if missing."""
        try:
            SEARCH_TABLE.create(self.engine, checkfirst=True)
        except DBAPIError as exc:
            self._raise_unavailable("ensure_schema", exc)
            raise
        logger.info("Search documents table is present")
        return True

    # =========================================================================
    # DOCUMENT OPERATIONS
    # =========================================================================

    def _upsert_statement(self, rows: list[dict[str, Any]]):
        stmt = pg_insert(SEARCH_TABLE).values(rows)
        excluded = stmt.excluded
        return stmt.on_conflict_do_update(
            index_elements=[SEARCH_TABLE.c.doc_type, SEARCH_TABLE.c.id],
            set_={
                "owner_id": excluded.owner_id,
                "title": excluded.title,
                "content": excluded.content,
                "metadata": excluded["metadata"],
                "created_at": excluded.created_at,
                "updated_at": excluded.updated_at,
                "indexed_at": func.now(),
            },
        )

    def upsert_document(self, document: SearchDocument) -> None:
        """Insert or fully replace one document."""
        self.upsert_documents([document])

    def upsert_documents(self, documents: list[SearchDocument]) -> int:
        """Insert or fully replace many documents in one statement.

        Returns:
            Number of documents written.
        """
        if not documents:
            return 0

        rows = [self._document_row(document) for document in documents]
        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                conn.execute(self._upsert_statement(rows))
        except DBAPIError as exc:
            self._raise_unavailable("upsert", exc)
            raise
        return len(rows)

    def delete_document(self, doc_type: DocumentType, doc_id: str) -> bool:
        """Delete a document.

        Returns:
            True if a document was deleted, False if none existed.
        """
        stmt = delete(SEARCH_TABLE).where(
            SEARCH_TABLE.c.doc_type == DocumentType(doc_type).value,
            SEARCH_TABLE.c.id == str(doc_id),
        )
        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                result = conn.execute(stmt)
        except DBAPIError as exc:
            self._raise_unavailable("delete", exc)
            raise
        return result.rowcount > 0

    # =========================================================================
    # SEARCH
    # =========================================================================

    def _filter_clause(self, search_filter: SearchFilter) -> ColumnElement:
        field = search_filter.field
        operator = FilterOperator(search_filter.operator)
        values = (
            list(search_filter.value)
            if isinstance(search_filter.value, (list, tuple, set))
            else [search_filter.value]
        )

        if field == "metadata.tags":
            matches = [SEARCH_TABLE.c.metadata.contains([value]) for value in values]
            clause = or_(*matches) if len(matches) > 1 else matches[0]
            return not_(clause) if operator == FilterOperator.NE else clause

        if field == "owner_id":
            column = SEARCH_TABLE.c.owner_id
        elif field == "doc_type":
            column = SEARCH_TABLE.c.doc_type
        elif field.startswith("metadata."):
            column = SEARCH_TABLE.c.metadata[field.split(".", 1)[1]].astext
        else:
            raise SearchValidationError(f"Unknown filter field: {field}", code="INVALID_FILTER")

        values = [_filter_value(value) for value in values]
        if operator == FilterOperator.IN:
            return column.in_(values)
        if operator == FilterOperator.NE:
            return or_(column != values[0], column.is_(None))
        return column == values[0]

    def _order_by(self, sort: list[SortSpec], rank: ColumnElement) -> list[ColumnElement]:
        columns = {
            "rank": rank,
            "created_at": SEARCH_TABLE.c.created_at,
            "updated_at": SEARCH_TABLE.c.updated_at,
            "title": SEARCH_TABLE.c.title,
        }
        order = []
        for spec in sort or [SortSpec("rank", SortDirection.DESC)]:
            column = columns.get(spec.field)
            if column is None:
                raise SearchValidationError(f"Unknown sort field: {spec.field}", code="INVALID_SORT")
            if SortDirection(spec.direction) == SortDirection.ASC:
                order.append(column.asc().nulls_last())
            else:
                order.append(column.desc().nulls_last())
        order.append(SEARCH_TABLE.c.id.asc())
        return order

    def execute_compiled_query(
        self,
        query_expr: str,
        doc_type: DocumentType,
        filters: list[SearchFilter],
        sort: list[SortSpec],
        fields: Optional[list[str]],
        limit: int,
        offset: int,
    ) -> IndexHits:
        """Run a compiled tsquery against one document type.

        A tsquery syntax error is not surfaced: it yields an empty hit set.

        Args:
            query_expr: Compiled tsquery expression.
            doc_type: Document type partition to search.
            filters: Structured filters with canonical field names.
            sort: Sort order; defaults to rank descending.
            fields: Restrict matching to these fields ("title", "content").
            limit: Maximum number of hits.
            offset: Number of hits to skip.

        Returns:
            IndexHits with the total match count and the requested window.
        """
        query = self._tsquery(query_expr)
        vector = SEARCH_TABLE.c.search_vector

        conditions = [
            SEARCH_TABLE.c.doc_type == DocumentType(doc_type).value,
            vector.op("@@")(query),
        ]
        if fields:
            unknown = [name for name in fields if name not in FIELD_WEIGHTS]
            if unknown:
                raise SearchValidationError(
                    f"Unknown search fields: {', '.join(unknown)}", code="INVALID_FIELDS"
                )
            conditions.append(
                self._weighted([FIELD_WEIGHTS[name] for name in fields]).op("@@")(query)
            )
        conditions.extend(self._filter_clause(f) for f in filters or [])
        where = and_(*conditions)

        rank = func.ts_rank(vector, query).label("rank")
        field_matches = [
            self._weighted([weight]).op("@@")(query).label(f"match_{name}")
            for name, weight in FIELD_WEIGHTS.items()
        ]

        stmt = (
            select(SEARCH_TABLE, rank, *field_matches)
            .where(where)
            .order_by(*self._order_by(sort, rank))
            .limit(self.limits.clamp_limit(limit))
            .offset(offset)
        )
        count_stmt = select(func.count()).select_from(SEARCH_TABLE).where(where)

        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                total = conn.execute(count_stmt).scalar_one()
                rows = conn.execute(stmt).fetchall()
        except DBAPIError as exc:
            if self._is_tsquery_syntax_error(exc):
                logger.warning(f"tsquery syntax error for query {query_expr!r}: {exc}")
                return IndexHits(total=0, hits=[])
            self._raise_unavailable("search", exc)
            raise

        hits = [
            IndexHit(
                document=self._row_document(row),
                rank=float(row.rank or 0.0),
                matched_fields=[
                    name for name in FIELD_WEIGHTS if getattr(row, f"match_{name}")
                ],
            )
            for row in rows
        ]
        return IndexHits(total=total, hits=hits)

    def headlines(self, texts: list[str], query_expr: str) -> list[str]:
        """Generate ``ts_headline`` snippets for several texts in one round trip."""
        if not texts:
            return []

        query = self._tsquery(query_expr)
        columns = [
            func.ts_headline(
                self._regconfig(), literal(text_value), query, literal(HEADLINE_OPTIONS)
            ).label(f"headline_{position}")
            for position, text_value in enumerate(texts)
        ]
        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                row = conn.execute(select(*columns)).one()
        except DBAPIError as exc:
            if self._is_tsquery_syntax_error(exc):
                logger.warning(f"tsquery syntax error in headline for {query_expr!r}")
                return list(texts)
            self._raise_unavailable("headline", exc)
            raise
        return [value or "" for value in row]

    # =========================================================================
    # STATUS
    # =========================================================================

    def stats(self) -> IndexStats:
        """Document count and most recent ``updated_at`` per type."""
        stmt = select(
            SEARCH_TABLE.c.doc_type,
            func.count().label("total"),
            func.max(SEARCH_TABLE.c.updated_at).label("last_updated"),
        ).group_by(SEARCH_TABLE.c.doc_type)
        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                rows = conn.execute(stmt).fetchall()
        except DBAPIError as exc:
            self._raise_unavailable("stats", exc)
            raise

        by_type = {}
        for row in rows:
            try:
                doc_type = DocumentType(row.doc_type)
            except ValueError:
                logger.warning(f"Ignoring unknown document type in index: {row.doc_type}")
                continue
            by_type[doc_type] = TypeStats(total=row.total, last_updated=row.last_updated)
        return IndexStats(by_type=by_type)

    def index_info(self) -> dict[str, Any]:
        """Describe the index table: size, document count and text config."""
        stmt = select(
            func.count().label("documents"),
            func.pg_total_relation_size(cast(literal(SEARCH_TABLE.name), REGCLASS)).label(
                "size_bytes"
            ),
        ).select_from(SEARCH_TABLE)
        try:
            with self.engine.begin() as conn:
                self._set_timeout(conn)
                row = conn.execute(stmt).one()
        except DBAPIError as exc:
            self._raise_unavailable("index_info", exc)
            raise

        return {
            "table": SEARCH_TABLE.name,
            "text_config": self.text_config,
            "documents": row.documents,
            "size_bytes": row.size_bytes,
            **self.limits.to_dict(),
            "checked_at": datetime.now(timezone.utc).isoformat(),
        }

    def ping(self) -> bool:
        """Check if the database is reachable.

        Returns:
            True if PostgreSQL answers, False otherwise.
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except DBAPIError as exc:
            logger.warning(f"Text index ping failed: {exc}")
            return False


def _filter_value(value: Any) -> Any:
    """Render a filter value the way JSONB ``->>`` renders it."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


__all__ = [
    "FIELD_WEIGHTS",
    "HEADLINE_OPTIONS",
    "PostgresTextIndex",
    "SEARCH_TABLE",
    "TextIndexBackend",
]
