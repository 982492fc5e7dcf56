"""Domain models for CardSearch.

SQLAlchemy ORM models for the system-of-record tables (cards, companies and
their links) and for the ``search_documents`` text index table.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Computed,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, TSVECTOR
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from cardsearch_core.config import get_settings


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def search_vector_expression(text_config: str) -> str:
    """Weighted tsvector: title at weight A, content at weight B."""
    return (
        f"setweight(to_tsvector('{text_config}', coalesce(title, '')), 'A') || "
        f"setweight(to_tsvector('{text_config}', coalesce(content, '')), 'B')"
    )


# =============================================================================
# SYSTEM OF RECORD
# =============================================================================


class CardCompany(Base):
    """Link between a scanned card and an enriched company."""

    __tablename__ = "card_companies"

    card_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("cards.id", ondelete="CASCADE"), primary_key=True
    )
    company_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("companies.id", ondelete="CASCADE"), primary_key=True
    )


class Card(Base):
    """A scanned business card owned by one user."""

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    companies: Mapped[list["Company"]] = relationship(
        secondary="card_companies", back_populates="cards"
    )


class Company(Base):
    """An enriched company profile shared across users."""

    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    industry: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    founded: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    keywords: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # Relationships
    cards: Mapped[list["Card"]] = relationship(
        secondary="card_companies", back_populates="companies"
    )


# =============================================================================
# TEXT INDEX
# =============================================================================


class SearchDocumentRecord(Base):
    """Indexed search document, one row per (doc_type, id).

    ``search_vector`` is generated by PostgreSQL from title and content and
    backed by a GIN index.
    """

    __tablename__ = "search_documents"

    doc_type: Mapped[str] = mapped_column(String(16), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # "metadata" is reserved on declarative classes
    doc_metadata: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    indexed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    search_vector = mapped_column(
        TSVECTOR,
        Computed(search_vector_expression(get_settings().search_text_config), persisted=True),
    )

    __table_args__ = (
        Index("ix_search_documents_owner", "doc_type", "owner_id"),
        Index("ix_search_documents_vector", "search_vector", postgresql_using="gin"),
        Index("ix_search_documents_updated", "doc_type", "updated_at"),
    )


__all__ = [
    "Base",
    "Card",
    "CardCompany",
    "Company",
    "SearchDocumentRecord",
    "search_vector_expression",
]
