"""Read cards and companies from the system of record.

The indexing service depends only on ``EntitySource``; ``SqlEntitySource``
implements it with the ORM models.
"""

import logging
from typing import Callable, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from cardsearch_core.domain.models import Card, Company
from cardsearch_core.domain.schemas.search import CardRecord, CompanyRecord

logger = logging.getLogger(__name__)


class EntitySource(Protocol):
    """Lookup and listing of indexable entities."""

    def get_card(self, card_id: str) -> Optional[CardRecord]:
        ...

    def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        ...

    def list_cards(self) -> list[CardRecord]:
        ...

    def list_companies(self) -> list[CompanyRecord]:
        ...


def card_record(card: Card) -> CardRecord:
    """Convert a Card row (with companies loaded) into a CardRecord."""
    return CardRecord(
        id=str(card.id),
        owner_id=str(card.owner_id),
        name=card.name,
        title=card.title,
        company=card.company,
        extracted_text=card.extracted_text,
        notes=card.notes,
        email=card.email,
        phone=card.phone,
        website=card.website,
        address=card.address,
        tags=list(card.tags or []),
        company_names=[company.name for company in card.companies if company.name],
        created_at=card.created_at,
        updated_at=card.updated_at,
    )


def company_record(company: Company) -> CompanyRecord:
    """Convert a Company row into a CompanyRecord."""
    return CompanyRecord(
        id=str(company.id),
        name=company.name,
        domain=company.domain,
        description=company.description,
        industry=company.industry,
        size=company.size,
        location=company.location,
        website=company.website,
        founded=company.founded,
        keywords=list(company.keywords or []),
        created_at=company.created_at,
        updated_at=company.updated_at,
    )


class SqlEntitySource:
    """Entity source backed by the cards/companies tables.

    Each call opens its own session from the factory.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_card(self, card_id: str) -> Optional[CardRecord]:
        with self.session_factory() as session:
            card = session.execute(
                select(Card).options(selectinload(Card.companies)).where(Card.id == card_id)
            ).scalar_one_or_none()
            return card_record(card) if card else None

    def get_company(self, company_id: str) -> Optional[CompanyRecord]:
        with self.session_factory() as session:
            company = session.get(Company, company_id)
            return company_record(company) if company else None

    def list_cards(self) -> list[CardRecord]:
        with self.session_factory() as session:
            cards = session.execute(
                select(Card).options(selectinload(Card.companies)).order_by(Card.id)
            ).scalars().all()
            logger.debug(f"Listed {len(cards)} cards for indexing")
            return [card_record(card) for card in cards]

    def list_companies(self) -> list[CompanyRecord]:
        with self.session_factory() as session:
            companies = session.execute(
                select(Company).order_by(Company.id)
            ).scalars().all()
            logger.debug(f"Listed {len(companies)} companies for indexing")
            return [company_record(company) for company in companies]


__all__ = [
    "EntitySource",
    "SqlEntitySource",
    "card_record",
    "company_record",
]
