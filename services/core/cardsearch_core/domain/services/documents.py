"""Transform cards and companies into search documents.

These are pure functions: they never mutate their input, never read a
clock, and return an equal document for an unchanged entity. Reindexing
relies on that to overwrite documents safely.
"""

from typing import Any, Optional

from cardsearch_core.domain.schemas.search import (
    CardRecord,
    CompanyRecord,
    DocumentType,
    EntityRecord,
    SearchDocument,
)

UNNAMED_CARD = "Unnamed Card"
UNNAMED_COMPANY = "Unnamed Company"


def is_present(value: Any) -> bool:
    """True for values worth indexing.

    None and blank strings are absent; every other value, including "0"
    and 0, is present.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True


def _join_present(values: list[Any]) -> str:
    return " ".join(str(value).strip() for value in values if is_present(value))


def _first_present(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if is_present(value):
            return value.strip()
    return None


def _founded_year(founded: Any) -> Optional[int]:
    if founded is None or isinstance(founded, bool):
        return None
    if isinstance(founded, int):
        return founded
    try:
        return int(str(founded).strip())
    except ValueError:
        return None


# =============================================================================
# CARDS
# =============================================================================


def card_to_document(card: CardRecord) -> SearchDocument:
    """Build the search document for a contact card.

    Content order: name, title, company, extracted text, notes, email,
    phone, website, address, then the names of linked companies.
    """
    company_names = list(card.company_names)

    content = _join_present(
        [
            card.name,
            card.title,
            card.company,
            card.extracted_text,
            card.notes,
            card.email,
            card.phone,
            card.website,
            card.address,
            *company_names,
        ]
    )

    metadata = {
        "owner_id": card.owner_id,
        "company_name": card.company,
        "person_name": card.name,
        "email": card.email,
        "phone": card.phone,
        "website": card.website,
        "address": card.address,
        "job_title": card.title,
        "tags": list(card.tags),
        "enriched": len(company_names) > 0,
    }

    return SearchDocument(
        id=str(card.id),
        type=DocumentType.CARD,
        title=_first_present(card.name, card.company, card.title) or UNNAMED_CARD,
        content=content,
        metadata=metadata,
        created_at=card.created_at,
        updated_at=card.updated_at,
    )


# =============================================================================
# COMPANIES
# =============================================================================


def company_to_document(company: CompanyRecord) -> SearchDocument:
    """Build the search document for a company.

    Content order: name, description, industry, location, website.
    """
    content = _join_present(
        [
            company.name,
            company.description,
            company.industry,
            company.location,
            company.website,
        ]
    )

    metadata = {
        "domain": company.domain,
        "industry": company.industry,
        "size": company.size,
        "description": company.description,
        "location": company.location,
        "founded": _founded_year(company.founded),
        "tags": list(company.keywords),
    }

    return SearchDocument(
        id=str(company.id),
        type=DocumentType.COMPANY,
        title=_first_present(company.name) or UNNAMED_COMPANY,
        content=content,
        metadata=metadata,
        created_at=company.created_at,
        updated_at=company.updated_at,
    )


def transform(entity: EntityRecord) -> SearchDocument:
    """Dispatch to the transformer for the entity's record type."""
    if isinstance(entity, CardRecord):
        return card_to_document(entity)
    if isinstance(entity, CompanyRecord):
        return company_to_document(entity)
    raise TypeError(f"Cannot index entity of type {type(entity).__name__}")


__all__ = [
    "UNNAMED_CARD",
    "UNNAMED_COMPANY",
    "card_to_document",
    "company_to_document",
    "is_present",
    "transform",
]
