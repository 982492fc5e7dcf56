"""API routes."""

from cardsearch_core.api.routes import search

__all__ = ["search"]
