"""CardSearch Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cardsearch_core.api.middleware.request_context import RequestContextMiddleware
from cardsearch_core.api.routes import search as search_routes
from cardsearch_core.config import get_settings
from cardsearch_core.observability import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )
    app.state.settings = settings
    logger.info("cardsearch core started", text_config=settings.search_text_config)
    yield
    # Shutdown


app = FastAPI(
    title="CardSearch Core API",
    description="Full-text search over scanned business cards and enriched companies",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestContextMiddleware)

# Include API routers
app.include_router(search_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "cardsearch-core"}


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "CardSearch Core API",
        "version": "0.1.0",
        "status": "running",
    }
