# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run with:
#   uvicorn ragchat.main:app --reload
#
# ROUTES:
#   GET  /health — liveness
#   POST /ask    — conversational query (api/ask.py)
#   POST /ingest — ingest a source (api/ingest.py)
#   GET  /store  — store status (api/ingest.py)
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from ragchat.api import ask, ingest
from ragchat.config import settings
from ragchat.db.engine import init_db
from ragchat.models.responses import HealthResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    try:
        init_db()
    except SQLAlchemyError as e:
        # The record store is optional; only kind=records ingestion needs it.
        logger.warning("Record store unavailable: %s", e)
    yield
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Retrieval-augmented chat over ingested documents, with "
            "model-driven function calls."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    application.include_router(ask.router)
    application.include_router(ingest.router)

    @application.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(version=settings.app_version, service=settings.app_name)

    return application


app = create_app()
