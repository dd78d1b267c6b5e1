# =============================================================================
# Ingestion API — Load a Source into the Embedding Store
# =============================================================================
#
# ENDPOINTS:
#   POST /ingest — ingest a server-side text/PDF file or the record table
#   GET  /store  — backend name and record count
#
# DESIGN DECISION: Synchronous ingestion in a worker thread.
# The default store lives in this process's memory, so a separate task
# worker could not write to it. The pipeline runs via asyncio.to_thread
# and the response carries the finished IngestionReport.
#
# Error handling ({"error": "ingestion_failed", ...}):
# - ParseError → 422
# - SourceUnavailable → 404
# - EmbeddingFailure / StoreWriteError → 502 (store unchanged)
# =============================================================================

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from ragchat.api.deps import get_record_store, get_store
from ragchat.config import settings
from ragchat.db.records import SqlRecordStore
from ragchat.exceptions import EmbeddingFailure, ParseError, SourceUnavailable, StoreWriteError
from ragchat.models.requests import IngestRequest
from ragchat.models.responses import IngestResponse, StoreResponse
from ragchat.services.chunker import TokenChunker
from ragchat.services.ingestion import IngestionPipeline, IngestMode
from ragchat.services.loaders import DocumentLoader, PagedPdfLoader, RecordLoader, TextLoader
from ragchat.services.vectorstore import EmbeddingStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingestion"])


# ---------------------------------------------------------------------------
# POST /ingest
# ---------------------------------------------------------------------------


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Ingest a text file, PDF or the record table",
    description=(
        "Loads the source, splits it into token chunks, embeds them and "
        "writes them to the store. 'replace' makes re-ingestion idempotent; "
        "'append' adds to what is already stored."
    ),
)
async def ingest_endpoint(
    request: IngestRequest,
    store: EmbeddingStore = Depends(get_store),
    record_store: SqlRecordStore = Depends(get_record_store),
) -> IngestResponse:
    if request.kind == "records":
        source = record_store
    elif request.path:
        source = request.path
    else:
        raise HTTPException(
            status_code=422,
            detail={"error": "ingestion_failed", "reason": f"'path' is required for kind '{request.kind}'"},
        )

    pipeline = IngestionPipeline(
        loader=_loader_for(request.kind),
        chunker=TokenChunker(settings.chunk_size, settings.chunk_overlap),
        store=store,
        version=settings.ingestion_version,
    )

    try:
        report = await asyncio.to_thread(
            pipeline.run,
            source,
            source_name=request.source_name,
            mode=IngestMode(request.mode),
        )
    except ParseError as e:
        raise _ingestion_failed(422, e) from e
    except SourceUnavailable as e:
        raise _ingestion_failed(404, e) from e
    except (EmbeddingFailure, StoreWriteError) as e:
        logger.exception("Ingestion write failed: %s", e)
        raise _ingestion_failed(502, e) from e

    return IngestResponse(
        source=report.source,
        mode=report.mode.value,
        version=report.version,
        document_count=report.document_count,
        chunk_count=report.chunk_count,
        record_ids=report.record_ids,
        elapsed_ms=report.elapsed_ms,
        store_count=store.count(),
    )


# ---------------------------------------------------------------------------
# GET /store
# ---------------------------------------------------------------------------


@router.get("/store", response_model=StoreResponse, summary="Embedding store status")
async def store_endpoint(store: EmbeddingStore = Depends(get_store)) -> StoreResponse:
    return StoreResponse(backend=type(store).__name__, count=store.count())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _loader_for(kind: str) -> DocumentLoader:
    if kind == "pdf":
        return PagedPdfLoader(
            pages_per_document=settings.pdf_pages_per_document,
            trim_top_lines=settings.pdf_trim_top_lines,
            trim_bottom_lines=settings.pdf_trim_bottom_lines,
        )
    if kind == "records":
        return RecordLoader()
    return TextLoader()


def _ingestion_failed(status_code: int, error: Exception) -> HTTPException:
    logger.warning("Ingestion failed (%d): %s", status_code, error)
    return HTTPException(
        status_code=status_code,
        detail={"error": "ingestion_failed", "reason": str(error)},
    )
