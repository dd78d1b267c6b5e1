# =============================================================================
# Ingestion Pipeline — Load → Chunk → Tag → Store
# =============================================================================
#
# INGESTION PIPELINE:
#   1. Load the source with the caller-chosen DocumentLoader
#   2. Split every Document with the TokenChunker
#   3. Tag every Chunk with provenance: {"source": name, "version": N}
#   4. Write to the EmbeddingStore:
#        REPLACE → store.replace_all()  (idempotent re-ingestion)
#        APPEND  → store.add()          (additive, caller avoids duplicates)
#
# Steps 1–3 finish before the store is touched, so a load or parse failure
# never reaches the store. Failures propagate to the caller unchanged; the
# whole batch is aborted.
# =============================================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Any

from ragchat.services.chunker import Chunk, TokenChunker
from ragchat.services.loaders import DocumentLoader
from ragchat.services.vectorstore import EmbeddingStore

logger = logging.getLogger(__name__)


class IngestMode(StrEnum):
    REPLACE = "replace"
    APPEND = "append"


@dataclass
class IngestionReport:
    """Summary of one ingestion run."""

    source: str
    mode: IngestMode
    version: int
    document_count: int
    chunk_count: int
    record_ids: list[str]
    elapsed_ms: int


class IngestionPipeline:
    """
    Composes a loader, a chunker and a store into one batch operation.

    Args:
        loader: Loader matching the kind of source passed to run().
        chunker: Token chunker (its configuration must stay fixed for
            re-ingestion to be idempotent).
        store: Target embedding store.
        version: Ingestion version stamped into chunk metadata.
    """

    def __init__(
        self,
        loader: DocumentLoader,
        chunker: TokenChunker,
        store: EmbeddingStore,
        version: int = 1,
    ) -> None:
        self.loader = loader
        self.chunker = chunker
        self.store = store
        self.version = version

    def prepare(self, source: Any, source_name: str | None = None) -> tuple[int, list[Chunk]]:
        """
        Load, split and tag without writing. Returns (document_count, chunks).
        """
        name = source_name or _describe(source)

        documents = self.loader.load(source)
        chunks = [
            chunk.with_metadata(source=name, version=self.version)
            for chunk in self.chunker.split_all(documents)
        ]
        logger.info(
            "Prepared '%s': %d documents → %d chunks (version=%d)",
            name, len(documents), len(chunks), self.version,
        )
        return len(documents), chunks

    def run(
        self,
        source: Any,
        source_name: str | None = None,
        mode: IngestMode = IngestMode.REPLACE,
    ) -> IngestionReport:
        """
        Ingest one source.

        Raises:
            SourceUnavailable / ParseError: The loader failed.
            EmbeddingFailure: Chunks could not be vectorized.
            StoreWriteError: The store write failed (contents restored).
        """
        name = source_name or _describe(source)
        start = time.monotonic()
        logger.info("Starting ingestion: source=%s, mode=%s", name, mode)

        document_count, chunks = self.prepare(source, source_name=name)

        if mode == IngestMode.REPLACE:
            if not chunks:
                logger.warning(
                    "Source '%s' produced no chunks; the store will be emptied", name,
                )
            record_ids = self.store.replace_all(chunks)
        else:
            record_ids = self.store.add(chunks)

        report = IngestionReport(
            source=name,
            mode=IngestMode(mode),
            version=self.version,
            document_count=document_count,
            chunk_count=len(chunks),
            record_ids=record_ids,
            elapsed_ms=int((time.monotonic() - start) * 1000),
        )
        logger.info(
            "Ingestion complete: source=%s, documents=%d, chunks=%d, %dms",
            name, report.document_count, report.chunk_count, report.elapsed_ms,
        )
        return report


def _describe(source: Any) -> str:
    if isinstance(source, (str, Path)):
        return Path(source).name
    return getattr(source, "name", None) or type(source).__name__
