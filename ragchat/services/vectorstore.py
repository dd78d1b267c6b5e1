# =============================================================================
# Embedding Store — Pluggable Backend Protocol
# =============================================================================
#
# Persists chunks with their vectors and answers top-k similarity queries.
#
# ARCHITECTURE:
#   EmbeddingStore (Protocol)
#   ├── InMemoryEmbeddingStore — copy-on-write tuple of records
#   │   ├── add() / replace_all() — sync, serialized on an RLock
#   │   └── search()              — async, lock-free snapshot read
#   └── ChromaEmbeddingStore   — ChromaDB (in-process or client/server)
#       ├── add() / replace_all() — sync, serialized on an RLock
#       └── search()              — async via asyncio.to_thread(), same lock
#
# CONSISTENCY RULES (both backends):
# - Vectors are computed before the store is touched. An embedding failure
#   therefore leaves the contents unchanged.
# - replace_all() either swaps the whole contents or restores the previous
#   contents and raises StoreWriteError.
# - Readers see the state before or after a mutation, never a mix.
# - Vector dimensionality is fixed by the first write.
#
# RANKING: cosine similarity, descending; equal scores keep insertion order.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import math
import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import chromadb

from ragchat.config import settings
from ragchat.exceptions import EmbeddingFailure, StoreWriteError
from ragchat.services.chunker import Chunk
from ragchat.services.embedder import Embedder, OpenAIEmbedder

logger = logging.getLogger(__name__)

# Metadata keys reserved by the Chroma backend for its own bookkeeping.
_SEQ_KEY = "_seq"
_TOKENS_KEY = "_token_count"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmbeddingRecord:
    """One stored chunk. `seq` is its insertion order within the store."""

    id: str
    chunk: Chunk
    vector: tuple[float, ...]
    seq: int


@dataclass
class VectorSearchResult:
    """A single result from similarity search."""

    record_id: str
    chunk: Chunk
    similarity_score: float  # cosine similarity, higher = more relevant

    @property
    def content(self) -> str:
        return self.chunk.text

    @property
    def metadata(self) -> dict:
        return self.chunk.metadata


@dataclass
class _Ranked:
    score: float
    seq: int
    record_id: str
    chunk: Chunk


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class EmbeddingStore(Protocol):
    """Interface shared by every embedding store backend."""

    def add(self, chunks: Sequence[Chunk]) -> list[str]:
        """Append chunks (no clearing). Returns the new record ids."""
        ...

    def replace_all(self, chunks: Sequence[Chunk]) -> list[str]:
        """Atomically replace the whole contents. Returns the new record ids."""
        ...

    async def search(self, query_text: str, k: int) -> list[VectorSearchResult]:
        """Top-k chunks by descending cosine similarity to `query_text`."""
        ...

    def count(self) -> int:
        ...

    def clear(self) -> None:
        ...


# ---------------------------------------------------------------------------
# Shared Helpers
# ---------------------------------------------------------------------------


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is zero)."""
    dot = math.fsum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(math.fsum(x * x for x in a)) * math.sqrt(
        math.fsum(y * y for y in b)
    )
    return dot / norm if norm else 0.0


def _vectorize(embedder: Embedder, texts: Sequence[str]) -> list[list[float]]:
    """Embed texts and check that one vector of a single width comes back each."""
    if not texts:
        return []
    vectors = embedder.embed(list(texts))
    if len(vectors) != len(texts):
        raise EmbeddingFailure(
            f"Embedder returned {len(vectors)} vectors for {len(texts)} texts"
        )
    widths = {len(v) for v in vectors}
    if len(widths) != 1 or 0 in widths:
        raise EmbeddingFailure(f"Embedder returned vectors of widths {sorted(widths)}")
    return vectors


def _check_dimensions(expected: int | None, vectors: list[list[float]]) -> None:
    if expected is not None and vectors and len(vectors[0]) != expected:
        raise EmbeddingFailure(
            f"Vector dimensionality {len(vectors[0])} does not match "
            f"the store's {expected}"
        )


def _validate_k(k: int) -> None:
    if k < 1:
        raise ValueError("k must be >= 1")


def _rank(candidates: list[_Ranked], k: int) -> list[VectorSearchResult]:
    candidates.sort(key=lambda c: (-c.score, c.seq))
    return [
        VectorSearchResult(
            record_id=c.record_id, chunk=c.chunk, similarity_score=c.score,
        )
        for c in candidates[:k]
    ]


# ---------------------------------------------------------------------------
# Implementation 1: In-Memory
# ---------------------------------------------------------------------------


class InMemoryEmbeddingStore:
    """
    Process-local store.

    Mutations build a new tuple of records and publish it with a single
    attribute assignment under the lock. Readers grab the current tuple
    without locking, so they always see one complete version.
    """

    def __init__(self, embedder: Embedder) -> None:
        self._embedder = embedder
        self._lock = threading.RLock()
        self._records: tuple[EmbeddingRecord, ...] = ()
        self._dimensions: int | None = None
        self._next_seq = 0

    @property
    def dimensions(self) -> int | None:
        return self._dimensions

    def records(self) -> tuple[EmbeddingRecord, ...]:
        """Current contents, in insertion order."""
        return self._records

    def count(self) -> int:
        return len(self._records)

    def add(self, chunks: Sequence[Chunk]) -> list[str]:
        vectors = _vectorize(self._embedder, [c.text for c in chunks])
        with self._lock:
            new_records = self._build_records(chunks, vectors)
            self._records = self._records + new_records
        logger.info("Added %d chunks (store size=%d)", len(new_records), self.count())
        return [r.id for r in new_records]

    def replace_all(self, chunks: Sequence[Chunk]) -> list[str]:
        vectors = _vectorize(self._embedder, [c.text for c in chunks])
        with self._lock:
            new_records = self._build_records(chunks, vectors)
            previous = len(self._records)
            self._records = new_records
        logger.info(
            "Replaced store contents: %d → %d chunks", previous, len(new_records),
        )
        return [r.id for r in new_records]

    def clear(self) -> None:
        with self._lock:
            self._records = ()
        logger.info("Cleared in-memory embedding store")

    async def search(self, query_text: str, k: int) -> list[VectorSearchResult]:
        _validate_k(k)
        snapshot = self._records
        if not snapshot:
            return []
        return await asyncio.to_thread(self._search_snapshot, snapshot, query_text, k)

    def _search_snapshot(
        self,
        snapshot: tuple[EmbeddingRecord, ...],
        query_text: str,
        k: int,
    ) -> list[VectorSearchResult]:
        query_vector = _vectorize(self._embedder, [query_text])[0]
        _check_dimensions(len(snapshot[0].vector), [query_vector])

        candidates = [
            _Ranked(
                score=cosine_similarity(query_vector, record.vector),
                seq=record.seq,
                record_id=record.id,
                chunk=record.chunk,
            )
            for record in snapshot
        ]
        results = _rank(candidates, k)
        logger.debug(
            "Search returned %d of %d records (k=%d)", len(results), len(snapshot), k,
        )
        return results

    def _build_records(
        self,
        chunks: Sequence[Chunk],
        vectors: list[list[float]],
    ) -> tuple[EmbeddingRecord, ...]:
        """Caller holds the lock. Nothing is published until this returns."""
        _check_dimensions(self._dimensions, vectors)
        records = tuple(
            EmbeddingRecord(
                id=uuid.uuid4().hex,
                chunk=chunk,
                vector=tuple(vector),
                seq=self._next_seq + i,
            )
            for i, (chunk, vector) in enumerate(zip(chunks, vectors, strict=True))
        )
        self._next_seq += len(records)
        if vectors and self._dimensions is None:
            self._dimensions = len(vectors[0])
        return records


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaEmbeddingStore:
    """
    ChromaDB-backed store.

    DESIGN DECISION: Ranking is done client-side. Chroma's approximate
    nearest-neighbour order does not break ties by insertion order, so
    search() scores every stored vector with Chroma's exact cosine distance
    and re-sorts by (score, seq). Insertion order is kept in the "_seq"
    metadata key.

    Reads take the same lock as writes: Chroma has no multi-statement
    transactions, so this is what keeps a reader from seeing a half-done
    replace_all().
    """

    def __init__(
        self,
        embedder: Embedder,
        client: Any | None = None,
        collection_name: str | None = None,
    ) -> None:
        if client is not None:
            self._client = client
        elif settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._embedder = embedder
        self._lock = threading.RLock()
        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )
        self._next_seq = self._max_seq() + 1

    def count(self) -> int:
        with self._lock:
            return self._collection.count()

    def add(self, chunks: Sequence[Chunk]) -> list[str]:
        vectors = _vectorize(self._embedder, [c.text for c in chunks])
        if not vectors:
            return []
        with self._lock:
            _check_dimensions(self._stored_dimensions(), vectors)
            ids = self._write(chunks, vectors)
        logger.info("Stored %d chunks in ChromaDB", len(ids))
        return ids

    def replace_all(self, chunks: Sequence[Chunk]) -> list[str]:
        vectors = _vectorize(self._embedder, [c.text for c in chunks])
        with self._lock:
            _check_dimensions(self._stored_dimensions(), vectors)
            snapshot = self._collection.get(
                include=["documents", "metadatas", "embeddings"],
            )
            old_ids = list(snapshot["ids"])

            try:
                if old_ids:
                    self._collection.delete(ids=old_ids)
                ids = self._write(chunks, vectors) if vectors else []
            except Exception as exc:
                logger.exception("replace_all failed; restoring %d records", len(old_ids))
                self._restore(snapshot)
                raise StoreWriteError(f"Chroma replace_all failed: {exc}") from exc

        logger.info(
            "Replaced ChromaDB contents: %d → %d chunks", len(old_ids), len(ids),
        )
        return ids

    def clear(self) -> None:
        with self._lock:
            ids = self._collection.get(include=[])["ids"]
            if ids:
                self._collection.delete(ids=list(ids))
        logger.info("Cleared ChromaDB collection")

    async def search(self, query_text: str, k: int) -> list[VectorSearchResult]:
        _validate_k(k)
        return await asyncio.to_thread(self._sync_search, query_text, k)

    def _sync_search(self, query_text: str, k: int) -> list[VectorSearchResult]:
        with self._lock:
            total = self._collection.count()
            if total == 0:
                return []

            query_vector = _vectorize(self._embedder, [query_text])[0]
            _check_dimensions(self._stored_dimensions(), [query_vector])

            results = self._collection.query(
                query_embeddings=[query_vector],
                n_results=total,
                include=["documents", "metadatas", "distances"],
            )

        candidates: list[_Ranked] = []
        if results and results["ids"] and results["ids"][0]:
            for i, chroma_id in enumerate(results["ids"][0]):
                metadata = dict(results["metadatas"][0][i] or {})
                seq = int(metadata.pop(_SEQ_KEY, 0))
                token_count = int(metadata.pop(_TOKENS_KEY, 0))
                candidates.append(_Ranked(
                    # Chroma cosine distance is in [0, 2]; convert to similarity
                    score=1.0 - results["distances"][0][i],
                    seq=seq,
                    record_id=chroma_id,
                    chunk=Chunk(
                        text=results["documents"][0][i] or "",
                        metadata=metadata,
                        token_count=token_count,
                    ),
                ))

        return _rank(candidates, k)

    def _write(self, chunks: Sequence[Chunk], vectors: list[list[float]]) -> list[str]:
        """Caller holds the lock."""
        ids = [uuid.uuid4().hex for _ in chunks]
        metadatas = [
            _sanitise_chroma_metadata({
                **chunk.metadata,
                _SEQ_KEY: self._next_seq + i,
                _TOKENS_KEY: chunk.token_count,
            })
            for i, chunk in enumerate(chunks)
        ]
        try:
            self._collection.add(
                ids=ids,
                documents=[c.text for c in chunks],
                embeddings=vectors,
                metadatas=metadatas,
            )
        except Exception:
            self._collection.delete(ids=ids)
            raise
        self._next_seq += len(ids)
        return ids

    def _restore(self, snapshot: dict) -> None:
        current = self._collection.get(include=[])["ids"]
        if current:
            self._collection.delete(ids=list(current))
        if snapshot["ids"]:
            self._collection.add(
                ids=list(snapshot["ids"]),
                documents=list(snapshot["documents"]),
                embeddings=[[float(x) for x in e] for e in snapshot["embeddings"]],
                metadatas=list(snapshot["metadatas"]),
            )

    def _stored_dimensions(self) -> int | None:
        sample = self._collection.get(limit=1, include=["embeddings"])
        embeddings = sample.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _max_seq(self) -> int:
        metadatas = self._collection.get(include=["metadatas"])["metadatas"] or []
        return max((int(m.get(_SEQ_KEY, -1)) for m in metadatas if m), default=-1)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_embedding_store(
    embedder: Embedder | None = None,
    override_type: str | None = None,
) -> InMemoryEmbeddingStore | ChromaEmbeddingStore:
    """
    Factory that returns the configured store backend.

    Reads `vectorstore_type` from settings:
    - "memory" → InMemoryEmbeddingStore (default)
    - "chroma" → ChromaEmbeddingStore
    """
    store_type = override_type or settings.vectorstore_type
    embedder = embedder or OpenAIEmbedder()

    if store_type == "chroma":
        logger.info("Using ChromaDB embedding store")
        return ChromaEmbeddingStore(embedder)

    if store_type != "memory":
        raise ValueError(f"Unknown vectorstore_type '{store_type}'")

    logger.info("Using in-memory embedding store")
    return InMemoryEmbeddingStore(embedder)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _sanitise_chroma_metadata(metadata: dict) -> dict:
    """
    Sanitise metadata for ChromaDB compatibility.

    ChromaDB requires all metadata values to be str, int, float, or bool:
    - list → comma-separated string
    - None → empty string
    """
    sanitised = {}
    for key, value in metadata.items():
        if value is None:
            sanitised[key] = ""
        elif isinstance(value, list):
            sanitised[key] = ",".join(str(v) for v in value)
        elif isinstance(value, (str, int, float, bool)):
            sanitised[key] = value
        else:
            sanitised[key] = str(value)
    return sanitised
