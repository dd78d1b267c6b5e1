# =============================================================================
# Token-Based Text Chunker — tiktoken
# =============================================================================
#
# Splits a Document into token-bounded Chunks ready for embedding.
#
# ALGORITHM:
# 1. Encode the document content with tiktoken (cl100k_base)
# 2. Slide a window of chunk_size tokens, advancing chunk_size - chunk_overlap
# 3. Decode each window back to text (exact, no stripping), with window
#    edges moved back to UTF-8 character boundaries
# 4. Copy the parent metadata and add the 0-based chunk_index
#
# Overlap is an explicit constructor argument. With chunk_overlap=0 the
# windows tile the token stream, so joining the chunk texts gives back the
# original content. The same document and configuration always produce the
# same chunks, which is what makes re-ingestion idempotent.
#
# cl100k_base is the tokenizer of text-embedding-3-small, so token counts
# match what the embedding model sees.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import tiktoken

from ragchat.services.loaders import Document, MetadataValue

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Chunk:
    """
    A bounded fragment of one parent Document.

    metadata = parent metadata (verbatim) + chunk_index, later extended with
    provenance (source, version) by the ingestion pipeline.
    """

    text: str
    metadata: dict[str, MetadataValue] = field(default_factory=dict)
    token_count: int = 0

    @property
    def chunk_index(self) -> int:
        return int(self.metadata.get("chunk_index", 0))

    def with_metadata(self, **extra: MetadataValue) -> Chunk:
        """Return a copy whose metadata is extended with `extra`."""
        return Chunk(
            text=self.text,
            metadata={**self.metadata, **extra},
            token_count=self.token_count,
        )


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


def _char_boundary(data: bytes, position: int) -> int:
    """Move `position` back to the start of the UTF-8 character it falls in."""
    while 0 < position < len(data) and data[position] & 0xC0 == 0x80:
        position -= 1
    return position


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class TokenChunker:
    """
    Sliding-window token chunker.

    Args:
        chunk_size: Maximum tokens per chunk.
        chunk_overlap: Tokens shared by consecutive chunks (0 = none).

    Raises:
        ValueError: If chunk_size < 1 or overlap is outside [0, chunk_size).
    """

    def __init__(self, chunk_size: int = 512, chunk_overlap: int = 0) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, document: Document) -> list[Chunk]:
        """
        Split one document into chunks, in document order.

        Empty or whitespace-only content yields []. Content shorter than
        one window yields exactly one chunk. Whitespace-only windows are
        kept, so paragraph breaks at a window edge survive.

        Window edges are cut on UTF-8 character boundaries. A character
        whose bytes span several tokens goes whole into the chunk where its
        last byte falls; a window left with no complete character is
        skipped.
        """
        if not document.content.strip():
            return []

        encoder = _get_encoder()
        tokens = encoder.encode(document.content)
        total_tokens = len(tokens)
        step = self.chunk_size - self.chunk_overlap

        # offsets[i] is the byte position where token i starts.
        token_bytes = encoder.decode_tokens_bytes(tokens)
        data = b"".join(token_bytes)
        offsets = [0]
        for piece in token_bytes:
            offsets.append(offsets[-1] + len(piece))

        chunks: list[Chunk] = []
        for start in range(0, total_tokens, step):
            end = min(start + self.chunk_size, total_tokens)
            low = _char_boundary(data, offsets[start])
            high = _char_boundary(data, offsets[end])

            if high > low:
                chunks.append(Chunk(
                    text=data[low:high].decode("utf-8"),
                    metadata={**document.metadata, "chunk_index": len(chunks)},
                    token_count=end - start,
                ))

            if end >= total_tokens:
                break

        logger.debug(
            "Split document %s into %d chunks (%d tokens, size=%d, overlap=%d)",
            document.metadata.get("filename", "<unnamed>"), len(chunks),
            total_tokens, self.chunk_size, self.chunk_overlap,
        )
        return chunks

    def split_all(self, documents: list[Document]) -> list[Chunk]:
        """Split every document, concatenating the chunk lists in order."""
        return [chunk for document in documents for chunk in self.split(document)]
