# =============================================================================
# Retrieval Advisor — Prompt Augmentation with Retrieved Chunks
# =============================================================================
#
# Turns a user utterance into a similarity query against the embedding
# store and builds the augmented prompt:
#
#   system   = instructions + numbered context block of retrieved chunks
#   messages = conversation history + the user utterance
#
# Retrieval is best-effort. Zero hits, or any failure while searching
# (embedding API down, dimension mismatch), produce the unaugmented prompt
# instead of failing the request.
#
# Chunks are presented as [1], [2], ... with their provenance (source,
# filename, page, record id, chunk index) so the model can cite them.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ragchat.config import settings
from ragchat.services.memory import Turn
from ragchat.services.vectorstore import EmbeddingStore, VectorSearchResult

logger = logging.getLogger(__name__)

DEFAULT_INSTRUCTIONS = (
    "You are a helpful assistant. Answer the user's question accurately and "
    "concisely. When functions are available and the question needs data "
    "they provide, call them instead of guessing."
)

_CONTEXT_TEMPLATE = """Context information is below, surrounded by ---------------------

---------------------
{context}
---------------------

Given the context and provided history information and not prior knowledge, \
reply to the user comment. Cite context entries as [1], [2], etc. If the \
answer is not in the context and no available function can provide it, \
inform the user that you can't answer the question."""

# Metadata keys shown next to each chunk, in display order.
_LABEL_KEYS = (
    ("source", "source"),
    ("filename", "file"),
    ("page_number", "page"),
    ("record_id", "record"),
    ("chunk_index", "chunk"),
)


@dataclass
class AugmentedPrompt:
    """Prompt ready for the model backend."""

    system: str
    messages: list[dict[str, str]]
    chunks: list[VectorSearchResult] = field(default_factory=list)

    @property
    def augmented(self) -> bool:
        return bool(self.chunks)


class RetrievalAdvisor:
    """
    Args:
        store: Embedding store to search.
        top_k: Chunks injected per prompt (default: settings.retrieval_top_k).
        similarity_threshold: Hits scoring below this are dropped
            (default: settings.retrieval_similarity_threshold).
        instructions: Base system instructions.
    """

    def __init__(
        self,
        store: EmbeddingStore,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
        instructions: str = DEFAULT_INSTRUCTIONS,
    ) -> None:
        self.store = store
        self.top_k = settings.retrieval_top_k if top_k is None else top_k
        if self.top_k < 1:
            raise ValueError("top_k must be >= 1")
        self.similarity_threshold = (
            settings.retrieval_similarity_threshold
            if similarity_threshold is None
            else similarity_threshold
        )
        self.instructions = instructions

    async def retrieve(self, utterance: str) -> list[VectorSearchResult]:
        """Search the store; any failure yields [] and a warning."""
        try:
            results = await self.store.search(utterance, self.top_k)
        except Exception as exc:
            logger.warning(
                "Retrieval failed, continuing without context: %s", exc,
            )
            return []

        # A threshold of 0 disables filtering; cosine scores can be negative.
        filtered = results
        if self.similarity_threshold > 0:
            filtered = [
                r for r in results if r.similarity_score >= self.similarity_threshold
            ]
        logger.info(
            "Retrieved %d chunks (%d above threshold %.2f)",
            len(results), len(filtered), self.similarity_threshold,
        )
        return filtered

    async def advise(
        self,
        utterance: str,
        history: Sequence[Turn] = (),
    ) -> AugmentedPrompt:
        chunks = await self.retrieve(utterance)

        system = self.instructions
        if chunks:
            system = (
                f"{self.instructions}\n\n"
                f"{_CONTEXT_TEMPLATE.format(context=format_context(chunks))}"
            )

        messages = [turn.as_message() for turn in history]
        messages.append({"role": "user", "content": utterance})
        return AugmentedPrompt(system=system, messages=messages, chunks=chunks)


def format_context(chunks: Sequence[VectorSearchResult]) -> str:
    """
    Format retrieved chunks as numbered context for the model.

    Example output:
        [1] (source: congo.txt, file: congo.txt, chunk: 0):
        The Congo River is the second longest river in Africa...

        ---

        [2] (source: dogs, record: 3, chunk: 0):
        id: 3, name: Rex, description: A friendly dog
    """
    sections = []
    for i, result in enumerate(chunks, 1):
        labels = [
            f"{label}: {result.metadata[key]}"
            for key, label in _LABEL_KEYS
            if key in result.metadata and result.metadata[key] != ""
        ]
        label_text = f" ({', '.join(labels)})" if labels else ""
        sections.append(f"[{i}]{label_text}:\n{result.content}")
    return "\n\n---\n\n".join(sections)
