# =============================================================================
# Embedding Service — Batch Vector Generation (Provider-Agnostic)
# =============================================================================
#
# Generates vector embeddings using any OpenAI-compatible embedding API.
# The stores treat the embedder as a black box: same text + same model
# version → same vector.
#
# DESIGN DECISION: Sync-only. Ingestion runs in worker threads and the
# query path wraps calls in asyncio.to_thread().
#
# DESIGN DECISION: Every failure (API error, missing key, wrong number of
# vectors back) surfaces as EmbeddingFailure so callers handle one type.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

from openai import OpenAI, OpenAIError

from ragchat.config import settings
from ragchat.exceptions import EmbeddingFailure

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Deterministic text → vector function."""

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Return one vector per input text, in input order."""
        ...


class OpenAIEmbedder:
    """
    Embedder backed by the OpenAI embeddings endpoint.

    API key resolution order:
      1. OPENAI_API_KEY (explicit embedding key)
      2. LLM_API_KEY (shared key for an OpenAI-compatible provider)

    The client is created lazily so that importing this module, or
    building an embedder in tests, never needs a key.
    """

    def __init__(
        self,
        model: str | None = None,
        dimensions: int | None = None,
        batch_size: int | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.model = model or settings.embedding_model
        self.dimensions = (
            settings.embedding_dimensions if dimensions is None else dimensions
        )
        self.batch_size = batch_size or settings.embedding_batch_size
        self._api_key = api_key
        self._base_url = base_url or settings.embedding_base_url
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            resolved_key = (
                self._api_key or settings.openai_api_key or settings.llm_api_key
            )
            if not resolved_key:
                raise EmbeddingFailure(
                    "No API key configured for embeddings. "
                    "Set OPENAI_API_KEY or LLM_API_KEY in .env"
                )

            client_kwargs: dict = {"api_key": resolved_key}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = OpenAI(**client_kwargs)

            logger.info(
                "Initialized embedding client (model=%s, base_url=%s)",
                self.model, self._base_url or "https://api.openai.com/v1",
            )
        return self._client

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """
        Embed texts in sub-batches of `batch_size`.

        Raises:
            EmbeddingFailure: The API call failed or returned a vector count
                or dimensionality that does not match the request.
        """
        if not texts:
            return []

        client = self._get_client()
        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i : i + self.batch_size])
            logger.debug(
                "Embedding batch %d–%d of %d texts (model=%s)",
                i + 1, i + len(batch), len(texts), self.model,
            )

            create_kwargs: dict = {"model": self.model, "input": batch}
            if self.dimensions is not None:
                create_kwargs["dimensions"] = self.dimensions

            try:
                response = client.embeddings.create(**create_kwargs)
            except OpenAIError as exc:
                raise EmbeddingFailure(f"Embedding request failed: {exc}") from exc

            if len(response.data) != len(batch):
                raise EmbeddingFailure(
                    f"Expected {len(batch)} embeddings, got {len(response.data)}"
                )

            # Items carry their input index; order the output by it.
            for item in sorted(response.data, key=lambda x: x.index):
                all_embeddings.append(list(item.embedding))

        widths = {len(vector) for vector in all_embeddings}
        if len(widths) > 1:
            raise EmbeddingFailure(f"Inconsistent embedding widths: {sorted(widths)}")

        logger.info(
            "Generated %d embeddings (model=%s)", len(all_embeddings), self.model,
        )
        return all_embeddings
