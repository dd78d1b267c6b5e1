# =============================================================================
# Shared Test Fakes and Fixtures
# =============================================================================
#
# Everything here runs without API keys or network access:
#   - KeywordEmbedder: deterministic bag-of-words vectors
#   - ScriptedLLM: returns queued LLMResponses and records every call
#   - record_store: SqlRecordStore over an in-memory SQLite database
# =============================================================================

from __future__ import annotations

import asyncio
import re
import threading
from collections.abc import Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ragchat.db.engine import init_db
from ragchat.db.models import Dog
from ragchat.db.records import SqlRecordStore
from ragchat.services.llm import FunctionCall, LLMResponse
from ragchat.services.vectorstore import InMemoryEmbeddingStore

VOCABULARY = (
    "congo", "river", "africa", "nile", "dog", "rex", "friendly",
    "policy", "status", "revenue", "forest", "longest",
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class KeywordEmbedder:
    """
    Vector = [1.0, count(word_1), ..., count(word_n)] over VOCABULARY.

    The leading constant keeps every vector non-zero. Identical texts get
    identical vectors, so their similarity scores tie exactly.
    """

    def __init__(self, vocabulary: Sequence[str] = VOCABULARY) -> None:
        self.vocabulary = tuple(vocabulary)
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return len(self.vocabulary) + 1

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        with self._lock:
            self.calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        words = re.findall(r"[a-z]+", text.lower())
        return [1.0] + [float(words.count(term)) for term in self.vocabulary]


class FailingEmbedder:
    """Raises on every call."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        raise self.error


class ScriptedLLM:
    """LLM provider fake that replays queued responses in order."""

    def __init__(self, *responses: LLMResponse) -> None:
        self._responses = list(responses)
        self.calls: list[dict] = []

    async def complete(
        self,
        messages,
        system=None,
        functions=None,
        temperature=None,
        max_tokens=None,
    ) -> LLMResponse:
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "system": system,
            "functions": list(functions or []),
        })
        if not self._responses:
            raise AssertionError("ScriptedLLM received an unexpected call")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def answer(text: str, model: str = "test-model") -> LLMResponse:
    return LLMResponse(content=text, model=model, input_tokens=10, output_tokens=5)


def function_calls(*calls: tuple[str, dict | str]) -> LLMResponse:
    return LLMResponse(
        content="",
        model="test-model",
        input_tokens=12,
        output_tokens=3,
        function_calls=[
            FunctionCall(name=name, arguments=arguments, call_id=f"call_{i}")
            for i, (name, arguments) in enumerate(calls)
        ],
    )


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def store(embedder: KeywordEmbedder) -> InMemoryEmbeddingStore:
    return InMemoryEmbeddingStore(embedder)


@pytest.fixture
def session_factory() -> sessionmaker[Session]:
    """In-memory SQLite shared across threads, with the dogs table created."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield sessionmaker(bind=engine, class_=Session, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def record_store(session_factory: sessionmaker[Session]) -> SqlRecordStore:
    with session_factory() as session:
        session.add_all([
            Dog(id=1, name="Rex", description="A friendly dog who loves the river"),
            Dog(id=2, name="Luna", description="A calm dog from the forest"),
            Dog(id=3, name="Max", description="An energetic dog"),
        ])
        session.commit()
    return SqlRecordStore(Dog, session_factory=session_factory)
