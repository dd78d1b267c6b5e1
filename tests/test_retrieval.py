# =============================================================================
# Unit Tests — Retrieval Advisor
# =============================================================================

from unittest.mock import AsyncMock

import pytest
from conftest import _run

from ragchat.agents.retrieval import DEFAULT_INSTRUCTIONS, RetrievalAdvisor, format_context
from ragchat.exceptions import EmbeddingFailure
from ragchat.services.chunker import Chunk
from ragchat.services.memory import Role, Turn
from ragchat.services.vectorstore import VectorSearchResult


def _seed(store) -> None:
    store.add([
        Chunk("The Congo River is the longest river in central Africa.",
              {"source": "congo.txt", "filename": "congo.txt", "chunk_index": 0}),
        Chunk("Rex is a friendly dog.",
              {"source": "dogs", "record_id": 1, "chunk_index": 0}),
    ])


class TestRetrievalAdvisor:
    def test_context_block_labels_chunks(self, store):
        _seed(store)
        prompt = _run(RetrievalAdvisor(store, top_k=2).advise("Tell me about the congo river"))

        assert prompt.augmented
        assert prompt.system.startswith(DEFAULT_INSTRUCTIONS)
        assert "[1] (source: congo.txt, file: congo.txt, chunk: 0):" in prompt.system
        assert "[2] (source: dogs, record: 1, chunk: 0):" in prompt.system
        assert prompt.chunks[0].content.startswith("The Congo River")

    def test_messages_are_history_then_utterance(self, store):
        history = [
            Turn(Role.USER, "Hi, I'm Alice"),
            Turn(Role.ASSISTANT, "Hello Alice"),
        ]
        prompt = _run(RetrievalAdvisor(store).advise("What's my name?", history))

        assert prompt.messages == [
            {"role": "user", "content": "Hi, I'm Alice"},
            {"role": "assistant", "content": "Hello Alice"},
            {"role": "user", "content": "What's my name?"},
        ]

    def test_empty_store_gives_unaugmented_prompt(self, store):
        prompt = _run(RetrievalAdvisor(store).advise("anything"))
        assert prompt.system == DEFAULT_INSTRUCTIONS
        assert prompt.chunks == []
        assert not prompt.augmented

    def test_retrieval_failure_falls_back(self, caplog):
        broken = AsyncMock()
        broken.search = AsyncMock(side_effect=EmbeddingFailure("embeddings API down"))

        prompt = _run(RetrievalAdvisor(broken, instructions="Be brief.").advise("question"))

        assert prompt.system == "Be brief."
        assert prompt.messages == [{"role": "user", "content": "question"}]
        assert "embeddings API down" in caplog.text

    def test_top_k_limits_chunks(self, store):
        _seed(store)
        prompt = _run(RetrievalAdvisor(store, top_k=1).advise("congo river"))
        assert len(prompt.chunks) == 1

    def test_similarity_threshold_filters(self, store):
        _seed(store)
        prompt = _run(
            RetrievalAdvisor(store, top_k=2, similarity_threshold=0.5).advise("congo river")
        )
        assert [c.metadata["source"] for c in prompt.chunks] == ["congo.txt"]

    @pytest.mark.parametrize("top_k", [0, -1])
    def test_top_k_below_one_rejected(self, store, top_k):
        with pytest.raises(ValueError):
            RetrievalAdvisor(store, top_k=top_k)

    def test_context_defers_to_functions(self, store):
        _seed(store)
        prompt = _run(RetrievalAdvisor(store, top_k=1).advise("Status of policy H001?"))
        assert "no available function can provide it" in prompt.system


class TestFormatContext:
    def test_chunk_without_metadata_has_no_labels(self):
        result = VectorSearchResult("r1", Chunk("plain text"), 0.5)
        assert format_context([result]) == "[1]:\nplain text"

    def test_sections_are_separated(self):
        results = [
            VectorSearchResult("r1", Chunk("one", {"page_number": 2}), 0.9),
            VectorSearchResult("r2", Chunk("two"), 0.8),
        ]
        assert format_context(results) == "[1] (page: 2):\none\n\n---\n\n[2]:\ntwo"
