# =============================================================================
# Unit Tests — Token Chunker
# =============================================================================
#
# Tests the sliding-window chunking logic without external dependencies.
# No API keys, databases, or network calls needed.
# =============================================================================

import pytest

from ragchat.services.chunker import Chunk, TokenChunker
from ragchat.services.loaders import Document

CONGO = (
    "The Congo River is the second longest river in Africa after the Nile. "
    "It flows through the rainforest and crosses the equator twice. "
) * 20


class TestTokenChunker:
    """Tests for TokenChunker.split()."""

    def test_empty_document_returns_no_chunks(self):
        assert TokenChunker(64).split(Document("")) == []

    def test_whitespace_document_returns_no_chunks(self):
        assert TokenChunker(64).split(Document("  \n\t ")) == []

    def test_short_document_produces_one_chunk(self):
        doc = Document("A short sentence.", {"filename": "a.txt"})
        chunks = TokenChunker(64).split(doc)
        assert len(chunks) == 1
        assert chunks[0].text == "A short sentence."
        assert chunks[0].chunk_index == 0

    def test_chunk_indices_are_sequential(self):
        chunks = TokenChunker(32).split(Document(CONGO))
        assert len(chunks) > 1
        for i, chunk in enumerate(chunks):
            assert chunk.chunk_index == i

    def test_token_count_respects_chunk_size(self):
        chunks = TokenChunker(40, 10).split(Document(CONGO))
        assert all(0 < chunk.token_count <= 40 for chunk in chunks)

    def test_concatenation_reconstructs_content_without_overlap(self):
        chunks = TokenChunker(25).split(Document(CONGO))
        assert "".join(chunk.text for chunk in chunks) == CONGO

    @pytest.mark.parametrize("size", [1, 2, 3, 4, 7])
    def test_non_ascii_text_is_cut_on_character_boundaries(self, size):
        content = "Le fleuve Congo traverse la forêt 🌍 刚果河 — café, naïve, Ærø."
        chunks = TokenChunker(size).split(Document(content))
        assert "".join(chunk.text for chunk in chunks) == content
        assert all("\ufffd" not in chunk.text for chunk in chunks)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    @pytest.mark.parametrize("size", [1, 2, 3])
    def test_blank_lines_at_window_edges_are_kept(self, size):
        content = "Congo\n\n\n\nNile\n\n   \n\nAfrica"
        chunks = TokenChunker(size).split(Document(content))
        assert "".join(chunk.text for chunk in chunks) == content

    def test_whitespace_only_window_becomes_a_chunk(self):
        chunks = TokenChunker(1).split(Document("Congo\n\n\n\nNile"))
        assert any(not chunk.text.strip() for chunk in chunks)

    def test_overlapping_windows_never_split_a_character(self):
        chunks = TokenChunker(3, 1).split(Document("刚果河 🌍 forêt " * 5))
        assert chunks
        assert all("\ufffd" not in chunk.text for chunk in chunks)

    def test_overlap_produces_more_chunks(self):
        no_overlap = TokenChunker(64, 0).split(Document(CONGO))
        with_overlap = TokenChunker(64, 32).split(Document(CONGO))
        assert len(with_overlap) > len(no_overlap)

    def test_split_is_deterministic(self):
        doc = Document(CONGO, {"filename": "congo.txt"})
        chunker = TokenChunker(30, 5)
        assert chunker.split(doc) == chunker.split(doc)

    def test_parent_metadata_is_copied_verbatim(self):
        doc = Document(CONGO, {"filename": "congo.txt", "page_number": 3})
        for chunk in TokenChunker(50).split(doc):
            assert chunk.metadata["filename"] == "congo.txt"
            assert chunk.metadata["page_number"] == 3

    def test_split_all_keeps_document_order(self):
        docs = [Document("first document"), Document("second document")]
        chunks = TokenChunker(64).split_all(docs)
        assert [c.text for c in chunks] == ["first document", "second document"]
        assert [c.chunk_index for c in chunks] == [0, 0]

    @pytest.mark.parametrize("size, overlap", [(0, 0), (10, 10), (10, -1), (10, 11)])
    def test_invalid_configuration_rejected(self, size, overlap):
        with pytest.raises(ValueError):
            TokenChunker(size, overlap)


class TestChunk:
    def test_with_metadata_returns_extended_copy(self):
        chunk = Chunk("text", {"chunk_index": 2}, token_count=1)
        tagged = chunk.with_metadata(source="congo.txt", version=1)
        assert tagged.metadata == {"chunk_index": 2, "source": "congo.txt", "version": 1}
        assert chunk.metadata == {"chunk_index": 2}
        assert tagged.token_count == 1
