# =============================================================================
# Unit Tests — LLM Providers and Embedder
# =============================================================================
#
# SDK clients are replaced with mocks after construction; nothing here
# reaches the network.
# =============================================================================

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import _run
from openai import OpenAIError

from ragchat.config import settings
from ragchat.exceptions import EmbeddingFailure
from ragchat.services import llm as llm_module
from ragchat.services.embedder import OpenAIEmbedder
from ragchat.services.llm import (
    AnthropicProvider,
    FunctionSchema,
    OpenAICompatibleProvider,
    _decode_arguments,
    get_llm_provider,
)

POLICY_SCHEMA = FunctionSchema(
    name="policy_status",
    description="Get the status of a single policy",
    parameters={"type": "object", "properties": {"id": {"type": "string"}}},
)


class TestAnthropicProvider:
    def _provider(self, response) -> AnthropicProvider:
        provider = AnthropicProvider(api_key="test-key", model="claude-test")
        provider._client = MagicMock()
        provider._client.messages.create = AsyncMock(return_value=response)
        return provider

    def test_tool_use_blocks_become_function_calls(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me check."),
                SimpleNamespace(type="tool_use", id="tu_1", name="policy_status",
                                input={"id": "H001"}),
            ],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=30, output_tokens=12),
        )
        provider = self._provider(response)

        result = _run(provider.complete(
            [{"role": "user", "content": "Status of H001?"}],
            system="Be brief.",
            functions=[POLICY_SCHEMA],
        ))

        assert result.content == "Let me check."
        assert result.wants_functions
        assert result.function_calls[0].name == "policy_status"
        assert result.function_calls[0].arguments == {"id": "H001"}
        assert result.function_calls[0].call_id == "tu_1"

        kwargs = provider._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["tools"][0]["input_schema"] == POLICY_SCHEMA.parameters

    def test_no_tools_sent_without_functions(self):
        response = SimpleNamespace(
            content=[SimpleNamespace(type="text", text="Hi")],
            model="claude-test",
            usage=SimpleNamespace(input_tokens=1, output_tokens=1),
        )
        provider = self._provider(response)

        result = _run(provider.complete([{"role": "user", "content": "Hello"}]))

        assert not result.wants_functions
        assert "tools" not in provider._client.messages.create.call_args.kwargs


class TestOpenAICompatibleProvider:
    def _provider(self, message, parallel=True) -> OpenAICompatibleProvider:
        provider = OpenAICompatibleProvider(
            api_key="test-key", model="gpt-test", parallel_tool_calls=parallel,
        )
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=message)],
            model="gpt-test",
            usage=SimpleNamespace(prompt_tokens=20, completion_tokens=4),
        ))
        return provider

    def test_tool_calls_are_decoded(self):
        message = SimpleNamespace(
            content=None,
            tool_calls=[
                SimpleNamespace(id="c1", function=SimpleNamespace(
                    name="policy_status", arguments='{"id": "H001"}')),
                SimpleNamespace(id="c2", function=SimpleNamespace(
                    name="policy_status", arguments='{"id": "H002"}')),
            ],
        )
        provider = self._provider(message, parallel=False)

        result = _run(provider.complete(
            [{"role": "user", "content": "H001 and H002?"}],
            system="Be brief.",
            functions=[POLICY_SCHEMA],
        ))

        assert result.content == ""
        assert [c.arguments["id"] for c in result.function_calls] == ["H001", "H002"]
        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief."}
        assert kwargs["tools"][0]["function"]["name"] == "policy_status"
        assert kwargs["parallel_tool_calls"] is False

    def test_plain_answer(self):
        provider = self._provider(SimpleNamespace(content="Hello", tool_calls=None))
        result = _run(provider.complete([{"role": "user", "content": "Hi"}]))
        assert result.content == "Hello"
        assert result.input_tokens == 20
        assert "parallel_tool_calls" not in provider._client.chat.completions.create.call_args.kwargs


class TestDecodeArguments:
    def test_json_object(self):
        assert _decode_arguments('{"id": "H001"}') == {"id": "H001"}

    def test_empty_is_empty_object(self):
        assert _decode_arguments("") == {}

    def test_invalid_json_kept_raw(self):
        assert _decode_arguments("{id: H001") == "{id: H001"

    def test_non_object_kept_raw(self):
        assert _decode_arguments("[1, 2]") == "[1, 2]"


class TestGetLLMProvider:
    def test_missing_key_raises(self, monkeypatch):
        monkeypatch.setattr(llm_module, "_provider", None)
        monkeypatch.setattr(settings, "llm_provider", "anthropic")
        monkeypatch.setattr(settings, "llm_api_key", None)
        monkeypatch.setattr(settings, "anthropic_api_key", "")

        with pytest.raises(ValueError, match="API key"):
            get_llm_provider()

    def test_openai_compatible_selected(self, monkeypatch):
        monkeypatch.setattr(llm_module, "_provider", None)
        monkeypatch.setattr(settings, "llm_provider", "openai_compatible")
        monkeypatch.setattr(settings, "llm_api_key", "test-key")

        assert isinstance(get_llm_provider(), OpenAICompatibleProvider)


class TestOpenAIEmbedder:
    def _embedder(self, create) -> OpenAIEmbedder:
        embedder = OpenAIEmbedder(model="emb-test", dimensions=3, batch_size=2, api_key="k")
        client = MagicMock()
        client.embeddings.create = create
        embedder._client = client
        return embedder

    def test_batches_and_keeps_order(self):
        def create(model, input, **kwargs):
            return SimpleNamespace(data=[
                SimpleNamespace(index=i, embedding=[float(len(text)), 0.0, 1.0])
                for i, text in reversed(list(enumerate(input)))
            ])

        create = MagicMock(side_effect=create)
        vectors = self._embedder(create).embed(["a", "bb", "ccc"])

        assert [v[0] for v in vectors] == [1.0, 2.0, 3.0]
        assert create.call_count == 2

    def test_api_error_wrapped(self):
        embedder = self._embedder(MagicMock(side_effect=OpenAIError("quota exceeded")))
        with pytest.raises(EmbeddingFailure, match="quota exceeded"):
            embedder.embed(["congo"])

    def test_dimensions_sent_only_when_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "embedding_dimensions", None)
        create = MagicMock(return_value=SimpleNamespace(data=[
            SimpleNamespace(index=0, embedding=[1.0, 0.0]),
        ]))
        embedder = OpenAIEmbedder(model="emb-test", api_key="k")
        embedder._client = MagicMock()
        embedder._client.embeddings.create = create

        embedder.embed(["congo"])

        assert "dimensions" not in create.call_args.kwargs

    def test_configured_dimensions_forwarded(self):
        create = MagicMock(return_value=SimpleNamespace(data=[
            SimpleNamespace(index=0, embedding=[1.0, 0.0, 0.0]),
        ]))
        self._embedder(create).embed(["congo"])
        assert create.call_args.kwargs["dimensions"] == 3

    def test_missing_vectors_rejected(self):
        embedder = self._embedder(MagicMock(return_value=SimpleNamespace(data=[])))
        with pytest.raises(EmbeddingFailure):
            embedder.embed(["congo"])
