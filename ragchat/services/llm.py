# =============================================================================
# Multi-Provider LLM Abstraction — Model Backend with Function Calling
# =============================================================================
#
# Provides a common interface for chat completions, with concrete
# implementations for Anthropic (Claude) and OpenAI-compatible APIs.
# Both can advertise functions to the model and report the function calls
# the model asked for.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — tools=[...], reads tool_use blocks
#   ├── OpenAICompatibleProvider — tools=[...], reads message.tool_calls
#   └── get_llm_provider()       — singleton factory, reads from config
#
# The providers do not retry and do not wrap SDK errors: a failing model
# call is fatal to the request and surfaces unchanged.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ragchat.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionSchema:
    """A function advertised to the model: name, purpose, JSON schema of inputs."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass(frozen=True)
class FunctionCall:
    """
    A function call requested by the model.

    `arguments` is the decoded JSON object, or the raw string when the
    model produced arguments that are not valid JSON. The dispatcher
    rejects the latter with InvalidArguments.
    """

    name: str
    arguments: dict[str, Any] | str
    call_id: str = ""


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Either `content` carries the answer, or `function_calls` lists the
    functions the model wants executed before it answers (possibly with
    some accompanying text in `content`).
    """

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    function_calls: list[FunctionCall] = field(default_factory=list)

    @property
    def wants_functions(self) -> bool:
        return bool(self.function_calls)


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """Interface every model backend implements."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        functions: Sequence[FunctionSchema] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Chronological {"role", "content"} dicts; roles are
                "user" and "assistant" only.
            system: System prompt (Anthropic: top-level kwarg; OpenAI:
                prepended "system" message).
            functions: Functions the model may call in this turn. None or
                empty means the model must answer directly.
            temperature: Override sampling temperature.
            max_tokens: Override max output tokens.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Anthropic Claude provider using the native async SDK."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        functions: Sequence[FunctionSchema] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system
        if functions:
            kwargs["tools"] = [
                {
                    "name": f.name,
                    "description": f.description,
                    "input_schema": f.parameters,
                }
                for f in functions
            ]

        response = await self._client.messages.create(**kwargs)

        texts: list[str] = []
        calls: list[FunctionCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(FunctionCall(
                    name=block.name,
                    arguments=dict(block.input or {}),
                    call_id=block.id,
                ))

        return LLMResponse(
            content="".join(texts),
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            function_calls=calls,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for any API that follows the OpenAI chat completions spec.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        parallel_tool_calls: bool | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens
        self._parallel_tool_calls = (
            settings.llm_parallel_tool_calls
            if parallel_tool_calls is None
            else parallel_tool_calls
        )

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        functions: Sequence[FunctionSchema] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        kwargs: dict = {
            "model": self._model,
            "messages": all_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if functions:
            kwargs["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": f.name,
                        "description": f.description,
                        "parameters": f.parameters,
                    },
                }
                for f in functions
            ]
            kwargs["parallel_tool_calls"] = self._parallel_tool_calls

        response = await self._client.chat.completions.create(**kwargs)

        message = response.choices[0].message
        calls = [
            FunctionCall(
                name=tool_call.function.name,
                arguments=_decode_arguments(tool_call.function.arguments),
                call_id=tool_call.id,
            )
            for tool_call in (message.tool_calls or [])
        ]

        usage = response.usage
        return LLMResponse(
            content=message.content or "",
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            function_calls=calls,
        )


def _decode_arguments(raw: str | None) -> dict[str, Any] | str:
    """Decode a JSON arguments string; keep the raw text if it is not an object."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Model produced non-JSON function arguments: %r", raw[:200])
        return raw
    return decoded if isinstance(decoded, dict) else raw


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Factory that returns the configured LLM provider (lazy singleton).

    - "anthropic" → AnthropicProvider
    - "openai_compatible" → OpenAICompatibleProvider
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider
