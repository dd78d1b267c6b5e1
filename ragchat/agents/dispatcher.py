# =============================================================================
# Tool Dispatcher — Function Registry + Two-Phase Model Call (LangGraph)
# =============================================================================
#
# Runs one model turn that may detour through local function calls:
#
#   START ──▶ call_model ──┬──────────────────────────────────────▶ END
#        AWAITING_MODEL    │ (no function call → DONE)
#                          └─▶ execute_tools ──▶ answer_with_results ──▶ END
#                             TOOL_REQUESTED     TOOL_EXECUTED          DONE
#
# call_model         — first model call, every registered function advertised
# execute_tools      — validate ALL requested calls, then run the handlers
#                      concurrently (each under a timeout); results keep the
#                      order in which the model requested them
# answer_with_results — second model call with the results appended and no
#                      functions advertised, producing the final answer
#
# FAILURE POLICY:
# - Unknown function or arguments not matching the input schema →
#   InvalidArguments is raised before any handler runs.
# - A handler that raises NotFound, raises anything else, or times out does
#   not abort the turn: its ToolResult carries a not_found / error / timeout
#   payload that the model sees in the second call.
# - Model backend errors propagate unchanged.
#
# DESIGN DECISION: The registry is a plain object handed to the dispatcher
# at construction time. Nothing is registered through module globals.
# =============================================================================

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from operator import add
from typing import Annotated, Any

from langgraph.graph import END, START, StateGraph
from pydantic import BaseModel, ValidationError
from typing_extensions import TypedDict

from ragchat.config import settings
from ragchat.exceptions import InvalidArguments, NotFound, ToolExecutionError, ToolTimeout
from ragchat.services.llm import FunctionCall, FunctionSchema, LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], BaseModel | dict | None | Awaitable[BaseModel | dict | None]]


# ---------------------------------------------------------------------------
# Function Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionDescriptor:
    """
    A function the model may call.

    `input_type` validates the model's arguments and provides the JSON
    schema advertised to the model; `output_type` validates what the
    handler returns.
    """

    name: str
    description: str
    input_type: type[BaseModel]
    output_type: type[BaseModel]
    handler: Handler

    def schema(self) -> FunctionSchema:
        return FunctionSchema(
            name=self.name,
            description=self.description,
            parameters=self.input_type.model_json_schema(),
        )


class FunctionRegistry:
    """Named functions available to the model. Names are unique."""

    def __init__(self, descriptors: Iterable[FunctionDescriptor] = ()) -> None:
        self._descriptors: dict[str, FunctionDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: FunctionDescriptor) -> None:
        if descriptor.name in self._descriptors:
            raise ValueError(f"Function '{descriptor.name}' is already registered")
        self._descriptors[descriptor.name] = descriptor
        logger.info("Registered function '%s'", descriptor.name)

    def get(self, name: str) -> FunctionDescriptor | None:
        return self._descriptors.get(name)

    def schemas(self) -> list[FunctionSchema]:
        return [d.schema() for d in self._descriptors.values()]

    @property
    def names(self) -> list[str]:
        return list(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


class DispatchState(StrEnum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_REQUESTED = "tool_requested"
    TOOL_EXECUTED = "tool_executed"
    DONE = "done"


class ToolStatus(StrEnum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ERROR = "error"
    TIMEOUT = "timeout"


@dataclass
class ToolResult:
    """Outcome of one function call, success or not."""

    name: str
    arguments: dict[str, Any]
    status: ToolStatus
    call_id: str = ""
    output: dict[str, Any] | None = None
    error: str | None = None

    def as_payload(self) -> dict[str, Any]:
        """JSON-ready form shown to the model in the second call."""
        payload: dict[str, Any] = {
            "function": self.name,
            "arguments": self.arguments,
            "status": self.status.value,
        }
        if self.output is not None:
            payload["result"] = self.output
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class DispatchOutcome:
    """Everything one dispatcher run produced."""

    answer: str
    state: DispatchState
    transitions: list[DispatchState]
    tool_results: list[ToolResult] = field(default_factory=list)
    responses: list[LLMResponse] = field(default_factory=list)

    @property
    def model(self) -> str:
        return self.responses[-1].model if self.responses else "n/a"

    @property
    def input_tokens(self) -> int:
        return sum(r.input_tokens for r in self.responses)

    @property
    def output_tokens(self) -> int:
        return sum(r.output_tokens for r in self.responses)


class DispatchGraphState(TypedDict, total=False):
    """State flowing through the dispatcher graph."""

    # --- Input ---
    system: str
    messages: list[dict[str, str]]

    # --- Machine state ---
    state: DispatchState
    transitions: Annotated[list[DispatchState], add]

    # --- Intermediate / output ---
    responses: Annotated[list[LLMResponse], add]
    function_calls: list[FunctionCall]
    tool_results: list[ToolResult]
    answer: str


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

_RESULTS_INSTRUCTIONS = (
    "Use these function results to answer the original question. Report "
    "every result, including not_found, error and timeout results; never "
    "leave one out."
)


class ToolDispatcher:
    """
    Executes the model → functions → model flow for one prompt.

    Args:
        llm: Model backend.
        registry: Functions the model may call.
        timeout: Per-handler time budget in seconds
            (default: settings.tool_timeout_seconds).
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: FunctionRegistry,
        timeout: float | None = None,
    ) -> None:
        self.llm = llm
        self.registry = registry
        self.timeout = settings.tool_timeout_seconds if timeout is None else timeout
        self._graph = self._build_graph()

    # --- Public API ---------------------------------------------------------

    async def run(self, system: str, messages: list[dict[str, str]]) -> DispatchOutcome:
        """Run the state machine to DONE and return the outcome."""
        result = await self._graph.ainvoke({
            "system": system,
            "messages": messages,
            "state": DispatchState.AWAITING_MODEL,
            "transitions": [DispatchState.AWAITING_MODEL],
            "responses": [],
        })
        return DispatchOutcome(
            answer=result.get("answer", ""),
            state=result["state"],
            transitions=result["transitions"],
            tool_results=result.get("tool_results", []),
            responses=result.get("responses", []),
        )

    def validate(
        self, calls: Sequence[FunctionCall],
    ) -> list[tuple[FunctionDescriptor, BaseModel]]:
        """
        Resolve and validate every call.

        Raises:
            InvalidArguments: On the first unknown function or argument
                mismatch. No handler has run at that point.
        """
        validated: list[tuple[FunctionDescriptor, BaseModel]] = []
        for call in calls:
            descriptor = self.registry.get(call.name)
            if descriptor is None:
                raise InvalidArguments(call.name, "function is not registered")
            if not isinstance(call.arguments, dict):
                raise InvalidArguments(call.name, "arguments are not a JSON object")
            try:
                arguments = descriptor.input_type.model_validate(call.arguments)
            except ValidationError as exc:
                raise InvalidArguments(call.name, str(exc)) from exc
            validated.append((descriptor, arguments))
        return validated

    async def execute(self, calls: Sequence[FunctionCall]) -> list[ToolResult]:
        """Validate all calls, then run their handlers concurrently."""
        validated = self.validate(calls)
        return list(await asyncio.gather(*(
            self._invoke(descriptor, call, arguments)
            for (descriptor, arguments), call in zip(validated, calls, strict=True)
        )))

    # --- Graph nodes --------------------------------------------------------

    async def _call_model(self, state: DispatchGraphState) -> dict:
        functions = self.registry.schemas()
        response = await self.llm.complete(
            messages=state["messages"],
            system=state.get("system") or None,
            functions=functions or None,
        )

        if response.wants_functions:
            logger.info(
                "Model requested %d function call(s): %s",
                len(response.function_calls),
                ", ".join(c.name for c in response.function_calls),
            )
            return {
                "state": DispatchState.TOOL_REQUESTED,
                "transitions": [DispatchState.TOOL_REQUESTED],
                "responses": [response],
                "function_calls": response.function_calls,
            }

        logger.info("Model answered directly (model=%s)", response.model)
        return {
            "state": DispatchState.DONE,
            "transitions": [DispatchState.DONE],
            "responses": [response],
            "answer": response.content,
            "tool_results": [],
        }

    async def _execute_tools(self, state: DispatchGraphState) -> dict:
        results = await self.execute(state["function_calls"])
        return {
            "state": DispatchState.TOOL_EXECUTED,
            "transitions": [DispatchState.TOOL_EXECUTED],
            "tool_results": results,
        }

    async def _answer_with_results(self, state: DispatchGraphState) -> dict:
        results = state["tool_results"]
        calls = ", ".join(
            f"{r.name}({json.dumps(r.arguments, sort_keys=True)})" for r in results
        )
        messages = [
            *state["messages"],
            {"role": "assistant", "content": f"Calling functions: {calls}"},
            {
                "role": "user",
                "content": (
                    "Function results, in request order:\n"
                    f"{json.dumps([r.as_payload() for r in results], indent=2)}\n\n"
                    f"{_RESULTS_INSTRUCTIONS}"
                ),
            },
        ]

        response = await self.llm.complete(
            messages=messages,
            system=state.get("system") or None,
        )
        return {
            "state": DispatchState.DONE,
            "transitions": [DispatchState.DONE],
            "responses": [response],
            "answer": response.content,
        }

    @staticmethod
    def _route_after_model(state: DispatchGraphState) -> str:
        if state["state"] == DispatchState.TOOL_REQUESTED:
            return "execute_tools"
        return END

    def _build_graph(self):
        builder = StateGraph(DispatchGraphState)
        builder.add_node("call_model", self._call_model)
        builder.add_node("execute_tools", self._execute_tools)
        builder.add_node("answer_with_results", self._answer_with_results)

        builder.add_edge(START, "call_model")
        builder.add_conditional_edges(
            "call_model", self._route_after_model, ["execute_tools", END],
        )
        builder.add_edge("execute_tools", "answer_with_results")
        builder.add_edge("answer_with_results", END)
        return builder.compile()

    # --- Handler invocation -------------------------------------------------

    async def _invoke(
        self,
        descriptor: FunctionDescriptor,
        call: FunctionCall,
        arguments: BaseModel,
    ) -> ToolResult:
        result = ToolResult(
            name=call.name,
            arguments=dict(call.arguments),
            status=ToolStatus.OK,
            call_id=call.call_id,
        )

        try:
            if _is_async(descriptor.handler):
                pending = descriptor.handler(arguments)
            else:
                # The worker thread cannot be cancelled; on timeout it is
                # left to finish in the background.
                pending = asyncio.to_thread(descriptor.handler, arguments)
            output = await asyncio.wait_for(pending, timeout=self.timeout)
        except TimeoutError:
            error = ToolTimeout(call.name, self.timeout)
            logger.warning("%s", error)
            result.status, result.error = ToolStatus.TIMEOUT, str(error)
            return result
        except NotFound as exc:
            logger.info("Function '%s' found nothing: %s", call.name, exc)
            result.status, result.error = ToolStatus.NOT_FOUND, str(exc)
            return result
        except Exception as exc:
            error = ToolExecutionError(f"Function '{call.name}' failed: {exc}")
            logger.warning("%s", error, exc_info=True)
            result.status, result.error = ToolStatus.ERROR, str(error)
            return result

        if output is None:
            result.status = ToolStatus.NOT_FOUND
            result.error = str(NotFound(json.dumps(result.arguments, sort_keys=True)))
            return result

        try:
            if not isinstance(output, descriptor.output_type):
                output = descriptor.output_type.model_validate(output)
        except ValidationError as exc:
            result.status = ToolStatus.ERROR
            result.error = str(ToolExecutionError(
                f"Function '{call.name}' returned an invalid result: {exc}"
            ))
            return result

        result.output = output.model_dump(mode="json")
        return result


def _is_async(handler: Handler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )
