# =============================================================================
# LangGraph Orchestrator — One Conversational Query, End to End
# =============================================================================
#
# Wires conversation memory, the retrieval advisor and the tool dispatcher
# into a LangGraph StateGraph.
#
# GRAPH TOPOLOGY:
#   START ──▶ recall ──▶ retrieve ──▶ dispatch ──▶ remember ──▶ END
#
# recall   — last `history_limit` turns of the session
# retrieve — augmented prompt (context block + history + utterance)
# dispatch — model call, optional function calls, final answer
# remember — append the user/assistant pair to memory in one step
#
# Memory is written only in the last node, so a failing model call or an
# InvalidArguments batch leaves the session history untouched. Those
# failures propagate out of ask() unchanged.
#
# DESIGN DECISION: The graph is compiled per Orchestrator instance rather
# than at module level. Its nodes are bound to injected collaborators
# (store, model, registry), so tests and the API can build independent
# orchestrators without patching globals.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from ragchat.agents.dispatcher import (
    DispatchOutcome,
    DispatchState,
    FunctionRegistry,
    ToolDispatcher,
    ToolResult,
)
from ragchat.agents.policies import policy_status_function
from ragchat.agents.retrieval import AugmentedPrompt, RetrievalAdvisor
from ragchat.config import settings
from ragchat.services.llm import LLMProvider, get_llm_provider
from ragchat.services.memory import ConversationMemory, Role, Turn
from ragchat.services.vectorstore import EmbeddingStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State and Result
# ---------------------------------------------------------------------------


class ConversationState(TypedDict, total=False):
    """
    State that flows through the orchestrator graph.

    total=False so nodes only return the keys they update.
    """

    # --- Input ---
    session_id: str
    utterance: str

    # --- Intermediate ---
    history: list[Turn]
    prompt: AugmentedPrompt
    outcome: DispatchOutcome

    # --- Output ---
    answer: str
    remembered: bool


@dataclass
class OrchestratorResult:
    """Answer to one utterance plus what went into it."""

    answer: str
    state: DispatchState
    sources: list[dict[str, Any]] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    model: str = "n/a"
    input_tokens: int = 0
    output_tokens: int = 0


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class Orchestrator:
    """
    Args:
        advisor: Builds the augmented prompt.
        dispatcher: Runs the model / function-call state machine.
        memory: Per-session conversation history.
        history_limit: Turns of history included in each prompt
            (default: settings.memory_history_limit).
    """

    def __init__(
        self,
        advisor: RetrievalAdvisor,
        dispatcher: ToolDispatcher,
        memory: ConversationMemory,
        history_limit: int | None = None,
    ) -> None:
        self.advisor = advisor
        self.dispatcher = dispatcher
        self.memory = memory
        self.history_limit = (
            settings.memory_history_limit if history_limit is None else history_limit
        )
        if self.history_limit < 0:
            raise ValueError("history_limit must be >= 0")
        self._graph = self._build_graph()

    async def ask(self, session_id: str, utterance: str) -> OrchestratorResult:
        """
        Answer one utterance within a session.

        Raises:
            InvalidArguments: The model requested an unknown function or
                passed arguments that do not match its schema.
            Any model backend error, unchanged.
        """
        logger.info(
            "Invoking orchestrator graph: session=%s, utterance='%s'",
            session_id, utterance[:80],
        )

        result = await self._graph.ainvoke({
            "session_id": session_id,
            "utterance": utterance,
        })

        outcome: DispatchOutcome = result["outcome"]
        prompt: AugmentedPrompt = result["prompt"]
        sources = [
            {
                "record_id": chunk.record_id,
                "content": chunk.content,
                "similarity_score": chunk.similarity_score,
                "metadata": dict(chunk.metadata),
            }
            for chunk in prompt.chunks
        ]

        logger.info(
            "Orchestrator graph complete: model=%s, sources=%d, tools=%d",
            outcome.model, len(sources), len(outcome.tool_results),
        )

        return OrchestratorResult(
            answer=outcome.answer,
            state=outcome.state,
            sources=sources,
            tool_results=outcome.tool_results,
            model=outcome.model,
            input_tokens=outcome.input_tokens,
            output_tokens=outcome.output_tokens,
        )

    # --- Graph nodes --------------------------------------------------------

    async def _recall(self, state: ConversationState) -> dict:
        history = self.memory.recent(state["session_id"], self.history_limit)
        logger.debug("Recalled %d turns for session %s", len(history), state["session_id"])
        return {"history": history}

    async def _retrieve(self, state: ConversationState) -> dict:
        prompt = await self.advisor.advise(state["utterance"], state.get("history", []))
        return {"prompt": prompt}

    async def _dispatch(self, state: ConversationState) -> dict:
        prompt = state["prompt"]
        outcome = await self.dispatcher.run(prompt.system, prompt.messages)
        return {"outcome": outcome, "answer": outcome.answer}

    async def _remember(self, state: ConversationState) -> dict:
        self.memory.extend(state["session_id"], [
            Turn(role=Role.USER, content=state["utterance"]),
            Turn(role=Role.ASSISTANT, content=state["answer"]),
        ])
        return {"remembered": True}

    def _build_graph(self):
        builder = StateGraph(ConversationState)
        builder.add_node("recall", self._recall)
        builder.add_node("retrieve", self._retrieve)
        builder.add_node("dispatch", self._dispatch)
        builder.add_node("remember", self._remember)

        builder.add_edge(START, "recall")
        builder.add_edge("recall", "retrieve")
        builder.add_edge("retrieve", "dispatch")
        builder.add_edge("dispatch", "remember")
        builder.add_edge("remember", END)
        return builder.compile()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_orchestrator(
    store: EmbeddingStore,
    memory: ConversationMemory | None = None,
    registry: FunctionRegistry | None = None,
    llm: LLMProvider | None = None,
) -> Orchestrator:
    """
    Assemble an orchestrator from configuration.

    Defaults: the configured LLM provider, a fresh memory, and a registry
    holding the policy_status function.
    """
    if registry is None:
        registry = FunctionRegistry([policy_status_function()])
    return Orchestrator(
        advisor=RetrievalAdvisor(store),
        dispatcher=ToolDispatcher(llm or get_llm_provider(), registry),
        memory=memory if memory is not None else ConversationMemory(),
    )
