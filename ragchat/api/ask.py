# =============================================================================
# Ask API — Conversational Query Endpoint
# =============================================================================
#
# POST /ask runs one utterance through the orchestrator graph
# (recall → retrieve → dispatch → remember) and returns the answer with
# the chunks and function results that went into it.
#
# Error handling:
# - InvalidArguments (model asked for an unknown function or sent
#   arguments that do not fit its schema) → 422 query_failed
# - Any model backend error → 502 query_failed
# Neither case returns an empty answer with a 200.
# =============================================================================

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException

from ragchat.agents.orchestrator import Orchestrator
from ragchat.api.deps import get_orchestrator
from ragchat.exceptions import InvalidArguments
from ragchat.models.requests import AskRequest
from ragchat.models.responses import AskResponse, SourceChunk, ToolResultResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Question Answering"])


@router.post(
    "/ask",
    response_model=AskResponse,
    summary="Ask a question within a conversation",
    description=(
        "Retrieves relevant chunks, replays the session's recent turns, lets "
        "the model call registered functions, and returns the final answer."
    ),
)
async def ask_endpoint(
    request: AskRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> AskResponse:
    logger.info(
        "Ask request: session=%s, question='%s'",
        request.session_id, request.question[:80],
    )

    start_time = time.monotonic()

    try:
        result = await orchestrator.ask(request.session_id, request.question)
    except InvalidArguments as e:
        logger.warning("Query rejected: %s", e)
        raise HTTPException(
            status_code=422,
            detail={"error": "query_failed", "reason": str(e)},
        ) from e
    except Exception as e:
        logger.exception("Orchestrator graph failed: %s", e)
        raise HTTPException(
            status_code=502,
            detail={"error": "query_failed", "reason": f"LLM service error: {e}"},
        ) from e

    latency_ms = int((time.monotonic() - start_time) * 1000)

    return AskResponse(
        answer=result.answer,
        session_id=request.session_id,
        question=request.question,
        state=result.state.value,
        sources=[SourceChunk(**source) for source in result.sources],
        tool_results=[
            ToolResultResponse(
                name=r.name,
                arguments=r.arguments,
                status=r.status.value,
                output=r.output,
                error=r.error,
            )
            for r in result.tool_results
        ],
        model=result.model,
        input_tokens=result.input_tokens,
        output_tokens=result.output_tokens,
        latency_ms=latency_ms,
    )
