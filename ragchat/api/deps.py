# =============================================================================
# API Dependencies — Shared Services for Route Handlers
# =============================================================================
#
# One instance of each service per process, created on first use:
#
#   get_store()        → EmbeddingStore (memory or chroma, from settings)
#   get_memory()       → ConversationMemory
#   get_registry()     → FunctionRegistry with policy_status
#   get_orchestrator() → Orchestrator over the above + the LLM provider
#                        (503 when no model API key is configured)
#   get_record_store() → SqlRecordStore for the dogs table
#
# DESIGN DECISION: FastAPI dependencies (Depends) rather than module
# globals imported by the routers. Tests swap any of them through
# app.dependency_overrides without touching API keys or the network.
# =============================================================================

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import HTTPException

from ragchat.agents.dispatcher import FunctionRegistry
from ragchat.agents.orchestrator import Orchestrator, build_orchestrator
from ragchat.agents.policies import policy_status_function
from ragchat.db.records import SqlRecordStore
from ragchat.services.memory import ConversationMemory
from ragchat.services.vectorstore import EmbeddingStore, get_embedding_store

logger = logging.getLogger(__name__)


@lru_cache
def get_store() -> EmbeddingStore:
    return get_embedding_store()


@lru_cache
def get_memory() -> ConversationMemory:
    return ConversationMemory()


@lru_cache
def get_registry() -> FunctionRegistry:
    return FunctionRegistry([policy_status_function()])


@lru_cache
def get_record_store() -> SqlRecordStore:
    return SqlRecordStore()


@lru_cache
def _shared_orchestrator() -> Orchestrator:
    logger.info("Building orchestrator")
    return build_orchestrator(
        store=get_store(),
        memory=get_memory(),
        registry=get_registry(),
    )


def get_orchestrator() -> Orchestrator:
    """
    The process-wide orchestrator over the shared store, memory and registry.

    Raises:
        HTTPException 503: No model API key is configured.
    """
    try:
        return _shared_orchestrator()
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        raise HTTPException(
            status_code=503,
            detail=f"Service configuration error: {e}",
        ) from e
