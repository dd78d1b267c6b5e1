# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the data going OUT of the API. Stored vectors never leave the
# process; sources carry text, score and metadata only.
# =============================================================================

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class SourceChunk(BaseModel):
    """A retrieved chunk that was placed in the prompt."""

    record_id: str
    content: str
    similarity_score: float = Field(description="Cosine similarity (higher = more relevant)")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ToolResultResponse(BaseModel):
    """Outcome of one function call made while answering."""

    name: str
    arguments: dict[str, Any]
    status: str = Field(description="ok, not_found, error or timeout")
    output: dict[str, Any] | None = None
    error: str | None = None


class AskResponse(BaseModel):
    """Response for POST /ask."""

    answer: str
    session_id: str
    question: str
    state: str = Field(description="Final dispatcher state (always 'done' on success)")
    sources: list[SourceChunk] = Field(default_factory=list)
    tool_results: list[ToolResultResponse] = Field(default_factory=list)
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0


class IngestResponse(BaseModel):
    """Response for POST /ingest — the ingestion report."""

    source: str
    mode: str
    version: int
    document_count: int
    chunk_count: int
    record_ids: list[str]
    elapsed_ms: int
    store_count: int = Field(description="Records in the store after ingestion")


class StoreResponse(BaseModel):
    """Response for GET /store."""

    backend: str
    count: int
