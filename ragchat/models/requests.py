# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of the data coming INTO the API. FastAPI validates request bodies
# against them (automatic 422 on mismatch) and publishes them in /docs.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /ask — one conversational utterance.

    Example:
        {
            "session_id": "alice",
            "question": "What is the status of policies H001 and H002?"
        }
    """

    session_id: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Conversation id; turns are remembered per session",
        examples=["alice"],
    )

    question: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The user utterance",
        examples=["What is the status of policy H001?"],
    )


class IngestRequest(BaseModel):
    """
    Request body for POST /ingest — ingest one source into the store.

    `path` is a file on the server for kind "text" / "pdf" and is ignored
    for kind "records", which reads the configured record table.
    """

    kind: Literal["text", "pdf", "records"] = Field(
        ...,
        description="Loader to use: plain text file, paged PDF, or record table",
    )
    path: str | None = Field(
        default=None,
        description="Server-side file path (required for text and pdf)",
        examples=["docs/congo.txt"],
    )
    mode: Literal["replace", "append"] = Field(
        default="replace",
        description=(
            "'replace' swaps the store contents for this source's chunks; "
            "'append' adds them"
        ),
    )
    source_name: str | None = Field(
        default=None,
        description="Provenance name stamped on each chunk (default: file or table name)",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"kind": "text", "path": "docs/congo.txt", "mode": "replace"},
                {"kind": "records", "mode": "append"},
            ]
        }
    )
