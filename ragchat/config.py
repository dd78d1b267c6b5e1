# =============================================================================
# Application Configuration — Pydantic Settings
# =============================================================================
#
# All tunables for ingestion, retrieval, memory and tool dispatch live here.
# Values load in this priority order (highest first):
#   1. Environment variables (e.g., `CHUNK_SIZE=256`)
#   2. Values from the .env file
#   3. Default values defined below
#
# USAGE:
#   from ragchat.config import settings
#   print(settings.retrieval_top_k)
# =============================================================================

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Defaults run the whole stack in-process: in-memory vector store,
    SQLite record store. Only the model and embedding API keys are
    required for real queries.
    """

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    app_name: str = "ragchat"
    app_version: str = "0.1.0"
    debug: bool = False

    # -------------------------------------------------------------------------
    # Relational record store (tabular ingestion source)
    # -------------------------------------------------------------------------
    # Any SQLAlchemy sync URL. The default is a local SQLite file so the
    # record loader works without extra infrastructure.
    # -------------------------------------------------------------------------
    database_url: str = "sqlite:///ragchat.db"

    # -------------------------------------------------------------------------
    # API Keys — External Services
    # -------------------------------------------------------------------------
    # LLM_API_KEY overrides the provider-specific key when set, which lets a
    # single OpenAI-compatible key serve both chat and embeddings.
    # -------------------------------------------------------------------------
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    llm_api_key: str | None = None

    # -------------------------------------------------------------------------
    # Embedding Configuration
    # -------------------------------------------------------------------------
    # The same model must be used at ingestion and query time; the stores
    # reject vectors whose dimensionality differs from what they hold.
    # -------------------------------------------------------------------------
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int | None = None  # Sent only when set (e.g. 1536)
    embedding_batch_size: int = 100  # Chunks per embeddings API call
    embedding_base_url: str | None = None

    # -------------------------------------------------------------------------
    # LLM Configuration — Multi-Provider
    # -------------------------------------------------------------------------
    #   - "anthropic": Claude via native Anthropic SDK (tool use blocks)
    #   - "openai_compatible": any OpenAI-compatible chat API (tool calls)
    #
    # llm_parallel_tool_calls lets the model request several functions in
    # one turn (OpenAI-compatible providers only; Anthropic always may).
    # -------------------------------------------------------------------------
    llm_provider: str = "anthropic"  # "anthropic" or "openai_compatible"
    llm_base_url: str | None = None  # Only needed for openai_compatible
    llm_model: str = "claude-sonnet-4-6"
    llm_temperature: float = 0.1
    llm_max_tokens: int = 2048
    llm_parallel_tool_calls: bool = True

    # -------------------------------------------------------------------------
    # Vector Store Configuration — Pluggable Backend
    # -------------------------------------------------------------------------
    # Options:
    #   - "memory": in-process store, lost on restart (default)
    #   - "chroma": ChromaDB (in-process, or client/server with CHROMA_URL)
    # -------------------------------------------------------------------------
    vectorstore_type: str = "memory"  # "memory" or "chroma"
    chroma_url: str | None = None
    chroma_collection: str = "ragchat_chunks"

    # -------------------------------------------------------------------------
    # Ingestion Configuration
    # -------------------------------------------------------------------------
    # chunk_overlap=0 gives non-overlapping windows. ingestion_version is
    # stamped into every chunk's metadata as provenance.
    # pdf_trim_*_lines strip page headers/footers before chunking.
    # -------------------------------------------------------------------------
    chunk_size: int = 512
    chunk_overlap: int = 0
    ingestion_version: int = 1
    pdf_pages_per_document: int = 1
    pdf_trim_top_lines: int = 0
    pdf_trim_bottom_lines: int = 3

    # -------------------------------------------------------------------------
    # Retrieval Configuration
    # -------------------------------------------------------------------------
    # retrieval_similarity_threshold=0.0 keeps every top-k hit.
    # -------------------------------------------------------------------------
    retrieval_top_k: int = 4
    retrieval_similarity_threshold: float = 0.0

    # -------------------------------------------------------------------------
    # Conversation Memory & Tool Dispatch
    # -------------------------------------------------------------------------
    memory_history_limit: int = 10  # Turns replayed into each prompt
    tool_timeout_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
