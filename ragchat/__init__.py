# =============================================================================
# ragchat — Retrieval-Augmented Chat with Tool Dispatch
# =============================================================================
# Ingests text files, paged PDFs and database records into an embedding
# store, then answers conversational queries with retrieved context,
# per-session memory and model-driven function calls.
#
# Package structure:
#   ragchat/
#   ├── api/          → FastAPI route handlers (ask, ingest, store)
#   ├── agents/       → LangGraph orchestration: retrieval advisor, tool
#   │                    dispatcher, policy-status example function
#   ├── db/           → SQLAlchemy engine, ORM model and record store
#   ├── models/       → Pydantic V2 request/response schemas
#   └── services/     → Loaders, chunking, embeddings, vector stores,
#                        ingestion pipeline, memory, LLM providers
# =============================================================================
