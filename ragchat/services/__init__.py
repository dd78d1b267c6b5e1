# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - loaders.py: text, paged PDF (Docling) and record loaders
#   - chunker.py: token-window chunking (tiktoken)
#   - embedder.py: OpenAI embedding generation (batched)
#   - vectorstore.py: embedding store protocol (in-memory, Chroma)
#   - ingestion.py: load → chunk → tag → store pipeline
#   - memory.py: per-session conversation turns
#   - llm.py: multi-provider LLM abstraction with function calling
# =============================================================================
