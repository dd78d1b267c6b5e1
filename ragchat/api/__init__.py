# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - ask.py: conversational query endpoint
#   - ingest.py: ingestion and store status endpoints
#   - deps.py: shared service dependencies
# =============================================================================
