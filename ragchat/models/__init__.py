# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept apart from the ORM model in
# ragchat/db/models.py.
# =============================================================================
