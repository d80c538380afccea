# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the API, kept apart from the database models
# (chunkwise/db/models.py) so embeddings and internal columns never leak
# into responses.
# =============================================================================
