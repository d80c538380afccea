# =============================================================================
# Database Package
# =============================================================================
# Provides SQLAlchemy engines, session management, and ORM models.
#
# Key exports:
#   - get_async_session: FastAPI dependency for database sessions
#   - get_sync_session: transaction scope for workers and the chunk store
#   - Base, Document, Chunk: ORM models for documents and their chunks
# =============================================================================
