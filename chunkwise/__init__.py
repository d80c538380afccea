# =============================================================================
# Chunkwise — Chunking Strategy Evaluation & Similarity Search
# =============================================================================
# Splits each document with several chunking strategies, scores them,
# embeds the chunks of the best one and serves similarity search over the
# stored chunks.
#
# Package structure:
#   chunkwise/
#   ├── api/          → FastAPI route handlers (/files)
#   ├── db/           → Database engine, session, and ORM models
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → Segmenting, analysis, selection, embedding, codec,
#   │                    ranking, chunk stores and the processing pipeline
#   └── workers/      → Celery task definitions and configuration
# =============================================================================
