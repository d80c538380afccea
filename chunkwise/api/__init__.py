# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - files.py: upload, analyse, process (sync/async/batch), search, chunks
#   - deps.py: shared dependencies (processor, document lookup)
# =============================================================================
