# =============================================================================
# Services Package — Business Logic
# =============================================================================
#   - segmenter.py: fixed-width / sentence / paragraph chunking
#   - analyzer.py: chunk size statistics, embedding probe, quality score
#   - selector.py: best-strategy selection and full strategy evaluation
#   - codec.py: float32 big-endian embedding encoding
#   - ranker.py: cosine ranking and similarity search
#   - embedder.py: OpenAI-compatible embedding generation (+ LRU cache)
#   - chunk_store.py: pluggable chunk storage (pgvector, Chroma, in-memory)
#   - document_source.py: text extraction for uploads
#   - processing.py: per-document and batch pipeline
# =============================================================================
