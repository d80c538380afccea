# =============================================================================
# Similarity Ranker — Nearest-Neighbour Search Results
# =============================================================================
#
# Two entry points:
#
#   rank() — local cosine ranking of (vector, payload) candidates. Used by
#       stores with no native vector index (InMemoryChunkStore).
#
#   search_similar_chunks() — the query path. Embeds the query, encodes the
#       vector, asks the store for its nearest rows, and maps each row to a
#       SearchHit. pgvector and Chroma compute distance natively; the result
#       similarity is always 1 - cosine distance.
#
# A query that yields no embedding (no provider, provider error, or an
# empty vector) returns [] without touching the store.
# =============================================================================

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from chunkwise.errors import EmbeddingProviderError
from chunkwise.services import codec
from chunkwise.services.embedder import EmbeddingFunction

if TYPE_CHECKING:
    from chunkwise.services.chunk_store import ChunkStore, StoredChunk

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNKNOWN_FILE_NAME = "Unknown"


@dataclass(frozen=True)
class SearchHit:
    """A single ranked chunk for a query."""

    file_id: int
    file_name: str
    chunk_text: str
    similarity_score: float  # 1 - cosine distance, higher = more relevant
    chunk_index: int


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Zero-norm vectors have similarity 0.0 with everything.
    """
    if len(a) != len(b):
        raise ValueError(
            f"Vector dimensions differ: {len(a)} != {len(b)}",
        )
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank(
    query_vector: Sequence[float],
    candidates: Sequence[tuple[Sequence[float], T]],
    limit: int,
) -> list[tuple[float, T]]:
    """
    Rank candidates by similarity to the query, highest first.

    Equal similarities keep their input order. At most `limit` results.
    """
    if not query_vector or limit <= 0:
        return []

    # 1 - cosine distance is the cosine similarity itself
    scored = [
        (cosine_similarity(query_vector, vector), payload)
        for vector, payload in candidates
    ]
    scored.sort(key=lambda item: item[0], reverse=True)
    return scored[:limit]


def to_search_hit(row: StoredChunk, similarity: float) -> SearchHit:
    """Map a stored row plus its similarity to a SearchHit."""
    return SearchHit(
        file_id=row.file_id,
        file_name=row.file_name or UNKNOWN_FILE_NAME,
        chunk_text=row.text,
        similarity_score=round(similarity, 4),
        chunk_index=row.chunk_index,
    )


def search_similar_chunks(
    query: str,
    limit: int,
    embed: EmbeddingFunction | None,
    store: ChunkStore,
) -> list[SearchHit]:
    """
    Return the `limit` chunks most similar to `query`.

    Raises:
        StoreUnavailableError: If the store query fails.
    """
    if embed is None:
        logger.warning("Embedding model not available for search")
        return []

    try:
        query_vector = embed(query)
    except EmbeddingProviderError as exc:
        logger.warning("Failed to generate embedding for query: %s", exc)
        return []

    if not query_vector:
        logger.warning("Empty embedding returned for query")
        return []

    rows = store.query_nearest(codec.encode(query_vector), limit)
    hits = [to_search_hit(row, similarity) for row, similarity in rows[:limit]]

    logger.debug("Vector search returned %d hits (limit=%d)", len(hits), limit)
    return hits
