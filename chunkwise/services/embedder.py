# =============================================================================
# Embedding Service — OpenAI-Compatible Vector Generation
# =============================================================================
#
# Generates embeddings through any OpenAI-compatible embeddings endpoint
# (OpenAI, Azure-style gateways, DashScope, ...). base_url is configurable.
#
# The rest of the code base only sees an EmbeddingFunction: a callable from
# text to a list of floats that raises EmbeddingProviderError on failure.
# An empty list is how a provider reports "no embedding" without raising.
# get_embedding_function() returns None when no provider is configured,
# which callers treat as "embedding capability unavailable".
#
# No retry logic here. A failed chunk is recorded by the caller and the
# remaining chunks continue.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from functools import lru_cache

import openai
from openai import OpenAI

from chunkwise.config import settings
from chunkwise.errors import EmbeddingProviderError

logger = logging.getLogger(__name__)

EmbeddingFunction = Callable[[str], list[float]]


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# The OpenAI client keeps its own HTTP connection pool and is thread-safe,
# so batch workers share one instance. Lazy initialisation avoids failing at
# import time when no key is set.
# ---------------------------------------------------------------------------

_client: OpenAI | None = None


def embedding_available() -> bool:
    """True when an embedding provider is configured."""
    return bool(settings.openai_api_key)


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise EmbeddingProviderError(
                "No API key configured for embeddings. Set OPENAI_API_KEY in .env",
                model=settings.embedding_model,
            )

        client_kwargs: dict = {"api_key": settings.openai_api_key}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a batch of texts.

    Returns embeddings in the SAME ORDER as the input texts.

    Raises:
        EmbeddingProviderError: If the key is missing or the API call fails.
    """
    if not texts:
        return []

    client = _get_client()
    _batch_size = batch_size or settings.embedding_batch_size

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for i in range(0, len(texts), _batch_size):
        batch = list(texts[i : i + _batch_size])
        logger.debug(
            "Embedding batch %d-%d of %d texts (model=%s)",
            i + 1,
            min(i + _batch_size, len(texts)),
            len(texts),
            settings.embedding_model,
        )

        create_kwargs: dict = {
            "model": settings.embedding_model,
            "input": batch,
        }
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        try:
            response = client.embeddings.create(**create_kwargs)
        except openai.OpenAIError as exc:
            raise EmbeddingProviderError(
                str(exc), model=settings.embedding_model,
            ) from exc

        # Items carry their input position; order by it explicitly.
        for item in sorted(response.data, key=lambda x: x.index):
            all_embeddings[i + item.index] = item.embedding

    return all_embeddings


def embed_text(text: str) -> list[float]:
    """Embed a single string. The default EmbeddingFunction."""
    return embed_batch([text], batch_size=1)[0]


def cached_embedding_function(
    embed: EmbeddingFunction,
    maxsize: int,
) -> EmbeddingFunction:
    """
    Wrap an EmbeddingFunction with an in-process LRU cache.

    Failures are not cached: an exception propagates and the next call
    for the same text tries the provider again.
    """

    @lru_cache(maxsize=maxsize)
    def _cached(text: str) -> tuple[float, ...]:
        return tuple(embed(text))

    def _embed(text: str) -> list[float]:
        return list(_cached(text))

    _embed.cache_info = _cached.cache_info  # type: ignore[attr-defined]
    _embed.cache_clear = _cached.cache_clear  # type: ignore[attr-defined]
    return _embed


def get_embedding_function() -> EmbeddingFunction | None:
    """
    Return the configured EmbeddingFunction, or None when unavailable.

    Honours `enable_embedding_cache`.
    """
    if not embedding_available():
        logger.warning(
            "No embedding provider configured; embedding functionality disabled",
        )
        return None

    if settings.enable_embedding_cache:
        return cached_embedding_function(embed_text, settings.embedding_cache_size)
    return embed_text
