# =============================================================================
# Document Processing — Evaluate, Select, Embed, Store, Search
# =============================================================================
#
# PIPELINE (one document, one thread):
#   1. Evaluate strategies → ChunkingReport (segment + analyze per strategy)
#   2. Select the best strategy
#   3. Re-segment with it and embed every chunk (best effort, per chunk)
#   4. Replace the document's stored chunk set atomically
#
# Per-chunk embedding failures are folded into EmbeddingOutcome.failures
# and logged; they never stop the remaining chunks. Anything that aborts a
# document (store unavailable, unexpected error) becomes a result with
# processing_status "FAILED: <message>" so batch siblings are unaffected.
#
# Batches run documents in parallel on a thread pool. Documents share no
# state apart from the chunk store, whose replace_chunks() is atomic per
# document.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache

from chunkwise.config import settings
from chunkwise.services import codec
from chunkwise.services.chunk_store import ChunkRecord, ChunkStore, StoredChunk, get_chunk_store
from chunkwise.services.document_source import SourceDocument
from chunkwise.services.embedder import EmbeddingFunction, get_embedding_function
from chunkwise.services.ranker import SearchHit, search_similar_chunks
from chunkwise.services.segmenter import Chunk, StrategyConfig, segment_with
from chunkwise.services.selector import (
    ChunkingReport,
    EvaluationConfig,
    evaluate_strategies,
    select_best,
    strategies_to_evaluate,
)

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_FAILED_PREFIX = "FAILED: "


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChunkEmbeddingFailure:
    """One chunk that could not be embedded."""

    index: int
    message: str


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Result of embedding and storing one document's chunks."""

    strategy_name: str
    chunk_count: int
    successes: tuple[int, ...] = ()
    failures: tuple[ChunkEmbeddingFailure, ...] = ()
    stored: int = 0

    @property
    def generated(self) -> bool:
        return self.stored > 0


@dataclass(frozen=True)
class DocumentProcessingResult:
    """Outcome of processing one document."""

    file_id: int | None
    file_name: str
    processing_status: str
    embeddings_generated: bool
    processing_time_ms: int
    chunking_report: ChunkingReport | None = None
    selected_strategy: str | None = None
    embedding_failures: tuple[ChunkEmbeddingFailure, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.processing_status == STATUS_SUCCESS


# ---------------------------------------------------------------------------
# Per-chunk embedding fold
# ---------------------------------------------------------------------------


def embed_chunks(
    chunks: Sequence[Chunk],
    embed: EmbeddingFunction,
) -> tuple[list[ChunkRecord], list[ChunkEmbeddingFailure]]:
    """
    Embed each chunk independently.

    Returns:
        (records ready to store, failures). Every input chunk lands in
        exactly one of the two lists.
    """
    records: list[ChunkRecord] = []
    failures: list[ChunkEmbeddingFailure] = []

    for chunk in chunks:
        try:
            vector = embed(chunk.text)
        except Exception as exc:
            logger.warning(
                "Failed to generate embedding for chunk %d: %s", chunk.index, exc,
            )
            failures.append(ChunkEmbeddingFailure(chunk.index, str(exc)))
            continue

        if not vector:
            logger.warning("Empty embedding returned for chunk %d", chunk.index)
            failures.append(ChunkEmbeddingFailure(chunk.index, "Empty embedding"))
            continue

        records.append(ChunkRecord(
            text=chunk.text,
            chunk_index=chunk.index,
            strategy=chunk.strategy_name,
            embedding_bytes=codec.encode(vector),
        ))

    return records, failures


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------


class DocumentProcessor:
    """
    Runs the chunking-strategy pipeline against a store and an embedder.

    Args:
        store: Where embedded chunks are written and searched.
        embed: Embedding function, or None when no provider is configured.
        config: Which strategies to evaluate and whether to probe.
        max_workers: Thread pool size for process_batch().

    Raises:
        ConfigurationError: If `config` names an unknown default strategy.
    """

    def __init__(
        self,
        store: ChunkStore,
        embed: EmbeddingFunction | None,
        config: EvaluationConfig | None = None,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._embed = embed
        self._config = config or EvaluationConfig()
        self._max_workers = max(1, max_workers)
        self._candidates = {c.name: c for c in strategies_to_evaluate(self._config)}

        if embed is None:
            logger.warning("Embedding function is None - embedding functionality disabled")

    @property
    def embedding_available(self) -> bool:
        return self._embed is not None

    def analyze_document(self, text: str, file_name: str) -> ChunkingReport:
        """Evaluate every configured strategy for a document's text."""
        return evaluate_strategies(text, file_name, self._embed, self._config)

    def generate_and_store_chunk_embeddings(
        self,
        document: SourceDocument,
        strategy: StrategyConfig,
    ) -> EmbeddingOutcome:
        """
        Segment with `strategy`, embed every chunk, replace the stored set.

        When no chunk could be embedded the stored set is left untouched.

        Raises:
            StoreUnavailableError: If the store rejects the replacement.
        """
        if self._embed is None:
            logger.warning("Embedding function not available for chunk embeddings")
            return EmbeddingOutcome(strategy_name=strategy.name, chunk_count=0)

        chunks = segment_with(strategy, document.text)
        if not chunks:
            logger.warning(
                "No chunks generated for '%s' with %s", document.file_name, strategy.name,
            )
            return EmbeddingOutcome(strategy_name=strategy.name, chunk_count=0)

        records, failures = embed_chunks(chunks, self._embed)

        stored = 0
        if records:
            stored = self._store.replace_chunks(
                document.file_id, records, file_name=document.file_name,
            )

        logger.info(
            "Embedded %d/%d chunks of '%s' using %s (%d failed)",
            len(records), len(chunks), document.file_name, strategy.name, len(failures),
        )
        return EmbeddingOutcome(
            strategy_name=strategy.name,
            chunk_count=len(chunks),
            successes=tuple(r.chunk_index for r in records),
            failures=tuple(failures),
            stored=stored,
        )

    def process_document(
        self,
        document: SourceDocument,
        generate_embeddings: bool = True,
    ) -> DocumentProcessingResult:
        """
        Analyse a document and, optionally, embed it with the best strategy.

        Never raises: failures are reported through processing_status.
        """
        start = time.monotonic()
        logger.info(
            "Processing '%s' (file_id=%s, embeddings=%s)",
            document.file_name, document.file_id, generate_embeddings,
        )

        try:
            report = self.analyze_document(document.text, document.file_name)

            outcome: EmbeddingOutcome | None = None
            selected: str | None = None
            if generate_embeddings and self._embed is not None:
                best = select_best(report.strategies)
                selected = best.name
                outcome = self.generate_and_store_chunk_embeddings(
                    document, self._candidates[best.name],
                )

            return DocumentProcessingResult(
                file_id=document.file_id,
                file_name=document.file_name,
                processing_status=STATUS_SUCCESS,
                embeddings_generated=outcome.generated if outcome else False,
                processing_time_ms=_elapsed_ms(start),
                chunking_report=report,
                selected_strategy=selected,
                embedding_failures=outcome.failures if outcome else (),
            )

        except Exception as exc:
            logger.exception(
                "Document processing failed for '%s': %s", document.file_name, exc,
            )
            return DocumentProcessingResult(
                file_id=document.file_id,
                file_name=document.file_name,
                processing_status=f"{STATUS_FAILED_PREFIX}{exc}",
                embeddings_generated=False,
                processing_time_ms=_elapsed_ms(start),
            )

    def process_batch(
        self,
        documents: Sequence[SourceDocument],
        generate_embeddings: bool = True,
    ) -> list[DocumentProcessingResult]:
        """Process documents in parallel; results keep input order."""
        if not documents:
            return []

        logger.info("Processing batch of %d documents", len(documents))
        workers = min(self._max_workers, len(documents))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="chunkwise-batch",
        ) as pool:
            return list(pool.map(
                lambda doc: self.process_document(doc, generate_embeddings),
                documents,
            ))

    def search_documents(self, query: str, limit: int) -> list[SearchHit]:
        """Top-`limit` chunks across all documents for a text query."""
        logger.info("Searching documents for query '%s' with limit %d", query, limit)
        return search_similar_chunks(query, limit, self._embed, self._store)

    def get_document_chunks(
        self,
        file_id: int,
        strategy: str | None = None,
    ) -> list[StoredChunk]:
        """Stored chunks of a document, optionally for one strategy."""
        return self._store.find_by_file(file_id, strategy)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache
def get_document_processor() -> DocumentProcessor:
    """Build (once) the processor wired from settings."""
    return DocumentProcessor(
        store=get_chunk_store(),
        embed=get_embedding_function(),
        config=EvaluationConfig.from_settings(settings),
        max_workers=settings.batch_max_workers,
    )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
