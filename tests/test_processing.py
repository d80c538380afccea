# =============================================================================
# Unit Tests — Document Processing Pipeline
# =============================================================================
#
# DocumentProcessor against the in-memory chunk store and a deterministic
# fake embedding function. No API keys, databases, or network calls needed.
# =============================================================================

from unittest.mock import Mock

import pytest

from chunkwise.errors import ConfigurationError, EmbeddingProviderError, StoreUnavailableError
from chunkwise.services import codec
from chunkwise.services.chunk_store import InMemoryChunkStore
from chunkwise.services.document_source import SourceDocument
from chunkwise.services.processing import (
    ChunkEmbeddingFailure,
    DocumentProcessor,
    embed_chunks,
)
from chunkwise.services.segmenter import Chunk, default_config
from chunkwise.services.selector import EvaluationConfig

SAMPLE_TEXT = " ".join(
    f"Sentence number {i} explains why embeddings need well sized chunks." for i in range(60)
)

DEFAULT_NAMES = {"Character Splitter", "Sentence Splitter", "Paragraph Splitter"}


def _fake_embed(text: str) -> list[float]:
    """Deterministic 3-d vector; never empty, never zero."""
    return [float(len(text)), float(text.count("e")), 1.0]


def _document(file_id: int = 1, text: str = SAMPLE_TEXT) -> SourceDocument:
    return SourceDocument(file_id=file_id, file_name=f"doc{file_id}.txt", text=text)


class _FailingStore(InMemoryChunkStore):
    """In-memory store that refuses writes for selected files."""

    def __init__(self, failing_ids: set[int]) -> None:
        super().__init__()
        self._failing_ids = failing_ids

    def replace_chunks(self, file_id, records, file_name=None):
        if file_id in self._failing_ids:
            raise StoreUnavailableError(f"database down for file {file_id}")
        return super().replace_chunks(file_id, records, file_name)


class TestEmbedChunks:
    """Tests for the per-chunk embedding fold."""

    def test_failures_are_collected_and_others_continue(self):
        chunks = [Chunk("ok one", 0, "s"), Chunk("boom", 1, "s"), Chunk("ok two", 2, "s")]

        def embed(text):
            if text == "boom":
                raise EmbeddingProviderError("rate limited")
            return [1.0, 2.0]

        records, failures = embed_chunks(chunks, embed)

        assert [r.chunk_index for r in records] == [0, 2]
        assert failures == [ChunkEmbeddingFailure(index=1, message="rate limited")]

    def test_empty_vector_counts_as_failure(self):
        records, failures = embed_chunks([Chunk("text", 0, "s")], lambda text: [])
        assert records == []
        assert failures[0].index == 0

    def test_records_carry_encoded_embedding(self):
        records, _ = embed_chunks([Chunk("abc", 0, "Sentence Splitter")], lambda t: [0.5, -1.0])
        assert records[0].embedding_bytes == codec.encode([0.5, -1.0])
        assert records[0].strategy == "Sentence Splitter"


class TestProcessDocument:
    """Tests for DocumentProcessor.process_document()."""

    def test_success_stores_best_strategy_chunks(self):
        store = InMemoryChunkStore()
        processor = DocumentProcessor(store, _fake_embed)

        result = processor.process_document(_document())

        assert result.processing_status == "SUCCESS"
        assert result.succeeded
        assert result.embeddings_generated is True
        assert result.selected_strategy in DEFAULT_NAMES
        assert len(result.chunking_report.strategies) == 3
        assert result.embedding_failures == ()

        rows = store.find_by_file(1)
        assert rows
        assert {r.strategy for r in rows} == {result.selected_strategy}

    def test_without_embeddings_only_analyses(self):
        store = InMemoryChunkStore()
        result = DocumentProcessor(store, _fake_embed).process_document(
            _document(), generate_embeddings=False,
        )

        assert result.succeeded
        assert result.embeddings_generated is False
        assert result.selected_strategy is None
        assert result.chunking_report is not None
        assert store.find_by_file(1) == []

    def test_no_embedder_still_succeeds(self):
        store = InMemoryChunkStore()
        result = DocumentProcessor(store, None).process_document(_document())

        assert result.succeeded
        assert result.embeddings_generated is False
        assert not any(r.embedding_test_passed for r in result.chunking_report.strategies)
        assert store.find_by_file(1) == []

    def test_store_failure_reported_in_status(self):
        processor = DocumentProcessor(_FailingStore({1}), _fake_embed)

        result = processor.process_document(_document())

        assert result.processing_status.startswith("FAILED: ")
        assert "database down" in result.processing_status
        assert result.embeddings_generated is False
        assert result.processing_time_ms >= 0

    def test_empty_document(self):
        result = DocumentProcessor(InMemoryChunkStore(), _fake_embed).process_document(
            _document(text=""),
        )
        assert result.succeeded
        assert result.embeddings_generated is False
        assert all(r.chunk_count == 0 for r in result.chunking_report.strategies)

    def test_single_strategy_config(self):
        config = EvaluationConfig(test_embedding_strategies=False, default_strategy="paragraph")
        store = InMemoryChunkStore()

        result = DocumentProcessor(store, _fake_embed, config).process_document(_document())

        assert result.selected_strategy == "Paragraph Splitter"
        assert {r.strategy for r in store.find_by_file(1)} == {"Paragraph Splitter"}

    def test_invalid_config_rejected_up_front(self):
        config = EvaluationConfig(test_embedding_strategies=False, default_strategy="semantic")
        with pytest.raises(ConfigurationError):
            DocumentProcessor(InMemoryChunkStore(), _fake_embed, config)


class TestGenerateAndStore:
    """Tests for generate_and_store_chunk_embeddings()."""

    def test_partial_failures_do_not_abort(self):
        store = InMemoryChunkStore()
        calls = {"n": 0}

        def flaky(text):
            calls["n"] += 1
            if calls["n"] == 2:
                raise EmbeddingProviderError("timeout")
            return _fake_embed(text)

        processor = DocumentProcessor(store, flaky)
        outcome = processor.generate_and_store_chunk_embeddings(
            _document(), default_config("character"),
        )

        assert outcome.chunk_count > 2
        assert [f.index for f in outcome.failures] == [1]
        assert outcome.stored == outcome.chunk_count - 1
        assert 1 not in outcome.successes
        assert len(store.find_by_file(1)) == outcome.stored

    def test_all_failures_leave_previous_set(self):
        store = InMemoryChunkStore()
        DocumentProcessor(store, _fake_embed).process_document(_document())
        before = store.find_by_file(1)

        failing = Mock(side_effect=EmbeddingProviderError("quota exceeded"))
        outcome = DocumentProcessor(store, failing).generate_and_store_chunk_embeddings(
            _document(), default_config("sentence"),
        )

        assert outcome.generated is False
        assert len(outcome.failures) == outcome.chunk_count
        assert store.find_by_file(1) == before


class TestProcessBatch:
    """Tests for parallel batch processing."""

    def test_results_keep_input_order(self):
        processor = DocumentProcessor(InMemoryChunkStore(), _fake_embed, max_workers=4)
        documents = [_document(file_id=i) for i in range(1, 9)]

        results = processor.process_batch(documents)

        assert [r.file_id for r in results] == list(range(1, 9))
        assert all(r.succeeded for r in results)

    def test_one_failure_does_not_affect_others(self):
        processor = DocumentProcessor(_FailingStore({3}), _fake_embed, max_workers=3)
        documents = [_document(file_id=i) for i in range(1, 6)]

        results = processor.process_batch(documents)

        statuses = [r.succeeded for r in results]
        assert statuses == [True, True, False, True, True]

    def test_empty_batch(self):
        assert DocumentProcessor(InMemoryChunkStore(), _fake_embed).process_batch([]) == []


class TestSearchAndChunks:
    """Tests for search_documents() and get_document_chunks()."""

    def test_search_finds_processed_document(self):
        store = InMemoryChunkStore()
        processor = DocumentProcessor(store, _fake_embed)
        processor.process_document(_document(file_id=5))

        hits = processor.search_documents("Sentence number 3", limit=3)

        assert 0 < len(hits) <= 3
        assert all(h.file_id == 5 for h in hits)
        assert all(h.file_name == "doc5.txt" for h in hits)
        scores = [h.similarity_score for h in hits]
        assert scores == sorted(scores, reverse=True)

    def test_search_without_embedder_is_empty(self):
        assert DocumentProcessor(InMemoryChunkStore(), None).search_documents("q", 5) == []

    def test_get_document_chunks_with_strategy_filter(self):
        store = InMemoryChunkStore()
        processor = DocumentProcessor(store, _fake_embed)
        result = processor.process_document(_document())

        assert processor.get_document_chunks(1, result.selected_strategy)
        assert processor.get_document_chunks(1, "No Such Strategy") == []
