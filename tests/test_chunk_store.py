# =============================================================================
# Unit Tests — Chunk Stores (in-memory and ChromaDB backends)
# =============================================================================
#
# ChromaDB runs in-process (no external services needed).
# pgvector tests are skipped here — they require a running PostgreSQL instance.
# =============================================================================

import threading
import uuid
from unittest.mock import Mock

import pytest

from chunkwise.errors import ConfigurationError
from chunkwise.services import chunk_store, codec
from chunkwise.services.chunk_store import (
    ChromaChunkStore,
    ChunkRecord,
    InMemoryChunkStore,
    PgChunkStore,
    get_chunk_store,
)


def _records(strategy: str, vectors: list[list[float]]) -> list[ChunkRecord]:
    return [
        ChunkRecord(
            text=f"{strategy} chunk {i}",
            chunk_index=i,
            strategy=strategy,
            embedding_bytes=codec.encode(vector),
        )
        for i, vector in enumerate(vectors)
    ]


class TestInMemoryChunkStore:
    """Tests for InMemoryChunkStore."""

    def test_replace_then_find_in_index_order(self):
        store = InMemoryChunkStore()
        records = _records("Sentence Splitter", [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])

        stored = store.replace_chunks(1, list(reversed(records)), file_name="a.txt")

        rows = store.find_by_file(1)
        assert stored == 3
        assert [r.chunk_index for r in rows] == [0, 1, 2]
        assert all(r.file_name == "a.txt" for r in rows)

    def test_replace_discards_previous_set(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, _records("Character Splitter", [[1.0]] * 4))
        store.replace_chunks(1, _records("Paragraph Splitter", [[1.0]] * 2))

        rows = store.find_by_file(1)
        assert len(rows) == 2
        assert {r.strategy for r in rows} == {"Paragraph Splitter"}

    def test_other_files_untouched(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, _records("s", [[1.0]]))
        store.replace_chunks(2, _records("s", [[1.0], [0.5]]))
        store.replace_chunks(1, [])

        assert store.find_by_file(1) == []
        assert len(store.find_by_file(2)) == 2

    def test_find_filters_by_strategy(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, _records("Sentence Splitter", [[1.0]]))
        assert store.find_by_file(1, "Sentence Splitter")
        assert store.find_by_file(1, "Character Splitter") == []

    def test_query_nearest_ranks_across_files(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, _records("s", [[0.0, 1.0]]), file_name="far.txt")
        store.replace_chunks(2, _records("s", [[1.0, 0.1]]), file_name="near.txt")

        results = store.query_nearest(codec.encode([1.0, 0.0]), limit=2)

        assert [row.file_name for row, _ in results] == ["near.txt", "far.txt"]
        assert results[0][1] > results[1][1]

    def test_query_nearest_respects_limit(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, _records("s", [[1.0, float(i)] for i in range(5)]))
        assert len(store.query_nearest(codec.encode([1.0, 0.0]), limit=3)) == 3

    def test_malformed_and_mismatched_rows_are_skipped(self):
        store = InMemoryChunkStore()
        store.replace_chunks(1, [
            ChunkRecord("bad bytes", 0, "s", b"\x00\x01\x02"),
            ChunkRecord("wrong dims", 1, "s", codec.encode([1.0, 0.0, 0.0])),
            ChunkRecord("good", 2, "s", codec.encode([1.0, 0.0])),
        ])

        results = store.query_nearest(codec.encode([1.0, 0.0]), limit=10)

        assert [row.text for row, _ in results] == ["good"]

    def test_concurrent_replacements_never_interleave(self):
        store = InMemoryChunkStore()
        strategies = [f"strategy-{i}" for i in range(8)]

        def _write(strategy: str) -> None:
            store.replace_chunks(1, _records(strategy, [[1.0]] * 20))

        threads = [threading.Thread(target=_write, args=(s,)) for s in strategies]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        rows = store.find_by_file(1)
        assert len(rows) == 20
        assert len({r.strategy for r in rows}) == 1


class TestChromaChunkStore:
    """Tests for ChromaChunkStore (in-process mode)."""

    def _make_store(self) -> ChromaChunkStore:
        """Fresh store with its own collection so dimensions never clash."""
        return ChromaChunkStore(collection_name=f"test_chunks_{uuid.uuid4().hex[:12]}")

    def test_replace_then_find(self):
        store = self._make_store()
        store.replace_chunks(
            1, _records("Sentence Splitter", [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]),
            file_name="report.txt",
        )

        rows = store.find_by_file(1)

        assert [r.chunk_index for r in rows] == [0, 1]
        assert rows[0].text == "Sentence Splitter chunk 0"
        assert rows[0].file_name == "report.txt"
        assert rows[0].file_id == 1

    def test_replace_discards_previous_set(self):
        store = self._make_store()
        store.replace_chunks(1, _records("Character Splitter", [[1.0, 0.0, 0.0]] * 3))
        store.replace_chunks(1, _records("Paragraph Splitter", [[0.0, 1.0, 0.0]]))

        rows = store.find_by_file(1)
        assert len(rows) == 1
        assert rows[0].strategy == "Paragraph Splitter"

    def test_find_filters_by_strategy(self):
        store = self._make_store()
        store.replace_chunks(1, _records("Sentence Splitter", [[1.0, 0.0, 0.0]]))
        assert len(store.find_by_file(1, "Sentence Splitter")) == 1
        assert store.find_by_file(1, "Character Splitter") == []

    def test_query_nearest_returns_similarity(self):
        store = self._make_store()
        store.replace_chunks(
            1, _records("s", [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]), file_name="a.txt",
        )

        results = store.query_nearest(codec.encode([1.0, 0.0, 0.0]), limit=2)

        assert len(results) == 2
        top_row, top_similarity = results[0]
        assert top_row.chunk_index == 0
        assert top_similarity == pytest.approx(1.0, abs=1e-3)
        assert results[0][1] >= results[1][1]

    def test_reader_waits_for_replacement(self):
        store = self._make_store()
        store.replace_chunks(1, _records("Character Splitter", [[1.0, 0.0, 0.0]] * 3))

        seen: list[int] = []
        blocked: list[bool] = []
        reader = threading.Thread(target=lambda: seen.append(len(store.find_by_file(1))))
        collection = store._collection

        class _ReadDuringAdd:
            """Starts a reader between the delete and the add."""

            def __getattr__(self, name):
                return getattr(collection, name)

            def add(self, **kwargs):
                reader.start()
                reader.join(timeout=0.2)
                blocked.append(reader.is_alive())
                collection.add(**kwargs)

        store._collection = _ReadDuringAdd()
        store.replace_chunks(1, _records("Paragraph Splitter", [[0.0, 1.0, 0.0]] * 2))
        reader.join(timeout=5)

        assert blocked == [True]
        assert seen == [2]

    def test_unusable_records_keep_stored_set(self):
        store = self._make_store()
        store.replace_chunks(1, _records("Sentence Splitter", [[1.0, 0.0, 0.0]] * 2))

        stored = store.replace_chunks(1, [
            ChunkRecord("bad", 0, "Character Splitter", b"\x00\x01\x02"),
        ])

        rows = store.find_by_file(1)
        assert stored == 0
        assert len(rows) == 2
        assert {r.strategy for r in rows} == {"Sentence Splitter"}


class TestPgChunkStoreReplace:
    """PgChunkStore paths that return before touching PostgreSQL."""

    def test_mismatched_dimensions_never_open_a_session(self, monkeypatch):
        session_factory = Mock()
        monkeypatch.setattr(chunk_store, "get_sync_session", session_factory)
        monkeypatch.setattr(chunk_store.settings, "embedding_dimensions", 1536)

        stored = PgChunkStore().replace_chunks(1, _records("s", [[1.0, 0.0, 0.0]]))

        assert stored == 0
        session_factory.assert_not_called()


class TestGetChunkStore:
    """Tests for the backend factory."""

    def test_memory_backend(self):
        assert isinstance(get_chunk_store("memory"), InMemoryChunkStore)

    def test_unknown_backend_rejected(self):
        with pytest.raises(ConfigurationError):
            get_chunk_store("qdrant")
