# =============================================================================
# Chunk Store — Pluggable Storage Backends for Embedded Chunks
# =============================================================================
#
# The core only needs three operations from storage:
#
#   replace_chunks(file_id, records)  — atomic delete + insert of one
#                                        document's chunk set
#   query_nearest(encoded_query, k)   — nearest rows with similarity
#   find_by_file(file_id, strategy)   — a document's chunks in order
#
# Embeddings cross this boundary in their encoded form (services/codec.py).
#
# ARCHITECTURE:
#   ChunkStore (Protocol)
#   ├── PgChunkStore       — PostgreSQL + pgvector, cosine distance in SQL
#   ├── ChromaChunkStore   — ChromaDB collection with cosine HNSW space
#   └── InMemoryChunkStore — process-local, ranked by ranker.rank()
#
# ATOMICITY:
#   PgChunkStore runs the delete and the insert in one transaction holding
#   a row lock on the owning document. ChromaDB has no transactions, so
#   ChromaChunkStore serialises every read and write on one lock; readers
#   see the old set or the new one, never the gap in between. The lock is
#   process-local: an API process and a Celery worker sharing a Chroma
#   server do not share it. The in-memory store swaps the whole list.
#
#   A replacement whose records are all unusable leaves the stored set
#   untouched and returns 0.
# =============================================================================

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import chromadb
from chromadb.errors import ChromaError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from chunkwise.config import settings
from chunkwise.db.engine import get_sync_session
from chunkwise.db.models import Chunk, Document
from chunkwise.errors import ConfigurationError, StoreUnavailableError, VectorFormatError
from chunkwise.services import codec
from chunkwise.services.ranker import rank

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChunkRecord:
    """A chunk ready to be written: text plus encoded embedding."""

    text: str
    chunk_index: int
    strategy: str
    embedding_bytes: bytes


@dataclass(frozen=True)
class StoredChunk:
    """A stored chunk row as seen by the core."""

    chunk_id: int | str
    file_id: int
    text: str
    chunk_index: int
    strategy: str
    embedding_bytes: bytes | None = None
    file_name: str | None = None  # resolved by join on the owning document


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class ChunkStore(Protocol):
    """Storage interface for embedded chunks."""

    def replace_chunks(
        self,
        file_id: int,
        records: Sequence[ChunkRecord],
        file_name: str | None = None,
    ) -> int:
        """
        Atomically replace a document's chunk set.

        Returns:
            Number of chunks stored.
        """
        ...

    def query_nearest(
        self,
        encoded_query: bytes,
        limit: int,
    ) -> list[tuple[StoredChunk, float]]:
        """
        Nearest stored chunks to an encoded query vector.

        Returns:
            (row, similarity) pairs, highest similarity first, at most
            `limit` long. similarity = 1 - cosine distance.
        """
        ...

    def find_by_file(
        self,
        file_id: int,
        strategy: str | None = None,
    ) -> list[StoredChunk]:
        """A document's chunks ordered by chunk_index."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: pgvector (PostgreSQL)
# ---------------------------------------------------------------------------


class PgChunkStore:
    """
    pgvector-backed chunk store.

    Writes both the encoded bytes and the pgvector column; reads order by
    pgvector's cosine distance operator so the HNSW index is used.
    """

    backend = "pgvector"

    def replace_chunks(
        self,
        file_id: int,
        records: Sequence[ChunkRecord],
        file_name: str | None = None,
    ) -> int:
        """Delete and re-insert a document's chunks in one transaction."""
        rows: list[Chunk] = []
        for record in records:
            dims = codec.dimensions(record.embedding_bytes)
            if dims != settings.embedding_dimensions:
                logger.warning(
                    "Skipping chunk %d of file %d: %d dimensions, column has %d",
                    record.chunk_index, file_id, dims, settings.embedding_dimensions,
                )
                continue
            vector = _decode_record(record, file_id)
            if vector is None:
                continue
            rows.append(Chunk(
                document_id=file_id,
                content=record.text,
                chunk_index=record.chunk_index,
                strategy=record.strategy,
                text_length=len(record.text),
                embedding_bytes=record.embedding_bytes,
                embedding=vector,
            ))

        if records and not rows:
            logger.warning(
                "No usable embeddings for file_id=%d; keeping stored chunks", file_id,
            )
            return 0

        try:
            with get_sync_session() as session:
                # Row lock on the owning document serialises replacements
                session.execute(
                    select(Document.id)
                    .where(Document.id == file_id)
                    .with_for_update()
                )
                session.execute(delete(Chunk).where(Chunk.document_id == file_id))
                session.add_all(rows)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                f"Failed to replace chunks for file {file_id}: {exc}",
                backend=self.backend,
            ) from exc

        logger.info(
            "Stored %d chunks for file_id=%d in pgvector", len(rows), file_id,
        )
        return len(rows)

    def query_nearest(
        self,
        encoded_query: bytes,
        limit: int,
    ) -> list[tuple[StoredChunk, float]]:
        """Cosine nearest neighbours, computed by PostgreSQL."""
        query_vector = codec.decode(encoded_query)
        distance = Chunk.embedding.cosine_distance(query_vector)

        stmt = (
            select(Chunk, Document.filename, distance.label("distance"))
            .outerjoin(Document, Document.id == Chunk.document_id)
            .where(Chunk.embedding.is_not(None))
            .order_by(distance)
            .limit(limit)
        )

        try:
            with get_sync_session() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                f"Vector search failed: {exc}", backend=self.backend,
            ) from exc

        return [
            (_row_to_stored(chunk, filename), 1.0 - float(dist))
            for chunk, filename, dist in rows
        ]

    def find_by_file(
        self,
        file_id: int,
        strategy: str | None = None,
    ) -> list[StoredChunk]:
        stmt = (
            select(Chunk, Document.filename)
            .outerjoin(Document, Document.id == Chunk.document_id)
            .where(Chunk.document_id == file_id)
            .order_by(Chunk.chunk_index)
        )
        if strategy is not None:
            stmt = stmt.where(Chunk.strategy == strategy)

        try:
            with get_sync_session() as session:
                rows = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(
                f"Failed to load chunks for file {file_id}: {exc}",
                backend=self.backend,
            ) from exc

        return [_row_to_stored(chunk, filename) for chunk, filename in rows]


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaChunkStore:
    """
    ChromaDB-backed chunk store.

    Single collection; file_id, file_name, chunk_index and strategy live in
    per-chunk metadata and drive filtering.
    """

    backend = "chroma"

    def __init__(self, collection_name: str | None = None) -> None:
        if settings.chroma_url:
            self._client = chromadb.HttpClient(host=settings.chroma_url)
        else:
            self._client = chromadb.Client()

        self._collection = self._client.get_or_create_collection(
            name=collection_name or settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )
        self._lock = threading.Lock()

    def replace_chunks(
        self,
        file_id: int,
        records: Sequence[ChunkRecord],
        file_name: str | None = None,
    ) -> int:
        ids: list[str] = []
        documents: list[str] = []
        embeddings: list[list[float]] = []
        metadatas: list[dict] = []

        for record in records:
            vector = _decode_record(record, file_id)
            if vector is None:
                continue
            ids.append(f"file{file_id}_chunk{record.chunk_index}")
            documents.append(record.text)
            embeddings.append(vector)
            metadatas.append({
                "file_id": file_id,
                "file_name": file_name or "",
                "chunk_index": record.chunk_index,
                "strategy": record.strategy,
            })

        if records and not ids:
            logger.warning(
                "No usable embeddings for file_id=%d; keeping stored chunks", file_id,
            )
            return 0

        try:
            with self._lock:
                self._collection.delete(where={"file_id": file_id})
                if ids:
                    self._collection.add(
                        ids=ids,
                        documents=documents,
                        embeddings=embeddings,
                        metadatas=metadatas,
                    )
        except ChromaError as exc:
            raise StoreUnavailableError(
                f"Failed to replace chunks for file {file_id}: {exc}",
                backend=self.backend,
            ) from exc

        logger.info("Stored %d chunks for file_id=%d in ChromaDB", len(ids), file_id)
        return len(ids)

    def query_nearest(
        self,
        encoded_query: bytes,
        limit: int,
    ) -> list[tuple[StoredChunk, float]]:
        query_vector = codec.decode(encoded_query)

        try:
            with self._lock:
                results = self._collection.query(
                    query_embeddings=[query_vector],
                    n_results=limit,
                    include=["documents", "metadatas", "distances"],
                )
        except ChromaError as exc:
            raise StoreUnavailableError(
                f"Vector search failed: {exc}", backend=self.backend,
            ) from exc

        hits: list[tuple[StoredChunk, float]] = []
        if results and results["ids"] and results["ids"][0]:
            for i, chroma_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results["distances"] else 0.0
                metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                content = results["documents"][0][i] if results["documents"] else ""
                hits.append((
                    _metadata_to_stored(chroma_id, content, metadata),
                    1.0 - float(distance),
                ))
        return hits

    def find_by_file(
        self,
        file_id: int,
        strategy: str | None = None,
    ) -> list[StoredChunk]:
        if strategy is None:
            where: dict = {"file_id": file_id}
        else:
            where = {"$and": [{"file_id": file_id}, {"strategy": strategy}]}

        try:
            with self._lock:
                results = self._collection.get(
                    where=where, include=["documents", "metadatas"],
                )
        except ChromaError as exc:
            raise StoreUnavailableError(
                f"Failed to load chunks for file {file_id}: {exc}",
                backend=self.backend,
            ) from exc

        rows = [
            _metadata_to_stored(chroma_id, content, metadata)
            for chroma_id, content, metadata in zip(
                results["ids"], results["documents"], results["metadatas"],
            )
        ]
        return sorted(rows, key=lambda row: row.chunk_index)


# ---------------------------------------------------------------------------
# Implementation 3: In-Memory
# ---------------------------------------------------------------------------


class InMemoryChunkStore:
    """
    Process-local chunk store for development and tests.

    Similarity is computed locally with ranker.rank() over decoded vectors.
    """

    backend = "memory"

    def __init__(self) -> None:
        self._rows: dict[int, list[StoredChunk]] = {}
        self._guard = threading.Lock()
        self._ids = itertools.count(1)

    def replace_chunks(
        self,
        file_id: int,
        records: Sequence[ChunkRecord],
        file_name: str | None = None,
    ) -> int:
        # The new list is built and swapped in under one lock
        with self._guard:
            rows = [
                StoredChunk(
                    chunk_id=next(self._ids),
                    file_id=file_id,
                    text=record.text,
                    chunk_index=record.chunk_index,
                    strategy=record.strategy,
                    embedding_bytes=record.embedding_bytes,
                    file_name=file_name,
                )
                for record in records
            ]
            self._rows[file_id] = rows

        logger.info("Stored %d chunks for file_id=%d in memory", len(rows), file_id)
        return len(rows)

    def query_nearest(
        self,
        encoded_query: bytes,
        limit: int,
    ) -> list[tuple[StoredChunk, float]]:
        query_vector = codec.decode(encoded_query)
        with self._guard:
            rows = [row for file_rows in self._rows.values() for row in file_rows]

        candidates: list[tuple[list[float], StoredChunk]] = []
        for row in rows:
            if row.embedding_bytes is None:
                continue
            try:
                vector = codec.decode(row.embedding_bytes)
            except VectorFormatError as exc:
                logger.warning(
                    "Skipping chunk %s of file %d: %s", row.chunk_id, row.file_id, exc,
                )
                continue
            if len(vector) != len(query_vector):
                logger.warning(
                    "Skipping chunk %s of file %d: %d dimensions, query has %d",
                    row.chunk_id, row.file_id, len(vector), len(query_vector),
                )
                continue
            candidates.append((vector, row))

        return [(row, similarity) for similarity, row in rank(query_vector, candidates, limit)]

    def find_by_file(
        self,
        file_id: int,
        strategy: str | None = None,
    ) -> list[StoredChunk]:
        with self._guard:
            rows = list(self._rows.get(file_id, []))
        if strategy is not None:
            rows = [row for row in rows if row.strategy == strategy]
        return sorted(rows, key=lambda row: row.chunk_index)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_chunk_store(
    override_type: str | None = None,
) -> PgChunkStore | ChromaChunkStore | InMemoryChunkStore:
    """
    Return the configured chunk store backend.

    Reads `vectorstore_type` from settings: "pgvector", "chroma" or "memory".

    Raises:
        ConfigurationError: For an unknown backend name.
    """
    store_type = (override_type or settings.vectorstore_type).lower()

    if store_type == "pgvector":
        logger.info("Using pgvector chunk store")
        return PgChunkStore()
    if store_type == "chroma":
        logger.info("Using ChromaDB chunk store")
        return ChromaChunkStore()
    if store_type == "memory":
        logger.info("Using in-memory chunk store")
        return InMemoryChunkStore()

    raise ConfigurationError(
        f"Unknown vector store type '{store_type}'",
        details={"valid": ["pgvector", "chroma", "memory"]},
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _decode_record(record: ChunkRecord, file_id: int) -> list[float] | None:
    """Decode a record's embedding; None (and a warning) if it is unusable."""
    try:
        vector = codec.decode(record.embedding_bytes)
    except VectorFormatError as exc:
        logger.warning(
            "Skipping chunk %d of file %d: %s", record.chunk_index, file_id, exc,
        )
        return None
    if not vector:
        logger.warning(
            "Skipping chunk %d of file %d: empty embedding", record.chunk_index, file_id,
        )
        return None
    return vector


def _row_to_stored(chunk: Chunk, filename: str | None) -> StoredChunk:
    return StoredChunk(
        chunk_id=chunk.id,
        file_id=chunk.document_id,
        text=chunk.content,
        chunk_index=chunk.chunk_index,
        strategy=chunk.strategy,
        embedding_bytes=chunk.embedding_bytes,
        file_name=filename,
    )


def _metadata_to_stored(chroma_id: str, content: str, metadata: dict | None) -> StoredChunk:
    metadata = metadata or {}
    return StoredChunk(
        chunk_id=chroma_id,
        file_id=int(metadata.get("file_id", 0)),
        text=content or "",
        chunk_index=int(metadata.get("chunk_index", 0)),
        strategy=str(metadata.get("strategy", "")),
        file_name=metadata.get("file_name") or None,
    )
