# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌──────────────────┐       ┌──────────────────────────────────┐
# │  documents       │       │  chunks                          │
# ├──────────────────┤       ├──────────────────────────────────┤
# │ id (PK)          │──1:N─▶│ id (PK)                          │
# │ filename         │       │ document_id (FK → documents.id)  │
# │ content_type     │       │ content (text)                   │
# │ file_size        │       │ chunk_index (int)                │
# │ total_characters │       │ strategy (str)                   │
# │ selected_strategy│       │ text_length (int)                │
# │ status           │       │ embedding_bytes (bytea)          │
# │ error_message    │       │ embedding (vector(dim))          │
# │ celery_task_id   │       │ created_at                       │
# │ created_at       │       └──────────────────────────────────┘
# │ updated_at       │
# └──────────────────┘
#
# A document's chunk set is replaced as a whole when it is re-embedded.
# Chunks from different strategies for the same document never coexist.
#
# `embedding_bytes` holds the canonical fixed-width encoding (big-endian
# float32, see services/codec.py). `embedding` holds the same vector as a
# pgvector column so PostgreSQL can compute cosine distance natively.
# =============================================================================

import enum
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from chunkwise.config import settings


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class DocumentStatus(str, enum.Enum):
    """
    Processing state for an uploaded document.

    State machine:
        UPLOADED → PROCESSING → PROCESSED
                              → FAILED
    """

    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class Document(Base):
    """An uploaded document whose text has been (or will be) chunked."""

    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Original filename as uploaded (also the display name in search hits)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)

    content_type: Mapped[str | None] = mapped_column(String(255), nullable=True)

    file_size: Mapped[int] = mapped_column(Integer, nullable=False)

    # Length of the extracted text, filled in after analysis
    total_characters: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Name of the strategy whose chunks are currently stored
    selected_strategy: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus),
        nullable=False,
        default=DocumentStatus.UPLOADED,
    )

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Celery task ID when processed through /files/process-async
    celery_task_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # lazy="noload": search and listing never need the full chunk set
    chunks: Mapped[list["Chunk"]] = relationship(
        "Chunk",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, filename='{self.filename}', status={self.status})>"


class Chunk(Base):
    """One stored chunk of a document, with its embedding."""

    __tablename__ = "chunks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    document_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    content: Mapped[str] = mapped_column(Text, nullable=False)

    # 0-indexed position within the document under `strategy`
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Report name of the strategy that produced this chunk
    strategy: Mapped[str] = mapped_column(String(100), nullable=False)

    text_length: Mapped[int] = mapped_column(Integer, nullable=False)

    # Big-endian float32 encoding of the embedding
    embedding_bytes: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<Chunk(id={self.id}, doc_id={self.document_id}, "
            f"index={self.chunk_index}, strategy='{self.strategy}')>"
        )


# =============================================================================
# Database Indexes
# =============================================================================
#
# HNSW with vector_cosine_ops so `embedding <=> query` ordering uses the
# index. B-tree on document_id serves replace_chunks() and find_by_file().
# =============================================================================

chunk_embedding_idx = Index(
    "idx_chunk_embedding_hnsw",
    Chunk.embedding,
    postgresql_using="hnsw",
    postgresql_with={"m": 16, "ef_construction": 64},
    postgresql_ops={"embedding": "vector_cosine_ops"},
)

chunk_document_idx = Index(
    "idx_chunk_document_id",
    Chunk.document_id,
    Chunk.chunk_index,
)
