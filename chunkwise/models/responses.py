# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Data going OUT of the API. Service results are frozen dataclasses; the
# models below read them with from_attributes=True so handlers can call
# `Model.model_validate(result)` directly.
#
# DESIGN DECISION: raw embeddings are never serialised. Chunk listings
# report the embedding's dimensionality only.
# =============================================================================

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str
    vectorstore: str
    embedding_available: bool


class DocumentResponse(BaseModel):
    """Metadata of an uploaded document."""

    id: int
    filename: str
    content_type: str | None = None
    file_size: int
    total_characters: int | None = None
    selected_strategy: str | None = None
    status: str
    error_message: str | None = None
    celery_task_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Analysis & Processing
# ---------------------------------------------------------------------------


class StrategyReportResponse(BaseModel):
    """Size statistics, probe result and quality score of one strategy."""

    name: str
    description: str
    chunk_count: int
    average_chunk_size: float
    min_chunk_size: int
    max_chunk_size: int
    median_chunk_size: float
    p85_chunk_size: float
    p95_chunk_size: float
    std_dev: float
    coefficient_of_variation: float
    embedding_test_passed: bool
    embedding_test_result: str
    quality_score: float

    model_config = ConfigDict(from_attributes=True)


class ChunkingReportResponse(BaseModel):
    """Every evaluated strategy for one document."""

    file_name: str
    total_characters: int
    strategies: list[StrategyReportResponse]

    model_config = ConfigDict(from_attributes=True)


class EmbeddingFailureResponse(BaseModel):
    """A chunk whose embedding could not be generated."""

    index: int
    message: str

    model_config = ConfigDict(from_attributes=True)


class ProcessingResultResponse(BaseModel):
    """Outcome of processing one document."""

    file_id: int | None
    file_name: str
    processing_status: str = Field(description="'SUCCESS' or 'FAILED: <message>'")
    embeddings_generated: bool
    processing_time_ms: int
    chunking_report: ChunkingReportResponse | None = None
    selected_strategy: str | None = None
    embedding_failures: list[EmbeddingFailureResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class BatchProcessResponse(BaseModel):
    """Results of POST /files/batch-process, in request order."""

    total: int
    succeeded: int
    failed: int
    results: list[ProcessingResultResponse]


class AsyncProcessResponse(BaseModel):
    """
    Response for POST /files/process-async.

    Poll GET /files/tasks/{task_id} until the status is SUCCESS or FAILURE.
    """

    file_id: int
    task_id: str = Field(description="Celery task ID for tracking progress")
    status: str = "processing"
    message: str


class TaskStatusResponse(BaseModel):
    """Response for GET /files/tasks/{task_id}."""

    task_id: str
    status: str = Field(description="Task status: PENDING, STARTED, SUCCESS, FAILURE")
    document: DocumentResponse | None = None
    result: dict | None = Field(
        default=None,
        description="Processing summary (available when status is SUCCESS)",
    )
    error: str | None = None


# ---------------------------------------------------------------------------
# Search & Chunks
# ---------------------------------------------------------------------------


class SearchHitResponse(BaseModel):
    """One ranked chunk from a similarity search."""

    file_id: int
    file_name: str
    chunk_text: str
    similarity_score: float = Field(
        description="1 - cosine distance (higher = more similar)",
    )
    chunk_index: int

    model_config = ConfigDict(from_attributes=True)


class SearchResponse(BaseModel):
    """Response for GET /files/search."""

    query: str
    limit: int
    count: int
    results: list[SearchHitResponse]


class ChunkResponse(BaseModel):
    """A stored chunk, without its embedding."""

    chunk_id: int | str
    file_id: int
    text: str
    chunk_index: int
    strategy: str
    text_length: int
    embedding_dimensions: int


class ChunkListResponse(BaseModel):
    """Response for GET /files/{file_id}/chunks."""

    file_id: int
    strategy: str | None = None
    count: int
    chunks: list[ChunkResponse]
