# =============================================================================
# Files API — Upload, Analyse, Process, Search
# =============================================================================
#
# ENDPOINTS (all under /files):
#   POST /upload           — Store a text document, return its record
#   POST /analyze          — Evaluate strategies for an upload (nothing stored)
#   POST /process          — Process a stored document synchronously
#   POST /process-async    — Dispatch processing to Celery, return task_id
#   GET  /tasks/{task_id}  — Poll an async processing task
#   POST /batch-process    — Process several stored documents in parallel
#   GET  /search           — Similarity search across all stored chunks
#   GET  /{file_id}/chunks — Stored chunks of one document
#
# DESIGN DECISION: the processing core is synchronous (thread pool for
# batches, sync chunk stores). Handlers hand it off with asyncio.to_thread
# so the event loop never blocks on embedding calls.
#
# Processing failures are part of the result (processing_status
# "FAILED: ..."), not HTTP errors. ChunkwiseError subclasses raised outside
# the processor (unsupported upload, store unavailable during search) are
# rendered by the handler in main.py.
# =============================================================================

import asyncio
import logging

from celery.result import AsyncResult
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from chunkwise.api.deps import get_document_or_404, get_processor
from chunkwise.config import settings
from chunkwise.db.engine import get_async_session
from chunkwise.db.models import Document, DocumentStatus
from chunkwise.models.requests import BatchProcessRequest
from chunkwise.models.responses import (
    AsyncProcessResponse,
    BatchProcessResponse,
    ChunkingReportResponse,
    ChunkListResponse,
    ChunkResponse,
    DocumentResponse,
    ProcessingResultResponse,
    SearchHitResponse,
    SearchResponse,
    TaskStatusResponse,
)
from chunkwise.services import codec
from chunkwise.services.chunk_store import StoredChunk
from chunkwise.services.document_source import (
    SourceDocument,
    extract_text,
    load_document,
    upload_path,
)
from chunkwise.services.processing import DocumentProcessingResult, DocumentProcessor
from chunkwise.workers.tasks import process_document as process_document_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _read_upload(file: UploadFile) -> tuple[str, bytes]:
    """Read an upload fully, rejecting nameless, empty or oversized files."""
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no filename.")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {settings.max_upload_bytes} byte upload limit.",
        )
    return file.filename, content


async def _load_source(doc: Document) -> SourceDocument:
    path = upload_path(doc.id, doc.filename)
    if not path.exists():
        raise HTTPException(
            status_code=404,
            detail=f"Stored upload for document {doc.id} is missing.",
        )
    return await asyncio.to_thread(load_document, doc.id, path, doc.filename)


def _apply_result(
    doc: Document,
    result: DocumentProcessingResult,
    total_characters: int,
) -> None:
    """Copy a processing outcome onto the document row."""
    if result.succeeded:
        doc.status = DocumentStatus.PROCESSED
        doc.total_characters = total_characters
        doc.error_message = None
        if result.selected_strategy:
            doc.selected_strategy = result.selected_strategy
    else:
        doc.status = DocumentStatus.FAILED
        doc.error_message = result.processing_status[:1000]


def _chunk_response(chunk: StoredChunk) -> ChunkResponse:
    return ChunkResponse(
        chunk_id=chunk.chunk_id,
        file_id=chunk.file_id,
        text=chunk.text,
        chunk_index=chunk.chunk_index,
        strategy=chunk.strategy,
        text_length=len(chunk.text),
        embedding_dimensions=codec.dimensions(chunk.embedding_bytes or b""),
    )


# ---------------------------------------------------------------------------
# Upload & Analyse
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=DocumentResponse,
    status_code=201,
    summary="Upload a text document",
)
async def upload_file(
    file: UploadFile = File(..., description="UTF-8 text document (.txt, .md, ...)"),
    session: AsyncSession = Depends(get_async_session),
) -> DocumentResponse:
    filename, content = await _read_upload(file)

    # Reject undecodable uploads before anything is stored
    extract_text(filename, content, file.content_type)

    doc = Document(
        filename=filename,
        content_type=file.content_type,
        file_size=len(content),
        status=DocumentStatus.UPLOADED,
    )
    session.add(doc)
    await session.flush()  # assigns doc.id

    path = upload_path(doc.id, filename)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    logger.info("Saved upload: %s (%d bytes) → %s", filename, len(content), path)

    # Load server-side defaults (timestamps) while still in async context
    await session.refresh(doc)
    return DocumentResponse.model_validate(doc)


@router.post(
    "/analyze",
    response_model=ChunkingReportResponse,
    summary="Evaluate chunking strategies for a document without storing it",
)
async def analyze_file(
    file: UploadFile = File(...),
    processor: DocumentProcessor = Depends(get_processor),
) -> ChunkingReportResponse:
    filename, content = await _read_upload(file)
    text = extract_text(filename, content, file.content_type)
    report = await asyncio.to_thread(processor.analyze_document, text, filename)
    return ChunkingReportResponse.model_validate(report)


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


@router.post(
    "/process",
    response_model=ProcessingResultResponse,
    summary="Analyse a stored document and embed it with the best strategy",
)
async def process_file(
    file_id: int = Query(..., description="ID returned by POST /files/upload"),
    generate_embeddings: bool = Query(default=True),
    session: AsyncSession = Depends(get_async_session),
    processor: DocumentProcessor = Depends(get_processor),
) -> ProcessingResultResponse:
    doc = await get_document_or_404(session, file_id)
    source = await _load_source(doc)

    result = await asyncio.to_thread(
        processor.process_document, source, generate_embeddings,
    )
    _apply_result(doc, result, len(source.text))
    return ProcessingResultResponse.model_validate(result)


@router.post(
    "/process-async",
    response_model=AsyncProcessResponse,
    status_code=202,
    summary="Process a stored document in the background",
)
async def process_file_async(
    file_id: int = Query(...),
    generate_embeddings: bool = Query(default=True),
    session: AsyncSession = Depends(get_async_session),
) -> AsyncProcessResponse:
    doc = await get_document_or_404(session, file_id)

    task = process_document_task.delay(
        document_id=doc.id,
        generate_embeddings=generate_embeddings,
    )
    doc.celery_task_id = task.id

    logger.info("Dispatched processing task: document_id=%d, task_id=%s", doc.id, task.id)
    return AsyncProcessResponse(
        file_id=doc.id,
        task_id=task.id,
        message=f"Document '{doc.filename}' queued for processing.",
    )


@router.get(
    "/tasks/{task_id}",
    response_model=TaskStatusResponse,
    summary="Check an async processing task",
)
async def get_task_status(
    task_id: str,
    session: AsyncSession = Depends(get_async_session),
) -> TaskStatusResponse:
    result = AsyncResult(task_id, app=process_document_task.app)
    status = result.status

    document: DocumentResponse | None = None
    summary: dict | None = None
    error: str | None = None

    if status == "SUCCESS":
        summary = result.result or {}
        doc_id = summary.get("document_id")
        if doc_id:
            doc = await session.get(Document, doc_id)
            if doc:
                document = DocumentResponse.model_validate(doc)
    elif status == "FAILURE":
        error = str(result.result) if result.result else "Unknown error"

    return TaskStatusResponse(
        task_id=task_id,
        status=status,
        document=document,
        result=summary,
        error=error,
    )


@router.post(
    "/batch-process",
    response_model=BatchProcessResponse,
    summary="Process several stored documents in parallel",
)
async def batch_process(
    request: BatchProcessRequest,
    session: AsyncSession = Depends(get_async_session),
    processor: DocumentProcessor = Depends(get_processor),
) -> BatchProcessResponse:
    docs = [await get_document_or_404(session, file_id) for file_id in request.file_ids]
    sources = [await _load_source(doc) for doc in docs]

    results = await asyncio.to_thread(
        processor.process_batch, sources, request.generate_embeddings,
    )
    for doc, source, result in zip(docs, sources, results):
        _apply_result(doc, result, len(source.text))

    succeeded = sum(1 for r in results if r.succeeded)
    return BatchProcessResponse(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=[ProcessingResultResponse.model_validate(r) for r in results],
    )


# ---------------------------------------------------------------------------
# Search & Chunks
# ---------------------------------------------------------------------------


@router.get(
    "/search",
    response_model=SearchResponse,
    summary="Find the chunks most similar to a query",
)
async def search_documents(
    query: str = Query(..., min_length=1),
    limit: int = Query(
        default=settings.search_default_limit,
        ge=1,
        le=settings.search_max_limit,
    ),
    processor: DocumentProcessor = Depends(get_processor),
) -> SearchResponse:
    hits = await asyncio.to_thread(processor.search_documents, query, limit)
    return SearchResponse(
        query=query,
        limit=limit,
        count=len(hits),
        results=[SearchHitResponse.model_validate(hit) for hit in hits],
    )


@router.get(
    "/{file_id}/chunks",
    response_model=ChunkListResponse,
    summary="List the stored chunks of a document",
)
async def get_file_chunks(
    file_id: int,
    strategy: str | None = Query(default=None, description="Filter by strategy name"),
    processor: DocumentProcessor = Depends(get_processor),
) -> ChunkListResponse:
    chunks = await asyncio.to_thread(processor.get_document_chunks, file_id, strategy)
    return ChunkListResponse(
        file_id=file_id,
        strategy=strategy,
        count=len(chunks),
        chunks=[_chunk_response(c) for c in chunks],
    )
