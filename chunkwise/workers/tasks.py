# =============================================================================
# Celery Task Definitions — Background Document Processing
# =============================================================================
#
# PIPELINE (process_document):
#   1. Update document status → PROCESSING
#   2. Read the saved upload and extract its text
#   3. DocumentProcessor.process_document (evaluate, select, embed, store)
#   4. Update document status → PROCESSED or FAILED
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - No async/await here
# - Database access goes through the sync engine (get_sync_session)
#
# NO RETRIES: DocumentProcessor reports failures through processing_status
# rather than raising, and a failed store write is not retried. A missing
# or unreadable upload marks the document FAILED and fails the task.
# =============================================================================

import logging

from sqlalchemy import update

from chunkwise.db.engine import get_sync_session
from chunkwise.db.models import Document, DocumentStatus
from chunkwise.services.document_source import load_document, upload_path
from chunkwise.services.processing import DocumentProcessingResult, get_document_processor
from chunkwise.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


def _update_document(document_id: int, status: DocumentStatus, **values) -> None:
    """
    Update a document row in its own transaction.

    A separate session per update means the PROCESSING mark is visible to
    pollers while the pipeline runs.
    """
    with get_sync_session() as session:
        session.execute(
            update(Document)
            .where(Document.id == document_id)
            .values(status=status, **values)
        )


def _summarize(result: DocumentProcessingResult) -> dict:
    """JSON-serialisable task result."""
    report = result.chunking_report
    return {
        "document_id": result.file_id,
        "file_name": result.file_name,
        "processing_status": result.processing_status,
        "embeddings_generated": result.embeddings_generated,
        "selected_strategy": result.selected_strategy,
        "processing_time_ms": result.processing_time_ms,
        "total_characters": report.total_characters if report else None,
        "strategies": [
            {"name": s.name, "chunk_count": s.chunk_count, "quality_score": s.quality_score}
            for s in (report.strategies if report else ())
        ],
        "embedding_failures": len(result.embedding_failures),
    }


# ---------------------------------------------------------------------------
# Processing Task
# ---------------------------------------------------------------------------


@celery_app.task(bind=True, name="process_document")
def process_document(
    self,
    document_id: int,
    generate_embeddings: bool = True,
) -> dict:
    """
    Process a previously uploaded document.

    Args:
        self: Celery task instance (bound task, provides self.request.id).
        document_id: Database ID of the Document record.
        generate_embeddings: Embed and store chunks with the best strategy.

    Returns:
        dict with the processing summary.
    """
    task_id = self.request.id
    logger.info(
        "Starting processing: document_id=%d, task_id=%s, embeddings=%s",
        document_id, task_id, generate_embeddings,
    )

    try:
        with get_sync_session() as session:
            doc = session.get(Document, document_id)
            if doc is None:
                raise LookupError(f"Document {document_id} not found")
            filename = doc.filename

        _update_document(document_id, DocumentStatus.PROCESSING)

        source = load_document(
            document_id, upload_path(document_id, filename), file_name=filename,
        )
    except Exception as exc:
        logger.exception(
            "[%s] Could not load document_id=%d: %s", task_id, document_id, exc,
        )
        _update_document(document_id, DocumentStatus.FAILED, error_message=str(exc)[:1000])
        raise

    result = get_document_processor().process_document(source, generate_embeddings)

    if result.succeeded:
        _update_document(
            document_id,
            DocumentStatus.PROCESSED,
            total_characters=len(source.text),
            selected_strategy=result.selected_strategy,
            error_message=None,
        )
    else:
        _update_document(
            document_id,
            DocumentStatus.FAILED,
            error_message=result.processing_status[:1000],
        )

    summary = _summarize(result)
    logger.info("[%s] Processing complete: %s", task_id, summary)
    return summary
