# =============================================================================
# API Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# DESIGN DECISION: the processor is a dependency (not a module global in
# the route handlers) so tests swap in one wired to an in-memory store and
# a fake embedder via app.dependency_overrides.
# =============================================================================

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from chunkwise.db.models import Document
from chunkwise.services.processing import DocumentProcessor, get_document_processor


def get_processor() -> DocumentProcessor:
    """FastAPI dependency returning the shared DocumentProcessor."""
    return get_document_processor()


async def get_document_or_404(session: AsyncSession, file_id: int) -> Document:
    """Load a Document row or raise HTTP 404."""
    doc = await session.get(Document, file_id)
    if doc is None:
        raise HTTPException(status_code=404, detail=f"Document {file_id} not found")
    return doc
