# =============================================================================
# FastAPI Application Entry Point
# =============================================================================
#
# Wires the /files router, the ChunkwiseError handler and /health.
#
# LIFESPAN: creates the pgvector extension and tables on startup. The
# documents table is needed whatever chunk store backend is configured.
#
# ERROR SHAPE: every ChunkwiseError renders as
#   {"error": {"message", "code", "status_code", "details"}}
# with the exception's own HTTP status (400 / 415 / 422 / 502 / 503).
# =============================================================================

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chunkwise.api.files import router as files_router
from chunkwise.config import settings
from chunkwise.db.engine import init_db
from chunkwise.errors import ChunkwiseError
from chunkwise.models.responses import HealthResponse
from chunkwise.services.embedder import embedding_available

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting %s v%s (vectorstore=%s)",
        settings.app_name, settings.app_version, settings.vectorstore_type,
    )
    await init_db()
    yield
    logger.info("Shutting down %s", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Evaluates chunking strategies per document, embeds chunks with the "
        "best one and serves similarity search over them."
    ),
    lifespan=lifespan,
)


@app.exception_handler(ChunkwiseError)
async def chunkwise_exception_handler(request: Request, exc: ChunkwiseError) -> JSONResponse:
    logger.warning(
        "%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(files_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(
        version=settings.app_version,
        service=settings.app_name,
        vectorstore=settings.vectorstore_type,
        embedding_available=embedding_available(),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "chunkwise.main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
    )
