# =============================================================================
# Database Engine & Session Management
# =============================================================================
#
# Two engines against the same database:
#
#   async (asyncpg)  — FastAPI handlers: document records and status.
#   sync (psycopg2)  — Celery workers and PgChunkStore. The chunk store is
#                      synchronous so the same code path serves workers,
#                      the batch thread pool and (via asyncio.to_thread)
#                      the API.
#
# COMMIT POLICY:
#   get_async_session (dependency) — commits when the handler returns,
#       rolls back on exception.
#   get_sync_session (context manager) — commits on exit, rolls back on
#       exception. One `with` block is one transaction.
# =============================================================================

import logging
from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker

from chunkwise.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Async Engine
# ---------------------------------------------------------------------------
async_engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=10,
)

# expire_on_commit=False: attributes stay readable after commit, outside
# the session, without triggering lazy loads.
async_session_factory = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Sync Engine (Lazy Initialization)
# ---------------------------------------------------------------------------
# psycopg2 is only imported when a sync session is first requested. The
# pool is sized for one connection per batch worker plus the API thread.
# ---------------------------------------------------------------------------


@lru_cache
def _sync_session_factory() -> sessionmaker[Session]:
    """Build the psycopg2 engine and its session factory on first use."""
    engine = create_engine(
        settings.database_url_sync,
        echo=settings.debug,
        pool_size=settings.batch_max_workers + 1,
        max_overflow=10,
        pool_pre_ping=True,
    )
    logger.debug("Created sync engine (pool_size=%d)", settings.batch_max_workers + 1)
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """
    Context manager that provides a sync database session.

    Usage:
        with get_sync_session() as session:
            doc = session.get(Document, document_id)
            doc.status = DocumentStatus.PROCESSED
            # Auto-commits on exit, auto-rollbacks on exception
    """
    session = _sync_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns; rolls back if it raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create the pgvector extension and all tables if they do not exist.

    Called once from the application lifespan.
    """
    # Imported here so the models module registers its tables first
    from chunkwise.db.models import Base

    async with async_engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
