"""
Guide snapshot storage engine

One SQLite database holds the last published guide so a restart can serve
it before the first refresh completes.
"""
import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy import event

from epg_guide.config import settings
from epg_guide.models import Base

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# Initialized by init_db() during startup
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (initialized in init_db)"""
    if _session_factory is None:
        raise RuntimeError("Guide storage not initialized. Call init_db() during startup.")
    return _session_factory


def is_initialized() -> bool:
    return _session_factory is not None


def _sqlite_url(database_path: str) -> str:
    if database_path == MEMORY_DATABASE:
        return f"sqlite+aiosqlite:///{MEMORY_DATABASE}"
    return f"sqlite+aiosqlite:///{Path(database_path).expanduser()}"


def _configure_sqlite(dbapi_conn, _):
    """WAL lets readers load the snapshot while a refresh replaces it"""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.close()


async def init_db(database_path: str | None = None) -> None:
    """
    Create the guide tables and the session factory

    Args:
        database_path: SQLite file path, ':memory:' for an in-memory database,
            or None to use settings.database_path
    """
    global _engine, _session_factory

    path = database_path or settings.database_path
    logger.info(f"Opening guide storage at {path}")

    _engine = create_async_engine(
        _sqlite_url(path),
        echo=False,
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    if path != MEMORY_DATABASE:
        event.listen(_engine.sync_engine, "connect", _configure_sqlite)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _session_factory = async_sessionmaker(_engine, expire_on_commit=False, autoflush=False)
    logger.info("Guide storage ready (tables: %s)", ", ".join(sorted(Base.metadata.tables)))


async def close_db() -> None:
    """Dispose of the engine; init_db() must be called again before reuse"""
    global _engine, _session_factory
    if _engine:
        await _engine.dispose()
        logger.info("Guide storage closed")
    _engine = None
    _session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session inside one transaction: commit on success, rollback on error."""
    session_factory = get_session_factory()

    async with session_factory() as session:
        async with session.begin():
            yield session
