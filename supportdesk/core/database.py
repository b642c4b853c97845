# supportdesk/core/database.py
"""Async database engine and session management"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from supportdesk.core.logger import get_logger
from supportdesk.models import Base

logger = get_logger(__name__)


def create_engine_from_settings(settings) -> AsyncEngine:
    """
    Create the async engine.

    PostgreSQL gets a tuned pool; other backends (SQLite in tests) use
    SQLAlchemy's defaults.
    """
    url = settings.database_url
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    kwargs = {"echo": settings.database_echo, "pool_pre_ping": True}
    if url.startswith("postgresql+asyncpg://"):
        kwargs.update(
            pool_size=20,
            max_overflow=10,
            pool_recycle=3600,
            connect_args={"timeout": settings.database_timeout_seconds},
        )

    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def check_connection(engine: AsyncEngine) -> bool:
    """Check the database answers a trivial query"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        return False
