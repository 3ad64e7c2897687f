"""Database engine and session management."""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine
)
from sqlalchemy.pool import StaticPool

from facecluster.core.config import settings
from facecluster.core.logging import get_logger
from facecluster.infrastructure.database.models import Base

logger = get_logger(__name__)


def create_engine(database_url: Optional[str] = None, echo: Optional[bool] = None) -> AsyncEngine:
    """Create the async engine.

    In-memory SQLite gets a single shared connection so every session sees
    the same database.

    Args:
        database_url: SQLAlchemy async URL, defaults to ``settings.DATABASE_URL``
        echo: Log SQL statements, defaults to ``settings.DATABASE_ECHO``

    Returns:
        AsyncEngine: Configured engine
    """
    url = database_url or settings.DATABASE_URL
    kwargs = {"echo": settings.DATABASE_ECHO if echo is None else echo}
    if url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_async_engine(url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready", url=engine.url.render_as_string(hide_password=True))

