"""
Database engine and session factory.

One async engine per process. Routes receive a session through the
`get_db` dependency (re-exported as `get_session`).
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from helpdesk.config.settings import settings
from helpdesk.db.base_model import Base
from helpdesk.utils.logger import get_logger

logger = get_logger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session; roll back if the request raised."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create all tables. Used by the seed script and local development."""
    # Models must be imported so they register on Base.metadata
    import helpdesk.apps.auth.models  # noqa: F401
    import helpdesk.apps.tickets.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
