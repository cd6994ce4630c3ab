# account_security/db/session.py
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from account_security.core.config import settings
from account_security.db.base_class import Base

logger = logging.getLogger(__name__)


def create_engine_and_sessionmaker(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build the async engine and session maker for the account store."""
    url = database_url or settings.DATABASE_URL
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    engine = create_async_engine(url, echo=settings.DB_ECHO, pool_pre_ping=True)
    session_maker = async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    logger.info(f"Asynchronous database engine ({url.split('@')[-1]}) configured.")
    return engine, session_maker


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables. Schema migrations are managed outside this service."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
