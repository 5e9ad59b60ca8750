"""Async database session and engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from shopfeed.config import settings
from shopfeed.models import Base


def build_engine(database_url: str = settings.DATABASE_URL) -> AsyncEngine:
    """Create the async engine for a store URL."""
    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    engine_kwargs: dict = {"echo": settings.DEBUG}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **engine_kwargs)


engine = build_engine()

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(target: AsyncEngine = engine) -> None:
    """Create the catalog tables if they do not exist yet."""
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
