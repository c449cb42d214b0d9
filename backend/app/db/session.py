"""
Async SQLAlchemy session factory.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from app.core.config import settings


def build_engine(url: str | None = None, **overrides):
    """Create an async engine; pool sizing only applies to Postgres."""
    url = url or settings.DATABASE_URL
    kwargs: dict = {"echo": settings.APP_ENV == "development" and url.startswith("postgresql")}
    if url.startswith("postgresql"):
        kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    kwargs.update(overrides)
    return create_async_engine(url, **kwargs)


engine = build_engine()

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Dependency that yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
