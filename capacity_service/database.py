"""Database connection and session management using SQLAlchemy async ORM"""
from typing import Any, AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from capacity_service.config import get_settings

# Database Configuration
DATABASE_URL = get_settings().database_url

# Convert sync postgresql:// to async postgresql+asyncpg://
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)


def engine_options(url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments appropriate for the target database.

    PostgreSQL gets a sized connection pool; SQLite (used by the test suite)
    shares a single connection so an in-memory database survives across sessions.
    """
    if url.startswith("sqlite"):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    # pool_size=20: Keep 20 connections alive in the pool
    # max_overflow=30: Allow 30 additional connections under load (total 50 max)
    # pool_recycle=3600: Recycle connections every hour to prevent stale connections
    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_recycle": 3600,
        "pool_pre_ping": True,  # Verify connection health before using
    }


# Create async SQLAlchemy engine
engine = create_async_engine(
    DATABASE_URL,
    echo=False,  # Set to True for SQL query logging during development
    **engine_options(DATABASE_URL),
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Base class for declarative models
Base = declarative_base()


def get_session_factory() -> async_sessionmaker:
    """Dependency returning the session factory for services built per request."""
    return AsyncSessionLocal


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI endpoints to get database session.

    Usage in FastAPI:
        @app.get("/items")
        async def read_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
