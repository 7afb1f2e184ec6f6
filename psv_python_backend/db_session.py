"""
SQLAlchemy async session setup for the PSV backend.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from psv_python_backend.config import DATABASE_URL as _RAW_DATABASE_URL


def normalize_database_url(url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+asyncpg:// for SQLAlchemy async"""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


DATABASE_URL = normalize_database_url(_RAW_DATABASE_URL)

# Create async engine
async_engine = create_async_engine(
    DATABASE_URL,
    echo=False,  # Set to True for SQL query logging
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_async_session():
    """
    Dependency function to get database session.

    Commits on success; rolls back and re-raises on any error so that
    infrastructure failures reach the caller.
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


def get_async_session_context():
    """
    Context manager for getting database session in background tasks.

    Usage:
        async with get_async_session_context() as db:
            calculator = StanceCalculator(db)
            await calculator.calculate_stance_vector(comment_id)
    """
    return AsyncSessionLocal()
