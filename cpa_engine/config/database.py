"""
Database engine and session factory.

Shared async engine for the engine process. Background tasks create their
own NullPool engines (see jobs/utils/database.py).
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cpa_engine.config.settings import settings


def create_engine_from_settings(database_url: str | None = None):
    """Create the async engine with bounded pool and statement timeouts."""
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,
        connect_args={"command_timeout": settings.database_operation_timeout},
    )


async_engine = create_engine_from_settings()

async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)
