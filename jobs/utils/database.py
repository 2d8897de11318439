"""Database access for background tasks.

Tasks run their coroutine with asyncio.run, one event loop per message, so
connections must never outlive the loop: the engine uses NullPool.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cpa_engine.config.settings import settings


def create_task_engine():
    """Create an engine for use inside a task."""
    return create_async_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
        connect_args={"command_timeout": settings.database_operation_timeout},
    )


def create_task_session_maker(engine=None):
    """Create a session maker for use inside a task."""
    if engine is None:
        engine = create_task_engine()
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
