"""
Database access for task workers.

Dramatiq actors run their coroutines on per-thread event loops, so the
worker engine keeps no pool: a pooled asyncpg connection must never be
reused from another loop. The sweep opens one short session per
schedule on top of this engine.
"""
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from settlement.config.settings import settings

# Shown in pg_stat_activity next to sweep queries
WORKER_APPLICATION_NAME = "settlement-worker"


def create_task_engine() -> AsyncEngine:
    """Create the worker engine (NullPool, tagged connections)."""
    return create_async_engine(
        settings.async_database_url,
        echo=settings.database_echo,
        poolclass=NullPool,
        connect_args={
            "server_settings": {"application_name": WORKER_APPLICATION_NAME}
        },
    )


def create_task_session_maker(
    engine: AsyncEngine | None = None,
) -> async_sessionmaker[AsyncSession]:
    """
    Create a session maker for settlement tasks.

    Objects stay usable after commit: the sweep commits once per day and
    keeps reading the same schedule.
    """
    if engine is None:
        engine = create_task_engine()
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def dispose_task_engine() -> None:
    """Close the worker engine (end of a script or worker shutdown)."""
    await task_engine.dispose()


task_engine = create_task_engine()
task_session_maker = create_task_session_maker(task_engine)
