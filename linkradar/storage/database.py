"""Async SQLAlchemy engine and session factory."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_and_sessionmaker(
    database_url: str, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create an async engine plus a session factory bound to it.

    SQLite URLs get foreign-key enforcement on every connection; in-memory SQLite
    additionally shares one connection through a StaticPool so every session sees
    the same database.

    Args:
        database_url: SQLAlchemy async URL (e.g. ``sqlite+aiosqlite:///./linkradar.db``)
        echo: Log emitted SQL

    Returns:
        Tuple of (engine, session factory)
    """
    is_sqlite = database_url.startswith("sqlite")
    engine_kwargs: dict = {"echo": echo}

    if is_sqlite:
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.endswith("sqlite+aiosqlite://"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_recycle"] = 3600

    engine = create_async_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    # Registers the mapped classes on Base.metadata
    from linkradar.storage import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
