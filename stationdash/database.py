"""
Database engine and session management for the forecast tables.

The URL comes fully formed from ``settings.SQLALCHEMY_DATABASE_URI``
(``sqlite+aiosqlite`` by default, ``postgresql+asyncpg`` in deployments).
"""

from pathlib import Path
from typing import Any, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from stationdash.config import settings

database_url = make_url(settings.SQLALCHEMY_DATABASE_URI)


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DEBUG, "future": True}
    if database_url.get_backend_name() == "sqlite":
        # The scheduler writes from several tasks at once
        options["connect_args"] = {"timeout": 30}
    else:
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(database_url, **_engine_options())

async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for all database models
Base = declarative_base()


async def get_db() -> AsyncSession:
    """
    Dependency function to get database session.

    Commits when the request handler returns and rolls back if it raises.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables():
    """
    Create the forecast tables if they are missing.

    Called from the application lifespan and the forecast scripts. For
    PostgreSQL deployments prefer ``alembic upgrade head``.
    """
    if database_url.get_backend_name() == "sqlite":
        db_path = database_url.database
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        import stationdash.models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
