"""
Shared fixtures for the dashboard test suite.
"""

from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

import stationdash.models  # noqa: F401 - registers the tables on Base.metadata
from stationdash.columnar import reset_connection
from stationdash.config import settings
from stationdash.database import Base


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch):
    """
    Point raw data, store and log directories at a temp directory.

    Yields:
        Object with ``raw`` and ``store`` paths
    """
    raw = tmp_path / "raw"
    store = tmp_path / "store"
    raw.mkdir()
    store.mkdir()
    monkeypatch.setattr(settings, "RAW_DATA_DIR", str(raw))
    monkeypatch.setattr(settings, "DATA_STORE_DIR", str(store))
    monkeypatch.setattr(settings, "LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(settings, "DUCKDB_PATH", str(store / "columnar.duckdb"))
    reset_connection()

    yield SimpleNamespace(raw=raw, store=store)

    reset_connection()


@pytest.fixture
async def db(tmp_path: Path):
    """Fresh SQLite database with the forecast tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def write_csv():
    """Writer for raw exports shaped like the station logger's."""
    def write(path: Path, header, rows, sep: str = ",", encoding: str = "utf-8") -> Path:
        lines = [sep.join(header)] + [sep.join(str(c) for c in row) for row in rows]
        path.write_text("\n".join(lines) + "\n", encoding=encoding)
        return path
    return write
