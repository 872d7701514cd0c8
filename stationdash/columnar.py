"""
Columnar store access.

DuckDB reads the materialized parquet batches. A single process-wide
connection is created lazily and reused; callers always go through
``columnar_session`` which hands out a per-call cursor and releases it,
so concurrent queries never share cursor state.
"""

import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import duckdb

from stationdash.config import settings
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]

_connection: Optional[duckdb.DuckDBPyConnection] = None
_connection_lock = threading.Lock()


def get_connection() -> duckdb.DuckDBPyConnection:
    """Return the shared DuckDB connection, creating it on first use."""
    global _connection
    if _connection is None:
        with _connection_lock:
            if _connection is None:
                database = settings.DUCKDB_PATH
                if database != ":memory:":
                    Path(database).parent.mkdir(parents=True, exist_ok=True)
                _connection = duckdb.connect(database=database)
                _connection.execute(f"SET threads TO {int(settings.DUCKDB_THREADS)}")
                logger.info(f"DuckDB connection opened ({database})")
    return _connection


def reset_connection():
    """Close the shared connection so the next call reopens it."""
    global _connection
    with _connection_lock:
        if _connection is not None:
            _connection.close()
            _connection = None


@contextmanager
def columnar_session() -> Iterator[duckdb.DuckDBPyConnection]:
    """
    Acquire a cursor on the shared connection for the duration of a block.

    Yields:
        DuckDB cursor, closed on exit
    """
    cursor = get_connection().cursor()
    try:
        yield cursor
    finally:
        cursor.close()


def _parquet_source(paths: Sequence[PathLike]) -> str:
    quoted = ", ".join(
        "'" + Path(p).as_posix().replace("'", "''") + "'" for p in paths
    )
    return f"read_parquet([{quoted}], union_by_name=true)"


def describe_columns(paths: Sequence[PathLike]) -> List[str]:
    """
    List the union of column names across parquet batches.

    Args:
        paths: Materialized batch files

    Returns:
        Column names in schema order (empty when no paths given)
    """
    if not paths:
        return []
    with columnar_session() as cur:
        rows = cur.execute(f"DESCRIBE SELECT * FROM {_parquet_source(paths)}").fetchall()
    return [row[0] for row in rows]


def read_rows(
    paths: Sequence[PathLike],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Read readings from parquet batches as dictionaries, ordered by time.

    Rows without a parsed timestamp are dropped.

    Args:
        paths: Materialized batch files
        start: Inclusive lower bound on ts
        end: Exclusive upper bound on ts

    Returns:
        List of column-name to value dictionaries
    """
    if not paths:
        return []

    query = f"SELECT * FROM {_parquet_source(paths)} WHERE ts IS NOT NULL"
    params: List[Any] = []
    if start is not None:
        query += " AND ts >= ?"
        params.append(start)
    if end is not None:
        query += " AND ts < ?"
        params.append(end)
    query += " ORDER BY ts"

    with columnar_session() as cur:
        result = cur.execute(query, params)
        names = [d[0] for d in result.description]
        return [dict(zip(names, row)) for row in result.fetchall()]
