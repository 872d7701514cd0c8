"""
Columnar materialization of monthly CSV exports.

Each raw export becomes ``<DATA_STORE_DIR>/parquet/<kind>/<YYYYMM>.parquet``
holding every original column as text plus a canonical ``ts`` timestamp.
A batch is rebuilt only when its CSV is newer than the parquet file.
"""

import asyncio
import os
import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd

from stationdash.config import settings
from stationdash.ingest.files import DatasetKind, find_raw_file, list_raw_files
from stationdash.utils.columns import normalize_name
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

CSV_ENCODINGS = ["utf-8-sig", "cp1252", "latin-1"]

TIMESTAMP_ALIASES = (
    "time", "zeit", "datetime", "timestamp", "date", "datum", "dateutc",
    "uhrzeit", "zeitstempel", "datumzeit", "datumuhrzeit", "dateandtime",
)
TIMESTAMP_TOKENS = ("time", "zeit", "date", "datum")

# First match wins, so more specific patterns come first.
TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d.%m.%Y",
)


class TimestampColumnNotFoundError(ValueError):
    """A raw export has no recognizable timestamp column."""


@dataclass
class BatchSet:
    """Materialized batch paths plus months that could not be materialized."""

    paths: List[Path] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)


def batch_dir(kind: DatasetKind) -> Path:
    """Directory holding materialized batches of one kind."""
    return Path(settings.DATA_STORE_DIR) / "parquet" / kind.value


def batch_path(month: str, kind: DatasetKind) -> Path:
    """Location of the materialized batch for a month."""
    return batch_dir(kind) / f"{month}.parquet"


def detect_timestamp_column(columns: Sequence[str]) -> str:
    """
    Pick the timestamp column of a raw export.

    Exact normalized alias matches win, in alias order; otherwise the first
    column containing a time/date token is used.

    Args:
        columns: Raw header names

    Returns:
        Name of the timestamp column

    Raises:
        TimestampColumnNotFoundError: Nothing looks like a timestamp
    """
    normalized = {}
    for column in columns:
        normalized.setdefault(normalize_name(column), column)

    for alias in TIMESTAMP_ALIASES:
        if alias in normalized:
            return normalized[alias]

    for key, column in normalized.items():
        if any(token in key for token in TIMESTAMP_TOKENS):
            return column

    raise TimestampColumnNotFoundError(
        f"No timestamp column among {list(columns)}"
    )


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a raw timestamp cell using the first matching known format.

    Returns:
        Naive datetime, or None when no format matches
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def read_raw_csv(path: Path) -> pd.DataFrame:
    """
    Read a raw export with every cell kept as text.

    Tries the known encodings in order; the separator is sniffed.
    """
    last_error: Optional[Exception] = None
    for enc in CSV_ENCODINGS:
        try:
            return pd.read_csv(
                path,
                encoding=enc,
                sep=None,
                engine="python",
                dtype=str,
                keep_default_na=False,
            )
        except UnicodeDecodeError as e:
            last_error = e
    raise ValueError(f"Could not decode {path.name} with {CSV_ENCODINGS}") from last_error


def materialize(source: Path, target: Path) -> Path:
    """
    Convert one raw CSV into a zstd-compressed parquet batch.

    The file is written next to the target and renamed into place.

    Raises:
        TimestampColumnNotFoundError: The export has no timestamp column
    """
    df = read_raw_csv(source)
    ts_column = detect_timestamp_column(list(df.columns))

    timestamps = pd.to_datetime(df[ts_column].map(parse_timestamp), errors="coerce")
    unparsed = int(timestamps.isna().sum())
    if unparsed:
        logger.warning(f"{source.name}: {unparsed} of {len(df)} rows have an unparseable '{ts_column}'")

    if "ts" in df.columns:
        df = df.drop(columns=["ts"])
    df.insert(0, "ts", timestamps)

    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, suffix=".parquet.tmp")
    os.close(fd)
    try:
        df.to_parquet(tmp_name, engine="pyarrow", compression="zstd", index=False)
        os.replace(tmp_name, target)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Materialized {source.name} -> {target} ({len(df)} rows, ts from '{ts_column}')")
    return target


def ensure_batch_sync(month: str, kind: DatasetKind) -> Optional[Path]:
    """
    Make sure the materialized batch for a month is current.

    Args:
        month: YYYYMM key
        kind: Dataset kind

    Returns:
        Path to the parquet batch, or None when the month has no export

    Raises:
        TimestampColumnNotFoundError: The export has no timestamp column
    """
    source = find_raw_file(kind, month)
    if source is None:
        return None

    target = batch_path(month, kind)
    if target.exists() and target.stat().st_mtime >= source.stat().st_mtime:
        return target
    return materialize(source, target)


def ensure_batches_in_range_sync(
    kind: DatasetKind,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> BatchSet:
    """
    Materialize every month in a date range, skipping broken exports.

    A month whose export has no timestamp column is logged and recorded in
    ``BatchSet.skipped``; the remaining months are still returned.
    """
    batches = BatchSet()
    for name in list_raw_files(kind, start, end):
        month = name[:6]
        try:
            path = ensure_batch_sync(month, kind)
        except TimestampColumnNotFoundError as e:
            logger.error(f"Skipping {kind.value} batch {month}: {e}")
            batches.skipped[month] = str(e)
            continue
        if path is not None:
            batches.paths.append(path)
    return batches


async def ensure_batch(month: str, kind: DatasetKind) -> Optional[Path]:
    """Async wrapper around ensure_batch_sync."""
    return await asyncio.to_thread(ensure_batch_sync, month, kind)


async def ensure_batches_in_range(
    kind: DatasetKind,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> BatchSet:
    """Async wrapper around ensure_batches_in_range_sync."""
    return await asyncio.to_thread(ensure_batches_in_range_sync, kind, start, end)
