"""
Raw export discovery.

The station logger writes one CSV per month and dataset kind, named
``YYYYMM<suffix>.csv`` (any letter case), e.g. ``202407A.CSV`` and
``202407Allsensors_A.CSV``.
"""

import calendar
import re
from datetime import date
from enum import Enum
from pathlib import Path
from typing import List, Optional, Pattern, Tuple

from stationdash.config import settings


class DatasetKind(str, Enum):
    """Kinds of monthly exports."""

    MAIN = "main"
    ALLSENSORS = "allsensors"


def file_suffix(kind: DatasetKind) -> str:
    """Filename suffix between the month key and the extension."""
    if kind == DatasetKind.ALLSENSORS:
        return settings.ALLSENSORS_FILE_SUFFIX
    return settings.MAIN_FILE_SUFFIX


def file_pattern(kind: DatasetKind) -> Pattern:
    """Case-insensitive pattern matching a monthly export of this kind."""
    return re.compile(rf"^(\d{{6}}){re.escape(file_suffix(kind))}\.csv$", re.IGNORECASE)


def raw_dir() -> Path:
    """Directory holding the raw CSV exports."""
    return Path(settings.RAW_DATA_DIR)


def month_key(value: date) -> str:
    """YYYYMM key of a date."""
    return f"{value.year:04d}{value.month:02d}"


def month_bounds(month: str) -> Tuple[date, date]:
    """
    First and last day of a ``YYYYMM`` month key.

    Raises:
        ValueError: Not a valid month key
    """
    if not re.fullmatch(r"\d{6}", month or ""):
        raise ValueError(f"Invalid month key '{month}', expected YYYYMM")
    year, mon = int(month[:4]), int(month[4:])
    first = date(year, mon, 1)
    return first, date(year, mon, calendar.monthrange(year, mon)[1])


def list_raw_files(
    kind: DatasetKind,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[str]:
    """
    List monthly export filenames, sorted by month.

    Args:
        kind: Dataset kind
        start: Earliest date whose month is wanted
        end: Latest date whose month is wanted

    Returns:
        Matching filenames; empty when the directory is missing or nothing matches
    """
    directory = raw_dir()
    if not directory.is_dir():
        return []

    pattern = file_pattern(kind)
    low = month_key(start) if start else None
    high = month_key(end) if end else None

    names = []
    for entry in directory.iterdir():
        match = pattern.match(entry.name)
        if not match or not entry.is_file():
            continue
        ym = match.group(1)
        if low and ym < low:
            continue
        if high and ym > high:
            continue
        names.append(entry.name)
    return sorted(names, key=lambda n: (n[:6], n))


def list_months(kind: DatasetKind = DatasetKind.MAIN) -> List[str]:
    """YYYYMM keys with an export of this kind, ascending."""
    return sorted({name[:6] for name in list_raw_files(kind)})


def find_raw_file(kind: DatasetKind, month: str) -> Optional[Path]:
    """
    Find the export for exactly one month.

    Args:
        kind: Dataset kind
        month: YYYYMM key

    Returns:
        Path to the CSV, or None when that month has no export
    """
    for name in list_raw_files(kind):
        if name[:6] == month:
            return raw_dir() / name
    return None


def resolve_raw_file(kind: DatasetKind, month: Optional[str] = None) -> Optional[Path]:
    """
    Find the export for a month, falling back to the most recent one.

    Args:
        kind: Dataset kind
        month: YYYYMM key, or None for "latest"

    Returns:
        Path to the CSV, or None when no export of this kind exists
    """
    if month:
        exact = find_raw_file(kind, month)
        if exact is not None:
            return exact
    names = list_raw_files(kind)
    if not names:
        return None
    return raw_dir() / names[-1]
