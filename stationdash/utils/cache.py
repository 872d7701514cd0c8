"""
File-backed statistics cache.

The computed statistics tree is persisted as JSON with its ``updatedAt``
timestamp. Writes go to a temp file in the same directory followed by an
atomic rename, so readers never observe a half-written cache.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from stationdash.config import settings
from stationdash.schemas.statistics import StatisticsPayload
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

CACHE_FILENAME = "statistics.json"


class StatisticsCache:
    """
    JSON file cache for the statistics payload.

    Args:
        path: Explicit cache file; defaults to <DATA_STORE_DIR>/statistics.json
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path else None

    @property
    def path(self) -> Path:
        """Location of the cache file."""
        return self._path or Path(settings.DATA_STORE_DIR) / CACHE_FILENAME

    def read(self) -> Optional[StatisticsPayload]:
        """
        Load the cached payload.

        Returns:
            Cached payload, or None if missing or unreadable
        """
        path = self.path
        if not path.exists():
            logger.debug(f"Statistics cache MISS: {path}")
            return None
        try:
            return StatisticsPayload.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError) as e:
            logger.warning(f"Statistics cache at {path} is unreadable, ignoring it: {e}")
            return None

    def write(self, payload: StatisticsPayload) -> Path:
        """
        Persist a payload, replacing the previous cache atomically.

        Args:
            payload: Statistics to store

        Returns:
            Path of the cache file
        """
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".statistics-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload.model_dump_json(by_alias=True, indent=2))
            os.replace(tmp_name, path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(f"Statistics cache written: {path} ({len(payload.years)} years)")
        return path

    @staticmethod
    def age(payload: StatisticsPayload, now: Optional[datetime] = None) -> timedelta:
        """Age of a payload relative to now (UTC)."""
        now = now or datetime.now(timezone.utc)
        updated_at = payload.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return now - updated_at

    def is_fresh(
        self,
        payload: StatisticsPayload,
        max_age: timedelta,
        now: Optional[datetime] = None,
    ) -> bool:
        """True when the payload is younger than max_age."""
        return self.age(payload, now) < max_age


# Global cache instance
statistics_cache = StatisticsCache()
