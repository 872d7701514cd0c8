"""
Statistics service.

Runs the pipeline raw CSV -> parquet batches -> column discovery ->
daily aggregation -> statistics tree, and manages the persisted cache.
Blocking columnar work runs in worker threads so the event loop stays free.
"""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from stationdash import columnar
from stationdash.config import settings
from stationdash.ingest.files import DatasetKind, list_months
from stationdash.ingest.materializer import BatchSet, ensure_batches_in_range_sync
from stationdash.schemas.statistics import (
    ChannelStatistics,
    DailyAggregate,
    SeriesPoint,
    StatisticsMeta,
    StatisticsPayload,
)
from stationdash.utils.aggregation import (
    aggregate_daily_rows,
    aggregate_series,
    build_channel_statistics,
    build_statistics_payload,
)
from stationdash.utils.cache import statistics_cache
from stationdash.utils.columns import (
    ChannelColumnNotFoundError,
    ColumnRoleMap,
    TemperatureColumnNotFoundError,
    discover_channel_columns,
    discover_columns,
)
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)


class StatisticsUnavailableError(RuntimeError):
    """Statistics cannot be computed from the available station data."""


def _bounds(start: Optional[date], end: Optional[date]):
    start_ts = datetime.combine(start, time.min) if start else None
    end_ts = datetime.combine(end + timedelta(days=1), time.min) if end else None
    return start_ts, end_ts


def _load_batches(
    start: Optional[date],
    end: Optional[date],
    kind: DatasetKind = DatasetKind.MAIN,
) -> BatchSet:
    batches = ensure_batches_in_range_sync(kind, start, end)
    if not batches.paths:
        raise StatisticsUnavailableError(
            f"No {kind.value} data batches available (skipped: {sorted(batches.skipped) or 'none'})"
        )
    return batches


def discover_batch_columns(batches: BatchSet) -> ColumnRoleMap:
    """Discover semantic columns across a set of materialized batches."""
    return discover_columns(columnar.describe_columns(batches.paths))


def compute_daily_aggregates_sync(
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[DailyAggregate]:
    """
    Materialize the range and aggregate it into daily rows.

    Raises:
        StatisticsUnavailableError: No batches or no temperature column
    """
    batches = _load_batches(start, end)
    role_map = discover_batch_columns(batches)
    rows = columnar.read_rows(batches.paths, *_bounds(start, end))
    try:
        return aggregate_daily_rows(rows, role_map)
    except TemperatureColumnNotFoundError as e:
        raise StatisticsUnavailableError(str(e)) from e


def compute_series_sync(
    start: Optional[date],
    end: Optional[date],
    resolution: str = "hour",
) -> List[SeriesPoint]:
    """Chart series for a date range at hour or minute resolution."""
    batches = _load_batches(start, end)
    role_map = discover_batch_columns(batches)
    rows = columnar.read_rows(batches.paths, *_bounds(start, end))
    return aggregate_series(rows, role_map, resolution)


def compute_channel_statistics_sync(channel: int, start: date, end: date) -> ChannelStatistics:
    """
    Temperature statistics of one extra sensor channel from the all-sensors batches.

    Raises:
        StatisticsUnavailableError: No batches in range or no column for the channel
    """
    batches = _load_batches(start, end, DatasetKind.ALLSENSORS)
    try:
        columns = discover_channel_columns(columnar.describe_columns(batches.paths), channel)
    except ChannelColumnNotFoundError as e:
        raise StatisticsUnavailableError(str(e)) from e
    rows = columnar.read_rows(batches.paths, *_bounds(start, end))
    stats = build_channel_statistics(rows, columns, start, end)
    logger.info(f"Channel ch{channel} statistics: {len(stats.days)} days from {start} to {end}")
    return stats


def build_statistics() -> StatisticsPayload:
    """Full recompute of the statistics tree across every available month."""
    days = compute_daily_aggregates_sync()
    payload = build_statistics_payload(days)
    logger.info(f"Statistics computed: {len(days)} days in {len(payload.years)} years")
    return payload


async def compute_daily_aggregates(
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[DailyAggregate]:
    """Async wrapper around compute_daily_aggregates_sync."""
    return await asyncio.to_thread(compute_daily_aggregates_sync, start, end)


async def compute_series(
    start: Optional[date],
    end: Optional[date],
    resolution: str = "hour",
) -> List[SeriesPoint]:
    """Async wrapper around compute_series_sync."""
    return await asyncio.to_thread(compute_series_sync, start, end, resolution)


async def compute_channel_statistics(channel: int, start: date, end: date) -> ChannelStatistics:
    """Async wrapper around compute_channel_statistics_sync."""
    return await asyncio.to_thread(compute_channel_statistics_sync, channel, start, end)


async def compute_statistics() -> StatisticsPayload:
    """Recompute the statistics tree without touching the cache."""
    return await asyncio.to_thread(build_statistics)


async def update_statistics() -> StatisticsPayload:
    """
    Force a full recompute and persist it.

    On failure the previous cache file is left untouched.

    Returns:
        Freshly computed payload
    """
    payload = await compute_statistics()
    await asyncio.to_thread(statistics_cache.write, payload)
    return payload


async def update_statistics_if_needed(
    max_age: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> StatisticsPayload:
    """
    Return the cached statistics, recomputing only when stale.

    Args:
        max_age: Maximum cache age, defaults to STATISTICS_MAX_AGE_SECONDS
        now: Reference time (UTC), defaults to the current time

    Returns:
        Cached or freshly computed payload
    """
    if max_age is None:
        max_age = timedelta(seconds=settings.STATISTICS_MAX_AGE_SECONDS)

    cached = statistics_cache.read()
    if cached is not None and statistics_cache.is_fresh(cached, max_age, now):
        logger.debug(f"Statistics cache fresh (updated {cached.updated_at.isoformat()})")
        return cached

    logger.info("Statistics cache missing or stale, recomputing")
    return await update_statistics()


async def get_daily_aggregate(day: date) -> Optional[DailyAggregate]:
    """
    Locally measured aggregate for one day.

    Returns:
        DailyAggregate, or None when the day has no readings
    """
    try:
        days = await compute_daily_aggregates(day, day)
    except StatisticsUnavailableError as e:
        logger.warning(f"No actuals for {day.isoformat()}: {e}")
        return None
    for d in days:
        if d.day == day:
            return d
    return None


def get_statistics_meta_sync() -> StatisticsMeta:
    """Column discovery result, months and skipped batches for diagnostics."""
    batches = ensure_batches_in_range_sync(DatasetKind.MAIN)
    role_map = discover_batch_columns(batches) if batches.paths else ColumnRoleMap()
    cached = statistics_cache.read()
    return StatisticsMeta(
        months=list_months(DatasetKind.MAIN),
        columns=role_map.to_dict(),
        skipped=batches.skipped,
        cache_updated_at=cached.updated_at if cached else None,
    )


async def get_statistics_meta() -> StatisticsMeta:
    """Async wrapper around get_statistics_meta_sync."""
    return await asyncio.to_thread(get_statistics_meta_sync)
