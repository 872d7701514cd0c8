"""
Statistics router.

Endpoints serving the cached statistics tree, daily aggregates, chart
series, sensor channel statistics and the column discovery diagnostics.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from stationdash.ingest.files import month_bounds
from stationdash.schemas.statistics import (
    ChannelStatistics,
    DailyAggregate,
    SeriesPoint,
    StatisticsMeta,
    StatisticsPayload,
)
from stationdash.services import statistics as statistics_service
from stationdash.services.statistics import StatisticsUnavailableError
from stationdash.utils.cache import statistics_cache
from stationdash.utils.columns import parse_channel
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    tags=["statistics"],
    responses={
        503: {"description": "Statistics cannot be computed from the available data"},
    },
)

limiter = Limiter(key_func=get_remote_address)


def _unavailable(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


def _filter_year(payload: StatisticsPayload, year: Optional[int]) -> StatisticsPayload:
    if year is None:
        return payload
    years = [y for y in payload.years if y.year == year]
    if not years:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No statistics for year {year}")
    return payload.model_copy(update={"years": years})


@router.get("/statistics", response_model=StatisticsPayload, response_model_by_alias=True)
@limiter.limit("60/minute")
async def get_statistics(
    request: Request,
    year: Optional[int] = Query(None, description="Restrict to one year"),
):
    """
    Get the year/month statistics tree.

    Recomputes when the cache is older than STATISTICS_MAX_AGE_SECONDS. If
    the recompute fails but a cache exists, the stale cache is served.

    Rate limit: 60 requests per minute
    """
    try:
        payload = await statistics_service.update_statistics_if_needed()
    except StatisticsUnavailableError as e:
        cached = statistics_cache.read()
        if cached is None:
            raise _unavailable(e)
        logger.warning(f"Serving stale statistics from {cached.updated_at.isoformat()}: {e}")
        payload = cached
    return _filter_year(payload, year)


@router.post("/statistics/update", response_model=StatisticsPayload, response_model_by_alias=True)
@limiter.limit("5/minute")
async def force_update_statistics(request: Request):
    """
    Force a full statistics recompute.

    Rate limit: 5 requests per minute
    """
    try:
        return await statistics_service.update_statistics()
    except StatisticsUnavailableError as e:
        raise _unavailable(e)


@router.get("/statistics/daily", response_model=List[DailyAggregate], response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_daily_statistics(
    request: Request,
    start: Optional[date] = Query(None, description="First day (inclusive)"),
    end: Optional[date] = Query(None, description="Last day (inclusive)"),
):
    """
    Get daily aggregates for a date range.

    Rate limit: 30 requests per minute
    """
    if start and end and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
    try:
        return await statistics_service.compute_daily_aggregates(start, end)
    except StatisticsUnavailableError as e:
        raise _unavailable(e)


@router.get("/statistics/channels", response_model=ChannelStatistics, response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_channel_statistics(
    request: Request,
    ch: str = Query(..., description="Sensor channel, ch1..ch8"),
    month: Optional[str] = Query(None, description="Month as YYYYMM"),
    start: Optional[date] = Query(None, description="First day (inclusive)"),
    end: Optional[date] = Query(None, description="Last day (inclusive)"),
):
    """
    Get temperature and feels-like statistics of one extra sensor channel.

    The range is either a whole ``month`` or ``start``..``end``.

    Rate limit: 30 requests per minute
    """
    try:
        channel = parse_channel(ch)
        if month:
            start, end = month_bounds(month)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if start is None or end is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Give either month or start and end")
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")

    try:
        return await statistics_service.compute_channel_statistics(channel, start, end)
    except StatisticsUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/statistics/meta", response_model=StatisticsMeta, response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_statistics_meta(request: Request):
    """
    Get discovered columns, available months and skipped batches.

    Rate limit: 30 requests per minute
    """
    return await statistics_service.get_statistics_meta()


@router.get("/series", response_model=List[SeriesPoint], response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_series(
    request: Request,
    start: date = Query(..., description="First day (inclusive)"),
    end: date = Query(..., description="Last day (inclusive)"),
    resolution: str = Query("hour", pattern="^(hour|minute)$"),
):
    """
    Get chart series bucketed by hour or minute.

    Rate limit: 30 requests per minute
    """
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
    try:
        return await statistics_service.compute_series(start, end, resolution)
    except StatisticsUnavailableError as e:
        raise _unavailable(e)
