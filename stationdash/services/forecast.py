"""
Forecast storage and forecast accuracy analysis.

Once a day every provider's forecast is stored per station. The day after a
forecast day, the freshest stored forecast per source is compared with the
locally measured daily aggregate and absolute errors are recorded.
"""

import asyncio
import math
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from stationdash.config import settings
from stationdash.crud.forecast import forecast as forecast_crud
from stationdash.crud.forecast import forecast_analysis as analysis_crud
from stationdash.database import async_session
from stationdash.models.forecast import ForecastAnalysis
from stationdash.providers import PROVIDERS
from stationdash.providers.base import ForecastProvider
from stationdash.providers.stations import get_station
from stationdash.schemas.forecast import (
    ErrorSummary,
    ForecastDay,
    SourceAccuracy,
    StoreForecastResponse,
)
from stationdash.schemas.statistics import DailyAggregate
from stationdash.services.statistics import get_daily_aggregate
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

ActualLoader = Callable[[date], Awaitable[Optional[DailyAggregate]]]

# forecast attribute -> actual DailyAggregate attribute
METRICS = (
    ("temp_min", "tmin"),
    ("temp_max", "tmax"),
    ("precipitation", "rain_day"),
    ("wind_speed", "wind_avg"),
)


def forecast_timezone() -> ZoneInfo:
    """Timezone that defines forecast and storage days."""
    return ZoneInfo(settings.FORECAST_TIMEZONE)


def local_today(now: Optional[datetime] = None) -> date:
    """Today's date in the forecast timezone."""
    tz = forecast_timezone()
    return (now.astimezone(tz) if now else datetime.now(tz)).date()


def within_horizon(days: Iterable[ForecastDay], today: date, horizon: int) -> List[ForecastDay]:
    """Keep forecast days from today up to the configured horizon."""
    last = today + timedelta(days=horizon - 1)
    return [d for d in days if today <= d.date <= last]


def absolute_error(actual: Optional[float], predicted: Optional[float]) -> Optional[float]:
    """|actual - predicted|, or None when either side is missing."""
    if actual is None or predicted is None:
        return None
    return round(abs(actual - predicted), 2)


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.FORECAST_HTTP_TIMEOUT_SECONDS)


# ============================================================================
# STORAGE
# ============================================================================

async def store_forecast_for_station(
    db: AsyncSession,
    station_id: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    providers: Optional[List[ForecastProvider]] = None,
    storage_date: Optional[date] = None,
) -> StoreForecastResponse:
    """
    Fetch every provider's forecast for a station and upsert it.

    Providers run one after another with a short pause in between. A
    provider that fails is logged and reported; the others still run.
    Providers without their API key are skipped.

    Args:
        db: Database session
        station_id: Station identifier, defaults to FORECAST_STATION_ID
        client: HTTP client to reuse
        providers: Providers to query, defaults to all four
        storage_date: Storage day, defaults to today in FORECAST_TIMEZONE

    Returns:
        Per-source row counts, errors and skipped sources

    Raises:
        ForecastSourceError: Station coordinates cannot be resolved
        httpx.HTTPError: Station metadata request failed
    """
    station_id = station_id or settings.FORECAST_STATION_ID
    storage_date = storage_date or local_today()
    providers = PROVIDERS if providers is None else providers
    tz = forecast_timezone()

    own_client = client is None
    client = client or _http_client()
    result = StoreForecastResponse(station_id=station_id, storage_date=storage_date, stored={})
    try:
        station = await get_station(client, station_id)
        for index, provider in enumerate(providers):
            if not provider.is_configured():
                logger.info(f"Forecast source {provider.name}: no API key configured, skipping")
                result.skipped.append(provider.name)
                continue
            if index and settings.FORECAST_SOURCE_DELAY_SECONDS > 0:
                await asyncio.sleep(settings.FORECAST_SOURCE_DELAY_SECONDS)
            try:
                days = await provider.fetch(client, station, tz)
                days = within_horizon(days, storage_date, settings.FORECAST_DAYS)
                count = await forecast_crud.upsert_days(
                    db,
                    storage_date=storage_date,
                    station_id=station_id,
                    source=provider.name,
                    days=days,
                )
            except Exception as e:
                logger.exception(f"Forecast source {provider.name} failed for station {station_id}: {e}")
                await db.rollback()
                result.errors[provider.name] = str(e) or e.__class__.__name__
                continue
            result.stored[provider.name] = count
            logger.info(f"Stored {count} {provider.name} forecast days for station {station_id}")
    finally:
        if own_client:
            await client.aclose()
    return result


# ============================================================================
# ANALYSIS
# ============================================================================

async def _load_actual(day: date, loader: ActualLoader) -> Optional[DailyAggregate]:
    try:
        return await asyncio.wait_for(loader(day), timeout=settings.ANALYSIS_ACTUAL_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.error(
            f"Loading actuals for {day.isoformat()} timed out after "
            f"{settings.ANALYSIS_ACTUAL_TIMEOUT_SECONDS}s"
        )
        return None


async def calculate_and_store_daily_analysis(
    db: AsyncSession,
    station_id: Optional[str] = None,
    *,
    analysis_date: Optional[date] = None,
    actual_loader: Optional[ActualLoader] = None,
) -> Optional[List[dict]]:
    """
    Compare the freshest stored forecasts for a day with the measured day.

    The analysed day defaults to yesterday. For each source only the
    forecast with the latest storage date on or before that day is used.
    Re-running for the same day overwrites the earlier analysis rows.

    Args:
        db: Database session
        station_id: Station identifier, defaults to FORECAST_STATION_ID
        analysis_date: Day to analyse
        actual_loader: Coroutine returning the measured DailyAggregate

    Returns:
        Stored analysis rows, or None when no actuals are available
    """
    station_id = station_id or settings.FORECAST_STATION_ID
    day = analysis_date or local_today() - timedelta(days=1)
    loader = actual_loader or get_daily_aggregate

    actual = await _load_actual(day, loader)
    if actual is None:
        logger.warning(f"No measured data for {day.isoformat()}, skipping forecast analysis for station {station_id}")
        return None

    forecasts = await forecast_crud.get_latest_for_date(db, station_id=station_id, forecast_date=day)
    if not forecasts:
        logger.info(f"No stored forecasts for station {station_id} on {day.isoformat()}")
        return []

    rows = []
    for fc in forecasts:
        row = {
            "analysis_date": day,
            "station_id": station_id,
            "forecast_date": day,
            "source": fc.source,
            "storage_date": fc.storage_date,
        }
        for forecast_field, actual_field in METRICS:
            predicted = getattr(fc, forecast_field)
            measured = getattr(actual, actual_field)
            row[f"{forecast_field}_error"] = absolute_error(measured, predicted)
            row[f"actual_{forecast_field}"] = measured
            row[f"forecast_{forecast_field}"] = predicted
        rows.append(row)

    await analysis_crud.upsert_records(db, rows=rows)
    logger.info(f"Forecast analysis stored for station {station_id} on {day.isoformat()}: {len(rows)} sources")
    return rows


async def backfill_forecast_analysis(
    db: AsyncSession,
    station_id: Optional[str] = None,
    days: int = 30,
    *,
    actual_loader: Optional[ActualLoader] = None,
) -> Dict[str, int]:
    """
    Run the analysis for each of the last ``days`` days before today.

    Returns:
        Mapping of ISO day to number of analysis rows stored
    """
    today = local_today()
    summary: Dict[str, int] = {}
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        rows = await calculate_and_store_daily_analysis(
            db, station_id, analysis_date=day, actual_loader=actual_loader
        )
        summary[day.isoformat()] = len(rows or [])
    return summary


def _error_summary(errors: List[float]) -> ErrorSummary:
    if not errors:
        return ErrorSummary()
    return ErrorSummary(
        count=len(errors),
        mae=round(sum(errors) / len(errors), 2),
        rmse=round(math.sqrt(sum(e * e for e in errors) / len(errors)), 2),
    )


def summarize_accuracy(records: Iterable[ForecastAnalysis]) -> List[SourceAccuracy]:
    """
    Mean absolute error and RMSE per source and metric.

    Args:
        records: Analysis rows

    Returns:
        One SourceAccuracy per source, sorted by source name
    """
    by_source: Dict[str, List[ForecastAnalysis]] = {}
    for record in records:
        by_source.setdefault(record.source, []).append(record)

    summaries = []
    for source in sorted(by_source):
        rows = by_source[source]
        metrics = {
            name: _error_summary([
                getattr(r, f"{name}_error") for r in rows if getattr(r, f"{name}_error") is not None
            ])
            for name, _ in METRICS
        }
        summaries.append(SourceAccuracy(source=source, days=len(rows), **metrics))
    return summaries


async def cleanup_forecast_analysis(db: AsyncSession, before: date) -> int:
    """Delete analysis rows analysed before a cutoff day."""
    deleted = await analysis_crud.delete_before(db, cutoff=before)
    logger.info(f"Deleted {deleted} forecast analysis rows before {before.isoformat()}")
    return deleted


# ============================================================================
# DAILY JOB
# ============================================================================

class ForecastWindow:
    """
    Tracks whether today's forecast run is due.

    The run is due once the local clock has passed FORECAST_RUN_HOUR and
    no run has completed yet on that local day.
    """

    def __init__(self):
        self.last_run: Optional[date] = None

    def is_due(self, now: Optional[datetime] = None) -> bool:
        tz = forecast_timezone()
        local_now = now.astimezone(tz) if now else datetime.now(tz)
        if local_now.hour < settings.FORECAST_RUN_HOUR:
            return False
        return self.last_run != local_now.date()

    def mark_run(self, now: Optional[datetime] = None):
        self.last_run = local_today(now)


async def run_station_job(station_id: str) -> bool:
    """
    Store forecasts and analyse yesterday for one station, with retries.

    Returns:
        True when an attempt succeeded
    """
    attempts = settings.FORECAST_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            async with async_session() as db:
                await store_forecast_for_station(db, station_id)
                await calculate_and_store_daily_analysis(db, station_id)
            return True
        except Exception as e:
            logger.error(f"Forecast job for station {station_id} failed (attempt {attempt}/{attempts}): {e}")
            if attempt < attempts:
                await asyncio.sleep(settings.FORECAST_RETRY_DELAY_SECONDS)
    logger.error(f"Giving up on forecast job for station {station_id} after {attempts} attempts")
    return False


async def run_daily_forecast_job(station_ids: Optional[List[str]] = None) -> Dict[str, bool]:
    """
    Run the daily store + analysis for every configured station.

    Stations run one after another; a station that keeps failing does not
    stop the others.

    Returns:
        Mapping of station id to success
    """
    results = {}
    for index, station_id in enumerate(station_ids or settings.forecast_station_ids):
        if index and settings.FORECAST_SOURCE_DELAY_SECONDS > 0:
            await asyncio.sleep(settings.FORECAST_SOURCE_DELAY_SECONDS)
        results[station_id] = await run_station_job(station_id)
    return results


forecast_window = ForecastWindow()


async def forecast_window_tick(now: Optional[datetime] = None) -> bool:
    """
    Run the daily forecast job if today's window is open.

    Returns:
        True when the job ran
    """
    if not forecast_window.is_due(now):
        return False
    forecast_window.mark_run(now)
    logger.info("Daily forecast window open, running forecast store + analysis")
    await run_daily_forecast_job()
    return True
