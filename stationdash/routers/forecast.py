"""
Forecast router.

Endpoints to trigger forecast storage and analysis and to read stored
forecasts and accuracy results.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from stationdash.config import settings
from stationdash.crud.forecast import forecast as forecast_crud
from stationdash.crud.forecast import forecast_analysis as analysis_crud
from stationdash.database import get_db
from stationdash.providers.base import ForecastSourceError
from stationdash.schemas.forecast import (
    BackfillRequest,
    ForecastAnalysisRecord,
    ForecastAnalysisResponse,
    ForecastRecord,
    StoreForecastRequest,
    StoreForecastResponse,
)
from stationdash.services import forecast as forecast_service
from stationdash.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/forecast",
    tags=["forecast"],
    responses={
        502: {"description": "Upstream station metadata unavailable"},
    },
)

limiter = Limiter(key_func=get_remote_address)


@router.post("/store", response_model=StoreForecastResponse, response_model_by_alias=True)
@limiter.limit("5/minute")
async def store_forecast(
    request: Request,
    body: Optional[StoreForecastRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Fetch and store today's forecasts from all providers for a station.

    Rate limit: 5 requests per minute
    """
    try:
        return await forecast_service.store_forecast_for_station(db, body.station_id if body else None)
    except ForecastSourceError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except httpx.HTTPError as e:
        logger.error(f"Station metadata lookup failed: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Station metadata unavailable")


@router.post("/analyze", response_model=List[ForecastAnalysisRecord], response_model_by_alias=True)
@limiter.limit("5/minute")
async def analyze_forecast(
    request: Request,
    body: Optional[StoreForecastRequest] = Body(None),
    analysis_date: Optional[date] = Query(None, description="Day to analyse, defaults to yesterday"),
    db: AsyncSession = Depends(get_db),
):
    """
    Compare stored forecasts with measured data for one day.

    Rate limit: 5 requests per minute
    """
    rows = await forecast_service.calculate_and_store_daily_analysis(
        db, body.station_id if body else None, analysis_date=analysis_date
    )
    if rows is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No measured data available for the analysis day",
        )
    return [ForecastAnalysisRecord(**row) for row in rows]


@router.post("/backfill", response_model=Dict[str, int])
@limiter.limit("2/minute")
async def backfill_analysis(
    request: Request,
    body: Optional[BackfillRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    """
    Run the analysis for each of the past N days.

    Rate limit: 2 requests per minute
    """
    body = body or BackfillRequest()
    return await forecast_service.backfill_forecast_analysis(db, body.station_id, body.days)


@router.get("/analysis", response_model=ForecastAnalysisResponse, response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_analysis(
    request: Request,
    station_id: Optional[str] = Query(None, description="Station id, defaults to the configured one"),
    days: int = Query(30, ge=1, le=365, description="Look-back window in days"),
    db: AsyncSession = Depends(get_db),
):
    """
    Get analysis rows and per-source accuracy for a station.

    Rate limit: 30 requests per minute
    """
    station_id = station_id or settings.FORECAST_STATION_ID
    since = forecast_service.local_today() - timedelta(days=days)
    records = await analysis_crud.get_for_station(db, station_id=station_id, since=since)
    return ForecastAnalysisResponse(
        station_id=station_id,
        records=[ForecastAnalysisRecord.model_validate(r) for r in records],
        accuracy=forecast_service.summarize_accuracy(records),
    )


@router.get("/stored", response_model=List[ForecastRecord], response_model_by_alias=True)
@limiter.limit("30/minute")
async def get_stored_forecasts(
    request: Request,
    station_id: Optional[str] = Query(None, description="Station id, defaults to the configured one"),
    storage_date: Optional[date] = Query(None, description="Storage day, defaults to today"),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the forecasts stored for a station on one day.

    Rate limit: 30 requests per minute
    """
    rows = await forecast_crud.get_by_storage_date(
        db,
        station_id=station_id or settings.FORECAST_STATION_ID,
        storage_date=storage_date or forecast_service.local_today(),
    )
    return [ForecastRecord.model_validate(r) for r in rows]
