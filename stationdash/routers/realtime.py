"""
Realtime router.

Endpoints exposing the realtime archiver's latest snapshot and the
running daily min/max per sensor channel.
"""

from fastapi import APIRouter, HTTPException, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from stationdash.schemas.realtime import DailyMinMax, RealtimeSnapshot
from stationdash.services.realtime import get_last_realtime, get_temp_minmax

router = APIRouter(
    tags=["realtime"],
    responses={
        404: {"description": "Nothing recorded yet"},
    },
)

limiter = Limiter(key_func=get_remote_address)


@router.get("/rt/last", response_model=RealtimeSnapshot, response_model_by_alias=True)
@limiter.limit("120/minute")
async def get_realtime_last(request: Request):
    """
    Get the latest device snapshot.

    Rate limit: 120 requests per minute
    """
    snapshot = get_last_realtime()
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No realtime data recorded yet")
    return snapshot


@router.get("/temp-minmax", response_model=DailyMinMax, response_model_by_alias=True)
@limiter.limit("120/minute")
async def get_daily_minmax(request: Request):
    """
    Get today's min/max per temperature and humidity channel.

    Rate limit: 120 requests per minute
    """
    state = get_temp_minmax()
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No min/max recorded yet")
    return state
