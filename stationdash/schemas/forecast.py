"""
Pydantic schemas for forecast storage and forecast accuracy analysis.
"""

from datetime import date
from typing import Dict, List, Optional

from pydantic import Field

from stationdash.schemas.base import BaseSchema


class StationLocation(BaseSchema):
    """Coordinates of a forecast station."""

    id: str
    name: Optional[str] = None
    lat: float
    lon: float
    altitude: Optional[float] = None


class ForecastDay(BaseSchema):
    """Provider forecast normalized to one calendar day."""

    date: date
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_gust: Optional[float] = None


class ForecastRecord(BaseSchema):
    """Stored forecast row."""

    storage_date: date
    station_id: str
    forecast_date: date
    source: str
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_gust: Optional[float] = None


class ForecastAnalysisRecord(BaseSchema):
    """Stored comparison of a forecast against the measured day."""

    analysis_date: date
    station_id: str
    forecast_date: date
    source: str
    storage_date: Optional[date] = None

    temp_min_error: Optional[float] = None
    temp_max_error: Optional[float] = None
    precipitation_error: Optional[float] = None
    wind_speed_error: Optional[float] = None

    actual_temp_min: Optional[float] = None
    actual_temp_max: Optional[float] = None
    actual_precipitation: Optional[float] = None
    actual_wind_speed: Optional[float] = None

    forecast_temp_min: Optional[float] = None
    forecast_temp_max: Optional[float] = None
    forecast_precipitation: Optional[float] = None
    forecast_wind_speed: Optional[float] = None


class ErrorSummary(BaseSchema):
    """Mean absolute and root mean square error of one metric."""

    count: int = 0
    mae: Optional[float] = None
    rmse: Optional[float] = None


class SourceAccuracy(BaseSchema):
    """Accuracy of one source across all analysed days."""

    source: str
    days: int
    temp_min: ErrorSummary
    temp_max: ErrorSummary
    precipitation: ErrorSummary
    wind_speed: ErrorSummary


class ForecastAnalysisResponse(BaseSchema):
    """Analysis rows for a station plus accuracy per source."""

    station_id: str
    records: List[ForecastAnalysisRecord]
    accuracy: List[SourceAccuracy]


class StoreForecastRequest(BaseSchema):
    """Body for manual forecast store / analysis triggers."""

    station_id: Optional[str] = None


class BackfillRequest(StoreForecastRequest):
    """Body for analysis backfill."""

    days: int = Field(default=30, ge=1, le=365)


class StoreForecastResponse(BaseSchema):
    """Per-source outcome of a store run."""

    station_id: str
    storage_date: date
    stored: Dict[str, int]
    errors: Dict[str, str] = Field(default_factory=dict)
    skipped: List[str] = Field(default_factory=list)
