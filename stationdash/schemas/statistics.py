"""
Pydantic schemas for daily aggregates and the statistics tree.

The statistics payload is both the API response and the persisted cache
artifact, so its JSON shape (camelCase keys) is stable.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field

from stationdash.schemas.base import BaseSchema


class DailyAggregate(BaseSchema):
    """One calendar day of station readings. Missing sensors stay null."""

    day: date
    tmax: Optional[float] = None
    tmin: Optional[float] = None
    tavg: Optional[float] = None
    rain_day: Optional[float] = None
    wind_max: Optional[float] = None
    gust_max: Optional[float] = None
    wind_avg: Optional[float] = None
    feels_max: Optional[float] = None
    feels_min: Optional[float] = None


class ThresholdItem(BaseSchema):
    """A day that crossed a threshold, with the value that crossed it."""

    date: date
    value: float


class ThresholdList(BaseSchema):
    """Count and dates of threshold-crossing days."""

    count: int = 0
    items: List[ThresholdItem] = Field(default_factory=list)


class TemperatureStats(BaseSchema):
    """Temperature extremes, mean and threshold days."""

    max: Optional[float] = None
    max_date: Optional[date] = None
    min: Optional[float] = None
    min_date: Optional[date] = None
    avg: Optional[float] = None
    over30: ThresholdList = Field(default_factory=ThresholdList)
    over25: ThresholdList = Field(default_factory=ThresholdList)
    over20: ThresholdList = Field(default_factory=ThresholdList)
    under0: ThresholdList = Field(default_factory=ThresholdList)
    under10: ThresholdList = Field(default_factory=ThresholdList)


class PrecipitationStats(BaseSchema):
    """Rain totals, wettest/driest day and heavy-rain days."""

    total: Optional[float] = None
    max_day: Optional[float] = None
    max_day_date: Optional[date] = None
    min_day: Optional[float] = None
    min_day_date: Optional[date] = None
    rain_days: int = 0
    over20mm: ThresholdList = Field(default_factory=ThresholdList)
    over30mm: ThresholdList = Field(default_factory=ThresholdList)


class WindStats(BaseSchema):
    """Wind and gust maxima (km/h) and mean wind."""

    max: Optional[float] = None
    max_date: Optional[date] = None
    gust_max: Optional[float] = None
    gust_max_date: Optional[date] = None
    avg: Optional[float] = None


class FeelsLikeStats(BaseSchema):
    """Extremes of the feels-like temperature."""

    max: Optional[float] = None
    max_date: Optional[date] = None
    min: Optional[float] = None
    min_date: Optional[date] = None


class MonthStats(BaseSchema):
    """Rollup for one month of one year."""

    year: int
    month: int
    days: int
    temperature: TemperatureStats
    precipitation: PrecipitationStats
    wind: WindStats
    feels_like: Optional[FeelsLikeStats] = None


class YearStats(BaseSchema):
    """Rollup for one year with its months in calendar order."""

    year: int
    days: int
    temperature: TemperatureStats
    precipitation: PrecipitationStats
    wind: WindStats
    feels_like: Optional[FeelsLikeStats] = None
    months: List[MonthStats] = Field(default_factory=list)


class StatisticsPayload(BaseSchema):
    """Persisted statistics cache: update time plus years, newest first."""

    updated_at: datetime
    years: List[YearStats] = Field(default_factory=list)


class ChannelStatistics(BaseSchema):
    """Temperature statistics of one extra sensor channel over a range."""

    channel: str
    start: date
    end: date
    total_period_days: int
    columns: Dict[str, Optional[str]]
    days: List[DailyAggregate] = Field(default_factory=list)
    temperature: TemperatureStats
    feels_like: Optional[FeelsLikeStats] = None


class StatisticsMeta(BaseSchema):
    """Diagnostics about what the statistics were computed from."""

    months: List[str]
    columns: Dict[str, object]
    skipped: Dict[str, str] = Field(default_factory=dict)
    cache_updated_at: Optional[datetime] = None


class SeriesPoint(BaseSchema):
    """One bucket of a chart series."""

    ts: datetime
    temperature: Optional[float] = None
    dew_point: Optional[float] = None
    feels_like: Optional[float] = None
    rain: Optional[float] = None
    wind: Optional[float] = None
    gust: Optional[float] = None
