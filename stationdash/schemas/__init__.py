# Pydantic schemas package

from stationdash.schemas.base import BaseSchema
from stationdash.schemas.statistics import (
    DailyAggregate, ThresholdItem, ThresholdList,
    TemperatureStats, PrecipitationStats, WindStats,
    FeelsLikeStats, MonthStats, YearStats, StatisticsPayload, ChannelStatistics,
    StatisticsMeta, SeriesPoint,
)
from stationdash.schemas.forecast import (
    StationLocation, ForecastDay, ForecastRecord, ForecastAnalysisRecord,
    ErrorSummary, SourceAccuracy, ForecastAnalysisResponse,
    StoreForecastRequest, BackfillRequest, StoreForecastResponse,
)
from stationdash.schemas.realtime import RealtimeSnapshot, MinMaxEntry, DailyMinMax

__all__ = [
    # Base schemas
    "BaseSchema",

    # Statistics schemas
    "DailyAggregate", "ThresholdItem", "ThresholdList",
    "TemperatureStats", "PrecipitationStats", "WindStats",
    "FeelsLikeStats", "MonthStats", "YearStats", "StatisticsPayload", "ChannelStatistics",
    "StatisticsMeta", "SeriesPoint",

    # Forecast schemas
    "StationLocation", "ForecastDay", "ForecastRecord", "ForecastAnalysisRecord",
    "ErrorSummary", "SourceAccuracy", "ForecastAnalysisResponse",
    "StoreForecastRequest", "BackfillRequest", "StoreForecastResponse",

    # Realtime schemas
    "RealtimeSnapshot", "MinMaxEntry", "DailyMinMax",
]
