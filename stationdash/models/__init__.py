# Database models package

from stationdash.models.base import TimestampedModel
from stationdash.models.forecast import FORECAST_SOURCES, Forecast, ForecastAnalysis

__all__ = [
    "TimestampedModel",
    "Forecast",
    "ForecastAnalysis",
    "FORECAST_SOURCES",
]
