"""
Forecast and forecast analysis models.

A forecast row is what one provider predicted for one day, as stored on a
given storage date. An analysis row compares the freshest stored forecast
for a day against the locally measured actuals for that day.
"""

from sqlalchemy import Column, Date, Float, Index, String

from stationdash.models.base import TimestampedModel

FORECAST_SOURCES = ("geosphere", "openweather", "meteoblue", "openmeteo")


class Forecast(TimestampedModel):
    """Daily forecast from one provider, keyed by the day it was stored."""

    __tablename__ = "forecasts"

    storage_date = Column(Date, primary_key=True)
    station_id = Column(String(32), primary_key=True)
    forecast_date = Column(Date, primary_key=True)
    source = Column(String(32), primary_key=True)

    temp_min = Column(Float, nullable=True)
    temp_max = Column(Float, nullable=True)
    precipitation = Column(Float, nullable=True)
    wind_speed = Column(Float, nullable=True)
    wind_gust = Column(Float, nullable=True)

    __table_args__ = (
        Index("ix_forecasts_station_forecast_date", "station_id", "forecast_date"),
    )


class ForecastAnalysis(TimestampedModel):
    """Absolute forecast error per metric for one source and one day."""

    __tablename__ = "forecast_analysis"

    analysis_date = Column(Date, primary_key=True)
    station_id = Column(String(32), primary_key=True)
    forecast_date = Column(Date, primary_key=True)
    source = Column(String(32), primary_key=True)

    storage_date = Column(Date, nullable=True)

    temp_min_error = Column(Float, nullable=True)
    temp_max_error = Column(Float, nullable=True)
    precipitation_error = Column(Float, nullable=True)
    wind_speed_error = Column(Float, nullable=True)

    actual_temp_min = Column(Float, nullable=True)
    actual_temp_max = Column(Float, nullable=True)
    actual_precipitation = Column(Float, nullable=True)
    actual_wind_speed = Column(Float, nullable=True)

    forecast_temp_min = Column(Float, nullable=True)
    forecast_temp_max = Column(Float, nullable=True)
    forecast_precipitation = Column(Float, nullable=True)
    forecast_wind_speed = Column(Float, nullable=True)

    __table_args__ = (
        Index("ix_forecast_analysis_station_date", "station_id", "forecast_date"),
    )
