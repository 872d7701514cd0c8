"""
Open-Meteo DWD ICON daily forecast.
"""

from datetime import tzinfo
from typing import Any, Dict, List

import httpx

from stationdash.config import settings
from stationdash.providers.base import ForecastProvider, ForecastSourceError, parse_day, series_value
from stationdash.schemas.forecast import ForecastDay, StationLocation

FORECAST_ENDPOINT = "https://api.open-meteo.com/v1/dwd-icon"
DAILY_FIELDS = (
    "temperature_2m_max",
    "temperature_2m_min",
    "precipitation_sum",
    "windspeed_10m_max",
    "windgusts_10m_max",
    "weathercode",
)


class OpenMeteoProvider(ForecastProvider):
    """Daily arrays under ``daily`` aligned to its ``time`` array."""

    name = "openmeteo"

    async def fetch(self, client: httpx.AsyncClient, station: StationLocation, tz: tzinfo) -> List[ForecastDay]:
        payload = await self._get_json(client, FORECAST_ENDPOINT, {
            "latitude": station.lat,
            "longitude": station.lon,
            "daily": ",".join(DAILY_FIELDS),
            "timezone": settings.FORECAST_TIMEZONE,
            "forecast_days": settings.FORECAST_DAYS,
        })
        return self.parse(payload, tz)

    def parse(self, payload: Dict[str, Any], tz: tzinfo) -> List[ForecastDay]:
        daily = payload.get("daily")
        if not isinstance(daily, dict) or not daily.get("time"):
            raise ForecastSourceError("openmeteo: response has no 'daily.time'")

        return [
            ForecastDay(
                date=parse_day(stamp),
                temp_min=series_value(daily.get("temperature_2m_min"), i),
                temp_max=series_value(daily.get("temperature_2m_max"), i),
                precipitation=series_value(daily.get("precipitation_sum"), i),
                wind_speed=series_value(daily.get("windspeed_10m_max"), i),
                wind_gust=series_value(daily.get("windgusts_10m_max"), i),
            )
            for i, stamp in enumerate(daily["time"])
        ]
