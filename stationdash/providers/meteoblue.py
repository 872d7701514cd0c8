"""
Meteoblue basic-day package.
"""

from datetime import tzinfo
from typing import Any, Dict, List, Optional

import httpx

from stationdash.config import settings
from stationdash.providers.base import ForecastProvider, ForecastSourceError, parse_day, series_value
from stationdash.schemas.forecast import ForecastDay, StationLocation

FORECAST_ENDPOINT = "https://my.meteoblue.com/packages/basic-day"


class MeteoblueProvider(ForecastProvider):
    """Daily arrays under ``data_day`` aligned to its ``time`` array."""

    name = "meteoblue"
    requires_key = True

    def api_key(self) -> Optional[str]:
        return settings.METEOBLUE_API_KEY

    async def fetch(self, client: httpx.AsyncClient, station: StationLocation, tz: tzinfo) -> List[ForecastDay]:
        payload = await self._get_json(client, FORECAST_ENDPOINT, {
            "apikey": self.api_key(),
            "lat": station.lat,
            "lon": station.lon,
            "asl": int(station.altitude) if station.altitude is not None else 500,
            "format": "json",
            "temperature": "C",
            "windspeed": "kmh",
            "precipitationamount": "mm",
            "timeformat": "iso8601",
        })
        return self.parse(payload, tz)

    def parse(self, payload: Dict[str, Any], tz: tzinfo) -> List[ForecastDay]:
        block = payload.get("data_day")
        if not isinstance(block, dict) or not block.get("time"):
            raise ForecastSourceError("meteoblue: response has no 'data_day.time'")

        return [
            ForecastDay(
                date=parse_day(stamp),
                temp_min=series_value(block.get("temperature_min"), i),
                temp_max=series_value(block.get("temperature_max"), i),
                precipitation=series_value(block.get("precipitation"), i),
                wind_speed=series_value(block.get("windspeed_mean"), i),
                wind_gust=series_value(block.get("windspeed_max"), i),
            )
            for i, stamp in enumerate(block["time"])
        ]
