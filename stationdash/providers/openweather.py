"""
OpenWeatherMap 5 day / 3 hour forecast.
"""

from datetime import date, datetime, tzinfo
from typing import Any, Dict, List, Optional

import httpx

from stationdash.config import settings
from stationdash.providers.base import (
    MS_TO_KMH,
    ForecastProvider,
    ForecastSourceError,
    as_dict,
    maximum,
    mean,
    minimum,
    scaled,
    total,
)
from stationdash.schemas.forecast import ForecastDay, StationLocation
from stationdash.utils.numeric import to_number

FORECAST_ENDPOINT = "https://api.openweathermap.org/data/2.5/forecast"


def _amount(block: Optional[dict]) -> Optional[float]:
    if not isinstance(block, dict):
        return None
    return to_number(block.get("3h"))


class OpenWeatherProvider(ForecastProvider):
    """3-hourly list items bucketed into local days."""

    name = "openweather"
    requires_key = True

    def api_key(self) -> Optional[str]:
        return settings.OPENWEATHER_API_KEY

    async def fetch(self, client: httpx.AsyncClient, station: StationLocation, tz: tzinfo) -> List[ForecastDay]:
        payload = await self._get_json(client, FORECAST_ENDPOINT, {
            "lat": station.lat,
            "lon": station.lon,
            "units": "metric",
            "appid": self.api_key(),
        })
        return self.parse(payload, tz)

    def parse(self, payload: Dict[str, Any], tz: tzinfo) -> List[ForecastDay]:
        items = payload.get("list")
        if not isinstance(items, list):
            raise ForecastSourceError("openweather: response has no 'list'")

        buckets: Dict[date, Dict[str, list]] = {}
        for item in items:
            if not isinstance(item, dict):
                continue
            stamp = to_number(item.get("dt"))
            if stamp is None:
                continue
            day = datetime.fromtimestamp(stamp, tz).date()
            b = buckets.setdefault(day, {"tmin": [], "tmax": [], "precip": [], "wind": [], "gust": []})
            main = as_dict(item.get("main"))
            wind = as_dict(item.get("wind"))
            b["tmin"].append(to_number(main.get("temp_min", main.get("temp"))))
            b["tmax"].append(to_number(main.get("temp_max", main.get("temp"))))

            rain, snow = _amount(item.get("rain")), _amount(item.get("snow"))
            b["precip"].append(None if rain is None and snow is None else (rain or 0.0) + (snow or 0.0))
            b["wind"].append(to_number(wind.get("speed")))
            b["gust"].append(to_number(wind.get("gust")))

        if not buckets:
            raise ForecastSourceError("openweather: no usable forecast items")

        days = []
        for day, b in sorted(buckets.items()):
            precipitation = total(b["precip"])
            days.append(ForecastDay(
                date=day,
                temp_min=minimum(b["tmin"]),
                temp_max=maximum(b["tmax"]),
                # no rain/snow block in any slot means a dry day
                precipitation=precipitation if precipitation is not None else 0.0,
                wind_speed=scaled(mean(b["wind"]), MS_TO_KMH),
                wind_gust=scaled(maximum(b["gust"]), MS_TO_KMH),
            ))
        return days
