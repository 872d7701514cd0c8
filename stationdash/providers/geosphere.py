"""
Geosphere Austria ensemble forecast (hourly median members).
"""

import math
from datetime import date, tzinfo
from typing import Any, Dict, List

import httpx

from stationdash.providers.base import (
    MS_TO_KMH,
    ForecastProvider,
    ForecastSourceError,
    as_dict,
    maximum,
    mean,
    minimum,
    parse_iso_datetime,
    series_value,
    total,
)
from stationdash.schemas.forecast import ForecastDay, StationLocation

FORECAST_ENDPOINT = "https://dataset.api.hub.geosphere.at/v1/timeseries/forecast/ensemble-v1-1h-2500m"
PARAMETERS = ("t2m_p50", "rr_p50", "u10m_p50", "v10m_p50")


class GeosphereProvider(ForecastProvider):
    """Hourly ensemble medians bucketed into local days."""

    name = "geosphere"

    async def fetch(self, client: httpx.AsyncClient, station: StationLocation, tz: tzinfo) -> List[ForecastDay]:
        payload = await self._get_json(client, FORECAST_ENDPOINT, {
            "parameters": ",".join(PARAMETERS),
            "lat_lon": f"{station.lat},{station.lon}",
        })
        return self.parse(payload, tz)

    def parse(self, payload: Dict[str, Any], tz: tzinfo) -> List[ForecastDay]:
        timestamps = payload.get("timestamps")
        features = payload.get("features")
        if not isinstance(timestamps, list) or not isinstance(features, list) or not features:
            raise ForecastSourceError("geosphere: response has no timestamps or features")

        parameters = as_dict(as_dict(as_dict(features[0]).get("properties")).get("parameters"))
        series = {name: as_dict(parameters.get(name)).get("data") or [] for name in PARAMETERS}

        hours: Dict[date, Dict[str, list]] = {}
        for i, stamp in enumerate(timestamps):
            day = parse_iso_datetime(stamp, tz).date()
            bucket = hours.setdefault(day, {"temp": [], "rain": [], "wind": []})
            bucket["temp"].append(series_value(series["t2m_p50"], i))
            bucket["rain"].append(series_value(series["rr_p50"], i))
            u = series_value(series["u10m_p50"], i)
            v = series_value(series["v10m_p50"], i)
            bucket["wind"].append(math.sqrt(u * u + v * v) * MS_TO_KMH if u is not None and v is not None else None)

        return [
            ForecastDay(
                date=day,
                temp_min=minimum(b["temp"]),
                temp_max=maximum(b["temp"]),
                precipitation=total(b["rain"]),
                wind_speed=mean(b["wind"]),
                wind_gust=None,
            )
            for day, b in sorted(hours.items())
        ]
