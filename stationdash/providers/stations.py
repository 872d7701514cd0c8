"""
Station coordinate lookup via the Geosphere TAWES station metadata.
"""

import time
from typing import Dict, List, Optional

import httpx

from stationdash.providers.base import ForecastSourceError
from stationdash.schemas.forecast import StationLocation
from stationdash.utils.logging_config import get_logger
from stationdash.utils.numeric import to_number

logger = get_logger(__name__)

TAWES_STATIONS_ENDPOINT = "https://dataset.api.hub.geosphere.at/v1/station/current/tawes-v1-10min/metadata"
STATIONS_CACHE_SECONDS = 5 * 60

_stations_cache: Dict[str, StationLocation] = {}
_stations_cache_time = 0.0


def parse_stations(payload: dict) -> Dict[str, StationLocation]:
    """Map station id to location from a TAWES metadata response."""
    stations: Dict[str, StationLocation] = {}
    for raw in payload.get("stations") or []:
        if not isinstance(raw, dict):
            continue
        lat, lon = to_number(raw.get("lat")), to_number(raw.get("lon"))
        if raw.get("id") is None or lat is None or lon is None:
            continue
        station_id = str(raw["id"])
        stations[station_id] = StationLocation(
            id=station_id,
            name=raw.get("name"),
            lat=lat,
            lon=lon,
            altitude=to_number(raw.get("altitude")),
        )
    return stations


async def list_stations(client: httpx.AsyncClient) -> List[StationLocation]:
    """All TAWES stations, cached for a few minutes."""
    global _stations_cache, _stations_cache_time
    now = time.monotonic()
    if _stations_cache and now - _stations_cache_time < STATIONS_CACHE_SECONDS:
        return list(_stations_cache.values())

    response = await client.get(TAWES_STATIONS_ENDPOINT)
    response.raise_for_status()
    _stations_cache = parse_stations(response.json())
    _stations_cache_time = now
    logger.info(f"Loaded {len(_stations_cache)} TAWES stations")
    return list(_stations_cache.values())


async def get_station(client: httpx.AsyncClient, station_id: str) -> StationLocation:
    """
    Resolve a station id to its coordinates.

    Raises:
        ForecastSourceError: Unknown station id
    """
    await list_stations(client)
    station: Optional[StationLocation] = _stations_cache.get(str(station_id))
    if station is None:
        raise ForecastSourceError(f"Station {station_id} not found in TAWES metadata")
    return station


def clear_station_cache():
    """Drop cached station metadata."""
    global _stations_cache, _stations_cache_time
    _stations_cache = {}
    _stations_cache_time = 0.0
