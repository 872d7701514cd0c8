"""
Common pieces of the forecast provider clients.

Each provider fetches its own response shape and normalizes it to daily
ForecastDay rows. Parsing is kept separate from fetching so that it can be
exercised with canned payloads.
"""

from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from stationdash.schemas.forecast import ForecastDay, StationLocation
from stationdash.utils.numeric import to_number

MS_TO_KMH = 3.6


class ForecastSourceError(RuntimeError):
    """A provider returned something that cannot be turned into forecasts."""


class ForecastProvider:
    """
    Base class for forecast providers.

    Subclasses set ``name`` and implement ``fetch`` and ``parse``.
    """

    name: str = ""
    requires_key: bool = False

    def api_key(self) -> Optional[str]:
        """Configured API key, if the provider needs one."""
        return None

    def is_configured(self) -> bool:
        """False when a required API key is missing."""
        return not self.requires_key or bool(self.api_key())

    async def fetch(
        self,
        client: httpx.AsyncClient,
        station: StationLocation,
        tz: tzinfo,
    ) -> List[ForecastDay]:
        raise NotImplementedError

    def parse(self, payload: Dict[str, Any], tz: tzinfo) -> List[ForecastDay]:
        raise NotImplementedError

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await client.get(url, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ForecastSourceError(f"{self.name}: expected a JSON object, got {type(data).__name__}")
        return data


def parse_iso_datetime(value: str, tz: tzinfo) -> datetime:
    """Parse an ISO timestamp (``Z`` suffix allowed) and convert it to tz."""
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(tz)


def parse_day(value: Any) -> date:
    """Date part of a ``YYYY-MM-DD[...]`` string."""
    return date.fromisoformat(str(value)[:10])


def series_value(values: Sequence[Any], index: int) -> Optional[float]:
    """Index-aligned lookup tolerant of short arrays."""
    if values is None or index >= len(values):
        return None
    return to_number(values[index])


def _present(values: Iterable[Optional[float]]) -> List[float]:
    return [v for v in values if v is not None]


def minimum(values: Iterable[Optional[float]]) -> Optional[float]:
    present = _present(values)
    return min(present) if present else None


def maximum(values: Iterable[Optional[float]]) -> Optional[float]:
    present = _present(values)
    return max(present) if present else None


def total(values: Iterable[Optional[float]]) -> Optional[float]:
    present = _present(values)
    return round(sum(present), 1) if present else None


def mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = _present(values)
    return round(sum(present) / len(present), 1) if present else None


def scaled(value: Optional[float], factor: float) -> Optional[float]:
    return round(value * factor, 1) if value is not None else None


def as_dict(value: Any) -> Dict[str, Any]:
    """``value`` when it is a JSON object, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}
