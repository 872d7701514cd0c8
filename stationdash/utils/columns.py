"""
Semantic column discovery for station exports.

Export headers are free-form, localized (German/English) and drift between
months for the same sensor. Discovery maps a plain list of header names to
semantic roles using normalized-name token matching and keeps every match
per role as a ranked candidate list, so aggregation can coalesce across
renamed columns row by row.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

RAIN_MODE_MAX = "max"
RAIN_MODE_SUM = "sum"

_FOLDS = (
    ("ä", "ae"), ("ö", "oe"), ("ü", "ue"),
    ("Ä", "ae"), ("Ö", "oe"), ("Ü", "ue"),
    ("ß", "ss"),
)

INDOOR_TOKENS = ("innen", "indoor", "inside", "raum")
DEW_POINT_TOKENS = ("taupunkt", "dewpoint")
FEELS_LIKE_TOKENS = ("gefuehlte", "gefuhlte", "feelslike", "heatindex", "realfeel")

RAIN_TOKENS = ("rain", "regen", "niederschlag")
RAIN_DAILY_TOKENS = (
    "daily", "day", "tag", "tages", "tagesgesamt", "tagessumme",
    "24h", "24", "heute", "today",
)
RAIN_HOURLY_TOKENS = ("hourly", "hour", "stunde", "stuendlich", "1h", "minute", "min")
RAIN_RATE_TOKENS = ("rate", "intensit")
RAIN_PERIOD_TOKENS = ("year", "jahr", "month", "monat", "week", "woche", "event", "ereignis")
# Running totals; a daily token takes precedence ("Tagesgesamt")
RAIN_TOTAL_TOKENS = ("total", "gesamt")

WIND_TOKENS = ("wind",)
GUST_TOKENS = ("gust", "boe")
DIRECTION_TOKENS = ("direction", "richtung", "dir")
WIND_EXCLUDE_TOKENS = ("chill",)

# "m/s" or "(ms)" as a unit, not inside words like "Maximums" or "km/s"
_MS_PATTERN = re.compile(r"(?<![a-z])m\s*/\s*s(?:ec)?(?![a-z])|[(\[]\s*ms\s*[)\]]", re.IGNORECASE)


class TemperatureColumnNotFoundError(ValueError):
    """No outdoor temperature column exists in the queried batches."""


def normalize_name(name: str) -> str:
    """
    Fold a header name to lowercase ASCII alphanumerics.

    Umlauts and ß become digraphs, the degree sign is dropped, remaining
    diacritics are stripped via NFKD, then everything but [a-z0-9] goes.

    Example:
        >>> normalize_name("Temperatur Außen (°C)")
        'temperaturaussenc'
    """
    text = str(name)
    for src, dst in _FOLDS:
        text = text.replace(src, dst)
    text = text.replace("°", "")
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]", "", text.lower())


def is_meters_per_second(name: str) -> bool:
    """True when a speed column's header suggests m/s units."""
    return bool(_MS_PATTERN.search(str(name)))


def _has(normalized: str, tokens: Iterable[str]) -> bool:
    return any(token in normalized for token in tokens)


@dataclass
class ColumnRoleMap:
    """
    Semantic roles resolved to concrete column names.

    Every role holds a ranked candidate list; the first entry is the
    primary column. Empty lists mean the role is not available.
    """

    temperature: List[str] = field(default_factory=list)
    dew_point: List[str] = field(default_factory=list)
    feels_like: List[str] = field(default_factory=list)
    rain_daily: List[str] = field(default_factory=list)
    rain_hourly: List[str] = field(default_factory=list)
    rain_generic: List[str] = field(default_factory=list)
    wind: List[str] = field(default_factory=list)
    gust: List[str] = field(default_factory=list)
    rain_mode: Optional[str] = None

    ROLES = (
        "temperature", "dew_point", "feels_like",
        "rain_daily", "rain_hourly", "rain_generic",
        "wind", "gust",
    )

    def primary(self, role: str) -> Optional[str]:
        """Chosen column for a role, or None."""
        candidates = getattr(self, role)
        return candidates[0] if candidates else None

    @property
    def rain(self) -> Optional[str]:
        """Primary rain column from the first tier that matched."""
        for tier in ("rain_daily", "rain_hourly", "rain_generic"):
            column = self.primary(tier)
            if column:
                return column
        return None

    def to_dict(self) -> Dict[str, object]:
        """Serializable view with candidates and primaries."""
        data: Dict[str, object] = {
            "candidates": {role: list(getattr(self, role)) for role in self.ROLES},
            "primary": {role: self.primary(role) for role in self.ROLES},
            "rain": self.rain,
            "rainMode": self.rain_mode,
        }
        return data


def discover_columns(column_names: Sequence[str]) -> ColumnRoleMap:
    """
    Resolve semantic roles from a list of header names.

    Pure function: takes names only, so it can be exercised with synthetic
    header lists.

    Args:
        column_names: Header names as found in the batches

    Returns:
        ColumnRoleMap with ranked candidates per role
    """
    role_map = ColumnRoleMap()
    normalized = [(name, normalize_name(name)) for name in column_names if name != "ts"]

    preferred_temperature = []
    fallback_temperature = []
    for name, n in normalized:
        if _has(n, INDOOR_TOKENS):
            continue
        if _has(n, DEW_POINT_TOKENS):
            role_map.dew_point.append(name)
            continue
        if _has(n, FEELS_LIKE_TOKENS):
            role_map.feels_like.append(name)
            continue
        outdoor_de = "temperatur" in n and ("aussen" in n or "draussen" in n)
        outdoor_en = ("outdoor" in n or "outside" in n) and "temp" in n
        if outdoor_de or outdoor_en:
            preferred_temperature.append(name)
        elif "temperatur" in n:
            fallback_temperature.append(name)
    role_map.temperature = preferred_temperature or fallback_temperature

    for name, n in normalized:
        if not _has(n, RAIN_TOKENS):
            continue
        if _has(n, RAIN_RATE_TOKENS) or _has(n, RAIN_PERIOD_TOKENS):
            continue
        if _has(n, RAIN_DAILY_TOKENS):
            role_map.rain_daily.append(name)
        elif _has(n, RAIN_TOTAL_TOKENS):
            continue
        elif _has(n, RAIN_HOURLY_TOKENS):
            role_map.rain_hourly.append(name)
        else:
            role_map.rain_generic.append(name)

    if role_map.rain_daily:
        role_map.rain_mode = RAIN_MODE_MAX
    elif role_map.rain_hourly or role_map.rain_generic:
        role_map.rain_mode = RAIN_MODE_SUM

    for name, n in normalized:
        if _has(n, DIRECTION_TOKENS) or _has(n, WIND_EXCLUDE_TOKENS):
            continue
        if _has(n, GUST_TOKENS):
            role_map.gust.append(name)
        elif _has(n, WIND_TOKENS):
            role_map.wind.append(name)

    return role_map


def require_temperature(role_map: ColumnRoleMap) -> str:
    """
    Return the primary temperature column or raise.

    Raises:
        TemperatureColumnNotFoundError: No temperature candidate exists
    """
    column = role_map.primary("temperature")
    if column is None:
        raise TemperatureColumnNotFoundError("No outdoor temperature column found in station data")
    return column


# ============================================================================
# SENSOR CHANNELS (all-sensors exports)
# ============================================================================

CHANNEL_COUNT = 8
CHANNEL_TEMPERATURE_PREFIXES = ("temperatur",)
CHANNEL_FEELS_LIKE_TOKENS = FEELS_LIKE_TOKENS + ("waermeindex",)
CHANNEL_HUMIDITY_TOKENS = ("luftfeuchtigkeit", "humidity", "hum")


class ChannelColumnNotFoundError(ValueError):
    """A sensor channel has no temperature column in the queried batches."""


@dataclass
class ChannelColumns:
    """Columns of one extra sensor channel (CH1..CH8)."""

    channel: int
    temperature: Optional[str] = None
    feels_like: Optional[str] = None
    humidity: Optional[str] = None

    def role_map(self) -> ColumnRoleMap:
        """Role map that feeds the channel through the daily aggregation."""
        return ColumnRoleMap(
            temperature=[self.temperature] if self.temperature else [],
            feels_like=[self.feels_like] if self.feels_like else [],
        )


def parse_channel(value: str) -> int:
    """
    Channel number from ``ch3``, ``CH3`` or ``3``.

    Raises:
        ValueError: Not a channel between 1 and CHANNEL_COUNT
    """
    match = re.fullmatch(r"(?:ch)?(\d+)", str(value).strip().lower())
    channel = int(match.group(1)) if match else 0
    if not 1 <= channel <= CHANNEL_COUNT:
        raise ValueError(f"Invalid channel '{value}', expected ch1..ch{CHANNEL_COUNT}")
    return channel


def discover_channel_columns(column_names: Sequence[str], channel: int) -> ChannelColumns:
    """
    Find a channel's columns among all-sensors headers.

    Headers look like ``CH1 Temperature(℃)`` or ``CH1 Luftfeuchtigkeit(%)``;
    the first match per quantity wins.

    Raises:
        ChannelColumnNotFoundError: The channel has no temperature column
    """
    prefix = f"ch{channel}"
    columns = ChannelColumns(channel=channel)
    for name in column_names:
        n = normalize_name(name)
        # "ch1" must not match "ch10..."
        if not n.startswith(prefix) or n[len(prefix):len(prefix) + 1].isdigit():
            continue
        rest = n[len(prefix):]
        if _has(rest, CHANNEL_FEELS_LIKE_TOKENS):
            columns.feels_like = columns.feels_like or name
        elif rest.startswith(CHANNEL_TEMPERATURE_PREFIXES):
            columns.temperature = columns.temperature or name
        elif _has(rest, CHANNEL_HUMIDITY_TOKENS):
            columns.humidity = columns.humidity or name

    if columns.temperature is None:
        raise ChannelColumnNotFoundError(f"No temperature column for channel ch{channel}")
    return columns
