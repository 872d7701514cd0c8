"""
Realtime archiver for the Ecowitt device API.

Each poll stores the latest snapshot, keeps today's min/max per sensor
channel and appends a row to the current month's raw CSV exports so the
statistics pipeline sees live data.
"""

import csv
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from pydantic import ValidationError

from stationdash.config import settings
from stationdash.ingest.files import DatasetKind, file_suffix
from stationdash.schemas.realtime import DailyMinMax, MinMaxEntry, RealtimeSnapshot
from stationdash.utils.logging_config import get_logger
from stationdash.utils.numeric import to_number

logger = get_logger(__name__)

SNAPSHOT_FILENAME = "rt-last.json"
MINMAX_FILENAME = "temp-minmax.json"
CHANNEL_COUNT = 8

MAIN_COLUMNS: Tuple[Tuple[str, Sequence[str]], ...] = (
    ("Outdoor Temperature", ("outdoor.temperature",)),
    ("Outdoor Humidity", ("outdoor.humidity",)),
    ("Dew Point", ("outdoor.dew_point",)),
    ("Feels Like", ("outdoor.feels_like",)),
    ("Indoor Temperature", ("indoor.temperature",)),
    ("Indoor Humidity", ("indoor.humidity",)),
    ("Pressure Relative", ("pressure.relative", "barometer.relative", "barometer.rel")),
    ("Pressure Absolute", ("pressure.absolute", "barometer.absolute", "barometer.abs")),
    ("Wind Speed", ("wind.wind_speed",)),
    ("Wind Gust", ("wind.wind_gust",)),
    ("Wind Direction", ("wind.wind_direction",)),
    ("Rain Rate", ("rainfall.rain_rate", "rain.rate")),
    ("Rain Hourly", ("rainfall.hourly",)),
    ("Rain Daily", ("rainfall.daily",)),
    ("Rain Weekly", ("rainfall.weekly",)),
    ("Rain Monthly", ("rainfall.monthly",)),
    ("Rain Yearly", ("rainfall.yearly",)),
    ("Solar", ("solar_and_uvi.solar",)),
    ("UVI", ("solar_and_uvi.uvi",)),
)


def store_dir() -> Path:
    return Path(settings.DATA_STORE_DIR)


def read_path(payload: Any, dotted: str) -> Any:
    """Look up a dotted path in nested dicts, None when any step is missing."""
    node = payload
    for key in dotted.split("."):
        if not isinstance(node, dict) or key not in node:
            return None
        node = node[key]
    return node


def read_number(payload: Any, paths: Sequence[str]) -> Optional[float]:
    """First path that yields a number, through to_number."""
    for dotted in paths:
        value = to_number(read_path(payload, dotted))
        if value is not None:
            return value
    return None


def channel_block(payload: Dict[str, Any], index: int) -> Optional[Dict[str, Any]]:
    """Extra sensor channel block (``ch1`` or ``temp_and_humidity_ch1``)."""
    return payload.get(f"temp_and_humidity_ch{index}") or payload.get(f"ch{index}")


def _write_json_atomic(path: Path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise


# ============================================================================
# DEVICE API
# ============================================================================

def build_params(all_channels: bool = True) -> Dict[str, str]:
    """Query parameters for ``device/real_time`` in metric units."""
    return {
        "mac": settings.ECOWITT_MAC or "",
        "api_key": settings.ECOWITT_API_KEY or "",
        "application_key": settings.ECOWITT_APPLICATION_KEY or "",
        "call_back": "all" if all_channels else "indoor.temperature,outdoor.temperature",
        "temp_unitid": "1",  # degC
        "pressure_unitid": "3",  # hPa
        "wind_speed_unitid": "7",  # km/h
        "rainfall_unitid": "12",  # mm
        "solar_irradiance_unitid": "16",  # W/m2
    }


async def fetch_realtime(client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    """
    Fetch the current device snapshot.

    Returns:
        The ``data`` object of the response

    Raises:
        httpx.HTTPError: Transport failure or non-2xx response
        ValueError: The response carries no snapshot
    """
    url = f"https://{settings.ECOWITT_SERVER}/api/v3/device/real_time"
    own_client = client is None
    client = client or httpx.AsyncClient(timeout=settings.FORECAST_HTTP_TIMEOUT_SECONDS)
    try:
        response = await client.get(url, params=build_params())
        response.raise_for_status()
        body = response.json()
    finally:
        if own_client:
            await client.aclose()

    payload = body.get("data") if isinstance(body, dict) else None
    if not isinstance(payload, dict) or not payload:
        message = body.get("msg") if isinstance(body, dict) else None
        raise ValueError(f"Device API returned no data ({message or 'empty response'})")
    return payload


# ============================================================================
# SNAPSHOT
# ============================================================================

def set_last_realtime(record: RealtimeSnapshot):
    """Persist the outcome of the latest poll."""
    _write_json_atomic(store_dir() / SNAPSHOT_FILENAME, record.model_dump_json(by_alias=True))


def get_last_realtime() -> Optional[RealtimeSnapshot]:
    """Outcome of the latest poll, or None before the first one."""
    path = store_dir() / SNAPSHOT_FILENAME
    if not path.exists():
        return None
    try:
        return RealtimeSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError) as e:
        logger.warning(f"Realtime snapshot at {path} is unreadable: {e}")
        return None


# ============================================================================
# DAILY MIN/MAX
# ============================================================================

def _channel_readings(payload: Dict[str, Any]) -> Tuple[Dict[str, float], Dict[str, float]]:
    temperature: Dict[str, float] = {}
    humidity: Dict[str, float] = {}
    blocks = {"outdoor": payload.get("outdoor"), "indoor": payload.get("indoor")}
    for i in range(1, CHANNEL_COUNT + 1):
        blocks[f"ch{i}"] = channel_block(payload, i)
    for name, block in blocks.items():
        t = to_number(read_path(block, "temperature"))
        h = to_number(read_path(block, "humidity"))
        if t is not None:
            temperature[name] = t
        if h is not None:
            humidity[name] = h
    return temperature, humidity


def _update_entry(entry: MinMaxEntry, value: float, now: datetime):
    if entry.min is None or value < entry.min:
        entry.min, entry.min_time = value, now
    if entry.max is None or value > entry.max:
        entry.max, entry.max_time = value, now


def get_temp_minmax() -> Optional[DailyMinMax]:
    """Today's running extremes, or None if nothing was recorded yet."""
    path = store_dir() / MINMAX_FILENAME
    if not path.exists():
        return None
    try:
        return DailyMinMax.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError, ValueError) as e:
        logger.warning(f"Min/max state at {path} is unreadable, starting fresh: {e}")
        return None


def update_daily_minmax(payload: Dict[str, Any], now: datetime) -> DailyMinMax:
    """
    Fold a snapshot into the per-day min/max state.

    The state resets when the local day changes.
    """
    state = get_temp_minmax()
    if state is None or state.date != now.date():
        state = DailyMinMax(date=now.date())

    temperature, humidity = _channel_readings(payload)
    for name, value in temperature.items():
        _update_entry(state.temperature.setdefault(name, MinMaxEntry()), value, now)
    for name, value in humidity.items():
        _update_entry(state.humidity.setdefault(name, MinMaxEntry()), value, now)

    _write_json_atomic(store_dir() / MINMAX_FILENAME, state.model_dump_json(by_alias=True))
    return state


# ============================================================================
# CSV ARCHIVE
# ============================================================================

def _format_cell(value: Optional[float]) -> str:
    return "" if value is None else f"{value:g}"


def _existing_header(path: Path) -> Optional[List[str]]:
    with path.open("r", encoding="utf-8", errors="replace", newline="") as fh:
        return next(csv.reader(fh), None)


def _append_csv(path: Path, header: List[str], values: Dict[str, str]):
    """
    Append one row, aligned by column name to the file's own header.

    New files get ``header``. The first column always holds the timestamp,
    whatever the existing export calls it.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = _existing_header(path) if path.exists() and path.stat().st_size else None
    columns = existing or header
    row = [values["Time"]] + [values.get(name, "") for name in columns[1:]]
    with path.open("a", encoding="utf-8", newline="") as fh:
        writer = csv.writer(fh)
        if existing is None:
            writer.writerow(columns)
        writer.writerow(row)


def archive_rows(payload: Dict[str, Any], now: datetime) -> List[Path]:
    """
    Append the snapshot to this month's main and all-sensors exports.

    Returns:
        Paths of the files written
    """
    directory = Path(settings.RAW_DATA_DIR)
    ym = now.strftime("%Y%m")
    stamp = now.strftime("%Y/%m/%d %H:%M")

    main_path = directory / f"{ym}{file_suffix(DatasetKind.MAIN)}.CSV"
    main_values = {"Time": stamp}
    for name, paths in MAIN_COLUMNS:
        main_values[name] = _format_cell(read_number(payload, paths))
    _append_csv(main_path, ["Time"] + [name for name, _ in MAIN_COLUMNS], main_values)

    channels_path = directory / f"{ym}{file_suffix(DatasetKind.ALLSENSORS)}.CSV"
    channels_header = ["Time"]
    channels_values = {"Time": stamp}
    for i in range(1, CHANNEL_COUNT + 1):
        block = channel_block(payload, i)
        for key, label in (("temperature", "Temperature"), ("humidity", "Luftfeuchtigkeit"), ("dew_point", "Taupunkt")):
            column = f"CH{i} {label}"
            channels_header.append(column)
            channels_values[column] = _format_cell(to_number(read_path(block, key)))
    _append_csv(channels_path, channels_header, channels_values)

    return [main_path, channels_path]


async def fetch_and_archive(
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[datetime] = None,
) -> RealtimeSnapshot:
    """
    Poll the device once and archive the result.

    A failed poll is recorded in the snapshot file and re-raised so the
    scheduler logs it.

    Returns:
        The stored snapshot
    """
    now = now or datetime.now().astimezone()
    try:
        payload = await fetch_realtime(client)
    except (httpx.HTTPError, ValueError) as e:
        set_last_realtime(RealtimeSnapshot(ok=False, updated_at=datetime.now(timezone.utc), error=str(e)))
        raise

    local_now = now.replace(tzinfo=None)
    if settings.RT_ARCHIVE_TO_CSV:
        archive_rows(payload, local_now)
    update_daily_minmax(payload, local_now)

    snapshot = RealtimeSnapshot(ok=True, updated_at=datetime.now(timezone.utc), data=payload)
    set_last_realtime(snapshot)
    logger.info(f"Realtime update ok: {snapshot.updated_at.isoformat()}")
    return snapshot
