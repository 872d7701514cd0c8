"""
Pydantic schemas for the realtime archiver state files.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import Field

from stationdash.schemas.base import BaseSchema


class RealtimeSnapshot(BaseSchema):
    """Outcome of the most recent device poll."""

    ok: bool
    updated_at: datetime
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class MinMaxEntry(BaseSchema):
    """Running extremes of one sensor channel for the current day."""

    min: Optional[float] = None
    min_time: Optional[datetime] = None
    max: Optional[float] = None
    max_time: Optional[datetime] = None


class DailyMinMax(BaseSchema):
    """Per-channel extremes for one day, keyed by channel name."""

    date: date
    temperature: Dict[str, MinMaxEntry] = Field(default_factory=dict)
    humidity: Dict[str, MinMaxEntry] = Field(default_factory=dict)
