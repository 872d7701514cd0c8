"""
Daily aggregation and statistics rollups for station readings.

This module turns raw reading rows into DailyAggregate rows and builds the
year/month statistics tree from them.

AGGREGATION RULES:
1. TEMPERATURE: max/min/mean of the coalesced outdoor temperature
2. RAIN: daily-cumulative counters take the day's MAX, incremental
   hourly/generic counters are SUMMED
3. WIND/GUST: MAX per day, wind also MEAN; m/s columns converted to km/h
4. Missing sensors stay null and never count as zero

Every role is read through an ordered chain of extractors; the first
extractor returning a number wins for that row, so a sensor renamed
mid-dataset still contributes.
"""

from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from stationdash.schemas.statistics import (
    ChannelStatistics,
    DailyAggregate,
    FeelsLikeStats,
    MonthStats,
    PrecipitationStats,
    SeriesPoint,
    StatisticsPayload,
    TemperatureStats,
    ThresholdItem,
    ThresholdList,
    WindStats,
    YearStats,
)
from stationdash.utils.columns import (
    RAIN_MODE_MAX,
    ChannelColumns,
    ColumnRoleMap,
    is_meters_per_second,
    require_temperature,
)
from stationdash.utils.numeric import to_number

MS_TO_KMH = 3.6

Row = Mapping[str, Any]
Extractor = Callable[[Row], Optional[float]]


# ============================================================================
# EXTRACTOR CHAINS
# ============================================================================

def column_extractor(name: str, factor: float = 1.0) -> Extractor:
    """
    Build an extractor reading one column through to_number.

    Args:
        name: Column name
        factor: Multiplier applied to parsed values

    Returns:
        Callable mapping a row to a float or None
    """
    def extract(row: Row) -> Optional[float]:
        value = to_number(row.get(name))
        if value is None:
            return None
        return value * factor
    return extract


def speed_extractor(name: str) -> Extractor:
    """Extractor for a wind/gust column, normalized to km/h."""
    return column_extractor(name, MS_TO_KMH if is_meters_per_second(name) else 1.0)


def first_non_null(row: Row, chain: Iterable[Extractor]) -> Optional[float]:
    """Return the first value any extractor in the chain yields for a row."""
    for extract in chain:
        value = extract(row)
        if value is not None:
            return value
    return None


def build_extractors(role_map: ColumnRoleMap) -> Dict[str, List[Extractor]]:
    """
    Build the ordered extractor chain for every role.

    Args:
        role_map: Discovered columns

    Returns:
        Mapping of role name to extractor chain (possibly empty)
    """
    chains = {}
    for role in ColumnRoleMap.ROLES:
        candidates = getattr(role_map, role)
        if role in ("wind", "gust"):
            chains[role] = [speed_extractor(c) for c in candidates]
        else:
            chains[role] = [column_extractor(c) for c in candidates]
    return chains


def _row_day(row: Row) -> Optional[date]:
    ts = row.get("ts")
    if isinstance(ts, datetime):
        return ts.date()
    if isinstance(ts, date):
        return ts
    return None


# ============================================================================
# DAILY AGGREGATION
# ============================================================================

class _Accumulator:
    """Running max/min/sum/count of one quantity."""

    __slots__ = ("max", "min", "total", "count")

    def __init__(self):
        self.max: Optional[float] = None
        self.min: Optional[float] = None
        self.total = 0.0
        self.count = 0

    def add(self, value: Optional[float]):
        if value is None:
            return
        self.max = value if self.max is None or value > self.max else self.max
        self.min = value if self.min is None or value < self.min else self.min
        self.total += value
        self.count += 1

    @property
    def sum(self) -> Optional[float]:
        return self.total if self.count else None

    @property
    def mean(self) -> Optional[float]:
        return self.total / self.count if self.count else None


class _DayBucket:
    """All accumulators for one calendar day."""

    def __init__(self):
        self.temperature = _Accumulator()
        self.feels_like = _Accumulator()
        self.rain_daily = _Accumulator()
        self.rain_hourly = _Accumulator()
        self.rain_generic = _Accumulator()
        self.wind = _Accumulator()
        self.gust = _Accumulator()

    def add(self, row: Row, chains: Dict[str, List[Extractor]]):
        self.temperature.add(first_non_null(row, chains["temperature"]))
        self.feels_like.add(first_non_null(row, chains["feels_like"]))
        self.rain_daily.add(first_non_null(row, chains["rain_daily"]))
        self.rain_hourly.add(first_non_null(row, chains["rain_hourly"]))
        self.rain_generic.add(first_non_null(row, chains["rain_generic"]))
        self.wind.add(first_non_null(row, chains["wind"]))
        self.gust.add(first_non_null(row, chains["gust"]))

    def rain_total(self) -> Optional[float]:
        return resolve_rain_day(self.rain_daily.max, self.rain_hourly.sum, self.rain_generic.sum)

    def finish(self, day: date) -> DailyAggregate:
        return DailyAggregate(
            day=day,
            tmax=self.temperature.max,
            tmin=self.temperature.min,
            tavg=self.temperature.mean,
            rain_day=self.rain_total(),
            wind_max=self.wind.max,
            gust_max=self.gust.max,
            wind_avg=self.wind.mean,
            feels_max=self.feels_like.max,
            feels_min=self.feels_like.min,
        )


def resolve_rain_day(
    daily_max: Optional[float],
    hourly_sum: Optional[float],
    generic_sum: Optional[float],
) -> Optional[float]:
    """
    Reconcile the three rain signals of a day into one total.

    Order: non-zero daily max, non-zero hourly sum, hourly sum, generic
    sum, and finally a zero daily max. A day only comes out as None when
    no rain column produced any value.

    Example:
        >>> resolve_rain_day(0.0, 3.2, None)
        3.2
        >>> resolve_rain_day(0.0, None, None)
        0.0
    """
    if daily_max:
        return daily_max
    if hourly_sum:
        return hourly_sum
    for value in (hourly_sum, generic_sum, daily_max):
        if value is not None:
            return value
    return None


def aggregate_daily_rows(rows: Iterable[Row], role_map: ColumnRoleMap) -> List[DailyAggregate]:
    """
    Group readings into one DailyAggregate per calendar day.

    Args:
        rows: Readings with a ``ts`` datetime plus raw columns
        role_map: Discovered columns

    Returns:
        DailyAggregate rows sorted by day

    Raises:
        TemperatureColumnNotFoundError: No temperature column was discovered
    """
    require_temperature(role_map)
    chains = build_extractors(role_map)

    buckets: Dict[date, _DayBucket] = {}
    for row in rows:
        day = _row_day(row)
        if day is None:
            continue
        bucket = buckets.get(day)
        if bucket is None:
            bucket = buckets[day] = _DayBucket()
        bucket.add(row, chains)

    return [buckets[day].finish(day) for day in sorted(buckets)]


RESOLUTIONS = ("hour", "minute")


def _truncate(ts: datetime, resolution: str) -> datetime:
    if resolution == "hour":
        return ts.replace(minute=0, second=0, microsecond=0)
    return ts.replace(second=0, microsecond=0)


def aggregate_series(
    rows: Iterable[Row],
    role_map: ColumnRoleMap,
    resolution: str = "hour",
) -> List[SeriesPoint]:
    """
    Bucket readings by hour or minute for chart series.

    Temperatures are averaged, wind and gust take the maximum; rain follows
    the role map's mode (max of a daily counter, sum otherwise).

    Args:
        rows: Readings with a ``ts`` datetime
        role_map: Discovered columns
        resolution: "hour" or "minute"

    Returns:
        SeriesPoint list in time order
    """
    if resolution not in RESOLUTIONS:
        raise ValueError(f"Unsupported resolution '{resolution}', expected one of {RESOLUTIONS}")

    chains = build_extractors(role_map)
    rain_chain = chains["rain_daily"] or chains["rain_hourly"] or chains["rain_generic"]
    buckets: "OrderedDict[datetime, Dict[str, _Accumulator]]" = OrderedDict()

    for row in rows:
        ts = row.get("ts")
        if not isinstance(ts, datetime):
            continue
        key = _truncate(ts, resolution)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = {
                name: _Accumulator()
                for name in ("temperature", "dew_point", "feels_like", "rain", "wind", "gust")
            }
        for role in ("temperature", "dew_point", "feels_like", "wind", "gust"):
            bucket[role].add(first_non_null(row, chains[role]))
        bucket["rain"].add(first_non_null(row, rain_chain))

    points = []
    for key in sorted(buckets):
        b = buckets[key]
        rain = b["rain"].max if role_map.rain_mode == RAIN_MODE_MAX else b["rain"].sum
        points.append(SeriesPoint(
            ts=key,
            temperature=_round(b["temperature"].mean),
            dew_point=_round(b["dew_point"].mean),
            feels_like=_round(b["feels_like"].mean),
            rain=_round(rain),
            wind=_round(b["wind"].max),
            gust=_round(b["gust"].max),
        ))
    return points


def _round(value: Optional[float], digits: int = 1) -> Optional[float]:
    return round(value, digits) if value is not None else None


# ============================================================================
# YEAR / MONTH STATISTICS
# ============================================================================

TEMPERATURE_THRESHOLDS: Tuple[Tuple[str, Callable[[float], bool], str], ...] = (
    ("over30", lambda t: t > 30, "tmax"),
    ("over25", lambda t: t > 25, "tmax"),
    ("over20", lambda t: t > 20, "tmax"),
    ("under0", lambda t: t < 0, "tmin"),
    ("under10", lambda t: t <= -10, "tmin"),
)

RAIN_THRESHOLDS: Tuple[Tuple[str, Callable[[float], bool]], ...] = (
    ("over20mm", lambda r: r >= 20),
    ("over30mm", lambda r: r >= 30),
)


class _Extreme:
    """Running max or min with the date it first occurred."""

    __slots__ = ("value", "day", "higher")

    def __init__(self, higher: bool):
        self.value: Optional[float] = None
        self.day: Optional[date] = None
        self.higher = higher

    def offer(self, value: Optional[float], day: date):
        if value is None:
            return
        # Strict comparison keeps the first-seen date on ties.
        if self.value is None or (value > self.value if self.higher else value < self.value):
            self.value = value
            self.day = day


def _threshold_list(items: List[ThresholdItem]) -> ThresholdList:
    return ThresholdList(count=len(items), items=items)


class PeriodStats(NamedTuple):
    """Statistics blocks of one period (month, year or arbitrary range)."""

    temperature: TemperatureStats
    precipitation: PrecipitationStats
    wind: WindStats
    feels_like: Optional[FeelsLikeStats]


def compute_period_stats(days: List[DailyAggregate]) -> PeriodStats:
    """
    Compute temperature, precipitation, wind and feels-like stats in a single pass.

    Extremes and means are rounded to one decimal; threshold checks use the
    unrounded daily values. The feels-like block is None when no day has a
    feels-like reading.

    Args:
        days: DailyAggregate rows of the period, in day order

    Returns:
        PeriodStats
    """
    t_max, t_min = _Extreme(higher=True), _Extreme(higher=False)
    r_max, r_min = _Extreme(higher=True), _Extreme(higher=False)
    w_max, g_max = _Extreme(higher=True), _Extreme(higher=True)
    f_max, f_min = _Extreme(higher=True), _Extreme(higher=False)
    tavg, rain, wind_avg = _Accumulator(), _Accumulator(), _Accumulator()

    temp_lists: Dict[str, List[ThresholdItem]] = {name: [] for name, _, _ in TEMPERATURE_THRESHOLDS}
    rain_lists: Dict[str, List[ThresholdItem]] = {name: [] for name, _ in RAIN_THRESHOLDS}
    rain_days = 0

    for d in days:
        t_max.offer(d.tmax, d.day)
        t_min.offer(d.tmin, d.day)
        tavg.add(d.tavg)
        f_max.offer(d.feels_max, d.day)
        f_min.offer(d.feels_min, d.day)

        for name, crosses, field_name in TEMPERATURE_THRESHOLDS:
            value = getattr(d, field_name)
            if value is not None and crosses(value):
                temp_lists[name].append(ThresholdItem(date=d.day, value=_round(value)))

        if d.rain_day is not None:
            rain.add(d.rain_day)
            r_max.offer(d.rain_day, d.day)
            r_min.offer(d.rain_day, d.day)
            if d.rain_day > 0:
                rain_days += 1
            for name, crosses in RAIN_THRESHOLDS:
                if crosses(d.rain_day):
                    rain_lists[name].append(ThresholdItem(date=d.day, value=_round(d.rain_day)))

        w_max.offer(d.wind_max, d.day)
        g_max.offer(d.gust_max, d.day)
        wind_avg.add(d.wind_avg)

    temperature = TemperatureStats(
        max=_round(t_max.value),
        max_date=t_max.day,
        min=_round(t_min.value),
        min_date=t_min.day,
        avg=_round(tavg.mean),
        **{name: _threshold_list(items) for name, items in temp_lists.items()},
    )
    precipitation = PrecipitationStats(
        total=_round(rain.sum),
        max_day=_round(r_max.value),
        max_day_date=r_max.day,
        min_day=_round(r_min.value),
        min_day_date=r_min.day,
        rain_days=rain_days,
        **{name: _threshold_list(items) for name, items in rain_lists.items()},
    )
    wind = WindStats(
        max=_round(w_max.value),
        max_date=w_max.day,
        gust_max=_round(g_max.value),
        gust_max_date=g_max.day,
        avg=_round(wind_avg.mean),
    )
    feels_like = None
    if f_max.value is not None or f_min.value is not None:
        feels_like = FeelsLikeStats(
            max=_round(f_max.value),
            max_date=f_max.day,
            min=_round(f_min.value),
            min_date=f_min.day,
        )
    return PeriodStats(temperature, precipitation, wind, feels_like)


def build_year_stats(year: int, days: List[DailyAggregate]) -> YearStats:
    """
    Build the rollup for one year with per-month rollups in calendar order.

    Args:
        year: Calendar year
        days: DailyAggregate rows of that year, in day order

    Returns:
        YearStats
    """
    by_month: Dict[int, List[DailyAggregate]] = {}
    for d in days:
        by_month.setdefault(d.day.month, []).append(d)

    months = []
    for month in sorted(by_month):
        month_days = by_month[month]
        stats = compute_period_stats(month_days)
        months.append(MonthStats(
            year=year,
            month=month,
            days=len(month_days),
            **stats._asdict(),
        ))

    return YearStats(
        year=year,
        days=len(days),
        months=months,
        **compute_period_stats(days)._asdict(),
    )


def build_statistics_payload(
    days: Iterable[DailyAggregate],
    updated_at: Optional[datetime] = None,
) -> StatisticsPayload:
    """
    Rebuild the whole statistics tree from the daily rows.

    Args:
        days: DailyAggregate rows (any order)
        updated_at: Timestamp stored in the payload, defaults to now (UTC)

    Returns:
        StatisticsPayload with years newest first
    """
    ordered = sorted(days, key=lambda d: d.day)
    by_year: Dict[int, List[DailyAggregate]] = {}
    for d in ordered:
        by_year.setdefault(d.day.year, []).append(d)

    return StatisticsPayload(
        updated_at=updated_at or datetime.now(timezone.utc),
        years=[build_year_stats(year, by_year[year]) for year in sorted(by_year, reverse=True)],
    )


def build_channel_statistics(
    rows: Iterable[Row],
    columns: ChannelColumns,
    start: date,
    end: date,
) -> ChannelStatistics:
    """
    Daily rows and temperature statistics of one sensor channel.

    Args:
        rows: All-sensors readings with a ``ts`` datetime
        columns: The channel's discovered columns
        start: First day of the range
        end: Last day of the range (inclusive)

    Returns:
        ChannelStatistics
    """
    days = aggregate_daily_rows(rows, columns.role_map())
    stats = compute_period_stats(days)
    return ChannelStatistics(
        channel=f"ch{columns.channel}",
        start=start,
        end=end,
        total_period_days=(end - start).days + 1,
        columns={
            "temperature": columns.temperature,
            "feelsLike": columns.feels_like,
            "humidity": columns.humidity,
        },
        days=days,
        temperature=stats.temperature,
        feels_like=stats.feels_like,
    )
