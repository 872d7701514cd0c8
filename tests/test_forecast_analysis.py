"""
Tests for forecast storage, accuracy analysis and the daily forecast job.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone

import httpx
import pytest
from sqlalchemy import func, select

from stationdash.config import settings
from stationdash.crud.forecast import forecast as forecast_crud
from stationdash.crud.forecast import forecast_analysis as analysis_crud
from stationdash.models.forecast import Forecast, ForecastAnalysis
from stationdash.providers.base import ForecastProvider, ForecastSourceError
from stationdash.providers.openweather import OpenWeatherProvider
from stationdash.schemas.forecast import ForecastDay, StationLocation
from stationdash.schemas.statistics import DailyAggregate
from stationdash.services import forecast as forecast_service

STATION = "11035"
DAY = date(2024, 7, 15)


def _day(value: date, tmin: float, tmax: float, rain: float = 0.0, wind: float = 10.0) -> ForecastDay:
    return ForecastDay(date=value, temp_min=tmin, temp_max=tmax, precipitation=rain, wind_speed=wind)


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


def _actual_loader(aggregate):
    async def load(day: date):
        return aggregate
    return load


ACTUAL = DailyAggregate(day=DAY, tmin=14.0, tmax=30.1, rain_day=2.0, wind_avg=12.0)


class TestForecastCRUD:
    """Test stored forecast rows."""

    @pytest.mark.asyncio
    async def test_upsert_overwrites_same_storage_date(self, db):
        """Test re-storing on the same day replaces values instead of duplicating."""
        await forecast_crud.upsert_days(db, storage_date=DAY, station_id=STATION, source="geosphere",
                                        days=[_day(DAY, 10, 20)])
        await forecast_crud.upsert_days(db, storage_date=DAY, station_id=STATION, source="geosphere",
                                        days=[_day(DAY, 11, 21)])

        rows = await forecast_crud.get_by_storage_date(db, station_id=STATION, storage_date=DAY)
        assert len(rows) == 1
        assert rows[0].temp_min == 11

    @pytest.mark.asyncio
    async def test_latest_storage_date_wins(self, db):
        """Test the freshest forecast stored on or before the day is selected."""
        for storage, tmax in ((date(2024, 7, 13), 25.0), (date(2024, 7, 14), 28.0), (date(2024, 7, 16), 99.0)):
            await forecast_crud.upsert_days(db, storage_date=storage, station_id=STATION, source="openmeteo",
                                            days=[_day(DAY, 12, tmax)])
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 13), station_id=STATION, source="geosphere",
                                        days=[_day(DAY, 13, 27)])

        rows = await forecast_crud.get_latest_for_date(db, station_id=STATION, forecast_date=DAY)

        assert [(r.source, r.storage_date) for r in rows] == [
            ("geosphere", date(2024, 7, 13)),
            ("openmeteo", date(2024, 7, 14)),
        ]
        assert rows[1].temp_max == 28.0


class TestDailyAnalysis:
    """Test calculate_and_store_daily_analysis."""

    @pytest.mark.asyncio
    async def test_errors_against_actuals(self, db):
        """Test absolute errors use the 07-14 forecast, not the 07-13 one."""
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 13), station_id=STATION, source="openmeteo",
                                        days=[_day(DAY, 10, 20, rain=0.0, wind=5.0)])
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="openmeteo",
                                        days=[_day(DAY, 15.5, 29.0, rain=3.0, wind=10.0)])

        rows = await forecast_service.calculate_and_store_daily_analysis(
            db, STATION, analysis_date=DAY, actual_loader=_actual_loader(ACTUAL)
        )

        assert len(rows) == 1
        row = rows[0]
        assert row["storage_date"] == date(2024, 7, 14)
        assert row["temp_min_error"] == 1.5
        assert row["temp_max_error"] == 1.1
        assert row["precipitation_error"] == 1.0
        assert row["wind_speed_error"] == 2.0
        assert row["actual_temp_max"] == 30.1

    @pytest.mark.asyncio
    async def test_idempotent(self, db):
        """Test running twice for the same day keeps one row per source."""
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="openmeteo",
                                        days=[_day(DAY, 15, 29)])
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="geosphere",
                                        days=[_day(DAY, 14, 28)])

        for _ in range(2):
            await forecast_service.calculate_and_store_daily_analysis(
                db, STATION, analysis_date=DAY, actual_loader=_actual_loader(ACTUAL)
            )

        assert await _count(db, ForecastAnalysis) == 2

    @pytest.mark.asyncio
    async def test_missing_actual_skips(self, db):
        """Test no analysis is written when there is no measured data."""
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="openmeteo",
                                        days=[_day(DAY, 15, 29)])

        result = await forecast_service.calculate_and_store_daily_analysis(
            db, STATION, analysis_date=DAY, actual_loader=_actual_loader(None)
        )

        assert result is None
        assert await _count(db, ForecastAnalysis) == 0

    @pytest.mark.asyncio
    async def test_slow_actual_loader_times_out(self, db, monkeypatch):
        """Test a loader exceeding the timeout skips the day."""
        monkeypatch.setattr(settings, "ANALYSIS_ACTUAL_TIMEOUT_SECONDS", 0.05)
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="openmeteo",
                                        days=[_day(DAY, 15, 29)])

        async def slow_loader(day: date):
            await asyncio.sleep(5)
            return ACTUAL

        result = await forecast_service.calculate_and_store_daily_analysis(
            db, STATION, analysis_date=DAY, actual_loader=slow_loader
        )

        assert result is None
        assert await _count(db, ForecastAnalysis) == 0

    @pytest.mark.asyncio
    async def test_missing_metric_gives_null_error(self, db):
        """Test a metric missing on either side has no error instead of zero."""
        await forecast_crud.upsert_days(db, storage_date=date(2024, 7, 14), station_id=STATION, source="geosphere",
                                        days=[ForecastDay(date=DAY, temp_min=15, temp_max=29)])

        rows = await forecast_service.calculate_and_store_daily_analysis(
            db, STATION, analysis_date=DAY,
            actual_loader=_actual_loader(DailyAggregate(day=DAY, tmin=14, tmax=30)),
        )

        assert rows[0]["precipitation_error"] is None
        assert rows[0]["wind_speed_error"] is None

    @pytest.mark.asyncio
    async def test_no_forecasts(self, db):
        """Test an empty list when nothing was forecast for the day."""
        rows = await forecast_service.calculate_and_store_daily_analysis(
            db, STATION, analysis_date=DAY, actual_loader=_actual_loader(ACTUAL)
        )
        assert rows == []

    @pytest.mark.asyncio
    async def test_accuracy_and_cleanup(self, db):
        """Test MAE/RMSE per source and deleting old analysis rows."""
        for day, tmax in ((date(2024, 7, 14), 27.0), (DAY, 33.1)):
            await forecast_crud.upsert_days(db, storage_date=day, station_id=STATION, source="openmeteo",
                                            days=[_day(day, 14, tmax, rain=2.0, wind=12.0)])
            await forecast_service.calculate_and_store_daily_analysis(
                db, STATION, analysis_date=day,
                actual_loader=_actual_loader(ACTUAL.model_copy(update={"day": day})),
            )

        records = await analysis_crud.get_for_station(db, station_id=STATION)
        accuracy = forecast_service.summarize_accuracy(records)

        assert len(accuracy) == 1
        assert accuracy[0].days == 2
        assert accuracy[0].temp_max.mae == pytest.approx(3.05)
        assert accuracy[0].temp_min.mae == 0.0

        deleted = await forecast_service.cleanup_forecast_analysis(db, DAY)
        assert deleted == 1
        assert await _count(db, ForecastAnalysis) == 1


class FakeProvider(ForecastProvider):
    """Provider returning canned days or raising."""

    def __init__(self, name, days=None, error=None, configured=True):
        self.name = name
        self._days = days or []
        self._error = error
        self._configured = configured

    def is_configured(self) -> bool:
        return self._configured

    async def fetch(self, client, station, tz):
        if self._error:
            raise self._error
        return self._days


class TestStoreForecast:
    """Test storing every provider's forecast."""

    @pytest.fixture(autouse=True)
    def fake_station(self, monkeypatch):
        async def get_station(client, station_id):
            return StationLocation(id=station_id, lat=48.25, lon=16.36)
        monkeypatch.setattr(forecast_service, "get_station", get_station)
        monkeypatch.setattr(settings, "FORECAST_SOURCE_DELAY_SECONDS", 0)

    @pytest.mark.asyncio
    async def test_failing_source_does_not_stop_others(self, db):
        """Test per-source isolation: errors are reported, others still stored."""
        providers = [
            FakeProvider("geosphere", error=httpx.ConnectError("down")),
            FakeProvider("openweather", configured=False),
            FakeProvider("meteoblue", error=ForecastSourceError("bad payload")),
            FakeProvider("openmeteo", days=[_day(DAY, 14, 29), _day(date(2024, 7, 30), 1, 2)]),
        ]

        async with httpx.AsyncClient() as client:
            result = await forecast_service.store_forecast_for_station(
                db, STATION, client=client, providers=providers, storage_date=DAY
            )

        assert result.stored == {"openmeteo": 1}
        assert set(result.errors) == {"geosphere", "meteoblue"}
        assert result.skipped == ["openweather"]
        assert await _count(db, Forecast) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_does_not_stop_others(self, db, monkeypatch):
        """Test a payload that breaks parsing is reported and later sources are stored."""
        monkeypatch.setattr(settings, "OPENWEATHER_API_KEY", "secret")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"list": [1]})

        providers = [
            OpenWeatherProvider(),
            FakeProvider("meteoblue", error=AttributeError("'int' object has no attribute 'get'")),
            FakeProvider("openmeteo", days=[_day(DAY, 14, 29)]),
        ]

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await forecast_service.store_forecast_for_station(
                db, STATION, client=client, providers=providers, storage_date=DAY
            )

        assert result.stored == {"openmeteo": 1}
        assert set(result.errors) == {"openweather", "meteoblue"}
        assert await _count(db, Forecast) == 1


class TestForecastWindow:
    """Test the daily run window."""

    def test_due_once_per_local_day(self, monkeypatch):
        """Test the window opens after the run hour and closes after a run."""
        monkeypatch.setattr(settings, "FORECAST_RUN_HOUR", 6)
        window = forecast_service.ForecastWindow()

        early = datetime(2024, 7, 15, 3, 0, tzinfo=timezone.utc)  # 05:00 Vienna
        later = datetime(2024, 7, 15, 5, 0, tzinfo=timezone.utc)  # 07:00 Vienna

        assert not window.is_due(early)
        assert window.is_due(later)
        window.mark_run(later)
        assert not window.is_due(later)
        assert window.is_due(datetime(2024, 7, 16, 5, 0, tzinfo=timezone.utc))

    @pytest.mark.asyncio
    async def test_tick_runs_job_once(self, monkeypatch):
        """Test forecast_window_tick runs the daily job only once per day."""
        calls = []

        async def fake_job(station_ids=None):
            calls.append(station_ids)
            return {}

        monkeypatch.setattr(forecast_service, "run_daily_forecast_job", fake_job)
        monkeypatch.setattr(forecast_service, "forecast_window", forecast_service.ForecastWindow())
        now = datetime(2024, 7, 15, 10, tzinfo=timezone.utc)

        assert await forecast_service.forecast_window_tick(now) is True
        assert await forecast_service.forecast_window_tick(now) is False
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_stations_run_independently(self, monkeypatch):
        """Test a failing station does not stop the next one."""
        monkeypatch.setattr(settings, "FORECAST_SOURCE_DELAY_SECONDS", 0)

        async def fake_station_job(station_id):
            return station_id != "bad"

        monkeypatch.setattr(forecast_service, "run_station_job", fake_station_job)

        results = await forecast_service.run_daily_forecast_job(["bad", "11035"])
        assert results == {"bad": False, "11035": True}


class TestStationJobRetries:
    """Test the bounded retries of run_station_job."""

    @pytest.fixture
    def job(self, monkeypatch):
        """Replace the session and the two job steps; record attempts and sleeps."""
        state = {"attempts": 0, "fail_times": 0, "sleeps": []}

        @asynccontextmanager
        async def fake_session():
            yield object()

        async def flaky_store(db, station_id):
            state["attempts"] += 1
            if state["attempts"] <= state["fail_times"]:
                raise httpx.ConnectError("metadata down")

        async def analyse(db, station_id):
            return []

        async def fake_sleep(seconds):
            state["sleeps"].append(seconds)

        monkeypatch.setattr(forecast_service, "async_session", fake_session)
        monkeypatch.setattr(forecast_service, "store_forecast_for_station", flaky_store)
        monkeypatch.setattr(forecast_service, "calculate_and_store_daily_analysis", analyse)
        monkeypatch.setattr(forecast_service.asyncio, "sleep", fake_sleep)
        monkeypatch.setattr(settings, "FORECAST_MAX_RETRIES", 3)
        monkeypatch.setattr(settings, "FORECAST_RETRY_DELAY_SECONDS", 30.0)
        return state

    @pytest.mark.asyncio
    async def test_succeeds_on_third_attempt(self, job):
        """Test two failures are retried with the configured backoff."""
        job["fail_times"] = 2

        assert await forecast_service.run_station_job(STATION) is True
        assert job["attempts"] == 3
        assert job["sleeps"] == [30.0, 30.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, job):
        """Test the job stops after FORECAST_MAX_RETRIES attempts without a trailing sleep."""
        job["fail_times"] = 10

        assert await forecast_service.run_station_job(STATION) is False
        assert job["attempts"] == 3
        assert job["sleeps"] == [30.0, 30.0]
