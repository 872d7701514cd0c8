"""
Tests for the realtime archiver.
"""

import csv
from datetime import date, datetime

import httpx
import pytest

from stationdash.config import settings
from stationdash.services import realtime
from stationdash.services import statistics as statistics_service


def _value(v):
    return {"time": "1721044800", "unit": "", "value": v}


def _payload(temp="30.1", ch1_temp="21.0", rain_daily="2.5"):
    return {
        "outdoor": {"temperature": _value(temp), "humidity": _value("55"), "dew_point": _value("12.0")},
        "indoor": {"temperature": _value("23.0"), "humidity": _value("40")},
        "rainfall": {"daily": _value(rain_daily), "rain_rate": _value("0.0"), "hourly": _value("0.5")},
        "wind": {"wind_speed": _value("10.8"), "wind_gust": _value("25.2"), "wind_direction": _value("270")},
        "pressure": {"relative": _value("1013.2")},
        "temp_and_humidity_ch1": {"temperature": _value(ch1_temp), "humidity": _value("45")},
    }


def _read_csv(path):
    with path.open(encoding="utf-8", newline="") as fh:
        return list(csv.reader(fh))


class TestHelpers:
    """Test payload lookup helpers."""

    def test_read_number_falls_through_paths(self):
        """Test alternative paths are tried in order."""
        payload = {"barometer": {"rel": _value("1001,5")}}
        assert realtime.read_number(payload, ("pressure.relative", "barometer.rel")) == 1001.5

    def test_read_path_missing(self):
        """Test a missing step gives None."""
        assert realtime.read_path({"a": {"b": 1}}, "a.c") is None
        assert realtime.read_path({"a": 1}, "a.b") is None

    def test_build_params_metric_units(self, monkeypatch):
        """Test the device is asked for metric units."""
        monkeypatch.setattr(settings, "ECOWITT_MAC", "AA:BB")
        params = realtime.build_params()
        assert params["mac"] == "AA:BB"
        assert params["temp_unitid"] == "1"
        assert params["wind_speed_unitid"] == "7"


class TestArchiveRows:
    """Test appending snapshots to the monthly exports."""

    def test_creates_both_exports(self, workspace):
        """Test main and all-sensors exports are created with headers."""
        now = datetime(2024, 7, 15, 14, 5)
        main_path, channels_path = realtime.archive_rows(_payload(), now)

        assert main_path.name == "202407A.CSV"
        assert channels_path.name == "202407Allsensors_A.CSV"

        rows = _read_csv(main_path)
        assert rows[0][0] == "Time"
        record = dict(zip(rows[0], rows[1]))
        assert record["Time"] == "2024/07/15 14:05"
        assert record["Outdoor Temperature"] == "30.1"
        assert record["Rain Daily"] == "2.5"
        assert record["Solar"] == ""

        channels = dict(zip(*_read_csv(channels_path)))
        assert channels["CH1 Temperature"] == "21"
        assert channels["CH2 Temperature"] == ""

    def test_appends_aligned_to_existing_header(self, workspace):
        """Test rows follow the header of an export written by the logger itself."""
        path = workspace.raw / "202407A.CSV"
        path.write_text("Zeit,Rain Daily,Outdoor Temperature\n2024/07/15 14:00,1,29\n", encoding="utf-8")

        realtime.archive_rows(_payload(), datetime(2024, 7, 15, 14, 5))

        rows = _read_csv(path)
        assert rows[0] == ["Zeit", "Rain Daily", "Outdoor Temperature"]
        assert rows[2] == ["2024/07/15 14:05", "2.5", "30.1"]

    def test_archive_feeds_statistics(self, workspace):
        """Test archived rows are picked up by the statistics pipeline."""
        realtime.archive_rows(_payload(temp="18.5"), datetime(2024, 7, 15, 6, 0))
        realtime.archive_rows(_payload(temp="30.1"), datetime(2024, 7, 15, 14, 0))

        days = statistics_service.compute_daily_aggregates_sync(date(2024, 7, 15), date(2024, 7, 15))

        assert days[0].tmin == pytest.approx(18.5)
        assert days[0].tmax == pytest.approx(30.1)
        assert days[0].rain_day == pytest.approx(2.5)


class TestDailyMinMax:
    """Test running daily extremes per channel."""

    def test_tracks_extremes(self, workspace):
        """Test min and max with their times per channel."""
        realtime.update_daily_minmax(_payload(temp="20"), datetime(2024, 7, 15, 6))
        state = realtime.update_daily_minmax(_payload(temp="28"), datetime(2024, 7, 15, 14))

        outdoor = state.temperature["outdoor"]
        assert outdoor.min == 20 and outdoor.min_time == datetime(2024, 7, 15, 6)
        assert outdoor.max == 28 and outdoor.max_time == datetime(2024, 7, 15, 14)
        assert state.humidity["ch1"].max == 45
        assert realtime.get_temp_minmax().temperature["outdoor"].max == 28

    def test_resets_on_new_day(self, workspace):
        """Test a new local day starts from scratch."""
        realtime.update_daily_minmax(_payload(temp="35"), datetime(2024, 7, 15, 15))
        state = realtime.update_daily_minmax(_payload(temp="16"), datetime(2024, 7, 16, 0, 5))

        assert state.date == date(2024, 7, 16)
        assert state.temperature["outdoor"].max == 16


class TestFetchAndArchive:
    """Test one full device poll."""

    @pytest.fixture(autouse=True)
    def credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "ECOWITT_APPLICATION_KEY", "app")
        monkeypatch.setattr(settings, "ECOWITT_API_KEY", "key")
        monkeypatch.setattr(settings, "ECOWITT_MAC", "AA:BB")

    async def test_success(self, workspace):
        """Test a good poll is archived and stored as the last snapshot."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["call_back"] == "all"
            return httpx.Response(200, json={"code": 0, "msg": "success", "data": _payload()})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            snapshot = await realtime.fetch_and_archive(client, now=datetime(2024, 7, 15, 14, 5))

        assert snapshot.ok
        assert realtime.get_last_realtime().data["outdoor"]["temperature"]["value"] == "30.1"
        assert (workspace.raw / "202407A.CSV").exists()

    async def test_failure_is_recorded_and_raised(self, workspace):
        """Test an empty response marks the snapshot as failed and re-raises."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"code": 40010, "msg": "Illegal api_key", "data": []})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ValueError):
                await realtime.fetch_and_archive(client)

        last = realtime.get_last_realtime()
        assert last.ok is False
        assert "Illegal api_key" in last.error
        assert not (workspace.raw / "202407A.CSV").exists()
