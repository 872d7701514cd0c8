"""
Tests for the statistics service and its file cache.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from stationdash.schemas.statistics import StatisticsPayload
from stationdash.services import statistics as statistics_service
from stationdash.services.statistics import StatisticsUnavailableError
from stationdash.utils.cache import StatisticsCache, statistics_cache

HEADER = ["Zeit", "Temperatur Außen(℃)", "Regen Tag(mm)", "Böe(km/h)"]


def _write_month(write_csv, raw, name, rows, header=HEADER):
    return write_csv(raw / name, header, rows)


class TestStatisticsCache:
    """Test the JSON cache file."""

    def test_missing_cache(self, workspace):
        """Test reading a missing cache returns None."""
        assert statistics_cache.read() is None

    def test_write_then_read(self, workspace):
        """Test the payload survives a write/read cycle in camelCase."""
        payload = StatisticsPayload(updated_at=datetime(2024, 7, 16, tzinfo=timezone.utc))
        path = statistics_cache.write(payload)

        assert path == workspace.store / "statistics.json"
        assert '"updatedAt"' in path.read_text(encoding="utf-8")
        assert statistics_cache.read().updated_at == payload.updated_at

    def test_write_leaves_no_temp_files(self, workspace):
        """Test the atomic write does not leave temp files behind."""
        statistics_cache.write(StatisticsPayload(updated_at=datetime.now(timezone.utc)))
        assert [p.name for p in workspace.store.iterdir()] == ["statistics.json"]

    def test_corrupt_cache_is_ignored(self, tmp_path):
        """Test an unreadable cache file reads as missing."""
        path = tmp_path / "statistics.json"
        path.write_text("{not json", encoding="utf-8")
        assert StatisticsCache(path).read() is None

    def test_freshness(self):
        """Test age comparison against max age."""
        now = datetime(2024, 7, 16, 12, tzinfo=timezone.utc)
        payload = StatisticsPayload(updated_at=now - timedelta(hours=23))
        assert statistics_cache.is_fresh(payload, timedelta(hours=24), now)
        payload = StatisticsPayload(updated_at=now - timedelta(hours=25))
        assert not statistics_cache.is_fresh(payload, timedelta(hours=24), now)


class TestUpdateIfNeeded:
    """Test cache-or-recompute behaviour."""

    @pytest.fixture
    def recompute_calls(self, monkeypatch):
        calls = []

        async def fake_compute():
            calls.append(1)
            return StatisticsPayload(updated_at=datetime.now(timezone.utc))

        monkeypatch.setattr(statistics_service, "compute_statistics", fake_compute)
        return calls

    async def test_fresh_cache_is_served(self, workspace, recompute_calls):
        """Test a 23h old cache is returned without recomputing."""
        now = datetime(2024, 7, 16, 12, tzinfo=timezone.utc)
        statistics_cache.write(StatisticsPayload(updated_at=now - timedelta(hours=23)))

        payload = await statistics_service.update_statistics_if_needed(timedelta(hours=24), now=now)

        assert recompute_calls == []
        assert payload.updated_at == now - timedelta(hours=23)

    async def test_stale_cache_is_recomputed(self, workspace, recompute_calls):
        """Test a 25h old cache triggers a recompute and is replaced."""
        now = datetime(2024, 7, 16, 12, tzinfo=timezone.utc)
        statistics_cache.write(StatisticsPayload(updated_at=now - timedelta(hours=25)))

        payload = await statistics_service.update_statistics_if_needed(timedelta(hours=24), now=now)

        assert recompute_calls == [1]
        assert statistics_cache.read().updated_at == payload.updated_at

    async def test_missing_cache_is_computed(self, workspace, recompute_calls):
        """Test the first call computes and persists."""
        await statistics_service.update_statistics_if_needed()
        assert recompute_calls == [1]
        assert (workspace.store / "statistics.json").exists()


class TestStatisticsPipeline:
    """Test the raw CSV to statistics pipeline end to end."""

    def test_daily_aggregates_across_months(self, workspace, write_csv):
        """Test months are unioned and bounded by the date range."""
        _write_month(write_csv, workspace.raw, "202406A.CSV", [
            ["2024/06/30 12:00", "18", "0", "12"],
        ])
        _write_month(write_csv, workspace.raw, "202407A.CSV", [
            ["2024/07/15 03:00", "-0.5", "0", "10"],
            ["2024/07/15 15:00", "30.1", "2.5", "40"],
            ["2024/07/16 15:00", "22", "0", "8"],
        ])

        days = statistics_service.compute_daily_aggregates_sync(date(2024, 7, 15), date(2024, 7, 15))

        assert len(days) == 1
        assert days[0].tmax == pytest.approx(30.1)
        assert days[0].tmin == pytest.approx(-0.5)
        assert days[0].rain_day == pytest.approx(2.5)
        assert days[0].gust_max == pytest.approx(40)

        all_days = statistics_service.compute_daily_aggregates_sync()
        assert [d.day for d in all_days] == [date(2024, 6, 30), date(2024, 7, 15), date(2024, 7, 16)]

    def test_build_statistics(self, workspace, write_csv):
        """Test the example day lands in over30 and under0."""
        _write_month(write_csv, workspace.raw, "202407A.CSV", [
            ["2024/07/15 03:00", "-0.5", "0", "10"],
            ["2024/07/15 15:00", "30.1", "0", "40"],
        ])

        payload = statistics_service.build_statistics()

        year = payload.years[0]
        assert year.year == 2024
        assert year.temperature.over30.items[0].date == date(2024, 7, 15)
        assert year.temperature.under0.items[0].value == pytest.approx(-0.5)

    def test_no_data_is_unavailable(self, workspace):
        """Test an empty raw directory raises StatisticsUnavailableError."""
        with pytest.raises(StatisticsUnavailableError):
            statistics_service.build_statistics()

    def test_no_temperature_is_unavailable(self, workspace, write_csv):
        """Test data without a temperature column raises StatisticsUnavailableError."""
        _write_month(write_csv, workspace.raw, "202407A.CSV", [["2024/07/15 03:00", "0"]],
                     header=["Zeit", "Regen Tag(mm)"])
        with pytest.raises(StatisticsUnavailableError):
            statistics_service.build_statistics()

    async def test_daily_aggregate_for_missing_day(self, workspace, write_csv):
        """Test a day without readings has no aggregate."""
        _write_month(write_csv, workspace.raw, "202407A.CSV", [["2024/07/15 03:00", "20", "0", "10"]])
        assert await statistics_service.get_daily_aggregate(date(2024, 7, 20)) is None
        day = await statistics_service.get_daily_aggregate(date(2024, 7, 15))
        assert day.tmax == 20

    def test_meta(self, workspace, write_csv):
        """Test diagnostics report months, columns and skipped batches."""
        _write_month(write_csv, workspace.raw, "202406A.CSV", [["20", "50"]], header=["Temperatur", "Feuchte"])
        _write_month(write_csv, workspace.raw, "202407A.CSV", [["2024/07/15 03:00", "20", "0", "10"]])

        meta = statistics_service.get_statistics_meta_sync()

        assert meta.months == ["202406", "202407"]
        assert meta.columns["primary"]["temperature"] == "Temperatur Außen(℃)"
        assert "202406" in meta.skipped
        assert meta.cache_updated_at is None


class TestChannelStatisticsPipeline:
    """Test channel statistics from the all-sensors exports."""

    CHANNEL_HEADER = ["Zeit", "CH1 Temperature(℃)", "CH1 Luftfeuchtigkeit(%)", "CH2 Temperature(℃)"]

    def test_channel_month(self, workspace, write_csv):
        """Test a channel is read from the all-sensors batch only, bounded by the range."""
        _write_month(write_csv, workspace.raw, "202407A.CSV", [["2024/07/15 03:00", "99", "0", "10"]])
        _write_month(write_csv, workspace.raw, "202407Allsensors_A.CSV", [
            ["2024/07/15 03:00", "21.5", "55", "--"],
            ["2024/07/15 15:00", "24.0", "48", "--"],
            ["2024/08/01 00:00", "40.0", "30", "--"],
        ], header=self.CHANNEL_HEADER)

        stats = statistics_service.compute_channel_statistics_sync(1, date(2024, 7, 1), date(2024, 7, 31))

        assert [d.day for d in stats.days] == [date(2024, 7, 15)]
        assert stats.temperature.max == 24.0
        assert stats.temperature.min == 21.5
        assert stats.columns["humidity"] == "CH1 Luftfeuchtigkeit(%)"
        assert stats.feels_like is None

    def test_channel_without_column_is_unavailable(self, workspace, write_csv):
        """Test a channel missing from the exports raises StatisticsUnavailableError."""
        _write_month(write_csv, workspace.raw, "202407Allsensors_A.CSV", [
            ["2024/07/15 03:00", "21.5", "55", "20"],
        ], header=self.CHANNEL_HEADER)

        with pytest.raises(StatisticsUnavailableError):
            statistics_service.compute_channel_statistics_sync(5, date(2024, 7, 1), date(2024, 7, 31))

    def test_no_allsensors_batches(self, workspace, write_csv):
        """Test main exports alone give no channel statistics."""
        _write_month(write_csv, workspace.raw, "202407A.CSV", [["2024/07/15 03:00", "20", "0", "10"]])

        with pytest.raises(StatisticsUnavailableError):
            statistics_service.compute_channel_statistics_sync(1, date(2024, 7, 1), date(2024, 7, 31))
