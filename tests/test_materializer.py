"""
Tests for CSV to parquet materialization.
"""

import os
from datetime import datetime

import pytest

from stationdash import columnar
from stationdash.ingest.files import DatasetKind
from stationdash.ingest.materializer import (
    TimestampColumnNotFoundError,
    batch_path,
    detect_timestamp_column,
    ensure_batch,
    ensure_batch_sync,
    ensure_batches_in_range_sync,
    parse_timestamp,
)

HEADER = ["Time", "Outdoor Temperature(℃)", "Rain Daily(mm)"]


class TestTimestampDetection:
    """Test timestamp column detection and parsing."""

    def test_exact_alias_wins(self):
        """Test an exact alias beats a column merely containing a token."""
        assert detect_timestamp_column(["Update Time Zone", "Zeit", "Temp"]) == "Zeit"

    def test_token_fallback(self):
        """Test a column containing a time/date token is used otherwise."""
        assert detect_timestamp_column(["Messzeitpunkt", "Temp"]) == "Messzeitpunkt"

    def test_no_timestamp_raises(self):
        """Test an explicit error when nothing looks like a timestamp."""
        with pytest.raises(TimestampColumnNotFoundError):
            detect_timestamp_column(["Temperatur", "Feuchte"])

    @pytest.mark.parametrize("raw, expected", [
        ("2024/07/15 13:05", datetime(2024, 7, 15, 13, 5)),
        ("2024-07-15 13:05:30", datetime(2024, 7, 15, 13, 5, 30)),
        ("15.07.2024 13:05", datetime(2024, 7, 15, 13, 5)),
        ("2024-07-15", datetime(2024, 7, 15)),
    ])
    def test_known_formats(self, raw, expected):
        """Test the station's timestamp formats."""
        assert parse_timestamp(raw) == expected

    def test_unparseable(self):
        """Test garbage timestamps become None."""
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None


class TestEnsureBatch:
    """Test batch materialization and its freshness check."""

    def test_materializes_with_canonical_ts(self, workspace, write_csv):
        """Test a CSV becomes a parquet batch with a ts column."""
        write_csv(workspace.raw / "202407A.CSV", HEADER, [
            ["2024/07/15 12:00", "\"30,1\"", "0"],
            ["2024/07/15 13:00", "29.5", "1.2"],
        ])

        path = ensure_batch_sync("202407", DatasetKind.MAIN)

        assert path == batch_path("202407", DatasetKind.MAIN)
        assert path.exists()
        rows = columnar.read_rows([path])
        assert [r["ts"] for r in rows] == [datetime(2024, 7, 15, 12), datetime(2024, 7, 15, 13)]
        assert rows[0]["Outdoor Temperature(℃)"] == "30,1"

    def test_second_call_does_not_rebuild(self, workspace, write_csv):
        """Test an up-to-date batch is reused untouched."""
        write_csv(workspace.raw / "202407A.CSV", HEADER, [["2024/07/15 12:00", "20", "0"]])

        path = ensure_batch_sync("202407", DatasetKind.MAIN)
        first_mtime = path.stat().st_mtime_ns
        assert ensure_batch_sync("202407", DatasetKind.MAIN) == path
        assert path.stat().st_mtime_ns == first_mtime

    def test_newer_csv_triggers_rebuild(self, workspace, write_csv):
        """Test a CSV modified after materialization is re-read."""
        source = write_csv(workspace.raw / "202407A.CSV", HEADER, [["2024/07/15 12:00", "20", "0"]])
        path = ensure_batch_sync("202407", DatasetKind.MAIN)

        write_csv(source, HEADER, [
            ["2024/07/15 12:00", "20", "0"],
            ["2024/07/15 12:05", "21", "0"],
        ])
        future = path.stat().st_mtime + 60
        os.utime(source, (future, future))

        ensure_batch_sync("202407", DatasetKind.MAIN)
        assert len(columnar.read_rows([path])) == 2

    def test_missing_month(self, workspace):
        """Test a month without export yields None."""
        assert ensure_batch_sync("199901", DatasetKind.MAIN) is None

    async def test_async_wrapper(self, workspace, write_csv):
        """Test the async wrapper materializes off the event loop."""
        write_csv(workspace.raw / "202407A.CSV", HEADER, [["2024/07/15 12:00", "20", "0"]])
        path = await ensure_batch("202407", DatasetKind.MAIN)
        assert path is not None and path.exists()


class TestEnsureBatchesInRange:
    """Test range materialization with broken months."""

    def test_broken_month_is_skipped(self, workspace, write_csv):
        """Test a month without timestamp column is reported, others still load."""
        write_csv(workspace.raw / "202406A.CSV", ["Temperatur", "Feuchte"], [["20", "50"]])
        write_csv(workspace.raw / "202407A.CSV", HEADER, [["2024/07/15 12:00", "20", "0"]])

        batches = ensure_batches_in_range_sync(DatasetKind.MAIN)

        assert [p.name for p in batches.paths] == ["202407.parquet"]
        assert list(batches.skipped) == ["202406"]
