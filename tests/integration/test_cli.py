"""Tests for the dualsink command line."""

import asyncio
import os
import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from dualsink.adapters.storage import SQLiteAggregateStorage, SQLiteMetricStorage
from dualsink.cli import build_parser, main
from dualsink.core.transform import transform

# All tests in this module are tier 2 (integration tests with file I/O)
pytestmark = pytest.mark.tier(2)

JAN_15_1030 = 1705314600


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("DUALSINK_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("DUALSINK_BUFFER_BACKEND", "memory")
    yield


@pytest.fixture
def db(tmp_path: Path) -> str:
    return str(tmp_path / "cli.db")


def _seed(db: str, *records: dict[str, object]) -> None:
    storage = SQLiteMetricStorage(db)
    for record in records:
        storage.store_sync(transform(record))


class TestParser:
    def test_requires_a_command(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_naive_at_is_utc(self) -> None:
        args = build_parser().parse_args(["aggregate", "--at", "2024-01-15T10:30:00"])
        assert args.at.utcoffset().total_seconds() == 0

    @pytest.mark.parametrize("days", ["0", "-1", "seven"])
    def test_retention_days_must_be_a_positive_integer(self, days: str) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["cleanup", "--retention-days", days])

    def test_retention_days_defaults_to_none(self) -> None:
        assert build_parser().parse_args(["cleanup"]).retention_days is None


class TestCommands:
    @pytest.mark.storage
    def test_install_creates_tables(self, db: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["--database", db, "install"]) == 0

        assert f"tables ready in {db}" in capsys.readouterr().out
        assert Path(db).exists()

    @pytest.mark.storage
    def test_status_reports_counts(self, db: str, capsys: pytest.CaptureFixture[str]) -> None:
        _seed(
            db,
            {"t": "request", "timestamp": JAN_15_1030},
            {"t": "query", "timestamp": JAN_15_1030 + 1},
            {"t": "query", "timestamp": JAN_15_1030 + 2},
        )

        assert main(["--database", db, "status", "--detailed"]) == 0

        out = capsys.readouterr().out
        assert "database: connected" in out
        assert "total rows: 3" in out
        assert "  query: 2" in out
        assert "buffer backend: memory" in out
        assert "2024-01-15 10:30:02  query" in out

    @pytest.mark.storage
    def test_status_fails_when_database_is_unreachable(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        db = str(tmp_path / "missing" / "cli.db")

        assert main(["--database", db, "status"]) == 1

        assert "database: connection failed" in capsys.readouterr().out

    @pytest.mark.storage
    def test_test_command_stores_a_record(
        self, db: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["--database", db, "test"]) == 0

        assert "stored" in capsys.readouterr().out
        (row,) = SQLiteMetricStorage(db).read_sync()
        assert row.event_type == "test"
        assert row.details.custom_metadata["message"] == "dualsink test record"

    @pytest.mark.storage
    def test_test_command_reports_filtered_type(
        self,
        db: str,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        monkeypatch.setenv("DUALSINK_FILTERS__EVENT_TYPES", '["request"]')

        assert main(["--database", db, "test"]) == 1
        assert "was not stored" in capsys.readouterr().out

        assert main(["--database", db, "test", "--no-filters"]) == 0

    @pytest.mark.storage
    def test_aggregate_at_writes_all_granularities(
        self, db: str, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _seed(
            db,
            {"t": "request", "timestamp": JAN_15_1030, "status_code": 200},
            {"t": "query", "timestamp": JAN_15_1030, "duration": 4},
        )

        code = main(["--database", db, "aggregate", "--at", "2024-01-15T10:45:00"])

        assert code == 0
        out = capsys.readouterr().out
        assert "hourly: 2 rollups" in out
        assert "daily: 2 rollups" in out
        assert "weekly: 2 rollups" in out
        row = asyncio.run(SQLiteAggregateStorage(db).get("hourly", "request", "2024-01-15", 10))
        assert row is not None
        assert row.status_2xx == 1

    @pytest.mark.storage
    def test_aggregate_disabled(
        self, db: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("DUALSINK_AGGREGATION__ENABLED", "false")

        assert main(["--database", db, "aggregate"]) == 0
        assert "aggregation is disabled" in capsys.readouterr().out

    @pytest.mark.storage
    def test_cleanup_deletes_old_rows(self, db: str, capsys: pytest.CaptureFixture[str]) -> None:
        now = time.time()
        _seed(
            db,
            {"t": "request", "timestamp": now - 10 * 86400},
            {"t": "request", "timestamp": now - 3 * 86400},
            {"t": "request", "timestamp": now},
        )

        assert main(["--database", db, "cleanup", "--retention-days", "7"]) == 0

        assert "deleted 1 rows older than 7 days" in capsys.readouterr().out
        assert SQLiteMetricStorage(db).count_sync() == 2

    @pytest.mark.storage
    def test_cleanup_without_flag_uses_configured_retention(
        self, db: str, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("DUALSINK_CLEANUP__RETENTION_DAYS", "5")
        now = time.time()
        _seed(
            db,
            {"t": "request", "timestamp": now - 6 * 86400},
            {"t": "request", "timestamp": now - 4 * 86400},
        )

        assert main(["--database", db, "cleanup"]) == 0

        assert "deleted 1 rows older than 5 days" in capsys.readouterr().out
        assert SQLiteMetricStorage(db).count_sync() == 1
