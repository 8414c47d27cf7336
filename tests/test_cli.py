"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from tuition_ledger.cli import create_parser, main
from tuition_ledger.exceptions import TransportError
from tuition_ledger.transport import RemoteStoreBase


@pytest.fixture
def snapshot_file(tmp_path, service):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps(service.snapshot().to_wire()), encoding="utf-8")
    return path


@pytest.fixture
def feed_file(tmp_path, raw_external_records):
    path = tmp_path / "feed.json"
    path.write_text(json.dumps(raw_external_records, ensure_ascii=False), encoding="utf-8")
    return path


def read_snapshot(path):
    return json.loads(path.read_text(encoding="utf-8"))


class TestParser:
    """Tests for argument parsing."""

    def test_merge_defaults(self):
        args = create_parser().parse_args(["merge", "ledger.json", "feed.json"])
        assert args.format == "json"
        assert args.write is False
        assert args.summary_only is False

    def test_rejects_unknown_format(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["daily-report", "ledger.json", "--format", "xml"])

    def test_no_command(self):
        assert main([]) == 1


class TestMerge:
    """Tests for the merge command."""

    def test_merge_is_idempotent(self, snapshot_file, feed_file, capsys):
        assert main(["merge", str(snapshot_file), str(feed_file), "--write"]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["summary"]["total_new"] == 2
        assert len(read_snapshot(snapshot_file)["payments"]) == 2

        assert main([
            "merge", str(snapshot_file), str(feed_file), "--write", "--summary-only",
        ]) == 0
        report = json.loads(capsys.readouterr().out)
        assert report["summary"]["total_new"] == 0
        assert report["summary"]["duplicates"] == 2
        assert "new_records" not in report
        assert len(read_snapshot(snapshot_file)["payments"]) == 2

    def test_merge_without_write_keeps_file(self, snapshot_file, feed_file, tmp_path):
        output = tmp_path / "report.csv"
        assert main([
            "merge", str(snapshot_file), str(feed_file), "-f", "csv", "-o", str(output),
        ]) == 0
        assert output.read_text(encoding="utf-8").startswith("id,")
        assert read_snapshot(snapshot_file)["payments"] == []

    def test_missing_file(self, tmp_path, feed_file):
        assert main(["merge", str(tmp_path / "missing.json"), str(feed_file)]) == 1

    def test_feed_must_be_a_list(self, snapshot_file, tmp_path):
        feed = tmp_path / "feed.json"
        feed.write_text('"not records"', encoding="utf-8")
        assert main(["merge", str(snapshot_file), str(feed)]) == 1


class TestLedgerCommands:
    """Tests for balance, accrual and the daily closing."""

    def test_balance(self, snapshot_file, capsys):
        assert main(["balance", str(snapshot_file), "v-12.345.678"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data["cedula"] == "V-12345678"
        assert data["name"] == "María González"
        assert data["outstanding"] == 180.0

    def test_balance_unknown_representative(self, snapshot_file):
        assert main(["balance", str(snapshot_file), "555"]) == 1

    def test_accrue(self, snapshot_file, capsys):
        assert main(["accrue", str(snapshot_file), "--month", "2025-04", "--write"]) == 0
        assert json.loads(capsys.readouterr().out) == {"V-12345678": 180.0, "9876543": 50.0}
        reps = read_snapshot(snapshot_file)["representatives"]
        assert reps[0]["totalAccruedDebt"] == 360.0
        assert reps[0]["lastAccrualMonth"] == "2025-04"

    def test_accrue_out_of_order(self, snapshot_file):
        assert main(["accrue", str(snapshot_file), "--month", "2024-12"]) == 1

    def test_daily_report_text(self, snapshot_file, capsys):
        assert main(["daily-report", str(snapshot_file), "--day", "2025-03-14", "-f", "text"]) == 0
        assert "Total:" in capsys.readouterr().out

    def test_daily_report_bad_day(self, snapshot_file):
        assert main(["daily-report", str(snapshot_file), "--day", "14/03/2025"]) == 1


class TestPull:
    """Tests for the pull command."""

    def test_requires_remote_url(self, snapshot_file, monkeypatch):
        monkeypatch.delenv("LEDGER_REMOTE_URL", raising=False)
        assert main(["pull", str(snapshot_file)]) == 1

    def test_pull_merges_feed(self, snapshot_file, raw_external_records, monkeypatch, capsys):
        monkeypatch.setenv("LEDGER_REMOTE_URL", "https://store.example.com/exec")
        store = AsyncMock(spec=RemoteStoreBase)
        store.fetch_external_payments.return_value = raw_external_records

        with patch("tuition_ledger.cli.get_remote_store", return_value=store) as factory:
            assert main(["pull", str(snapshot_file), "--write"]) == 0

        factory.assert_called_once()
        store.close.assert_awaited_once()
        assert "New Pending Records: 2" in capsys.readouterr().out
        assert len(read_snapshot(snapshot_file)["payments"]) == 2

    def test_pull_failure_keeps_file(self, snapshot_file, monkeypatch):
        monkeypatch.setenv("LEDGER_REMOTE_URL", "https://store.example.com/exec")
        store = AsyncMock(spec=RemoteStoreBase)
        store.fetch_external_payments.side_effect = TransportError("timeout")

        with patch("tuition_ledger.cli.get_remote_store", return_value=store):
            assert main(["pull", str(snapshot_file), "--write"]) == 1
        assert read_snapshot(snapshot_file)["payments"] == []
