"""
End-to-end tests for fleetctl using the snapshot adapter.
"""

from datetime import datetime, timezone

import pytest
import yaml

from fleet_telemetry.cli import fleetctl
from fleet_telemetry.reporting import ExportError, read_export

from helpers import event_payload, health_payload


@pytest.fixture
def snapshots(tmp_path):
    """Snapshot directory with one busy host (A) and one quiet host (C)."""
    now = datetime.now(timezone.utc)
    directory = tmp_path / "snapshots"
    directory.mkdir()

    host_a = {
        "health": {
            "os": {
                "TotalVisibleMemorySize": 1000,
                "FreePhysicalMemory": 500,
                "LastBootUpTime": now.isoformat(),
            },
            "drives": [{"DeviceID": "C:", "DriveType": 3, "Size": 100, "FreeSpace": 8}],
        },
        "events": {
            "System": [
                event_payload(event_id=7, minutes_ago=5, now=now),
                event_payload(event_id=7, minutes_ago=15, now=now),
            ],
            "Application": [],
        },
    }
    host_c = {
        "health": {"os": {}, "drives": [health_payload(now=now)]},
        "events": {"System": [], "Application": []},
    }
    for name, data in (("A", host_a), ("C", host_c)):
        with open(directory / f"{name}.yaml", "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f)
    return directory


def base_args(command, snapshots, output, hosts="A,B,C"):
    return [
        command,
        "--adapter", "snapshot",
        "--snapshot-dir", str(snapshots),
        "--hosts", hosts,
        "--output", str(output),
    ]


class TestCollectCommands:

    def test_events_with_dedup(self, snapshots, tmp_path, capsys):
        output = tmp_path / "events.csv"

        code = fleetctl.main(base_args("events", snapshots, output) + ["--dedup"])

        assert code == 0
        rows = read_export(output)
        assert len(rows) == 1
        assert rows[0]["host"] == "A"
        assert rows[0]["event_id"] == "7"
        assert rows[0]["occurrences"] == "2"

        out = capsys.readouterr().out
        assert "Failed queries (2):" in out
        assert "B / System: Unreachable" in out

    def test_events_without_dedup(self, snapshots, tmp_path):
        output = tmp_path / "events.csv"

        assert fleetctl.main(base_args("events", snapshots, output)) == 0
        assert len(read_export(output)) == 2

    def test_health(self, snapshots, tmp_path):
        output = tmp_path / "health.csv"

        code = fleetctl.main(base_args("health", snapshots, output, hosts="A,C"))

        assert code == 0
        rows = read_export(output)
        assert [r["host"] for r in rows] == ["A", "C"]
        assert rows[0]["status"] == "WARNING"
        assert rows[0]["reasons"] == "Disk C: usage at 92%"
        assert rows[1]["status"] == "OK"

    def test_health_threshold_flag(self, snapshots, tmp_path):
        output = tmp_path / "health.csv"

        fleetctl.main(
            base_args("health", snapshots, output, hosts="A") + ["--disk-threshold", "95"]
        )

        assert read_export(output)[0]["status"] == "OK"

    def test_run_writes_html_report(self, snapshots, tmp_path):
        output = tmp_path / "fleet.csv"

        code = fleetctl.main(base_args("run", snapshots, output) + ["--html-report"])

        assert code == 0
        assert output.exists()
        html_path = tmp_path / "fleet.html"
        assert html_path.exists()
        assert "Fleet Telemetry Report" in html_path.read_text(encoding="utf-8")
        domains = {row["domain"] for row in read_export(output)}
        assert domains == {"health", "log_event"}

    def test_html_export_name_keeps_csv_and_report_apart(self, snapshots, tmp_path):
        output = tmp_path / "fleet.html"

        code = fleetctl.main(base_args("health", snapshots, output, hosts="A") + ["--html-report"])

        assert code == 0
        assert [r["host"] for r in read_export(output)] == ["A"]
        report = tmp_path / "fleet.report.html"
        assert report.read_text(encoding="utf-8").startswith("<!DOCTYPE html>")

    def test_all_hosts_failing_still_exits_zero(self, snapshots, tmp_path):
        output = tmp_path / "events.csv"

        code = fleetctl.main(base_args("events", snapshots, output, hosts="X,Y"))

        assert code == 0
        assert read_export(output) == []

    def test_hosts_file(self, snapshots, tmp_path):
        hosts_file = tmp_path / "hosts.txt"
        hosts_file.write_text("# lab\nA\n", encoding="utf-8")
        output = tmp_path / "events.csv"

        code = fleetctl.main([
            "events",
            "--adapter", "snapshot",
            "--snapshot-dir", str(snapshots),
            "--hosts-file", str(hosts_file),
            "--output", str(output),
        ])

        assert code == 0
        assert {r["host"] for r in read_export(output)} == {"A"}


class TestExitCodes:

    def test_no_hosts(self, snapshots, tmp_path, capsys):
        code = fleetctl.main([
            "events",
            "--adapter", "snapshot",
            "--snapshot-dir", str(snapshots),
            "--output", str(tmp_path / "out.csv"),
        ])

        assert code == 2
        assert "Configuration error" in capsys.readouterr().err

    def test_bad_event_ids(self, snapshots, tmp_path):
        args = base_args("events", snapshots, tmp_path / "out.csv") + ["--event-ids", "41,abc"]
        assert fleetctl.main(args) == 2

    def test_threshold_out_of_range(self, snapshots, tmp_path):
        args = base_args("health", snapshots, tmp_path / "out.csv") + ["--disk-threshold", "150"]
        assert fleetctl.main(args) == 2

    def test_unknown_level(self, snapshots, tmp_path):
        args = base_args("events", snapshots, tmp_path / "out.csv") + ["--levels", "Loud"]
        assert fleetctl.main(args) == 2

    def test_config_error_queries_nothing(self, snapshots, tmp_path, monkeypatch):
        called = []
        monkeypatch.setattr(fleetctl, "collect", lambda *a, **kw: called.append(a))

        code = fleetctl.main(base_args("events", snapshots, tmp_path / "out.csv") + ["--hours", "0"])

        assert code == 2
        assert called == []

    def test_export_failure_after_summary(self, snapshots, tmp_path, monkeypatch, capsys):
        def fail(result, path):
            raise ExportError(f"Failed to write export {path}: disk full")

        monkeypatch.setattr(fleetctl, "export_csv", fail)

        code = fleetctl.main(base_args("events", snapshots, tmp_path / "out.csv"))

        assert code == 3
        captured = capsys.readouterr()
        assert "Fleet Telemetry Summary" in captured.out
        assert "disk full" in captured.err


class TestMisc:

    def test_version(self, capsys):
        assert fleetctl.main(["version"]) == 0
        assert "fleetctl version" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert fleetctl.main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_retries_flag_maps_to_attempts(self):
        args = fleetctl.create_parser().parse_args(["events", "--retries", "2"])
        overrides = fleetctl.build_overrides(args)
        assert overrides["retry"] == {"max_attempts": 3}
