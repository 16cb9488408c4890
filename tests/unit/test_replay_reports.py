"""Unit tests for the report replay script."""

import json

import pytest

from scripts.replay_reports import main, replay


RUN_ID = "3b9f2c1e-6a4d-4c8b-9e7f-1a2b3c4d5e6f"


def _lines(*records):
    return [json.dumps(record) for record in records]


@pytest.fixture
def captured_records(scan_report_payload):
    return _lines(
        {"type": "start", "runId": RUN_ID, "jobName": "flights_etl"},
        {
            "type": "report",
            "runId": RUN_ID,
            "kind": "basic-io",
            "dataset": {"namespace": "iceberg", "name": "demo.flights"},
            "payload": {"direction": "input", "size": 25238218, "fileCount": 1},
        },
        {"type": "report", "runId": RUN_ID, "kind": "scan", "payload": scan_report_payload},
        {"type": "complete", "runId": RUN_ID},
    )


class TestReplay:
    """Test feeding records into a correlator."""

    def test_replays_full_run(self, correlator, recording_transport, captured_records):
        stats = replay(captured_records, correlator)
        correlator.flush(timeout=5)

        assert stats.runs_started == 1
        assert stats.reports_recorded == 2
        assert stats.events_emitted == 1
        assert stats.invalid_lines == 0

        event = recording_transport.wire_events()[-1]
        assert event["eventType"] == "COMPLETE"
        assert event["run"]["runId"] == RUN_ID
        assert [d["name"] for d in event["inputs"]] == ["demo.flights"]

    def test_invalid_lines_are_counted(self, correlator):
        lines = [
            "",
            "not json",
            json.dumps({"type": "start"}),
            json.dumps({"type": "rewind", "runId": RUN_ID}),
            json.dumps({"type": "complete", "runId": RUN_ID, "eventType": "BOGUS"}),
        ]

        stats = replay(lines, correlator)

        assert stats.invalid_lines == 4
        assert stats.runs_started == 0

    def test_dropped_reports_are_counted(self, correlator):
        lines = _lines(
            {"type": "start", "runId": RUN_ID, "jobName": "flights_etl"},
            {"type": "report", "runId": RUN_ID, "kind": "scan", "payload": {}},
        )

        stats = replay(lines, correlator)

        assert stats.reports_dropped == 1
        assert stats.reports_recorded == 0


class TestMain:
    """Test the command-line entry point."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        monkeypatch.setenv("LINEAGE_TRANSPORT_BACKOFF_INITIAL_SECONDS", "0")
        monkeypatch.setenv("LINEAGE_EMIT_START_EVENTS", "false")
        monkeypatch.delenv("LINEAGE_TRANSPORT_TARGET", raising=False)
        monkeypatch.delenv("LINEAGE_NAMESPACE", raising=False)

    def test_writes_events_to_file_target(self, tmp_path, captured_records, capsys):
        source = tmp_path / "captured.jsonl"
        source.write_text("\n".join(captured_records), encoding="utf-8")
        target = tmp_path / "events.jsonl"

        exit_code = main([str(source), "--target", f"file://{target}", "--namespace", "iceberg"])

        assert exit_code == 0
        events = [json.loads(line) for line in target.read_text(encoding="utf-8").splitlines()]
        assert [e["eventType"] for e in events] == ["COMPLETE"]
        assert events[0]["job"]["namespace"] == "iceberg"
        assert "1 runs started" in capsys.readouterr().out

    def test_missing_input(self, tmp_path):
        assert main([str(tmp_path / "missing.jsonl")]) == 1

    def test_invalid_target(self, tmp_path, captured_records):
        source = tmp_path / "captured.jsonl"
        source.write_text("\n".join(captured_records), encoding="utf-8")

        assert main([str(source), "--target", "kafka://broker/lineage"]) == 1
