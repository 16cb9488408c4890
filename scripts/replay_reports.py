#!/usr/bin/env python3
"""
Replay captured engine reports through the lineage statistics correlator.

Reads a JSON lines file where each line is one record:

    {"type": "start", "runId": "...", "jobName": "flights_etl"}
    {"type": "report", "runId": "...", "kind": "scan",
     "dataset": {"namespace": "iceberg", "name": "demo.flights"},
     "versionId": "4805899131487958457", "payload": {...}}
    {"type": "complete", "runId": "...", "eventType": "COMPLETE"}

"dataset" and "versionId" are optional on reports. Events are delivered to
the transport named by --target (default: LINEAGE_TRANSPORT_TARGET).

Usage:
    python scripts/replay_reports.py captured.jsonl --target file:///tmp/events.jsonl
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from lineage_stats import Correlator, CorrelatorSettings, Dataset, EventType, TransportSettings
from lineage_stats.errors import TransportConfigError

logger = logging.getLogger("replay_reports")


@dataclass
class ReplayStats:
    """Counts of replayed records."""

    runs_started: int = 0
    reports_recorded: int = 0
    reports_dropped: int = 0
    events_emitted: int = 0
    invalid_lines: int = 0


def _dataset_from(record: dict[str, Any]) -> Optional[Dataset]:
    raw = record.get("dataset")
    if raw is None:
        return None
    return Dataset(**raw)


def replay(lines: Iterable[str], correlator: Correlator) -> ReplayStats:
    """
    Feed JSON lines records into a correlator.

    Blank lines are skipped. Lines that are not valid records are counted
    and logged, and replay continues.
    """
    stats = ReplayStats()

    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue

        try:
            record = json.loads(line)
            record_type = record["type"]
            run_id = record["runId"]

            if record_type == "start":
                if correlator.start_run(run_id, record["jobName"], record.get("jobNamespace")):
                    stats.runs_started += 1
            elif record_type == "report":
                recorded = correlator.on_report(
                    record["kind"],
                    run_id,
                    _dataset_from(record),
                    record.get("versionId"),
                    record.get("payload") or {},
                )
                if recorded:
                    stats.reports_recorded += 1
                else:
                    stats.reports_dropped += 1
            elif record_type == "complete":
                event_type = EventType(record.get("eventType", EventType.COMPLETE.value))
                if correlator.complete_run(run_id, event_type):
                    stats.events_emitted += 1
            else:
                raise ValueError(f"unknown record type '{record_type}'")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping line {line_number}: {e}")
            stats.invalid_lines += 1

    return stats


def main(argv: Optional[list[str]] = None) -> int:
    """
    Replay entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Replay captured reports into a lineage transport")
    parser.add_argument("input", type=Path, help="JSON lines file of captured records")
    parser.add_argument("--target", help="Transport target URI (default: LINEAGE_TRANSPORT_TARGET)")
    parser.add_argument("--namespace", help="Default job/dataset namespace (default: LINEAGE_NAMESPACE)")
    parser.add_argument(
        "--flush-timeout",
        type=float,
        default=30.0,
        help="Seconds to wait for queued events at exit",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.input.exists():
        print(f"Input file not found: {args.input}", file=sys.stderr)
        return 1

    settings = CorrelatorSettings()
    if args.namespace:
        settings = settings.model_copy(update={"namespace": args.namespace})
    transport_settings = TransportSettings()
    if args.target:
        transport_settings = transport_settings.model_copy(update={"target": args.target})

    try:
        correlator = Correlator(
            settings=settings,
            transport_settings=transport_settings,
            start_sweeper=False,
        )
    except TransportConfigError as e:
        print(f"Invalid transport target: {e}", file=sys.stderr)
        return 1

    try:
        with args.input.open(encoding="utf-8") as f:
            stats = replay(f, correlator)
        drained = correlator.flush(args.flush_timeout)
    finally:
        correlator.close(args.flush_timeout)

    print(
        f"Replayed {args.input}: {stats.runs_started} runs started, "
        f"{stats.reports_recorded} reports recorded, {stats.reports_dropped} dropped, "
        f"{stats.events_emitted} events emitted, {stats.invalid_lines} invalid lines"
    )
    if not drained:
        print("Timed out waiting for queued events", file=sys.stderr)
        return 1
    return 0 if correlator.sender.dropped == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
