"""
Shared pytest fixtures for correlator tests.

Provides reusable datasets, report payloads, a controllable clock and a
recording transport to avoid duplication across test files.
"""

import threading
import uuid
from typing import Iterable, Optional

import pytest

from lineage_stats import Correlator
from lineage_stats.correlation import CorrelationIndex
from lineage_stats.models import (
    CorrelatorSettings,
    Dataset,
    Event,
    Run,
    TransportSettings,
)
from lineage_stats.normalizer import ReportNormalizer
from lineage_stats.transports import SendResult, Transport


SCAN_SNAPSHOT_ID = 4805899131487958457
COMMIT_SNAPSHOT_ID = 5865364935245633316


# =============================================================================
# Test Doubles
# =============================================================================

class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport(Transport):
    """
    Transport that records every event it accepts.

    ``results`` is consumed one per send; once exhausted every send is OK.
    """

    def __init__(self, results: Optional[Iterable[SendResult]] = None):
        self.results = list(results or [])
        self.events: list[Event] = []
        self.attempts = 0
        self.closed = False
        self._lock = threading.Lock()

    def send(self, event: Event) -> SendResult:
        with self._lock:
            self.attempts += 1
            result = self.results.pop(0) if self.results else SendResult.OK
            if result == SendResult.OK:
                self.events.append(event)
            return result

    def close(self) -> None:
        self.closed = True

    def wire_events(self) -> list[dict]:
        return [event.to_wire() for event in self.events]


# =============================================================================
# Identity Fixtures
# =============================================================================

@pytest.fixture
def flights():
    """The flights table used throughout the examples."""
    return Dataset(namespace="iceberg", name="demo.flights")


@pytest.fixture
def airports():
    """A second dataset for cross-contamination checks."""
    return Dataset(namespace="iceberg", name="demo.airports")


@pytest.fixture
def run_id():
    return uuid.uuid4()


@pytest.fixture
def run(run_id):
    return Run(run_id=run_id, job_name="flights_etl", job_namespace="iceberg")


# =============================================================================
# Payload Fixtures
# =============================================================================

@pytest.fixture
def input_stats_payload():
    """Basic I/O counters for a 25 MB single-file read."""
    return {"direction": "input", "size": 25238218, "fileCount": 1}


@pytest.fixture
def scan_report_payload():
    """Scan report in the table-format engine's kebab-case JSON format."""
    return {
        "table-name": "demo.flights",
        "snapshot-id": SCAN_SNAPSHOT_ID,
        "filter": "ref(name=\"year\") == 2024",
        "schema-id": 0,
        "projected-field-names": ["year", "carrier", "dep_delay"],
        "metrics": {
            "total-planning-duration": {
                "count": 1,
                "time-unit": "nanoseconds",
                "total-duration": 25000000,
            },
            "result-data-files": {"unit": "count", "value": 1},
            "total-file-size-in-bytes": {"unit": "bytes", "value": 25238218},
        },
        "metadata": {"engine-version": "3.5.1"},
    }


@pytest.fixture
def commit_report_payload():
    """Commit report for an append producing a new snapshot."""
    return {
        "table-name": "demo.flights",
        "snapshot-id": COMMIT_SNAPSHOT_ID,
        "sequence-number": 2,
        "operation": "append",
        "metrics": {
            "added-data-files": {"unit": "count", "value": 1},
            "added-records": {"unit": "count", "value": 1000},
            "total-duration": {
                "count": 1,
                "time-unit": "nanoseconds",
                "total-duration": 1500000000,
            },
        },
    }


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def normalizer():
    return ReportNormalizer()


@pytest.fixture
def index(clock):
    """Correlation index with short retention windows on a fake clock."""
    return CorrelationIndex(
        idle_timeout_seconds=300,
        pending_retention_seconds=60,
        closed_run_retention_seconds=120,
        clock=clock,
    )


@pytest.fixture
def recording_transport():
    return RecordingTransport()


@pytest.fixture
def correlator_settings():
    return CorrelatorSettings(
        namespace="iceberg",
        idle_timeout_seconds=300,
        pending_retention_seconds=60,
        closed_run_retention_seconds=120,
        emit_start_events=False,
    )


@pytest.fixture
def fast_transport_settings():
    """Delivery policy without backoff delays."""
    return TransportSettings(
        target="noop",
        max_attempts=3,
        backoff_initial_seconds=0,
        backoff_max_seconds=0,
        queue_size=100,
    )


@pytest.fixture
def correlator(correlator_settings, fast_transport_settings, recording_transport, clock):
    """Correlator delivering to a recording transport, no sweeper thread."""
    instance = Correlator(
        settings=correlator_settings,
        transport=recording_transport,
        transport_settings=fast_transport_settings,
        clock=clock,
        start_sweeper=False,
    )
    yield instance
    instance.close(timeout=5)
