"""
Unit tests for the correlation index.

Tests bucket routing, run lifecycle, parking of early reports, idle
eviction and concurrent recording.
"""

import threading
import time
import uuid

import pytest

from lineage_stats.correlation import (
    Bucket,
    CorrelationIndex,
    IdleSweeper,
    RecordOutcome,
    UnknownRun,
)
from lineage_stats.errors import IncompleteRunDiscarded, RunClosed
from lineage_stats.models import (
    CommitReport,
    Dataset,
    InputStatistics,
    OutputStatistics,
    Run,
    RunState,
    ScanReport,
)


def _kinds(bucket):
    return [entry.facet.kind.value for entry in bucket.entries()]


# =============================================================================
# Bucket Routing Tests
# =============================================================================


class TestBucketRouting:
    """Test how facets are grouped into (dataset, version) buckets."""

    def test_unversioned_facets_share_a_bucket(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        index.record(run.run_id, flights, None, InputStatistics(size=2))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert buckets[0].version_id is None
        assert len(buckets[0]) == 1
        assert buckets[0].entries()[0].facet.size == 2

    def test_version_attaches_to_unversioned_bucket(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=25238218))
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=480))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert buckets[0].version_id == "480"
        assert _kinds(buckets[0]) == ["inputStatistics", "icebergScanReport"]

    def test_statistics_after_version_join_versioned_bucket(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=480))
        index.record(run.run_id, flights, None, InputStatistics(size=1))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert buckets[0].version_id == "480"

    def test_scan_and_commit_with_same_snapshot_share_a_bucket(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=7))
        index.record(run.run_id, flights, None, CommitReport(snapshot_id=7))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert _kinds(buckets[0]) == ["icebergScanReport", "icebergCommitReport"]

    def test_different_snapshots_get_separate_buckets(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=480))
        index.record(run.run_id, flights, None, CommitReport(snapshot_id=586))

        _, buckets = index.drain(run.run_id)

        assert [bucket.version_id for bucket in buckets] == ["480", "586"]

    def test_each_side_keeps_its_statistics(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=10))
        index.record(run.run_id, flights, None, OutputStatistics(size=20))
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=480))
        index.record(run.run_id, flights, None, CommitReport(snapshot_id=586))

        _, buckets = index.drain(run.run_id)
        by_version = {bucket.version_id: _kinds(bucket) for bucket in buckets}

        assert by_version == {
            "480": ["inputStatistics", "icebergScanReport"],
            "586": ["outputStatistics", "icebergCommitReport"],
        }

    @pytest.mark.parametrize(
        "reports",
        [
            [InputStatistics(size=10), ScanReport(snapshot_id=586), CommitReport(snapshot_id=586)],
            [InputStatistics(size=10), CommitReport(snapshot_id=586), ScanReport(snapshot_id=586)],
        ],
        ids=["scan-then-commit", "commit-then-scan"],
    )
    def test_statistics_join_snapshot_whichever_side_opens_it(self, index, run, flights, reports):
        index.open_run(run)
        for facet in reports:
            index.record(run.run_id, flights, None, facet)

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert buckets[0].version_id == "586"
        assert sorted(_kinds(buckets[0])) == [
            "icebergCommitReport",
            "icebergScanReport",
            "inputStatistics",
        ]

    def test_statistics_recorded_after_absorb_follow_the_snapshot(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        index.record(run.run_id, flights, None, CommitReport(snapshot_id=586))
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=586))
        index.record(run.run_id, flights, None, InputStatistics(size=2))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        stats = [e.facet for e in buckets[0].entries() if e.facet.kind.value == "inputStatistics"]
        assert [facet.size for facet in stats] == [2]

    def test_numeric_and_string_versions_share_a_bucket(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, 586, InputStatistics(size=1))
        index.record(run.run_id, flights, "586", OutputStatistics(size=2))

        _, buckets = index.drain(run.run_id)

        assert len(buckets) == 1
        assert buckets[0].version_id == "586"

    def test_explicit_version_qualifies_statistics(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, 9, InputStatistics(size=1))

        _, buckets = index.drain(run.run_id)

        assert buckets[0].version_id == "9"

    def test_datasets_do_not_mix(self, index, run, flights, airports):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        index.record(run.run_id, airports, None, InputStatistics(size=2))

        _, buckets = index.drain(run.run_id)

        assert [bucket.dataset for bucket in buckets] == [flights, airports]

    def test_invalid_version_rejected(self, index, run, flights):
        index.open_run(run)
        with pytest.raises(ValueError):
            index.record(run.run_id, flights, "  ", InputStatistics(size=1))


# =============================================================================
# Bucket Storage Tests
# =============================================================================


class TestBucketStorage:
    """Test that a bucket keeps one entry per kind."""

    def test_repeated_reports_do_not_grow_the_bucket(self, flights):
        bucket = Bucket(flights)
        for seq in range(1000):
            bucket.add(seq, InputStatistics(size=seq))

        assert len(bucket) == 1
        assert bucket.entries()[0].facet.size == 999

    def test_late_sequence_number_does_not_replace_newer_entry(self, flights):
        bucket = Bucket(flights)
        bucket.add(5, InputStatistics(size=5))
        bucket.add(3, InputStatistics(size=3))

        assert bucket.entries()[0].facet.size == 5

    def test_conflicting_snapshot_is_held_apart(self, flights):
        bucket = Bucket(flights, "480")
        bucket.add(0, ScanReport(snapshot_id=480))
        bucket.add(1, ScanReport(snapshot_id=586))
        bucket.add(2, ScanReport(snapshot_id=586))

        assert [e.facet.version_id for e in bucket.entries()] == ["480"]
        assert [e.seq for e in bucket.conflicts()] == [2]
        assert len(bucket) == 2

    def test_absorbed_bucket_forwards_later_facets(self, flights):
        anchor = Bucket(flights)
        anchor.add(0, InputStatistics(size=1))
        versioned = Bucket(flights, "586")
        versioned.add(1, CommitReport(snapshot_id=586))

        versioned.absorb(anchor)
        anchor.add(2, InputStatistics(size=2))

        assert len(anchor) == 0
        assert _kinds(versioned) == ["inputStatistics", "icebergCommitReport"]
        assert versioned.entries()[0].facet.size == 2


# =============================================================================
# Run Lifecycle Tests
# =============================================================================


class TestRunLifecycle:
    """Test OPEN -> ACCUMULATING -> EMITTING -> CLOSED."""

    def test_state_transitions(self, index, run, flights):
        assert index.run_state(run.run_id) is None

        index.open_run(run)
        assert index.run_state(run.run_id) == RunState.OPEN

        index.record(run.run_id, flights, None, InputStatistics(size=1))
        assert index.run_state(run.run_id) == RunState.ACCUMULATING

        index.drain(run.run_id)
        assert index.run_state(run.run_id) == RunState.CLOSED

    def test_record_after_drain_raises_run_closed(self, index, run, flights):
        index.open_run(run)
        index.drain(run.run_id)

        with pytest.raises(RunClosed):
            index.record(run.run_id, flights, None, InputStatistics(size=1))

    def test_drain_twice_raises_run_closed(self, index, run):
        index.open_run(run)
        index.drain(run.run_id)

        with pytest.raises(RunClosed):
            index.drain(run.run_id)

    def test_drain_unknown_run(self, index):
        with pytest.raises(UnknownRun):
            index.drain(uuid.uuid4())

    def test_reopen_closed_run_raises(self, index, run):
        index.open_run(run)
        index.drain(run.run_id)

        with pytest.raises(RunClosed):
            index.open_run(run)

    def test_open_twice_is_noop(self, index, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=1))

        assert index.open_run(run) == 0
        _, buckets = index.drain(run.run_id)
        assert len(buckets[0]) == 1

    def test_drain_returns_run(self, index, run):
        index.open_run(run)
        drained_run, buckets = index.drain(run.run_id)

        assert drained_run == run
        assert buckets == []


# =============================================================================
# Parked Report Tests
# =============================================================================


class TestParkedReports:
    """Test reports that arrive before their run is opened."""

    def test_early_report_is_parked_and_replayed(self, index, run, flights):
        outcome = index.record(run.run_id, flights, None, InputStatistics(size=1))
        assert outcome == RecordOutcome.PARKED

        assert index.open_run(run) == 1
        _, buckets = index.drain(run.run_id)
        assert len(buckets) == 1

    def test_expired_parked_report_is_dropped_at_open(self, index, clock, run, flights):
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        clock.advance(61)

        assert index.open_run(run) == 0
        _, buckets = index.drain(run.run_id)
        assert buckets == []

    def test_sweep_expires_parked_reports(self, index, clock, run, flights):
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        index.record(run.run_id, flights, None, ScanReport(snapshot_id=1))
        clock.advance(61)

        result = index.sweep()

        assert result.expired_pending == 2
        assert index.open_run(run) == 0

    def test_sweep_keeps_fresh_parked_reports(self, index, clock, run, flights):
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        clock.advance(30)

        assert index.sweep().expired_pending == 0
        assert index.open_run(run) == 1


# =============================================================================
# Idle Eviction Tests
# =============================================================================


class TestIdleEviction:
    """Test the idle sweep."""

    def test_idle_run_is_discarded(self, index, clock, run, flights):
        index.open_run(run)
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        clock.advance(301)

        result = index.sweep()

        assert len(result.discarded) == 1
        discarded = result.discarded[0]
        assert isinstance(discarded, IncompleteRunDiscarded)
        assert discarded.run_id == run.run_id
        assert discarded.facet_count == 1
        assert index.run_state(run.run_id) == RunState.CLOSED

    def test_discarded_run_rejects_late_reports(self, index, clock, run, flights):
        index.open_run(run)
        clock.advance(301)
        index.sweep()

        with pytest.raises(RunClosed):
            index.record(run.run_id, flights, None, InputStatistics(size=1))

    def test_active_run_is_kept(self, index, clock, run, flights):
        index.open_run(run)
        clock.advance(200)
        index.record(run.run_id, flights, None, InputStatistics(size=1))
        clock.advance(200)

        assert index.sweep().discarded == []
        assert index.run_state(run.run_id) == RunState.ACCUMULATING

    def test_closed_runs_are_forgotten_after_retention(self, index, clock, run):
        index.open_run(run)
        index.drain(run.run_id)
        clock.advance(119)
        assert index.sweep().forgotten_runs == 0

        clock.advance(2)
        assert index.sweep().forgotten_runs == 1
        assert index.run_state(run.run_id) is None
        assert len(index) == 0

    def test_emitting_run_is_skipped(self, index, clock, run):
        index.open_run(run)
        index._runs[run.run_id].state = RunState.EMITTING
        clock.advance(301)

        assert index.sweep().discarded == []
        assert index.run_state(run.run_id) == RunState.EMITTING


class TestIdleSweeper:
    """Test the background sweep thread."""

    def test_sweeper_discards_idle_runs(self, index, clock, run):
        index.open_run(run)
        clock.advance(301)

        sweeper = IdleSweeper(index, interval_seconds=0.01)
        sweeper.start()
        try:
            deadline = time.monotonic() + 5
            while index.run_state(run.run_id) != RunState.CLOSED and time.monotonic() < deadline:
                time.sleep(0.01)
        finally:
            sweeper.stop(timeout=5)

        assert index.run_state(run.run_id) == RunState.CLOSED

    def test_stop_without_start(self, index):
        IdleSweeper(index, interval_seconds=1).stop(timeout=1)


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestConcurrentRecording:
    """Test recording from many threads."""

    def test_two_datasets_in_parallel(self, index, run, flights, airports):
        index.open_run(run)
        barrier = threading.Barrier(2)

        def record_many(dataset, size):
            barrier.wait()
            for _ in range(200):
                index.record(run.run_id, dataset, None, InputStatistics(size=size))

        threads = [
            threading.Thread(target=record_many, args=(flights, 1)),
            threading.Thread(target=record_many, args=(airports, 2)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        _, buckets = index.drain(run.run_id)
        by_dataset = {bucket.dataset: bucket for bucket in buckets}

        assert len(by_dataset) == 2
        assert len(by_dataset[flights]) == 1
        assert len(by_dataset[airports]) == 1
        assert {e.facet.size for e in by_dataset[flights].entries()} == {1}
        assert {e.facet.size for e in by_dataset[airports].entries()} == {2}

    def test_racing_recorders_land_or_are_rejected(self, index, run):
        index.open_run(run)
        accepted = {}
        rejected = []
        started = threading.Event()
        tables = [Dataset(namespace="iceberg", name=f"demo.t{i}") for i in range(4)]

        def record_until_closed(table):
            count = 0
            while True:
                try:
                    index.record(run.run_id, table, None, InputStatistics(size=count))
                except RunClosed:
                    rejected.append(True)
                    break
                count += 1
                started.set()
            accepted[table] = count

        threads = [threading.Thread(target=record_until_closed, args=(table,)) for table in tables]
        for thread in threads:
            thread.start()
        started.wait(timeout=5)

        _, buckets = index.drain(run.run_id)
        for thread in threads:
            thread.join(timeout=5)

        assert len(rejected) == 4
        # the last accepted record of every table is the one drained
        drained = {bucket.dataset: bucket.entries()[0].facet.size for bucket in buckets}
        assert drained == {table: count - 1 for table, count in accepted.items() if count}

    def test_open_run_races_with_parking(self, index, run, flights):
        barrier = threading.Barrier(2)

        def record():
            barrier.wait()
            index.record(run.run_id, flights, None, InputStatistics(size=1))

        thread = threading.Thread(target=record)
        thread.start()
        barrier.wait()
        index.open_run(run)
        thread.join()

        _, buckets = index.drain(run.run_id)
        assert sum(len(bucket) for bucket in buckets) == 1


def test_index_defaults():
    index = CorrelationIndex()
    assert index.idle_timeout_seconds == 3600
    assert len(index) == 0


def test_bucket_repr(index, run, flights):
    index.open_run(run)
    index.record(run.run_id, flights, None, ScanReport(snapshot_id=5))
    _, buckets = index.drain(run.run_id)
    assert repr(buckets[0]) == "Bucket(iceberg/demo.flights@5, 1 facets)"


def test_run_fixture_is_a_run(run):
    assert isinstance(run, Run)
