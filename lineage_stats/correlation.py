# =============================================================================
# Correlation Index
# =============================================================================
# Maps (run, dataset, version) to accumulated facets and tracks the
# per-run lifecycle: OPEN -> ACCUMULATING -> EMITTING -> CLOSED.
# =============================================================================

"""
Correlation index for the lineage statistics correlator.

Locking model:
- The registry lock guards only the run and pending maps (insert/remove).
- Each run has a lock + condition guarding its state and bucket routing.
- Each bucket has a lock guarding its facet entries.

A recorder routes under the run lock, bumps the run's in-flight counter,
releases the run lock and stores under the bucket lock. Draining flips the
run to EMITTING (new recorders get RunClosed) and waits for the in-flight
counter to reach zero, so every racing recorder either lands in the drained
set or is rejected.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID

from .errors import IncompleteRunDiscarded, LineageStatsError, RunClosed
from .models import Dataset, DatasetVersion, Facet, FacetKind, FacetSide, Run, RunState
from .models.dataset import validate_version_id

__all__ = [
    "Bucket",
    "FacetEntry",
    "CorrelationIndex",
    "IdleSweeper",
    "RecordOutcome",
    "SweepResult",
    "UnknownRun",
]

logger = logging.getLogger(__name__)


class UnknownRun(LineageStatsError):
    """An operation referenced a run the index has never opened."""

    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Run {run_id} is not known")


class RecordOutcome(str, Enum):
    """What happened to a recorded facet."""

    RECORDED = "recorded"
    PARKED = "parked"


# =============================================================================
# Buckets
# =============================================================================


@dataclass(frozen=True)
class FacetEntry:
    """A facet with its arrival sequence number."""

    seq: int
    facet: Facet


class Bucket:
    """
    Facets recorded for one dataset-in-run context.

    A bucket starts unversioned when basic statistics arrive first and has a
    version attached once a version-qualified facet for the same dataset and
    side arrives.

    Only the latest facet of each kind is kept. A facet declaring a snapshot
    other than the bucket's version is held apart as a conflict (latest per
    kind) so the merger can report it. Once a bucket has been absorbed into
    another, facets added to it are forwarded to the absorbing bucket.
    """

    def __init__(self, dataset: Dataset, version_id: Optional[str] = None):
        self.dataset = dataset
        self.version_id = version_id
        self.lock = threading.Lock()
        self._latest: dict[FacetKind, FacetEntry] = {}
        self._first_seq: dict[FacetKind, int] = {}
        self._conflicts: dict[FacetKind, FacetEntry] = {}
        self._absorbed_by: Optional["Bucket"] = None

    def add(self, seq: int, facet: Facet) -> None:
        with self.lock:
            target = self._absorbed_by
            if target is None:
                self._put(FacetEntry(seq=seq, facet=facet))
                return
        target.add(seq, facet)

    def absorb(self, other: "Bucket") -> None:
        """Move another bucket's facets into this one and forward its future adds here."""
        with other.lock, self.lock:
            for kind, entry in other._latest.items():
                self._put(entry, other._first_seq[kind])
            for entry in other._conflicts.values():
                self._put(entry)
            other._latest.clear()
            other._first_seq.clear()
            other._conflicts.clear()
            other._absorbed_by = self

    def _put(self, entry: FacetEntry, first_seq: Optional[int] = None) -> None:
        kind = entry.facet.kind
        declared = entry.facet.version_id
        if declared is not None and self.version_id is not None and declared != self.version_id:
            current = self._conflicts.get(kind)
            if current is None or entry.seq > current.seq:
                self._conflicts[kind] = entry
            return

        first = entry.seq if first_seq is None else first_seq
        self._first_seq[kind] = min(self._first_seq.get(kind, first), first)
        current = self._latest.get(kind)
        if current is None or entry.seq > current.seq:
            self._latest[kind] = entry

    def entries(self) -> list[FacetEntry]:
        """Latest entry of each kind, kinds in order of first arrival."""
        with self.lock:
            return sorted(self._latest.values(), key=lambda entry: self._first_seq[entry.facet.kind])

    def conflicts(self) -> list[FacetEntry]:
        """Entries whose declared snapshot differs from the bucket's version."""
        with self.lock:
            return sorted(self._conflicts.values(), key=lambda entry: entry.seq)

    def __len__(self) -> int:
        with self.lock:
            return len(self._latest) + len(self._conflicts)

    def __repr__(self) -> str:
        return f"Bucket({self.dataset}@{self.version_id}, {len(self)} facets)"


# =============================================================================
# Run Context
# =============================================================================


class _RunContext:
    def __init__(self, run: Run, now: float):
        self.run = run
        self.state = RunState.OPEN
        self.lock = threading.Lock()
        self.idle = threading.Condition(self.lock)
        self.in_flight = 0
        self.last_activity = now
        self.closed_at: Optional[float] = None
        # version-qualified buckets only
        self.versioned: dict[DatasetVersion, Bucket] = {}
        # (dataset, side) -> bucket that unversioned facets of that side join
        self.anchors: dict[tuple[Dataset, FacetSide], Bucket] = {}
        # creation order, for deterministic emission
        self.order: list[Bucket] = []

    def facet_count(self) -> int:
        return sum(len(bucket) for bucket in self.order)

    def release(self, now: float) -> None:
        self.versioned.clear()
        self.anchors.clear()
        self.order.clear()
        self.state = RunState.CLOSED
        self.closed_at = now


@dataclass
class _PendingReport:
    dataset: Dataset
    version_id: Optional[str]
    facet: Facet
    parked_at: float


@dataclass
class SweepResult:
    """Outcome of one idle sweep."""

    discarded: list[IncompleteRunDiscarded] = field(default_factory=list)
    expired_pending: int = 0
    forgotten_runs: int = 0


# =============================================================================
# Correlation Index
# =============================================================================


class CorrelationIndex:
    """
    Concurrent index of facet buckets keyed by run, dataset and version.

    Args:
        idle_timeout_seconds: Runs idle this long are discarded by sweep()
        pending_retention_seconds: Reports for unknown runs are kept this long
        closed_run_retention_seconds: Closed runs are remembered this long so
            late reports are rejected with RunClosed
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        idle_timeout_seconds: float = 3600.0,
        pending_retention_seconds: float = 60.0,
        closed_run_retention_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout_seconds = idle_timeout_seconds
        self.pending_retention_seconds = pending_retention_seconds
        self.closed_run_retention_seconds = closed_run_retention_seconds
        self._clock = clock
        self._registry_lock = threading.Lock()
        self._runs: dict[UUID, _RunContext] = {}
        self._pending: dict[UUID, list[_PendingReport]] = {}
        self._sequence = itertools.count()

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def open_run(self, run: Run) -> int:
        """
        Open a run and replay reports parked for it.

        Opening an already-open run is a no-op.

        Returns:
            Number of parked reports replayed into the run

        Raises:
            RunClosed: If the run was already closed
        """
        now = self._clock()
        with self._registry_lock:
            existing = self._runs.get(run.run_id)
            if existing is not None:
                with existing.lock:
                    if existing.state == RunState.CLOSED:
                        raise RunClosed(run.run_id)
                return 0
            self._runs[run.run_id] = _RunContext(run, now)
            parked = self._pending.pop(run.run_id, [])

        replayed = 0
        for report in parked:
            if now - report.parked_at > self.pending_retention_seconds:
                logger.warning(
                    f"Dropping {report.facet.kind.value} for {report.dataset}: "
                    f"parked {now - report.parked_at:.0f}s before run {run.run_id} opened"
                )
                continue
            try:
                self.record(run.run_id, report.dataset, report.version_id, report.facet)
            except RunClosed:
                logger.warning(f"Run {run.run_id} closed while replaying parked reports")
                break
            replayed += 1

        if replayed:
            logger.debug(f"Replayed {replayed} parked reports into run {run.run_id}")
        return replayed

    def run_state(self, run_id: UUID) -> Optional[RunState]:
        """Current state of a run, or None if the index does not know it."""
        ctx = self._runs.get(run_id)
        if ctx is None:
            return None
        with ctx.lock:
            return ctx.state

    def get_run(self, run_id: UUID) -> Optional[Run]:
        ctx = self._runs.get(run_id)
        return ctx.run if ctx is not None else None

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(
        self,
        run_id: UUID,
        dataset: Dataset,
        version_id: Union[str, int, None],
        facet: Facet,
    ) -> RecordOutcome:
        """
        Insert a facet into the bucket for (run, dataset, version).

        When ``version_id`` is None the facet's own declared version is used.
        Unversioned facets join the bucket anchored for their dataset and
        side; a version-qualified facet joins the bucket already holding its
        version (absorbing its side's unversioned anchor, so the result does
        not depend on which side reported the version first), else attaches
        its version to the unversioned anchor for its side, else opens a new
        bucket. A later facet of a kind the bucket already holds replaces it.

        Returns:
            RECORDED, or PARKED when the run has not been opened yet

        Raises:
            RunClosed: If the run is emitting or closed
        """
        if version_id is None:
            version_id = facet.version_id
        if version_id is not None:
            version_id = validate_version_id(version_id)

        ctx = self._runs.get(run_id)
        if ctx is None:
            ctx = self._park(run_id, dataset, version_id, facet)
            if ctx is None:
                return RecordOutcome.PARKED

        with ctx.lock:
            if ctx.state in (RunState.EMITTING, RunState.CLOSED):
                raise RunClosed(run_id)
            bucket = self._route(ctx, dataset, version_id, facet.side)
            ctx.state = RunState.ACCUMULATING
            ctx.last_activity = self._clock()
            ctx.in_flight += 1
            seq = next(self._sequence)

        try:
            bucket.add(seq, facet)
        finally:
            with ctx.lock:
                ctx.in_flight -= 1
                if ctx.in_flight == 0:
                    ctx.idle.notify_all()

        return RecordOutcome.RECORDED

    def _park(
        self,
        run_id: UUID,
        dataset: Dataset,
        version_id: Optional[str],
        facet: Facet,
    ) -> Optional[_RunContext]:
        # Re-check under the registry lock so a concurrent open_run either
        # sees this report in the pending list or we see its context.
        with self._registry_lock:
            ctx = self._runs.get(run_id)
            if ctx is not None:
                return ctx
            self._pending.setdefault(run_id, []).append(
                _PendingReport(dataset, version_id, facet, self._clock())
            )
        logger.debug(f"Parked {facet.kind.value} for {dataset}: run {run_id} not open yet")
        return None

    @staticmethod
    def _route(
        ctx: _RunContext,
        dataset: Dataset,
        version_id: Optional[str],
        side: FacetSide,
    ) -> Bucket:
        anchor_key = (dataset, side)
        anchor = ctx.anchors.get(anchor_key)

        if version_id is None:
            if anchor is None:
                anchor = Bucket(dataset)
                ctx.anchors[anchor_key] = anchor
                ctx.order.append(anchor)
            return anchor

        key = dataset.at(version_id)
        bucket = ctx.versioned.get(key)
        if bucket is None:
            if anchor is not None and anchor.version_id is None:
                # Statistics arrived first; the version is known now
                anchor.version_id = version_id
                bucket = anchor
            else:
                bucket = Bucket(dataset, version_id)
                ctx.order.append(bucket)
            ctx.versioned[key] = bucket
        elif anchor is not None and anchor is not bucket and anchor.version_id is None:
            # The other side opened this version first; this side's
            # statistics join it
            bucket.absorb(anchor)
            ctx.order.remove(anchor)
            ctx.anchors[anchor_key] = bucket

        ctx.anchors.setdefault(anchor_key, bucket)
        return bucket

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    def drain(self, run_id: UUID) -> tuple[Run, list[Bucket]]:
        """
        Atomically take every bucket of a run and close it.

        Waits for recorders already holding one of the run's buckets.

        Returns:
            The run and its buckets in creation order

        Raises:
            UnknownRun: If the run was never opened
            RunClosed: If the run is already emitting or closed
        """
        ctx = self._runs.get(run_id)
        if ctx is None:
            raise UnknownRun(run_id)

        with ctx.lock:
            if ctx.state in (RunState.EMITTING, RunState.CLOSED):
                raise RunClosed(run_id)
            ctx.state = RunState.EMITTING
            while ctx.in_flight:
                ctx.idle.wait()
            buckets = list(ctx.order)
            ctx.release(self._clock())

        return ctx.run, buckets

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def sweep(self) -> SweepResult:
        """
        Discard idle runs, expire parked reports and forget old closed runs.

        Runs that are mid-emit are skipped.
        """
        now = self._clock()
        result = SweepResult()
        forget: list[tuple[UUID, _RunContext]] = []

        for run_id, ctx in list(self._runs.items()):
            with ctx.lock:
                if ctx.state == RunState.EMITTING:
                    continue
                if ctx.state == RunState.CLOSED:
                    if now - ctx.closed_at >= self.closed_run_retention_seconds:
                        forget.append((run_id, ctx))
                    continue
                idle = now - ctx.last_activity
                if idle < self.idle_timeout_seconds or ctx.in_flight:
                    continue
                discarded = IncompleteRunDiscarded(run_id, idle, ctx.facet_count())
                ctx.release(now)
            logger.warning(str(discarded))
            result.discarded.append(discarded)

        with self._registry_lock:
            for run_id, ctx in forget:
                if self._runs.get(run_id) is ctx:
                    del self._runs[run_id]
                    result.forgotten_runs += 1

            for run_id, reports in list(self._pending.items()):
                fresh = [r for r in reports if now - r.parked_at <= self.pending_retention_seconds]
                expired = len(reports) - len(fresh)
                if expired:
                    logger.warning(
                        f"Dropping {expired} reports for run {run_id}: "
                        f"run not opened within {self.pending_retention_seconds:.0f}s"
                    )
                    result.expired_pending += expired
                if fresh:
                    self._pending[run_id] = fresh
                else:
                    del self._pending[run_id]

        return result

    def __len__(self) -> int:
        """Number of runs currently tracked (open or remembered as closed)."""
        return len(self._runs)


# =============================================================================
# Background Sweeper
# =============================================================================


class IdleSweeper:
    """
    Runs CorrelationIndex.sweep() on a background thread.

    The sweep is independent of producer activity and stops when stop() is
    called.
    """

    def __init__(self, index: CorrelationIndex, interval_seconds: float = 30.0):
        self.index = index
        self.interval_seconds = interval_seconds
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name="lineage-stats-sweeper",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stopped.wait(self.interval_seconds):
            try:
                self.index.sweep()
            except Exception:
                logger.exception("Idle sweep failed")
