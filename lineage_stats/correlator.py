# =============================================================================
# Correlator
# =============================================================================
# Facade wiring the normalizer, correlation index, merger and emitter.
# Host integrations (engine listeners, table-format metrics reporters,
# Dagster sensors) talk to this object only.
# =============================================================================

"""
Lineage statistics correlator.

Usage:
    with Correlator.from_env() as correlator:
        correlator.start_run(run_id, job_name="flights_etl")

        # Called by engine hooks, possibly from many threads
        correlator.on_report("basic-io", run_id, flights, payload={
            "direction": "input", "size": 25238218, "fileCount": 1,
        })
        correlator.on_report("scan", run_id, flights, payload=scan_report)

        correlator.complete_run(run_id)

No ingest-path failure propagates to the caller: malformed reports, late
reports and conflicts are logged and reported through the boolean return
value. Only transport misconfiguration raises, at construction time.
"""

import logging
import time
from typing import Any, Callable, Mapping, Optional, Union
from uuid import UUID

from .correlation import CorrelationIndex, IdleSweeper, RecordOutcome, SweepResult, UnknownRun
from .emitter import AsyncSender, Classifier, EventEmitter
from .errors import LineageStatsError, MalformedReport, RunClosed
from .models import (
    CorrelatorSettings,
    Dataset,
    Event,
    EventType,
    Facet,
    Run,
    RunState,
    TERMINAL_EVENT_TYPES,
    TransportSettings,
)
from .normalizer import ReportKind, ReportNormalizer, table_name_of
from .transports import Transport, create_transport

__all__ = ["Correlator", "RunIdLike"]

logger = logging.getLogger(__name__)

RunIdLike = Union[UUID, str]


def _as_run_id(run_id: RunIdLike) -> UUID:
    if isinstance(run_id, UUID):
        return run_id
    return UUID(str(run_id))


class Correlator:
    """
    Correlates engine and table-format reports into run events.

    Args:
        settings: Correlation settings (default: loaded from environment)
        transport: Transport instance; built from transport_settings if omitted
        transport_settings: Transport target and delivery policy (default:
            loaded from environment)
        clock: Monotonic clock for retention windows, injectable for tests
        start_sweeper: Start the background idle sweep thread

    Raises:
        TransportConfigError: If the configured transport target is invalid
    """

    def __init__(
        self,
        settings: Optional[CorrelatorSettings] = None,
        transport: Optional[Transport] = None,
        transport_settings: Optional[TransportSettings] = None,
        clock: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
    ):
        self.settings = settings or CorrelatorSettings()
        transport_settings = transport_settings or TransportSettings()
        if transport is None:
            transport = create_transport(transport_settings)

        self.normalizer = ReportNormalizer(producer=self.settings.producer)
        self.index = CorrelationIndex(
            idle_timeout_seconds=self.settings.idle_timeout_seconds,
            pending_retention_seconds=self.settings.pending_retention_seconds,
            closed_run_retention_seconds=self.settings.closed_run_retention_seconds,
            clock=clock,
        )
        self.sender = AsyncSender(
            transport,
            max_attempts=transport_settings.max_attempts,
            backoff_initial_seconds=transport_settings.backoff_initial_seconds,
            backoff_max_seconds=transport_settings.backoff_max_seconds,
            queue_size=transport_settings.queue_size,
        )
        self.emitter = EventEmitter(self.index, self.sender, producer=self.settings.producer)

        self._sweeper: Optional[IdleSweeper] = None
        if start_sweeper:
            self._sweeper = IdleSweeper(self.index, self.settings.sweep_interval_seconds)
            self._sweeper.start()

    @classmethod
    def from_env(cls, **kwargs: Any) -> "Correlator":
        """Build a correlator from LINEAGE_* environment variables."""
        return cls(
            settings=CorrelatorSettings(),
            transport_settings=TransportSettings(),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    def start_run(
        self,
        run_id: RunIdLike,
        job_name: str,
        job_namespace: Optional[str] = None,
    ) -> Optional[Run]:
        """
        Open a run at job start.

        Parked reports for the run are replayed. A START event is emitted when
        ``emit_start_events`` is set.

        Returns:
            The opened Run, or None if the run id is invalid or the run is
            already closed
        """
        try:
            run = Run(
                run_id=_as_run_id(run_id),
                job_name=job_name,
                job_namespace=job_namespace or self.settings.namespace,
            )
        except ValueError as exc:
            logger.warning(f"Ignoring start of run {run_id!r}: {exc}")
            return None

        state = self.index.run_state(run.run_id)
        if state is not None and state != RunState.CLOSED:
            logger.debug(f"Run {run.run_id} already open")
            return self.index.get_run(run.run_id)

        try:
            self.index.open_run(run)
        except RunClosed as exc:
            logger.warning(f"Ignoring start of run: {exc}")
            return None

        logger.info(f"Opened run {run.run_id} for job {run.job_namespace}/{run.job_name}")
        if self.settings.emit_start_events:
            self.emitter.emit_start(run)
        return run

    def complete_run(
        self,
        run_id: RunIdLike,
        event_type: EventType = EventType.COMPLETE,
        classify: Optional[Classifier] = None,
    ) -> Optional[Event]:
        """
        Emit the terminal event for a run and close it.

        Args:
            run_id: Run to close
            event_type: COMPLETE, FAIL or ABORT
            classify: Optional input/output classifier for merged datasets

        Returns:
            The emitted event, or None if the run is unknown or already closed
        """
        if event_type not in TERMINAL_EVENT_TYPES:
            raise ValueError(f"{event_type.value} is not a terminal event type")

        try:
            return self.emitter.emit(_as_run_id(run_id), event_type, classify)
        except (UnknownRun, RunClosed) as exc:
            logger.warning(f"Cannot emit {event_type.value}: {exc}")
            return None
        except ValueError as exc:
            logger.warning(f"Cannot emit {event_type.value} for run {run_id!r}: {exc}")
            return None

    def fail_run(self, run_id: RunIdLike, classify: Optional[Classifier] = None) -> Optional[Event]:
        """Emit a FAIL event; statistics gathered so far are still reported."""
        return self.complete_run(run_id, EventType.FAIL, classify)

    def abort_run(self, run_id: RunIdLike, classify: Optional[Classifier] = None) -> Optional[Event]:
        """Emit an ABORT event for a canceled run."""
        return self.complete_run(run_id, EventType.ABORT, classify)

    def run_state(self, run_id: RunIdLike) -> Optional[RunState]:
        return self.index.run_state(_as_run_id(run_id))

    # ------------------------------------------------------------------
    # Ingest hook
    # ------------------------------------------------------------------

    def on_report(
        self,
        kind: Union[ReportKind, str],
        run_id: RunIdLike,
        dataset: Optional[Dataset],
        version_id: Union[str, int, None] = None,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Ingest one raw report from an engine hook.

        Args:
            kind: "basic-io", "scan" or "commit"
            run_id: Run the report belongs to
            dataset: Dataset the report describes; for table-format reports
                the report's table name is used when omitted
            version_id: Snapshot the report refers to; defaults to the
                snapshot the report itself declares
            payload: Raw report payload

        Returns:
            True if the report was recorded or parked for a run not yet
            started, False if it was dropped
        """
        try:
            facet = self.normalizer.normalize(kind, payload if payload is not None else {})
            if dataset is None:
                dataset = self._dataset_from_payload(kind, payload or {})
        except MalformedReport as exc:
            logger.warning(f"Dropping report for run {run_id}: {exc}")
            return False

        return self.record(run_id, dataset, facet, version_id)

    def record(
        self,
        run_id: RunIdLike,
        dataset: Dataset,
        facet: Facet,
        version_id: Union[str, int, None] = None,
    ) -> bool:
        """
        Record an already-normalized facet.

        Returns:
            True if recorded or parked, False if dropped
        """
        try:
            outcome = self.index.record(_as_run_id(run_id), dataset, version_id, facet)
        except LineageStatsError as exc:
            logger.warning(f"Dropping {facet.kind.value} for {dataset}: {exc}")
            return False
        except (TypeError, ValueError) as exc:
            logger.warning(f"Dropping {facet.kind.value} for {dataset}, run {run_id!r}: {exc}")
            return False

        if outcome == RecordOutcome.PARKED:
            logger.debug(f"Run {run_id} not started yet, parked {facet.kind.value} for {dataset}")
        return True

    def _dataset_from_payload(self, kind: Union[ReportKind, str], payload: Mapping[str, Any]) -> Dataset:
        table_name = table_name_of(payload)
        if table_name is None:
            raise MalformedReport(kind, "no dataset given and report names no table")
        return Dataset(namespace=self.settings.namespace, name=table_name)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep(self) -> SweepResult:
        """Run one idle sweep now."""
        return self.index.sweep()

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued events to be delivered or dropped."""
        return self.sender.flush(timeout)

    def close(self, timeout: Optional[float] = 10.0) -> None:
        """Stop the sweeper, flush queued events and close the transport."""
        if self._sweeper is not None:
            self._sweeper.stop(timeout)
            self._sweeper = None
        self.sender.close(timeout)

    def __enter__(self) -> "Correlator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
