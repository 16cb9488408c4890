# =============================================================================
# Event Emitter
# =============================================================================
# Builds run events from drained buckets and hands them to an asynchronous
# sender that delivers to a transport with bounded retries.
# =============================================================================

"""
Event emission for the lineage statistics correlator.

The producing job never waits on the transport: `AsyncSender.submit` either
queues the event or drops it (queue full) and returns immediately. Delivery
happens on a single sender thread with exponential backoff between retries.
"""

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, Optional
from uuid import UUID

from .correlation import CorrelationIndex
from .errors import TransportUnavailable
from .merger import DatasetFacetSet, FacetMerger
from .models import (
    DEFAULT_PRODUCER,
    DatasetEntry,
    DatasetVersionFacet,
    Event,
    EventType,
    FacetSide,
    Run,
)
from .transports import SendResult, Transport

__all__ = [
    "AsyncSender",
    "Classifier",
    "DatasetRole",
    "EventEmitter",
    "classify_by_facets",
]

logger = logging.getLogger(__name__)


# =============================================================================
# Dataset Classification
# =============================================================================


class DatasetRole(str, Enum):
    """Where a dataset entry is placed in the event."""

    INPUT = "input"
    OUTPUT = "output"
    BOTH = "both"


Classifier = Callable[[DatasetFacetSet], DatasetRole]
"""Caller-supplied input/output classification of a merged dataset."""


def classify_by_facets(facet_set: DatasetFacetSet) -> DatasetRole:
    """
    Classify a dataset by the sides its facets describe.

    Input statistics and scan reports make an input; output statistics and
    commit reports make an output; both kinds make both.
    """
    sides = facet_set.sides()
    reads = FacetSide.INPUT in sides
    writes = FacetSide.OUTPUT in sides
    if reads and writes:
        return DatasetRole.BOTH
    if writes:
        return DatasetRole.OUTPUT
    return DatasetRole.INPUT


# =============================================================================
# Async Sender
# =============================================================================


_STOP = object()


class AsyncSender:
    """
    Delivers events to a transport on a background thread.

    Retryable failures (and exceptions raised by the transport) are retried
    with exponential backoff, starting at ``backoff_initial_seconds`` and
    doubling up to ``backoff_max_seconds``, for at most ``max_attempts``
    attempts. Fatal failures are not retried. Events that cannot be delivered
    are dropped and reported as TransportUnavailable.

    Attributes:
        delivered: Events accepted by the transport
        dropped: Events dropped after retries, on fatal errors or on overflow
        last_failure: Most recent TransportUnavailable, if any
    """

    def __init__(
        self,
        transport: Transport,
        max_attempts: int = 5,
        backoff_initial_seconds: float = 0.5,
        backoff_max_seconds: float = 30.0,
        queue_size: int = 1000,
        on_drop: Optional[Callable[[TransportUnavailable], None]] = None,
    ):
        self.transport = transport
        self.max_attempts = max_attempts
        self.backoff_initial_seconds = backoff_initial_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.on_drop = on_drop

        self.delivered = 0
        self.dropped = 0
        self.last_failure: Optional[TransportUnavailable] = None

        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._outstanding = 0
        self._outstanding_cond = threading.Condition()
        self._closing = threading.Event()
        self._closed = False
        self._thread = threading.Thread(
            target=self._run,
            name="lineage-stats-sender",
            daemon=True,
        )
        self._thread.start()

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def submit(self, event: Event) -> bool:
        """
        Queue an event for delivery without blocking.

        Returns:
            True if queued, False if dropped because the queue is full or the
            sender is closed
        """
        # Accepted events always precede the stop marker put by close()
        with self._outstanding_cond:
            if self._closed:
                reason = "sender is closed"
            else:
                try:
                    self._queue.put_nowait(event)
                except queue.Full:
                    reason = "send queue is full"
                else:
                    self._outstanding += 1
                    return True

        self._drop(TransportUnavailable(event.event_id, 0, reason))
        return False

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued event is delivered or dropped.

        Returns:
            True if the queue drained within the timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._outstanding_cond:
            while self._outstanding:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._outstanding_cond.wait(remaining)
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """
        Flush, stop the sender thread and close the transport.

        Backoff waits are cut short once closing starts, so events still
        failing are dropped rather than holding up shutdown.
        """
        if self._closed:
            return
        drained = self.flush(timeout)
        if not drained:
            logger.warning("Closing sender with undelivered events still queued")
        with self._outstanding_cond:
            self._closed = True
        self._closing.set()
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logger.warning("Sender queue full at shutdown, not waiting for sender thread")
        else:
            self._thread.join(timeout)
        self.transport.close()

    # ------------------------------------------------------------------
    # Sender thread
    # ------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            try:
                self._deliver(item)
            finally:
                self._settle()

    def _settle(self) -> None:
        with self._outstanding_cond:
            self._outstanding -= 1
            if self._outstanding == 0:
                self._outstanding_cond.notify_all()

    def _deliver(self, event: Event) -> None:
        delay = self.backoff_initial_seconds
        reason = ""
        attempt = 0

        while attempt < self.max_attempts:
            attempt += 1
            try:
                result = self.transport.send(event)
                reason = f"transport returned {result.value}"
            except Exception as exc:
                logger.warning(f"Transport raised on event {event.event_id}: {exc}")
                result = SendResult.RETRYABLE
                reason = f"{type(exc).__name__}: {exc}"

            if result == SendResult.OK:
                with self._outstanding_cond:
                    self.delivered += 1
                logger.debug(f"Delivered event {event.event_id} ({event.event_type.value})")
                return

            if result == SendResult.FATAL:
                break

            if attempt < self.max_attempts:
                self._closing.wait(delay)
                delay = min(delay * 2, self.backoff_max_seconds)

        self._drop(TransportUnavailable(event.event_id, attempt, reason))

    def _drop(self, failure: TransportUnavailable) -> None:
        with self._outstanding_cond:
            self.dropped += 1
            self.last_failure = failure
        logger.error(str(failure))
        if self.on_drop is not None:
            self.on_drop(failure)


# =============================================================================
# Event Emitter
# =============================================================================


class EventEmitter:
    """
    Drains runs from the correlation index and emits their events.

    Args:
        index: Correlation index holding the run's buckets
        sender: Asynchronous sender delivering to the transport
        merger: Facet merger (default: FacetMerger())
        producer: Producer URI stamped on events and version facets
    """

    def __init__(
        self,
        index: CorrelationIndex,
        sender: AsyncSender,
        merger: Optional[FacetMerger] = None,
        producer: str = DEFAULT_PRODUCER,
    ):
        self.index = index
        self.sender = sender
        self.merger = merger or FacetMerger()
        self.producer = producer

    def emit_start(self, run: Run) -> Event:
        """Emit a START event for a freshly opened run."""
        event = Event.for_run(run, EventType.START, producer=self.producer)
        self.sender.submit(event)
        return event

    def emit(
        self,
        run_id: UUID,
        event_type: EventType = EventType.COMPLETE,
        classify: Optional[Classifier] = None,
    ) -> Event:
        """
        Drain a run, build its terminal event and hand it to the sender.

        If a caller-supplied classifier raises, datasets are classified by
        facet side instead.

        Raises:
            UnknownRun: If the run was never opened
            RunClosed: If the run's terminal event was already emitted
        """
        run, buckets = self.index.drain(run_id)
        facet_sets = [self.merger.merge(bucket) for bucket in buckets]
        finished = run.model_copy(update={"ended_at": datetime.now(timezone.utc)})

        try:
            event = self.build_event(finished, facet_sets, event_type, classify)
        except Exception:
            if classify is None:
                raise
            # The run is already drained; keep its statistics
            logger.exception(f"Classifier failed for run {run_id}, classifying by facet side")
            event = self.build_event(finished, facet_sets, event_type)
        logger.info(
            f"Emitting {event_type.value} for run {run_id}: "
            f"{len(event.inputs)} inputs, {len(event.outputs)} outputs"
        )
        self.sender.submit(event)
        return event

    def build_event(
        self,
        run: Run,
        facet_sets: Iterable[DatasetFacetSet],
        event_type: EventType,
        classify: Optional[Classifier] = None,
    ) -> Event:
        """Partition merged datasets into inputs and outputs and build the event."""
        classify = classify or classify_by_facets
        inputs: list[DatasetEntry] = []
        outputs: list[DatasetEntry] = []

        for facet_set in facet_sets:
            if not facet_set:
                continue
            role = classify(facet_set)
            if role == DatasetRole.BOTH:
                self._append(inputs, facet_set, facet_set.for_side(FacetSide.INPUT))
                self._append(outputs, facet_set, facet_set.for_side(FacetSide.OUTPUT))
            elif role == DatasetRole.OUTPUT:
                self._append(outputs, facet_set, facet_set.facets.values())
            else:
                self._append(inputs, facet_set, facet_set.facets.values())

        return Event.for_run(
            run,
            event_type,
            inputs=inputs,
            outputs=outputs,
            producer=self.producer,
        )

    def _append(self, entries: list[DatasetEntry], facet_set: DatasetFacetSet, facets: Iterable) -> None:
        wire = {facet.kind.value: facet.to_wire() for facet in facets}
        if not wire:
            return
        if facet_set.version_id is not None:
            version = DatasetVersionFacet(
                producer=self.producer,
                dataset_version=facet_set.version_id,
            )
            wire[version.kind.value] = version.to_wire()
        entries.append(
            DatasetEntry(
                dataset=facet_set.dataset,
                version_id=facet_set.version_id,
                facets=wire,
            )
        )
