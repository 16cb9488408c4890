# =============================================================================
# Run Status Sensors - Job-level lineage lifecycle events
# =============================================================================
# Emits a terminal run event for each tracked Dagster run when it succeeds,
# fails or is canceled. Step-level events carrying dataset statistics are
# emitted by LineageStatsResource from the run process itself.
# =============================================================================

"""Run status sensors emitting job-level lineage events."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from dagster import (
    DagsterRunStatus,
    DefaultSensorStatus,
    RunFailureSensorContext,
    RunStatusSensorContext,
    run_failure_sensor,
    run_status_sensor,
)

from lineage_stats.models import (
    CorrelatorSettings,
    Event,
    EventType,
    Run,
    TransportSettings,
)
from lineage_stats.transports import SendResult, Transport, create_transport


__all__ = [
    "lineage_run_success_sensor",
    "lineage_run_failure_sensor",
    "lineage_run_canceled_sensor",
]


# Jobs whose lifecycle is reported
TRACKED_JOBS = frozenset(
    [
        "parquet_copy_job",
    ]
)


def _get_transport() -> Transport:
    """Create the transport configured by LINEAGE_TRANSPORT_* settings."""
    return create_transport(TransportSettings())


def _to_datetime(timestamp: Optional[float]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _build_job_event(context, event_type: EventType, settings: CorrelatorSettings) -> Event:
    """Build the job-level event for the sensor's Dagster run."""
    dagster_run = context.dagster_run
    run_stats = context.instance.get_run_stats(dagster_run.run_id)

    run = Run(
        run_id=UUID(dagster_run.run_id),
        job_name=dagster_run.job_name,
        job_namespace=settings.namespace,
        started_at=_to_datetime(run_stats.start_time if run_stats else None)
        or datetime.now(timezone.utc),
        ended_at=_to_datetime(run_stats.end_time if run_stats else None)
        or datetime.now(timezone.utc),
    )
    return Event.for_run(run, event_type, producer=settings.producer)


def _emit_job_event(context, event_type: EventType) -> Optional[SendResult]:
    """
    Send the terminal event of a tracked run.

    Sensors send synchronously with a single attempt; the event id is stable
    per run and event type, so a re-evaluated sensor tick produces a
    duplicate that consumers can drop.

    Returns:
        The transport result, or None if the job is not tracked
    """
    dagster_run = context.dagster_run
    job_name = dagster_run.job_name

    if job_name not in TRACKED_JOBS:
        context.log.debug(f"Skipping untracked job: {job_name}")
        return None

    event = _build_job_event(context, event_type, CorrelatorSettings())

    transport = _get_transport()
    try:
        result = transport.send(event)
    finally:
        transport.close()

    if result == SendResult.OK:
        context.log.info(
            f"Emitted {event_type.value} lineage event for run {dagster_run.run_id}"
        )
    else:
        context.log.warning(
            f"Transport returned {result.value} for {event_type.value} "
            f"lineage event of run {dagster_run.run_id}"
        )
    return result


def _handle_run_success(context) -> Optional[SendResult]:
    return _emit_job_event(context, EventType.COMPLETE)


def _handle_run_failure(context) -> Optional[SendResult]:
    return _emit_job_event(context, EventType.FAIL)


def _handle_run_canceled(context) -> Optional[SendResult]:
    return _emit_job_event(context, EventType.ABORT)


@run_status_sensor(
    run_status=DagsterRunStatus.SUCCESS,
    name="lineage_run_success_sensor",
    description="Emits a COMPLETE lineage event when tracked runs succeed",
    default_status=DefaultSensorStatus.RUNNING,
)
def lineage_run_success_sensor(context: RunStatusSensorContext):
    _handle_run_success(context)


@run_failure_sensor(
    name="lineage_run_failure_sensor",
    description="Emits a FAIL lineage event when tracked runs fail",
    default_status=DefaultSensorStatus.RUNNING,
)
def lineage_run_failure_sensor(context: RunFailureSensorContext):
    _handle_run_failure(context)


@run_status_sensor(
    run_status=DagsterRunStatus.CANCELED,
    name="lineage_run_canceled_sensor",
    description="Emits an ABORT lineage event when tracked runs are canceled",
    default_status=DefaultSensorStatus.RUNNING,
)
def lineage_run_canceled_sensor(context: RunStatusSensorContext):
    _handle_run_canceled(context)
