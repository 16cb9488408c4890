# =============================================================================
# Run Model
# =============================================================================
# Defines the Run model and its lifecycle state for correlation tracking.
# =============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


__all__ = ["Run", "RunState", "EventType", "TERMINAL_EVENT_TYPES"]


class RunState(str, Enum):
    """
    Correlation lifecycle of a run.

    OPEN -> ACCUMULATING -> EMITTING -> CLOSED. A run that never reaches
    EMITTING is closed by the idle sweep and its facets are discarded.
    """

    OPEN = "open"
    ACCUMULATING = "accumulating"
    EMITTING = "emitting"
    CLOSED = "closed"


class EventType(str, Enum):
    """OpenLineage run event types."""

    START = "START"
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    ABORT = "ABORT"
    FAIL = "FAIL"
    OTHER = "OTHER"


TERMINAL_EVENT_TYPES = frozenset(
    [
        EventType.COMPLETE,
        EventType.ABORT,
        EventType.FAIL,
    ]
)


class Run(BaseModel):
    """
    One execution of a job.

    The run is created when the host engine reports job start and closed when
    its terminal event is emitted.

    Attributes:
        run_id: Run identifier (UUID)
        job_name: Name of the job executed
        job_namespace: Namespace of the job
        started_at: Timestamp when the run started
        ended_at: Timestamp when the terminal event was built
    """

    run_id: UUID = Field(..., description="Run identifier")
    job_name: str = Field(..., min_length=1, description="Name of the job executed")
    job_namespace: str = Field(..., min_length=1, description="Namespace of the job")
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Run start timestamp",
    )
    ended_at: Optional[datetime] = Field(None, description="Run end timestamp")
