# =============================================================================
# Event Models Module
# =============================================================================
# Defines the unit emitted to transports:
# - DatasetEntry: One dataset (optionally version-qualified) with its facets
# - Event: OpenLineage-style run event with inputs and outputs
# =============================================================================

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid5, NAMESPACE_URL

from pydantic import BaseModel, Field

from .dataset import Dataset
from .facets import DEFAULT_PRODUCER
from .run import EventType, Run

__all__ = [
    "DatasetEntry",
    "Event",
    "EVENT_SCHEMA_URL",
    "stable_event_id",
]


EVENT_SCHEMA_URL = "https://openlineage.io/spec/2-0-2/OpenLineage.json#/$defs/RunEvent"


def stable_event_id(run_id: UUID, event_type: EventType) -> UUID:
    """
    Derive a deterministic event id from the run and event type.

    Retries of the same event carry the same id so consumers can drop
    duplicates delivered by the at-least-once sender.
    """
    return uuid5(NAMESPACE_URL, f"lineage-stats:{run_id}:{event_type.value}")


class DatasetEntry(BaseModel):
    """
    A dataset as it appears in an event's inputs or outputs.

    Attributes:
        dataset: Dataset identity
        version_id: Snapshot the facets belong to (None for unversioned entries)
        facets: Wire-form facets keyed by facet name
    """

    dataset: Dataset = Field(..., description="Dataset identity")
    version_id: str | None = Field(None, description="Snapshot identifier")
    facets: dict[str, dict[str, Any]] = Field(
        default_factory=dict, description="Wire-form facets keyed by facet name"
    )

    def to_wire(self) -> dict[str, Any]:
        return {
            "namespace": self.dataset.namespace,
            "name": self.dataset.name,
            "facets": dict(self.facets),
        }


class Event(BaseModel):
    """
    A run event handed to a transport.

    Attributes:
        event_id: Stable identifier for downstream deduplication
        event_type: START, COMPLETE, FAIL, ABORT, ...
        event_time: Time the event was built (UTC)
        run: Run the event describes
        inputs: Input dataset entries in first-seen order
        outputs: Output dataset entries in first-seen order
        producer: URI identifying the producer of the event
    """

    event_id: UUID = Field(..., description="Stable event identifier")
    event_type: EventType = Field(..., description="Run event type")
    event_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Event timestamp",
    )
    run: Run = Field(..., description="Run the event describes")
    inputs: list[DatasetEntry] = Field(default_factory=list, description="Inputs")
    outputs: list[DatasetEntry] = Field(default_factory=list, description="Outputs")
    producer: str = Field(DEFAULT_PRODUCER, description="Producer URI")

    @classmethod
    def for_run(cls, run: Run, event_type: EventType, **kwargs: Any) -> "Event":
        """Build an event whose id is derived from the run and event type."""
        return cls(
            event_id=stable_event_id(run.run_id, event_type),
            event_type=event_type,
            run=run,
            **kwargs,
        )

    def to_wire(self) -> dict[str, Any]:
        """
        Serialize to OpenLineage RunEvent JSON.

        Returns:
            JSON-compatible dictionary with `eventType`, `eventTime`, `run`,
            `job`, `inputs`, `outputs`, `producer`, `schemaURL` and `eventId`
        """
        return {
            "eventId": str(self.event_id),
            "eventType": self.event_type.value,
            "eventTime": self.event_time.isoformat(),
            "run": {"runId": str(self.run.run_id), "facets": {}},
            "job": {
                "namespace": self.run.job_namespace,
                "name": self.run.job_name,
                "facets": {},
            },
            "inputs": [entry.to_wire() for entry in self.inputs],
            "outputs": [entry.to_wire() for entry in self.outputs],
            "producer": self.producer,
            "schemaURL": EVENT_SCHEMA_URL,
        }
