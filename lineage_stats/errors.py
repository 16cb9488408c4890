# =============================================================================
# Error Taxonomy
# =============================================================================
# Exceptions raised on the ingest, correlation and delivery paths.
# None of these is fatal to the host engine except TransportConfigError,
# which is raised at startup when the transport target cannot be parsed.
# =============================================================================

from typing import Any, Optional

__all__ = [
    "LineageStatsError",
    "MalformedReport",
    "ConflictingVersion",
    "IncompleteRunDiscarded",
    "RunClosed",
    "TransportUnavailable",
    "TransportConfigError",
]


class LineageStatsError(Exception):
    """Base class for non-fatal correlation and delivery failures."""


class MalformedReport(LineageStatsError):
    """A raw report is missing required fields or carries invalid values."""

    def __init__(self, kind: Any, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Malformed {getattr(kind, 'value', kind)} report: {reason}")


class ConflictingVersion(LineageStatsError):
    """A facet declares a version different from the bucket it landed in."""

    def __init__(self, dataset: Any, bucket_version: Optional[str], facet_version: Optional[str], facet_name: str):
        self.dataset = dataset
        self.bucket_version = bucket_version
        self.facet_version = facet_version
        self.facet_name = facet_name
        super().__init__(
            f"{facet_name} for {dataset} declares version {facet_version}, "
            f"bucket is at {bucket_version}"
        )


class IncompleteRunDiscarded(LineageStatsError):
    """A run was evicted by the idle sweep without a terminal event."""

    def __init__(self, run_id: Any, idle_seconds: float, facet_count: int):
        self.run_id = run_id
        self.idle_seconds = idle_seconds
        self.facet_count = facet_count
        super().__init__(
            f"Run {run_id} idle for {idle_seconds:.0f}s, "
            f"discarding {facet_count} facets"
        )


class RunClosed(LineageStatsError):
    """A report arrived for a run whose terminal event was already emitted."""

    def __init__(self, run_id: Any):
        self.run_id = run_id
        super().__init__(f"Run {run_id} is closed")


class TransportUnavailable(LineageStatsError):
    """The transport could not accept an event after all retries."""

    def __init__(self, event_id: Any, attempts: int, reason: str):
        self.event_id = event_id
        self.attempts = attempts
        self.reason = reason
        super().__init__(
            f"Event {event_id} dropped after {attempts} attempts: {reason}"
        )


class TransportConfigError(ValueError):
    """The configured transport target cannot be parsed or is unsupported."""
