# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and schemas for the lineage statistics correlator.
# =============================================================================

"""
Data models for the lineage statistics correlator.

This library provides:
- Dataset, DatasetVersion: Correlation identities
- Facets: Input/output statistics, scan and commit reports
- Run, Event: Run lifecycle and the emitted run event
- Configuration models
"""

# Dataset identities
from .dataset import (
    Dataset,
    DatasetVersion,
    VersionId,
    validate_version_id,
)

# Facet models
from .facets import (
    DEFAULT_PRODUCER,
    BaseFacet,
    CommitReport,
    DatasetVersionFacet,
    Facet,
    FacetKind,
    FacetSide,
    InputStatistics,
    OutputStatistics,
    ScanReport,
)

# Run models
from .run import (
    TERMINAL_EVENT_TYPES,
    EventType,
    Run,
    RunState,
)

# Event models
from .event import (
    EVENT_SCHEMA_URL,
    DatasetEntry,
    Event,
    stable_event_id,
)

# Configuration models
from .config import (
    CorrelatorSettings,
    TransportSettings,
)

__all__ = [
    # Dataset identities
    "Dataset",
    "DatasetVersion",
    "VersionId",
    "validate_version_id",
    # Facet models
    "DEFAULT_PRODUCER",
    "BaseFacet",
    "CommitReport",
    "DatasetVersionFacet",
    "Facet",
    "FacetKind",
    "FacetSide",
    "InputStatistics",
    "OutputStatistics",
    "ScanReport",
    # Run models
    "TERMINAL_EVENT_TYPES",
    "EventType",
    "Run",
    "RunState",
    # Event models
    "EVENT_SCHEMA_URL",
    "DatasetEntry",
    "Event",
    "stable_event_id",
    # Configuration models
    "CorrelatorSettings",
    "TransportSettings",
]
