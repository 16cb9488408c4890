# =============================================================================
# Lineage Statistics Correlator
# =============================================================================
# Correlates processing-engine I/O counters with table-format scan and
# commit reports and emits them as OpenLineage run events.
# See individual modules for detailed documentation.
# =============================================================================

"""
Lineage statistics correlator.

Modules:
- models: Pydantic data models, facets and settings
- normalizer: Raw report -> typed facet
- correlation: Run/dataset/version correlation index and idle sweeper
- merger: One-facet-per-kind merge of a correlated bucket
- emitter: Event building and asynchronous delivery
- transports: Event sinks (console, HTTP, file, MongoDB)
- correlator: Facade used by host integrations
- io_stats: Basic I/O statistics from Parquet files
"""

from .correlator import Correlator
from .errors import (
    ConflictingVersion,
    IncompleteRunDiscarded,
    LineageStatsError,
    MalformedReport,
    RunClosed,
    TransportConfigError,
    TransportUnavailable,
)
from .models import CorrelatorSettings, Dataset, EventType, TransportSettings
from .normalizer import ReportKind

__version__ = "0.1.0"

__all__ = [
    "Correlator",
    "CorrelatorSettings",
    "TransportSettings",
    "Dataset",
    "EventType",
    "ReportKind",
    # Errors
    "LineageStatsError",
    "MalformedReport",
    "ConflictingVersion",
    "IncompleteRunDiscarded",
    "RunClosed",
    "TransportUnavailable",
    "TransportConfigError",
]
