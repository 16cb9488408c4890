# =============================================================================
# Facet Models Module
# =============================================================================
# Defines the typed metadata bundles attached to a dataset within a run:
# - InputStatistics / OutputStatistics: Basic I/O counters
# - ScanReport: Table-format scan report
# - CommitReport: Table-format commit report
# - DatasetVersionFacet: Snapshot identifier of a version-qualified entry
#
# Every facet serializes with the OpenLineage provenance fields
# `_producer` and `_schemaURL`.
# =============================================================================

from enum import Enum
from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .dataset import VersionId

__all__ = [
    "FacetKind",
    "FacetSide",
    "BaseFacet",
    "InputStatistics",
    "OutputStatistics",
    "ScanReport",
    "CommitReport",
    "DatasetVersionFacet",
    "Facet",
    "DEFAULT_PRODUCER",
]


DEFAULT_PRODUCER = "https://github.com/lineage-stats/lineage-stats"

_FACET_SCHEMA_BASE = "https://openlineage.io/spec/facets"


# =============================================================================
# Facet Kinds
# =============================================================================


class FacetKind(str, Enum):
    """Facet name as it appears in the emitted dataset `facets` mapping."""

    INPUT_STATISTICS = "inputStatistics"
    OUTPUT_STATISTICS = "outputStatistics"
    SCAN_REPORT = "icebergScanReport"
    COMMIT_REPORT = "icebergCommitReport"
    VERSION = "version"


class FacetSide(str, Enum):
    """Which side of a job a facet describes."""

    INPUT = "input"
    OUTPUT = "output"
    NEUTRAL = "neutral"


# =============================================================================
# Base Facet
# =============================================================================


class BaseFacet(BaseModel):
    """
    Common provenance fields shared by all facets.

    Subclasses set ``kind``, ``side`` and ``schema_url`` as class variables.
    Field names are snake_case in Python and camelCase on the wire.

    Attributes:
        producer: URI identifying the code that produced the facet
    """

    kind: ClassVar[FacetKind]
    side: ClassVar[FacetSide] = FacetSide.NEUTRAL
    schema_url: ClassVar[str]

    producer: str = Field(
        DEFAULT_PRODUCER,
        alias="_producer",
        description="URI identifying the producer of this facet",
    )

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="forbid",
    )

    @property
    def version_id(self) -> Optional[str]:
        """Snapshot identifier this facet declares, if any."""
        return None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the OpenLineage JSON shape."""
        body = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        body["_schemaURL"] = self.schema_url
        return body


# =============================================================================
# Basic I/O Statistics
# =============================================================================


class _Statistics(BaseFacet):
    """Shared counters for input and output statistics."""

    size: Optional[int] = Field(None, ge=0, description="Bytes read or written")
    row_count: Optional[int] = Field(None, ge=0, description="Rows read or written")
    file_count: Optional[int] = Field(None, ge=0, description="Files read or written")


class InputStatistics(_Statistics):
    """Bytes, rows and files read from an input dataset."""

    kind: ClassVar[FacetKind] = FacetKind.INPUT_STATISTICS
    side: ClassVar[FacetSide] = FacetSide.INPUT
    schema_url: ClassVar[str] = (
        f"{_FACET_SCHEMA_BASE}/1-0-0/InputStatisticsInputDatasetFacet.json"
        "#/$defs/InputStatisticsInputDatasetFacet"
    )


class OutputStatistics(_Statistics):
    """Bytes, rows and files written to an output dataset."""

    kind: ClassVar[FacetKind] = FacetKind.OUTPUT_STATISTICS
    side: ClassVar[FacetSide] = FacetSide.OUTPUT
    schema_url: ClassVar[str] = (
        f"{_FACET_SCHEMA_BASE}/1-0-2/OutputStatisticsOutputDatasetFacet.json"
        "#/$defs/OutputStatisticsOutputDatasetFacet"
    )


# =============================================================================
# Table-Format Reports
# =============================================================================


class ScanReport(BaseFacet):
    """
    Scan report produced when a table-format engine finishes planning a scan.

    Attributes:
        snapshot_id: Snapshot the scan read from (required)
        filter_description: Human-readable residual filter
        schema_id: Schema id used for the scan
        projected_field_names: Columns projected by the scan
        scan_metrics: Flattened scan metrics (counters and durations in ms)
        metadata: Free-form engine metadata
    """

    kind: ClassVar[FacetKind] = FacetKind.SCAN_REPORT
    side: ClassVar[FacetSide] = FacetSide.INPUT
    schema_url: ClassVar[str] = (
        f"{_FACET_SCHEMA_BASE}/1-0-0/IcebergScanReportInputDatasetFacet.json"
        "#/$defs/IcebergScanReportInputDatasetFacet"
    )

    snapshot_id: VersionId
    filter_description: Optional[str] = Field(None, description="Scan filter")
    schema_id: Optional[int] = Field(None, description="Schema id of the scan")
    projected_field_names: list[str] = Field(
        default_factory=list, description="Projected column names"
    )
    scan_metrics: dict[str, Union[int, float]] = Field(
        default_factory=dict, description="Flattened scan metrics"
    )
    metadata: dict[str, str] = Field(
        default_factory=dict, description="Engine metadata"
    )

    @property
    def version_id(self) -> Optional[str]:
        return self.snapshot_id


class CommitReport(BaseFacet):
    """
    Commit report produced when a table-format engine commits a snapshot.

    Attributes:
        snapshot_id: Snapshot created by the commit (required)
        sequence_number: Table sequence number of the commit
        operation: Commit operation (append, overwrite, delete, replace)
        commit_metrics: Flattened commit metrics (counters and durations in ms)
        metadata: Free-form engine metadata
    """

    kind: ClassVar[FacetKind] = FacetKind.COMMIT_REPORT
    side: ClassVar[FacetSide] = FacetSide.OUTPUT
    schema_url: ClassVar[str] = (
        f"{_FACET_SCHEMA_BASE}/1-0-0/IcebergCommitReportOutputDatasetFacet.json"
        "#/$defs/IcebergCommitReportOutputDatasetFacet"
    )

    snapshot_id: VersionId
    sequence_number: Optional[int] = Field(None, ge=0, description="Sequence number")
    operation: Optional[str] = Field(None, description="Commit operation")
    commit_metrics: dict[str, Union[int, float]] = Field(
        default_factory=dict, description="Flattened commit metrics"
    )
    metadata: dict[str, str] = Field(
        default_factory=dict, description="Engine metadata"
    )

    @property
    def version_id(self) -> Optional[str]:
        return self.snapshot_id


# =============================================================================
# Dataset Version Facet
# =============================================================================


class DatasetVersionFacet(BaseFacet):
    """Snapshot identifier attached to every version-qualified dataset entry."""

    kind: ClassVar[FacetKind] = FacetKind.VERSION
    schema_url: ClassVar[str] = (
        f"{_FACET_SCHEMA_BASE}/1-0-1/DatasetVersionDatasetFacet.json"
        "#/$defs/DatasetVersionDatasetFacet"
    )

    dataset_version: VersionId

    @property
    def version_id(self) -> Optional[str]:
        return self.dataset_version


Facet = Union[InputStatistics, OutputStatistics, ScanReport, CommitReport]
"""Facets that can be recorded against a correlation key."""
