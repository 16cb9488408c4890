# =============================================================================
# Report Normalizer
# =============================================================================
# Converts engine-specific metric payloads into typed facets:
# - basic-io: Processing-engine I/O counters -> Input/OutputStatistics
# - scan:     Table-format scan report       -> ScanReport
# - commit:   Table-format commit report     -> CommitReport
# =============================================================================

"""
Report normalization for the lineage statistics correlator.

Payload keys are accepted in camelCase, snake_case or kebab-case. The
table-format engine's JSON report format nests counters and timers:

    {"snapshot-id": 4805899131487958457,
     "metrics": {"result-data-files": {"unit": "count", "value": 1},
                 "total-planning-duration": {"count": 1,
                                             "time-unit": "nanoseconds",
                                             "total-duration": 1234567}}}

Counters are flattened to their value and timers to their total duration in
milliseconds; metric names are emitted in camelCase.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from .errors import MalformedReport
from .models import (
    DEFAULT_PRODUCER,
    CommitReport,
    Facet,
    InputStatistics,
    OutputStatistics,
    ScanReport,
)

__all__ = [
    "ReportKind",
    "ReportNormalizer",
    "canonical_key",
    "canonicalize",
    "flatten_metrics",
    "table_name_of",
]

logger = logging.getLogger(__name__)


class ReportKind(str, Enum):
    """Source kind of a raw report."""

    BASIC_IO = "basic-io"
    SCAN = "scan"
    COMMIT = "commit"


# Engine counter aliases, first match wins
SIZE_KEYS = ("size", "bytes", "bytes_read", "bytes_written")
ROW_COUNT_KEYS = ("row_count", "rows", "records", "records_read", "records_written")
FILE_COUNT_KEYS = ("file_count", "files", "files_read", "files_written")

# Timer units -> milliseconds
TIME_UNITS_TO_MS = {
    "nanoseconds": 1e-6,
    "microseconds": 1e-3,
    "milliseconds": 1.0,
    "seconds": 1000.0,
    "minutes": 60_000.0,
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


# =============================================================================
# Key and Metric Helpers
# =============================================================================


def canonical_key(key: str) -> str:
    """
    Convert a camelCase, kebab-case or snake_case key to snake_case.

    Examples:
        >>> canonical_key("resultDataFiles")
        'result_data_files'
        >>> canonical_key("snapshot-id")
        'snapshot_id'
    """
    key = _CAMEL_BOUNDARY.sub("_", key.strip())
    return key.replace("-", "_").lower()


def canonicalize(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a shallow copy of ``payload`` with snake_case keys."""
    return {canonical_key(str(key)): value for key, value in payload.items()}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _flatten_metric(value: Any) -> Optional[Union[int, float]]:
    if _is_number(value):
        return value

    if not isinstance(value, Mapping):
        return None

    fields = canonicalize(value)
    if "value" in fields and _is_number(fields["value"]):
        return fields["value"]

    if "total_duration" in fields and _is_number(fields["total_duration"]):
        unit = str(fields.get("time_unit", "nanoseconds")).lower()
        factor = TIME_UNITS_TO_MS.get(unit)
        if factor is None:
            return None
        return round(fields["total_duration"] * factor, 3)

    return None


def flatten_metrics(metrics: Any) -> dict[str, Union[int, float]]:
    """
    Flatten a metrics mapping into ``{camelCaseName: number}``.

    Metrics with an unrecognized shape are skipped.
    """
    if metrics is None:
        return {}
    if not isinstance(metrics, Mapping):
        raise TypeError(f"metrics must be a mapping, got {type(metrics).__name__}")

    flattened: dict[str, Union[int, float]] = {}
    for name, value in metrics.items():
        number = _flatten_metric(value)
        if number is None:
            logger.debug(f"Skipping metric '{name}' with unrecognized shape: {value!r}")
            continue
        flattened[to_camel(canonical_key(str(name)))] = number
    return flattened


def _string_map(value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"metadata must be a mapping, got {type(value).__name__}")
    return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in value.items()}


def _first_present(fields: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if fields.get(key) is not None:
            return fields[key]
    return None


def table_name_of(payload: Mapping[str, Any]) -> Optional[str]:
    """Return the table name a table-format report names, if any."""
    name = canonicalize(payload).get("table_name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


# =============================================================================
# Report Normalizer
# =============================================================================


class ReportNormalizer:
    """
    Converts raw reports into facets.

    Normalization has no side effects: it either returns a facet or raises
    MalformedReport.
    """

    def __init__(self, producer: str = DEFAULT_PRODUCER):
        self.producer = producer

    def normalize(self, kind: Union[ReportKind, str], payload: Mapping[str, Any]) -> Facet:
        """
        Normalize a raw report.

        Args:
            kind: Source kind ("basic-io", "scan" or "commit")
            payload: Raw report payload

        Returns:
            InputStatistics, OutputStatistics, ScanReport or CommitReport

        Raises:
            MalformedReport: If the kind is unknown or required fields are
                absent or invalid
        """
        try:
            kind = ReportKind(kind)
        except ValueError:
            raise MalformedReport(kind, "unknown report kind") from None

        if not isinstance(payload, Mapping):
            raise MalformedReport(kind, f"payload must be a mapping, got {type(payload).__name__}")

        fields = canonicalize(payload)

        try:
            if kind == ReportKind.BASIC_IO:
                return self._basic_io(fields)
            if kind == ReportKind.SCAN:
                return self._scan(fields)
            return self._commit(fields)
        except (ValidationError, TypeError) as exc:
            raise MalformedReport(kind, str(exc)) from exc

    def _basic_io(self, fields: dict[str, Any]) -> Facet:
        direction = str(fields.get("direction") or "").strip().lower()
        if direction not in ("input", "output"):
            raise MalformedReport(
                ReportKind.BASIC_IO,
                f"direction must be 'input' or 'output', got {fields.get('direction')!r}",
            )

        counters = {
            "size": _first_present(fields, SIZE_KEYS),
            "row_count": _first_present(fields, ROW_COUNT_KEYS),
            "file_count": _first_present(fields, FILE_COUNT_KEYS),
        }
        if all(value is None for value in counters.values()):
            raise MalformedReport(ReportKind.BASIC_IO, "no size, rowCount or fileCount counter")

        facet_cls = InputStatistics if direction == "input" else OutputStatistics
        return facet_cls(producer=self.producer, **counters)

    def _scan(self, fields: dict[str, Any]) -> ScanReport:
        if fields.get("snapshot_id") is None:
            raise MalformedReport(ReportKind.SCAN, "missing snapshotId")

        filter_description = _first_present(fields, ("filter_description", "filter"))
        if filter_description is not None and not isinstance(filter_description, str):
            filter_description = json.dumps(filter_description, sort_keys=True)

        projected = _first_present(fields, ("projected_field_names", "projected_fields")) or []
        if not isinstance(projected, (list, tuple)):
            raise MalformedReport(ReportKind.SCAN, "projectedFieldNames must be a list")

        return ScanReport(
            producer=self.producer,
            snapshot_id=fields["snapshot_id"],
            filter_description=filter_description,
            schema_id=fields.get("schema_id"),
            projected_field_names=[str(name) for name in projected],
            scan_metrics=flatten_metrics(_first_present(fields, ("scan_metrics", "metrics"))),
            metadata=_string_map(fields.get("metadata")),
        )

    def _commit(self, fields: dict[str, Any]) -> CommitReport:
        if fields.get("snapshot_id") is None:
            raise MalformedReport(ReportKind.COMMIT, "missing snapshotId")

        return CommitReport(
            producer=self.producer,
            snapshot_id=fields["snapshot_id"],
            sequence_number=fields.get("sequence_number"),
            operation=fields.get("operation"),
            commit_metrics=flatten_metrics(_first_present(fields, ("commit_metrics", "metrics"))),
            metadata=_string_map(fields.get("metadata")),
        )
