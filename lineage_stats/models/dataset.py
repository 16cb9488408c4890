# =============================================================================
# Dataset Models Module
# =============================================================================
# Defines the identity types used as correlation keys:
# - Dataset: Logical data location (namespace + name)
# - DatasetVersion: A dataset observed at a specific snapshot
# =============================================================================

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

__all__ = [
    "Dataset",
    "DatasetVersion",
    "VersionId",
    "validate_version_id",
]


# =============================================================================
# Version Identifier Validation
# =============================================================================


def validate_version_id(value: Any) -> str:
    """
    Normalize a snapshot/version identifier to its string form.

    Table-format engines report snapshot ids as 64-bit integers while other
    sources use opaque strings. Both are carried as strings so that
    ``4805899131487958457`` and ``"4805899131487958457"`` correlate.

    Args:
        value: Integer or string version identifier

    Returns:
        Version identifier as a stripped string

    Raises:
        TypeError: If the value is neither an integer nor a string
        ValueError: If the value is empty
    """
    if isinstance(value, bool):
        raise TypeError("Version id cannot be a boolean")

    if isinstance(value, int):
        return str(value)

    if not isinstance(value, str):
        raise TypeError(
            f"Version id must be an integer or string, got {type(value).__name__}"
        )

    value = value.strip()
    if not value:
        raise ValueError("Version id cannot be empty")

    return value


VersionId = Annotated[
    str,
    Field(..., description="Snapshot or version identifier"),
    BeforeValidator(validate_version_id),
]
"""Version identifier type. Integers are normalized to decimal strings."""


# =============================================================================
# Dataset Model
# =============================================================================


class Dataset(BaseModel):
    """
    A logical data location, stable across runs.

    Datasets are immutable and hashable so they can be used directly in
    correlation keys.

    Attributes:
        namespace: Dataset namespace (e.g., "s3://warehouse", "iceberg")
        name: Dataset name (e.g., "db.flights")
    """

    namespace: str = Field(..., min_length=1, description="Dataset namespace")
    name: str = Field(..., min_length=1, description="Dataset name")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        json_schema_extra={
            "example": {
                "namespace": "iceberg",
                "name": "demo.flights",
            }
        },
    )

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    def at(self, version_id: Any) -> "DatasetVersion":
        """Return this dataset pinned to a snapshot."""
        return DatasetVersion(dataset=self, version_id=version_id)


# =============================================================================
# Dataset Version Model
# =============================================================================


class DatasetVersion(BaseModel):
    """
    A dataset observed at a specific immutable snapshot.

    Attributes:
        dataset: Dataset reference
        version_id: Snapshot identifier (numeric ids are normalized to strings)
    """

    dataset: Dataset = Field(..., description="Dataset reference")
    version_id: VersionId

    model_config = ConfigDict(frozen=True, extra="forbid")

    def __str__(self) -> str:
        return f"{self.dataset}@{self.version_id}"
