# =============================================================================
# Facet Merger
# =============================================================================
# Collapses a bucket's arrival-ordered facets into one facet per kind.
# =============================================================================

import logging
from dataclasses import dataclass, field
from typing import Optional

from .correlation import Bucket
from .errors import ConflictingVersion
from .models import Dataset, Facet, FacetKind, FacetSide

__all__ = ["DatasetFacetSet", "FacetMerger"]

logger = logging.getLogger(__name__)


@dataclass
class DatasetFacetSet:
    """
    Merged facets for one dataset-in-run context.

    Attributes:
        dataset: Dataset identity
        version_id: Snapshot the facets belong to, None if never qualified
        facets: At most one facet per kind, in first-arrival order of kinds
        conflicts: Facets dropped because they declared a different version
    """

    dataset: Dataset
    version_id: Optional[str]
    facets: dict[FacetKind, Facet] = field(default_factory=dict)
    conflicts: list[ConflictingVersion] = field(default_factory=list)

    def sides(self) -> set[FacetSide]:
        return {facet.side for facet in self.facets.values()}

    def for_side(self, side: FacetSide) -> list[Facet]:
        """Facets describing one side of the job (neutral facets included)."""
        return [
            facet
            for facet in self.facets.values()
            if facet.side in (side, FacetSide.NEUTRAL)
        ]

    def __bool__(self) -> bool:
        return bool(self.facets)


class FacetMerger:
    """
    Merges a bucket into a DatasetFacetSet.

    Last write wins per facet kind by arrival order. A facet whose declared
    snapshot differs from the bucket's version is reported as
    ConflictingVersion and dropped; the merge itself never fails.
    """

    def merge(self, bucket: Bucket) -> DatasetFacetSet:
        merged = DatasetFacetSet(dataset=bucket.dataset, version_id=bucket.version_id)

        for entry in [*bucket.entries(), *bucket.conflicts()]:
            facet = entry.facet
            declared = facet.version_id

            if merged.version_id is None and declared is not None:
                merged.version_id = declared
            elif declared is not None and declared != merged.version_id:
                conflict = ConflictingVersion(
                    dataset=bucket.dataset,
                    bucket_version=merged.version_id,
                    facet_version=declared,
                    facet_name=facet.kind.value,
                )
                logger.warning(f"Dropping facet: {conflict}")
                merged.conflicts.append(conflict)
                continue

            merged.facets[facet.kind] = facet

        return merged
