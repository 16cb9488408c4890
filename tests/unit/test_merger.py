"""Unit tests for the facet merger."""

from lineage_stats.correlation import Bucket
from lineage_stats.errors import ConflictingVersion
from lineage_stats.merger import DatasetFacetSet, FacetMerger
from lineage_stats.models import (
    CommitReport,
    FacetKind,
    FacetSide,
    InputStatistics,
    OutputStatistics,
    ScanReport,
)


def _bucket(dataset, version_id, *facets):
    bucket = Bucket(dataset, version_id)
    for seq, facet in enumerate(facets):
        bucket.add(seq, facet)
    return bucket


class TestFacetMerger:
    """Test one-facet-per-kind merging."""

    def test_last_write_wins_per_kind(self, flights):
        bucket = _bucket(
            flights,
            None,
            InputStatistics(size=1),
            InputStatistics(size=2),
        )

        merged = FacetMerger().merge(bucket)

        assert list(merged.facets) == [FacetKind.INPUT_STATISTICS]
        assert merged.facets[FacetKind.INPUT_STATISTICS].size == 2

    def test_arrival_order_not_insertion_order(self, flights):
        bucket = Bucket(flights)
        bucket.add(5, InputStatistics(size=5))
        bucket.add(3, InputStatistics(size=3))

        merged = FacetMerger().merge(bucket)

        assert merged.facets[FacetKind.INPUT_STATISTICS].size == 5

    def test_identical_facets_collapse(self, flights):
        facet = InputStatistics(size=25238218, file_count=1)
        merged = FacetMerger().merge(_bucket(flights, None, facet, facet))

        assert len(merged.facets) == 1

    def test_kinds_keep_first_arrival_order(self, flights):
        bucket = _bucket(
            flights,
            "480",
            ScanReport(snapshot_id=480),
            InputStatistics(size=1),
            ScanReport(snapshot_id=480, schema_id=3),
        )

        merged = FacetMerger().merge(bucket)

        assert list(merged.facets) == [FacetKind.SCAN_REPORT, FacetKind.INPUT_STATISTICS]
        assert merged.facets[FacetKind.SCAN_REPORT].schema_id == 3

    def test_conflicting_version_is_dropped_and_reported(self, flights):
        bucket = _bucket(
            flights,
            "480",
            ScanReport(snapshot_id=480),
            CommitReport(snapshot_id=586),
        )

        merged = FacetMerger().merge(bucket)

        assert list(merged.facets) == [FacetKind.SCAN_REPORT]
        assert len(merged.conflicts) == 1
        conflict = merged.conflicts[0]
        assert isinstance(conflict, ConflictingVersion)
        assert conflict.bucket_version == "480"
        assert conflict.facet_version == "586"
        assert conflict.facet_name == "icebergCommitReport"

    def test_unversioned_bucket_adopts_first_declared_version(self, flights):
        bucket = _bucket(flights, None, InputStatistics(size=1), ScanReport(snapshot_id=9))

        merged = FacetMerger().merge(bucket)

        assert merged.version_id == "9"
        assert merged.conflicts == []

    def test_conflict_logs_warning(self, flights, caplog):
        bucket = _bucket(flights, "1", CommitReport(snapshot_id=2))

        with caplog.at_level("WARNING", logger="lineage_stats.merger"):
            FacetMerger().merge(bucket)

        assert "declares version 2" in caplog.text

    def test_empty_bucket_is_falsy(self, flights):
        assert not FacetMerger().merge(Bucket(flights))


class TestDatasetFacetSet:
    """Test side helpers used for input/output classification."""

    def test_sides_and_for_side(self, flights):
        facet_set = DatasetFacetSet(
            dataset=flights,
            version_id="1",
            facets={
                FacetKind.INPUT_STATISTICS: InputStatistics(size=1),
                FacetKind.OUTPUT_STATISTICS: OutputStatistics(size=2),
            },
        )

        assert facet_set.sides() == {FacetSide.INPUT, FacetSide.OUTPUT}
        assert [f.kind for f in facet_set.for_side(FacetSide.OUTPUT)] == [
            FacetKind.OUTPUT_STATISTICS
        ]
