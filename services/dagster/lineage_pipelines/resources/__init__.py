"""Dagster Resources - Lineage statistics correlation."""

from .lineage_stats_resource import LineageStatsResource, step_run_id

__all__ = [
    "LineageStatsResource",
    "step_run_id",
]
