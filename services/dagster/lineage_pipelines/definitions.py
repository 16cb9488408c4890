"""Dagster Definitions - Repository Configuration.

Defines jobs, resources, and sensors for lineage statistics reporting.
"""

from dagster import Definitions, EnvVar

from .jobs import parquet_copy_job
from .resources import LineageStatsResource
from .sensors import (
    lineage_run_canceled_sensor,
    lineage_run_failure_sensor,
    lineage_run_success_sensor,
)


# =============================================================================
# Definitions
# =============================================================================

defs = Definitions(
    jobs=[
        parquet_copy_job,
    ],
    resources={
        "lineage_stats": LineageStatsResource(
            namespace=EnvVar("LINEAGE_NAMESPACE"),
            transport_target=EnvVar("LINEAGE_TRANSPORT_TARGET"),
        ),
    },
    schedules=[],
    sensors=[
        lineage_run_success_sensor,  # Lifecycle: COMPLETE on success
        lineage_run_failure_sensor,  # Lifecycle: FAIL on failure
        lineage_run_canceled_sensor,  # Lifecycle: ABORT on cancel
    ],
)
