"""Dagster Sensors - Run lifecycle lineage events."""

from .run_status_sensor import (
    lineage_run_canceled_sensor,
    lineage_run_failure_sensor,
    lineage_run_success_sensor,
)

__all__ = [
    "lineage_run_success_sensor",
    "lineage_run_failure_sensor",
    "lineage_run_canceled_sensor",
]
