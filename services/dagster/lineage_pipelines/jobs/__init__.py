"""Dagster Jobs - Executable Workflows."""

from .parquet_copy_job import parquet_copy_job

__all__ = ["parquet_copy_job"]
