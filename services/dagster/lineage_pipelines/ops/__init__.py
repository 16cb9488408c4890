"""Dagster Ops - Reusable Computation Units."""

from .parquet_ops import ParquetCopyConfig, copy_parquet

__all__ = [
    "ParquetCopyConfig",
    "copy_parquet",
]
