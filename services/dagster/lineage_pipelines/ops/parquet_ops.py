# =============================================================================
# Parquet Ops - Parquet copy with lineage statistics
# =============================================================================
# Reads a Parquet dataset, optionally projects columns and writes it back
# out, recording input and output statistics for the step's lineage run.
# =============================================================================

from pathlib import Path
from typing import Any, Dict, List, Optional

import pyarrow.parquet as pq

from dagster import Config, OpExecutionContext, op
from pydantic import Field

from ..resources import LineageStatsResource


class ParquetCopyConfig(Config):
    """Run config for copy_parquet."""

    source_path: str = Field(..., description="Parquet file or directory to read")
    target_path: str = Field(..., description="Parquet file to write")
    source_dataset: str = Field(..., description="Dataset name of the source")
    target_dataset: str = Field(..., description="Dataset name of the target")
    columns: Optional[List[str]] = Field(None, description="Columns to keep (default: all)")


def _copy_parquet(
    lineage_stats: LineageStatsResource,
    run_id,
    config: ParquetCopyConfig,
    log,
) -> Dict[str, Any]:
    """
    Core logic for copying a Parquet dataset.

    This function is extracted for easier unit testing without Dagster context.

    Args:
        lineage_stats: LineageStatsResource instance
        run_id: Lineage run id of the step
        config: Source/target paths and dataset names
        log: Logger instance (context.log)

    Returns:
        Dict with target_path and row_count

    Raises:
        FileNotFoundError: If the source path does not exist
    """
    source = lineage_stats.dataset(config.source_dataset)
    target = lineage_stats.dataset(config.target_dataset)

    log.info(f"Reading Parquet from {config.source_path}")
    table = pq.read_table(config.source_path, columns=config.columns)
    lineage_stats.record_parquet_statistics(run_id, source, config.source_path, "input")

    target_path = Path(config.target_path)
    target_path.parent.mkdir(parents=True, exist_ok=True)
    pq.write_table(table, target_path)
    log.info(f"Wrote {table.num_rows} rows to {target_path}")
    lineage_stats.record_parquet_statistics(run_id, target, target_path, "output")

    return {
        "target_path": str(target_path),
        "row_count": table.num_rows,
    }


@op(
    description="Copy a Parquet dataset and report lineage statistics for both sides",
)
def copy_parquet(
    context: OpExecutionContext,
    config: ParquetCopyConfig,
    lineage_stats: LineageStatsResource,
) -> Dict[str, Any]:
    with lineage_stats.step_run(context) as run_id:
        return _copy_parquet(lineage_stats, run_id, config, context.log)
