"""Lineage Stats Resource - Statistics correlation for ops."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Union
from uuid import NAMESPACE_URL, UUID, uuid5

from dagster import ConfigurableResource, InitResourceContext, OpExecutionContext
from pydantic import Field, PrivateAttr

from lineage_stats import Correlator, CorrelatorSettings, Dataset, TransportSettings
from lineage_stats.io_stats import parquet_io_payload
from lineage_stats.normalizer import ReportKind

__all__ = ["LineageStatsResource", "step_run_id"]


def step_run_id(dagster_run_id: str, step_name: str) -> UUID:
    """
    Derive the lineage run id of one op execution.

    Every op of a Dagster run is reported as its own lineage run so that the
    statistics gathered in a step process are emitted from that process,
    whichever executor runs the job.
    """
    return uuid5(NAMESPACE_URL, f"dagster:{dagster_run_id}:{step_name}")


class LineageStatsResource(ConfigurableResource):
    """
    Dagster resource exposing a lineage statistics correlator to ops.

    The correlator is created when the resource is initialized for a run (or
    step process) and closed, flushing queued events, at teardown.

    Usage:
        @op
        def copy_flights(context, lineage_stats: LineageStatsResource):
            with lineage_stats.step_run(context) as run_id:
                flights = lineage_stats.dataset("demo.flights")
                lineage_stats.record_parquet_statistics(run_id, flights, path, "input")
    """

    namespace: str = Field("dagster", description="Namespace for jobs and datasets")
    transport_target: str = Field("console", description="Transport target URI")
    transport_api_key: Optional[str] = Field(None, description="Bearer token for HTTP targets")
    max_attempts: int = Field(5, ge=1, description="Delivery attempts per event")
    close_timeout_seconds: float = Field(10.0, gt=0, description="Flush timeout at teardown")

    _correlator: Optional[Correlator] = PrivateAttr(default=None)

    def setup_for_execution(self, context: InitResourceContext) -> None:
        self._correlator = self._build_correlator()

    def teardown_after_execution(self, context: InitResourceContext) -> None:
        if self._correlator is not None:
            self._correlator.close(self.close_timeout_seconds)
            self._correlator = None

    def _build_correlator(self) -> Correlator:
        return Correlator(
            settings=CorrelatorSettings(namespace=self.namespace),
            transport_settings=TransportSettings(
                target=self.transport_target,
                api_key=self.transport_api_key,
                max_attempts=self.max_attempts,
            ),
        )

    @property
    def correlator(self) -> Correlator:
        if self._correlator is None:
            self._correlator = self._build_correlator()
        return self._correlator

    def dataset(self, name: str, namespace: Optional[str] = None) -> Dataset:
        """Dataset in this resource's namespace unless another is given."""
        return Dataset(namespace=namespace or self.namespace, name=name)

    # ------------------------------------------------------------------
    # Step runs
    # ------------------------------------------------------------------

    @contextmanager
    def step_run(self, context: OpExecutionContext) -> Iterator[UUID]:
        """
        Open a lineage run for the current op and close it on exit.

        The terminal event is COMPLETE when the block finishes and FAIL when
        it raises; the exception is re-raised.
        """
        step_name = context.op_def.name
        run_id = step_run_id(context.run_id, step_name)
        job_name = f"{context.job_name}.{step_name}"

        self.correlator.start_run(run_id, job_name)
        context.log.debug(f"Tracking lineage statistics for {job_name} as run {run_id}")
        try:
            yield run_id
        except Exception:
            self.correlator.fail_run(run_id)
            raise
        self.correlator.complete_run(run_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def on_report(
        self,
        run_id: Union[UUID, str],
        kind: Union[ReportKind, str],
        dataset: Optional[Dataset],
        payload: Mapping[str, Any],
        version_id: Union[str, int, None] = None,
    ) -> bool:
        """Forward a raw report to the correlator. Returns False if dropped."""
        return self.correlator.on_report(kind, run_id, dataset, version_id, payload)

    def record_parquet_statistics(
        self,
        run_id: Union[UUID, str],
        dataset: Dataset,
        paths: Union[str, Path, Iterable[Union[str, Path]]],
        direction: str,
    ) -> bool:
        """
        Record basic I/O statistics of Parquet files read or written by an op.

        Args:
            run_id: Step run id from step_run()
            dataset: Dataset the files belong to
            paths: Parquet files or directories
            direction: "input" or "output"

        Returns:
            True if the statistics were recorded
        """
        payload = parquet_io_payload(paths, direction)
        return self.on_report(run_id, ReportKind.BASIC_IO, dataset, payload)
