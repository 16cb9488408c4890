"""Basic I/O statistics derived from Parquet files on disk."""

import logging
from pathlib import Path
from typing import Iterable, Union

import pyarrow.parquet as pq

__all__ = [
    "expand_parquet_paths",
    "parquet_io_payload",
]

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def expand_parquet_paths(paths: Union[PathLike, Iterable[PathLike]]) -> list[Path]:
    """
    Expand files and directories into a sorted list of Parquet files.

    Directories are searched recursively for ``*.parquet`` files. Hidden and
    underscore-prefixed files (``_SUCCESS``, ``.crc``) are skipped, as engines
    write them next to data files.

    Raises:
        FileNotFoundError: If a given path does not exist
    """
    if isinstance(paths, (str, Path)):
        paths = [paths]

    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if not path.exists():
            raise FileNotFoundError(f"Parquet path does not exist: {path}")
        if path.is_dir():
            files.extend(
                child
                for child in path.rglob("*.parquet")
                if child.is_file() and not child.name.startswith(("_", "."))
            )
        else:
            files.append(path)

    return sorted(set(files))


def parquet_io_payload(
    paths: Union[PathLike, Iterable[PathLike]],
    direction: str,
) -> dict:
    """
    Build a basic-io report payload from Parquet files.

    Row counts come from the Parquet footer, so no data pages are read.

    Args:
        paths: Parquet files or directories of Parquet files
        direction: "input" for files read by the job, "output" for files written

    Returns:
        Payload for a ``basic-io`` report: direction, size, rowCount, fileCount
    """
    files = expand_parquet_paths(paths)

    size = 0
    row_count = 0
    for file in files:
        size += file.stat().st_size
        row_count += pq.read_metadata(file).num_rows

    logger.debug(
        f"Parquet {direction} statistics: {len(files)} files, {row_count} rows, {size} bytes"
    )
    return {
        "direction": direction,
        "size": size,
        "rowCount": row_count,
        "fileCount": len(files),
    }
