"""CSV writers for tabular results."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Sequence

from .models import TabularResult

LOG = logging.getLogger(__name__)

DATABASE_COLUMN = "db"


class CsvExportError(RuntimeError):
    """Raised when a CSV file cannot be written."""


def write_single(path: Path, result: TabularResult) -> None:
    """Write one result set with its header row."""

    rows = [list(result.headers), *(list(row) for row in result.rows)]
    _write_rows(path, rows)


def write_combined(path: Path, results: Sequence[tuple[str, TabularResult]]) -> None:
    """Merge several result sets into one file, prefixing rows with their database.

    The header is taken from the first result that has one; later results are
    written positionally underneath it even if their columns differ.
    """

    headers = [DATABASE_COLUMN]
    first = next((result for _, result in results if result.headers), None)
    if first is not None:
        headers.extend(first.headers)
    rows: list[list[str]] = [headers]
    for database, result in results:
        rows.extend([database, *row] for row in result.rows)
    _write_rows(path, rows)


def _write_rows(path: Path, rows: Sequence[Sequence[str]]) -> None:
    try:
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle, lineterminator="\n")
            writer.writerows(rows)
            handle.flush()
    except (OSError, csv.Error) as exc:
        raise CsvExportError(f"Failed to write {path}: {exc}") from exc
    LOG.debug("Wrote CSV", extra={"path": str(path), "rows": len(rows) - 1})


__all__ = ["CsvExportError", "DATABASE_COLUMN", "write_combined", "write_single"]
