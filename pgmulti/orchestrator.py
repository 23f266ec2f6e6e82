"""Runs a statement batch across several databases and streams reports.

Execution happens in two phases. :meth:`QueryOrchestrator.execute` resolves
its inputs first, asking the folder picker for a destination when results
are exported; it then hands a frozen :class:`ExecutionPlan` to a detached
task that visits each database in order and emits one report per database.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from .export import CsvExportError, write_combined, write_single
from .models import ConnectionProfile, DatabaseReport, ExecutionStatus, SaveOption, TabularResult
from .runner import DatabaseRunner

LOG = logging.getLogger(__name__)

EXECUTION_STATUS_EVENT = "execution-status-update"
COMBINED_FILENAME = "combined_results.csv"


class FolderSelectionError(RuntimeError):
    """Raised when the folder picker fails to deliver a selection."""


class FolderPicker(Protocol):
    """Interactive capability returning a destination folder, or ``None`` if declined."""

    async def pick_folder(self) -> Path | None: ...


class ReportEmitter(Protocol):
    """Sink receiving one report per completed database."""

    def emit(self, event: str, report: DatabaseReport) -> None: ...


@dataclass(frozen=True, slots=True)
class ExecutionPlan:
    """Fully resolved inputs for the background phase."""

    profile: ConnectionProfile
    databases: tuple[str, ...]
    statements: tuple[str, ...]
    save_option: SaveOption
    stop_on_error: bool
    folder: Path | None = None


def split_statements(query: str) -> tuple[str, ...]:
    """Split on ``;`` and drop blank fragments."""

    return tuple(part.strip() for part in query.split(";") if part.strip())


class QueryOrchestrator:
    """Coordinates folder selection, per-database runs and CSV export."""

    def __init__(
        self,
        runner: DatabaseRunner,
        emitter: ReportEmitter,
        folder_picker: FolderPicker | None = None,
        *,
        combined_filename: str = COMBINED_FILENAME,
    ) -> None:
        self._runner = runner
        self._emitter = emitter
        self._folder_picker = folder_picker
        self._combined_filename = combined_filename
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        """Whether a background batch is still in progress."""

        return any(not task.done() for task in self._tasks)

    async def execute(
        self,
        profile: ConnectionProfile,
        databases: Sequence[str],
        query: str,
        save_option: SaveOption,
        stop_on_error: bool,
    ) -> asyncio.Task[None] | None:
        """Resolve inputs and start the batch in the background.

        Returns the background task, or ``None`` when the operator declined to
        pick a folder. Raises :class:`FolderSelectionError` if the picker fails.
        """

        save_option = SaveOption(save_option)
        statements = split_statements(query)
        folder: Path | None = None
        if save_option.requires_folder:
            folder = await self._resolve_folder()
            if folder is None:
                LOG.info("Folder selection cancelled; nothing executed")
                return None
        plan = ExecutionPlan(
            profile=profile,
            databases=tuple(databases),
            statements=statements,
            save_option=save_option,
            stop_on_error=stop_on_error,
            folder=folder,
        )
        # The event loop only keeps weak references to tasks.
        task = asyncio.create_task(self.run_plan(plan), name="pgmulti-execution")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run_plan(self, plan: ExecutionPlan) -> None:
        """Visit every database of ``plan`` sequentially."""

        if not plan.statements:
            LOG.info("No statements to execute")
            return
        combined: list[tuple[str, TabularResult]] = []
        for database in plan.databases:
            report = await self._runner.run(plan.profile, database, plan.statements, plan.stop_on_error)
            result = report.last_tabular_result()
            if result is not None and plan.folder is not None:
                if plan.save_option is SaveOption.SEPARATE:
                    report = self._export_separate(plan.folder, report, result)
                elif plan.save_option is SaveOption.SINGLE and report.status is ExecutionStatus.SUCCESS:
                    combined.append((database, result))
            self._emit(report)
        if plan.save_option is SaveOption.SINGLE and plan.folder is not None and combined:
            self._export_combined(plan.folder / self._combined_filename, combined)

    def _export_separate(self, folder: Path, report: DatabaseReport, result: TabularResult) -> DatabaseReport:
        path = folder / f"{report.name}.csv"
        try:
            write_single(path, result)
        except CsvExportError as exc:
            LOG.warning("CSV export failed", extra={"database": report.name, "path": str(path)})
            return report.with_export_failure(f"Statements succeeded, but saving CSV failed: {exc}")
        return report

    def _export_combined(self, path: Path, results: list[tuple[str, TabularResult]]) -> None:
        try:
            write_combined(path, results)
        except CsvExportError:
            LOG.exception("Failed to save combined CSV", extra={"path": str(path)})

    async def _resolve_folder(self) -> Path | None:
        if self._folder_picker is None:
            raise FolderSelectionError("No folder picker is available.")
        try:
            return await self._folder_picker.pick_folder()
        except Exception as exc:
            raise FolderSelectionError(f"Failed to receive selected folder: {exc}") from exc

    def _emit(self, report: DatabaseReport) -> None:
        try:
            self._emitter.emit(EXECUTION_STATUS_EVENT, report)
        except Exception:
            LOG.exception("Failed to emit status update", extra={"database": report.name})


__all__ = [
    "COMBINED_FILENAME",
    "EXECUTION_STATUS_EVENT",
    "ExecutionPlan",
    "FolderPicker",
    "FolderSelectionError",
    "QueryOrchestrator",
    "ReportEmitter",
    "split_statements",
]
