"""Tests for the multi-database orchestrator."""

from __future__ import annotations

import asyncio
import csv
import logging
from pathlib import Path
from urllib.parse import urlsplit

import pytest

from pgmulti.models import (
    AffectedRowCount,
    ConnectionProfile,
    DatabaseReport,
    ExecutionStatus,
    SaveOption,
    StatementError,
    StatementOutcome,
    TabularResult,
)
from pgmulti.orchestrator import (
    EXECUTION_STATUS_EVENT,
    FolderSelectionError,
    QueryOrchestrator,
    split_statements,
)
from pgmulti.runner import DatabaseRunner

PROFILE = ConnectionProfile(id="local", name="Local", password="pw")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class _PerDatabaseExecutor:
    """Returns outcomes keyed by (database, statement)."""

    def __init__(self, script: dict[tuple[str, str], StatementOutcome]) -> None:
        self._script = script
        self.calls: list[tuple[str, str]] = []

    async def execute(self, dsn: str, statement: str) -> StatementOutcome:
        database = urlsplit(dsn).path.lstrip("/")
        self.calls.append((database, statement))
        return self._script.get((database, statement), AffectedRowCount(0))


class _RecordingEmitter:
    def __init__(self) -> None:
        self.events: list[tuple[str, DatabaseReport]] = []

    def emit(self, event: str, report: DatabaseReport) -> None:
        self.events.append((event, report))

    @property
    def reports(self) -> list[DatabaseReport]:
        return [report for _, report in self.events]


class _StaticPicker:
    def __init__(self, folder: Path | None) -> None:
        self.folder = folder
        self.calls = 0

    async def pick_folder(self) -> Path | None:
        self.calls += 1
        return self.folder


class _BrokenPicker:
    async def pick_folder(self) -> Path | None:
        raise RuntimeError("dialog closed unexpectedly")


def _read(path: Path) -> list[list[str]]:
    with path.open(encoding="utf-8", newline="") as handle:
        return list(csv.reader(handle))


def _orchestrator(executor, emitter, picker=None) -> QueryOrchestrator:  # type: ignore[no-untyped-def]
    return QueryOrchestrator(DatabaseRunner(executor), emitter, picker, combined_filename="combined.csv")


def test_split_statements_drops_blank_fragments() -> None:
    assert split_statements("a;; b ;") == ("a", "b")
    assert split_statements(" ; \n ;") == ()


@pytest.mark.anyio
async def test_no_export_emits_one_report_per_database_in_order() -> None:
    executor = _PerDatabaseExecutor({("B", "bad"): StatementError("boom")})
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter)

    task = await orchestrator.execute(PROFILE, ["A", "B", "C"], "good; bad; good", SaveOption.NONE, True)
    assert task is not None
    await task

    assert [event for event, _ in emitter.events] == [EXECUTION_STATUS_EVENT] * 3
    assert [report.name for report in emitter.reports] == ["A", "B", "C"]
    assert [report.status for report in emitter.reports] == [
        ExecutionStatus.SUCCESS,
        ExecutionStatus.ERROR,
        ExecutionStatus.SUCCESS,
    ]
    assert len(emitter.reports[1].outcomes) == 2


@pytest.mark.anyio
async def test_separate_files_written_only_for_databases_with_reads(tmp_path: Path) -> None:
    result_a = TabularResult(headers=("id",), rows=(("1",),))
    executor = _PerDatabaseExecutor({("A", "SELECT id FROM t"): result_a})
    emitter = _RecordingEmitter()
    picker = _StaticPicker(tmp_path)
    orchestrator = _orchestrator(executor, emitter, picker)

    task = await orchestrator.execute(PROFILE, ["A", "B"], "SELECT id FROM t", SaveOption.SEPARATE, False)
    assert task is not None
    await task

    assert picker.calls == 1
    assert sorted(path.name for path in tmp_path.iterdir()) == ["A.csv"]
    assert _read(tmp_path / "A.csv") == [["id"], ["1"]]
    assert len(emitter.reports) == 2


@pytest.mark.anyio
async def test_separate_file_failure_downgrades_report(tmp_path: Path) -> None:
    result = TabularResult(headers=("id",), rows=(("1",),))
    executor = _PerDatabaseExecutor({("A", "q"): result})
    emitter = _RecordingEmitter()
    (tmp_path / "A.csv").mkdir()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(tmp_path))

    task = await orchestrator.execute(PROFILE, ["A"], "q", SaveOption.SEPARATE, False)
    assert task is not None
    await task

    report = emitter.reports[0]
    assert report.status is ExecutionStatus.ERROR
    assert report.log is not None and report.log.startswith("Statements succeeded, but saving CSV failed")


@pytest.mark.anyio
async def test_single_file_merges_successful_databases_in_target_order(tmp_path: Path) -> None:
    executor = _PerDatabaseExecutor(
        {
            ("A", "q"): TabularResult(headers=("id", "name"), rows=(("1", "x"), ("2", "y"))),
            ("B", "q"): TabularResult(headers=("id", "name"), rows=(("3", "z"),)),
            ("C", "q"): TabularResult(headers=("id", "name"), rows=(("9", "skip"),)),
            ("C", "w"): StatementError("denied"),
        }
    )
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(tmp_path))

    task = await orchestrator.execute(PROFILE, ["A", "B", "C"], "q; w", SaveOption.SINGLE, False)
    assert task is not None
    await task

    assert sorted(path.name for path in tmp_path.iterdir()) == ["combined.csv"]
    assert _read(tmp_path / "combined.csv") == [
        ["db", "id", "name"],
        ["A", "1", "x"],
        ["A", "2", "y"],
        ["B", "3", "z"],
    ]
    assert [report.status for report in emitter.reports][-1] is ExecutionStatus.ERROR


@pytest.mark.anyio
async def test_single_file_without_results_writes_nothing(tmp_path: Path) -> None:
    executor = _PerDatabaseExecutor({})
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(tmp_path))

    task = await orchestrator.execute(PROFILE, ["A"], "UPDATE t SET x = 1", SaveOption.SINGLE, False)
    assert task is not None
    await task

    assert list(tmp_path.iterdir()) == []
    assert len(emitter.reports) == 1


@pytest.mark.anyio
async def test_declining_folder_is_a_silent_no_op(tmp_path: Path) -> None:
    executor = _PerDatabaseExecutor({})
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(None))

    task = await orchestrator.execute(PROFILE, ["A", "B"], "SELECT 1", SaveOption.SEPARATE, False)

    assert task is None
    assert emitter.events == []
    assert executor.calls == []
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_picker_failure_raises_before_any_database_work() -> None:
    executor = _PerDatabaseExecutor({})
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter, _BrokenPicker())

    with pytest.raises(FolderSelectionError):
        await orchestrator.execute(PROFILE, ["A"], "SELECT 1", SaveOption.SINGLE, False)

    assert executor.calls == []
    assert emitter.events == []


@pytest.mark.anyio
async def test_blank_query_processes_no_databases() -> None:
    executor = _PerDatabaseExecutor({})
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter)

    task = await orchestrator.execute(PROFILE, ["A", "B"], " ;; ", SaveOption.NONE, True)
    assert task is not None
    await task

    assert executor.calls == []
    assert emitter.events == []


@pytest.mark.anyio
async def test_emitter_failure_does_not_stop_batch() -> None:
    class _FlakyEmitter(_RecordingEmitter):
        def emit(self, event: str, report: DatabaseReport) -> None:
            super().emit(event, report)
            if report.name == "A":
                raise RuntimeError("listener gone")

    executor = _PerDatabaseExecutor({})
    emitter = _FlakyEmitter()
    orchestrator = _orchestrator(executor, emitter)

    task = await orchestrator.execute(PROFILE, ["A", "B"], "UPDATE t SET x = 1", SaveOption.NONE, True)
    assert task is not None
    await task

    assert [report.name for report in emitter.reports] == ["A", "B"]


@pytest.mark.anyio
async def test_combined_file_failure_is_logged_and_reports_stay_successful(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    executor = _PerDatabaseExecutor({("A", "q"): TabularResult(headers=("id",), rows=(("1",),))})
    emitter = _RecordingEmitter()
    (tmp_path / "combined.csv").mkdir()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(tmp_path))

    with caplog.at_level(logging.ERROR, logger="pgmulti.orchestrator"):
        task = await orchestrator.execute(PROFILE, ["A"], "q", SaveOption.SINGLE, False)
        assert task is not None
        await task

    assert "Failed to save combined CSV" in caplog.text
    assert [report.status for report in emitter.reports] == [ExecutionStatus.SUCCESS]
    assert (tmp_path / "combined.csv").is_dir()


@pytest.mark.anyio
async def test_separate_file_keeps_last_read_of_a_stopped_database(tmp_path: Path) -> None:
    executor = _PerDatabaseExecutor(
        {
            ("A", "q"): TabularResult(headers=("id",), rows=(("7",),)),
            ("A", "w"): StatementError("denied"),
        }
    )
    emitter = _RecordingEmitter()
    orchestrator = _orchestrator(executor, emitter, _StaticPicker(tmp_path))

    task = await orchestrator.execute(PROFILE, ["A"], "q; w; q", SaveOption.SEPARATE, True)
    assert task is not None
    await task

    assert executor.calls == [("A", "q"), ("A", "w")]
    assert _read(tmp_path / "A.csv") == [["id"], ["7"]]
    report = emitter.reports[0]
    assert report.status is ExecutionStatus.ERROR
    assert len(report.outcomes) == 2


@pytest.mark.anyio
async def test_background_task_is_held_until_it_finishes() -> None:
    release = asyncio.Event()

    class _BlockingExecutor(_PerDatabaseExecutor):
        async def execute(self, dsn: str, statement: str) -> StatementOutcome:
            await release.wait()
            return await super().execute(dsn, statement)

    executor = _BlockingExecutor({})
    orchestrator = _orchestrator(executor, _RecordingEmitter())

    task = await orchestrator.execute(PROFILE, ["A"], "UPDATE t SET x = 1", SaveOption.NONE, True)
    assert task is not None
    await asyncio.sleep(0)
    assert orchestrator.running

    release.set()
    await task
    await asyncio.sleep(0)

    assert not orchestrator.running
    assert executor.calls == [("A", "UPDATE t SET x = 1")]
