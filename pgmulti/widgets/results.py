"""Tables mirroring per-database execution reports."""

from __future__ import annotations

from typing import Sequence

from textual.containers import VerticalScroll
from textual.widget import Widget
from textual.widgets import DataTable, Static

from pgmulti.models import (
    AffectedRowCount,
    DatabaseReport,
    ExecutionStatus,
    StatementError,
    StatementOutcome,
    TabularResult,
)


class ExecutionStatusTable(DataTable):
    """One row per target database, updated as reports arrive."""

    _STATUS_LABELS = {
        ExecutionStatus.WAITING: "… waiting",
        ExecutionStatus.SUCCESS: "✔ success",
        ExecutionStatus.ERROR: "✖ error",
    }

    def __init__(self) -> None:
        super().__init__(id="execution-status", zebra_stripes=True, cursor_type="row")
        self._databases: list[str] = []

    def on_mount(self) -> None:
        self.add_column("Database", key="database")
        self.add_column("Status", key="status")
        self.add_column("Log", key="log")

    def reset(self, databases: Sequence[str]) -> None:
        """Show every target as waiting."""

        self.clear()
        self._databases = list(databases)
        for name in self._databases:
            self.add_row(name, self._STATUS_LABELS[ExecutionStatus.WAITING], "", key=name)

    def apply(self, report: DatabaseReport) -> None:
        """Reflect a completed report."""

        if report.name not in self._databases:
            self._databases.append(report.name)
            self.add_row(report.name, "", "", key=report.name)
        self.update_cell(report.name, "status", self._STATUS_LABELS[report.status])
        self.update_cell(report.name, "log", self._describe(report), update_width=True)

    @staticmethod
    def _describe(report: DatabaseReport) -> str:
        errors = [outcome.message for outcome in report.outcomes if isinstance(outcome, StatementError)]
        parts = [report.log or ""]
        if errors:
            parts.append(errors[0].splitlines()[0][:120])
        return " ".join(part for part in parts if part)


def describe_outcome(index: int, outcome: StatementOutcome) -> str:
    """One-line heading for the ``index``-th (1-based) outcome of a database."""

    if isinstance(outcome, StatementError):
        return outcome.message
    if isinstance(outcome, AffectedRowCount):
        return f"Statement {index}: {outcome.count} row(s) affected"
    if outcome.is_empty:
        return f"Statement {index}: no rows"
    return f"Statement {index}: {len(outcome.rows)} row(s)"


class ResultTable(DataTable):
    """Read-only grid for one tabular result."""

    def __init__(self, result: TabularResult, *, row_limit: int) -> None:
        super().__init__(zebra_stripes=True, classes="result-table")
        self._result = result
        self._row_limit = row_limit

    def on_mount(self) -> None:
        self.add_columns(*self._result.headers)
        for row in self._result.rows[: self._row_limit]:
            self.add_row(*row)


class OutcomeList(VerticalScroll):
    """Every statement outcome of the highlighted database, in order."""

    DEFAULT_CSS = """
    OutcomeList > .outcome-heading {
        text-style: bold;
        margin-top: 1;
    }
    OutcomeList > .outcome-error {
        color: $error;
    }
    OutcomeList > .result-table {
        height: auto;
        max-height: 12;
    }
    """

    def __init__(self, *, row_limit: int = 200) -> None:
        super().__init__(id="outcomes")
        self._row_limit = row_limit
        self._headings: list[str] = []

    @property
    def headings(self) -> list[str]:
        """Headings currently displayed (testing helper)."""

        return list(self._headings)

    def show(self, report: DatabaseReport | None) -> None:
        self.remove_children()
        if report is None:
            self._headings = []
            return
        self._headings = [describe_outcome(index, outcome) for index, outcome in enumerate(report.outcomes, 1)]
        widgets: list[Widget] = [Static(f"{report.name}: {report.log or ''}", classes="outcome-heading")]
        for heading, outcome in zip(self._headings, report.outcomes):
            classes = "outcome-heading outcome-error" if isinstance(outcome, StatementError) else "outcome-heading"
            widgets.append(Static(heading, classes=classes))
            if isinstance(outcome, TabularResult) and not outcome.is_empty:
                widgets.append(ResultTable(outcome, row_limit=self._row_limit))
        self.mount_all(widgets)


__all__ = ["ExecutionStatusTable", "OutcomeList", "ResultTable", "describe_outcome"]
