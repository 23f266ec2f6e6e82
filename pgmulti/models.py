"""Shared dataclasses passed between the executor, runner and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Union


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Runtime representation of a server connection profile."""

    id: str
    name: str
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    save_password: bool = False


@dataclass(frozen=True, slots=True)
class TabularResult:
    """Rows returned by a read statement, already coerced to text."""

    headers: tuple[str, ...] = ()
    rows: tuple[tuple[str, ...], ...] = ()

    def __post_init__(self) -> None:
        width = len(self.headers)
        for row in self.rows:
            if len(row) != width:
                raise ValueError(f"Row has {len(row)} values but there are {width} headers.")

    @classmethod
    def empty(cls) -> TabularResult:
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.headers and not self.rows


@dataclass(frozen=True, slots=True)
class AffectedRowCount:
    """Outcome of a write statement."""

    count: int


@dataclass(frozen=True, slots=True)
class StatementError:
    """Outcome of a statement that failed to connect or execute."""

    message: str


StatementOutcome = Union[TabularResult, AffectedRowCount, StatementError]


class ExecutionStatus(str, Enum):
    """Aggregate status of one target database."""

    WAITING = "waiting"
    SUCCESS = "success"
    ERROR = "error"


class SaveOption(str, Enum):
    """Where result sets are exported once statements complete."""

    NONE = "none"
    SEPARATE = "separate"
    SINGLE = "single"

    @property
    def requires_folder(self) -> bool:
        return self is not SaveOption.NONE


@dataclass(frozen=True, slots=True)
class DatabaseReport:
    """Final record of what was attempted against one database."""

    name: str
    status: ExecutionStatus = ExecutionStatus.WAITING
    log: str | None = None
    outcomes: tuple[StatementOutcome, ...] = field(default_factory=tuple)

    def last_tabular_result(self) -> TabularResult | None:
        """Return the last read result; later writes do not displace it."""

        for outcome in reversed(self.outcomes):
            if isinstance(outcome, TabularResult):
                return outcome
        return None

    def with_export_failure(self, message: str) -> DatabaseReport:
        """Return a copy downgraded after a CSV export failed."""

        return replace(self, status=ExecutionStatus.ERROR, log=message)

    def to_payload(self) -> dict[str, object]:
        """Serialize the report for event consumers."""

        return {
            "name": self.name,
            "status": self.status.value,
            "log": self.log,
            "results": [_outcome_payload(outcome) for outcome in self.outcomes],
        }


def _outcome_payload(outcome: StatementOutcome) -> dict[str, object]:
    if isinstance(outcome, TabularResult):
        return {
            "type": "select",
            "payload": {
                "headers": list(outcome.headers),
                "rows": [list(row) for row in outcome.rows],
            },
        }
    if isinstance(outcome, AffectedRowCount):
        return {"type": "mutation", "payload": {"affectedRows": outcome.count}}
    return {"type": "error", "payload": outcome.message}


__all__ = [
    "AffectedRowCount",
    "ConnectionProfile",
    "DatabaseReport",
    "ExecutionStatus",
    "SaveOption",
    "StatementError",
    "StatementOutcome",
    "TabularResult",
]
