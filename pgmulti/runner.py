"""Runs an ordered statement batch against one target database."""

from __future__ import annotations

import logging
from typing import Sequence

from .connections import build_dsn
from .executor import StatementExecutor
from .models import (
    ConnectionProfile,
    DatabaseReport,
    ExecutionStatus,
    StatementError,
    StatementOutcome,
)

LOG = logging.getLogger(__name__)


class DatabaseRunner:
    """Produces one :class:`DatabaseReport` per database visit."""

    def __init__(self, executor: StatementExecutor) -> None:
        self._executor = executor

    async def run(
        self,
        profile: ConnectionProfile,
        database: str,
        statements: Sequence[str],
        stop_on_error: bool,
    ) -> DatabaseReport:
        """Execute ``statements`` in order, halting at the first error if asked to."""

        dsn = build_dsn(profile, database)
        outcomes: list[StatementOutcome] = []
        for index, statement in enumerate(statements, start=1):
            outcome = await self._executor.execute(dsn, statement)
            if isinstance(outcome, StatementError):
                outcome = StatementError(f"Statement {index} failed: {outcome.message}")
                outcomes.append(outcome)
                LOG.info(
                    "Statement failed",
                    extra={"database": database, "statement": index, "error": outcome.message},
                )
                if stop_on_error:
                    break
                continue
            outcomes.append(outcome)
        return summarize(database, outcomes)


def summarize(database: str, outcomes: Sequence[StatementOutcome]) -> DatabaseReport:
    """Build the aggregate status and log line for a finished batch."""

    failures = sum(1 for outcome in outcomes if isinstance(outcome, StatementError))
    successes = len(outcomes) - failures
    if failures:
        status = ExecutionStatus.ERROR
        log = f"{successes} succeeded, {failures} failed."
    else:
        status = ExecutionStatus.SUCCESS
        log = f"{successes} statements executed successfully."
    return DatabaseReport(name=database, status=status, log=log, outcomes=tuple(outcomes))


__all__ = ["DatabaseRunner", "summarize"]
