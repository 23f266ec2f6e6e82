"""Single-statement execution against one database."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

import asyncpg

from .coercion import coerce_value
from .connections import redact_dsn
from .models import AffectedRowCount, StatementError, StatementOutcome, TabularResult

LOG = logging.getLogger(__name__)


class StatementExecutor(Protocol):
    """Interface implemented by statement executors."""

    async def execute(self, dsn: str, statement: str) -> StatementOutcome: ...


class AsyncpgStatementExecutor:
    """Runs one statement on a fresh asyncpg connection.

    Connections are never reused: each call connects, runs exactly one
    statement and closes. Every failure is returned as a
    :class:`StatementError` so callers can move on to the next statement.
    """

    def __init__(self, *, connect_timeout: float = 5.0) -> None:
        self._connect_timeout = connect_timeout

    async def execute(self, dsn: str, statement: str) -> StatementOutcome:
        try:
            conn = await asyncpg.connect(dsn=dsn, timeout=self._connect_timeout)
        except Exception as exc:
            LOG.info("Connection failed", extra={"dsn": redact_dsn(dsn), "error": str(exc)})
            return StatementError(str(exc))
        try:
            if is_read_statement(statement):
                return await self._fetch(conn, statement)
            tag = await conn.execute(statement)
            return AffectedRowCount(parse_affected_rows(tag))
        except Exception as exc:
            return StatementError(str(exc))
        finally:
            try:
                await conn.close()
            except Exception:  # pragma: no cover - best effort cleanup
                LOG.debug("Failed to close connection", extra={"dsn": redact_dsn(dsn)})

    async def _fetch(self, conn: asyncpg.Connection, statement: str) -> TabularResult:
        prepared = await conn.prepare(statement)
        records = await prepared.fetch()
        if not records:
            return TabularResult.empty()
        attributes = prepared.get_attributes()
        headers = tuple(str(attr.name) for attr in attributes)
        type_names = tuple(attr.type.name for attr in attributes)
        return TabularResult(headers=headers, rows=_coerce_records(records, type_names))


def is_read_statement(statement: str) -> bool:
    """Statements starting with ``select`` are fetched; everything else is executed."""

    return statement.strip().lower().startswith("select")


def parse_affected_rows(tag: str | None) -> int:
    """Extract the row count from a command tag such as ``UPDATE 3``."""

    if not tag:
        return 0
    last = tag.rsplit(None, 1)[-1]
    return int(last) if last.isdigit() else 0


def _coerce_records(
    records: Iterable[Sequence[object]],
    type_names: tuple[str, ...],
) -> tuple[tuple[str, ...], ...]:
    rows: list[tuple[str, ...]] = []
    for record in records:
        rows.append(tuple(coerce_value(type_names[idx], record[idx]) for idx in range(len(type_names))))
    return tuple(rows)


__all__ = [
    "AsyncpgStatementExecutor",
    "StatementExecutor",
    "is_read_statement",
    "parse_affected_rows",
]
