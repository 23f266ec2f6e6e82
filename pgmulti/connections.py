"""Connection strings and server-level database discovery."""

from __future__ import annotations

import logging
from urllib.parse import quote, urlsplit, urlunsplit

import asyncpg

from .models import ConnectionProfile

LOG = logging.getLogger(__name__)

_DATABASES_QUERY = """
    SELECT datname
    FROM pg_database
    WHERE datistemplate = false AND datname <> 'postgres'
    ORDER BY datname
"""


class DatabaseCatalogError(RuntimeError):
    """Raised when the server's database list cannot be fetched."""


def build_dsn(profile: ConnectionProfile, database: str | None = None) -> str:
    """Compose a ``postgresql://`` DSN for the profile and target database."""

    credentials = quote(profile.user, safe="")
    if profile.password:
        credentials = f"{credentials}:{quote(profile.password, safe='')}"
    host = profile.host or "localhost"
    netloc = f"{credentials}@{host}:{profile.port}" if credentials else f"{host}:{profile.port}"
    path = f"/{quote(database, safe='')}" if database else ""
    return f"postgresql://{netloc}{path}"


def redact_dsn(dsn: str) -> str:
    """Mask the password component of a DSN for logging."""

    parts = urlsplit(dsn)
    if parts.password is None:
        return dsn
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit(parts._replace(netloc=netloc))


async def list_databases(profile: ConnectionProfile, *, timeout: float = 5.0) -> tuple[str, ...]:
    """Return the user databases available on the profile's server."""

    dsn = build_dsn(profile)
    try:
        conn = await asyncpg.connect(dsn=dsn, timeout=timeout)
    except Exception as exc:
        raise DatabaseCatalogError(f"Failed to connect to profile '{profile.name}': {exc}") from exc
    try:
        rows = await conn.fetch(_DATABASES_QUERY)
    except Exception as exc:
        raise DatabaseCatalogError(f"Failed to list databases for '{profile.name}': {exc}") from exc
    finally:
        try:
            await conn.close()
        except Exception:  # pragma: no cover - best effort cleanup
            LOG.debug("Failed to close catalog connection", extra={"dsn": redact_dsn(dsn)})
    names = tuple(str(row["datname"]) for row in rows)
    LOG.debug("Listed databases", extra={"profile": profile.name, "count": len(names)})
    return names


__all__ = ["DatabaseCatalogError", "build_dsn", "list_databases", "redact_dsn"]
