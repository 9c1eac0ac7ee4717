"""Guard for suites that truncate every table before each test."""

from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.engine import URL

from ticketing.db.store import SqlRecordStore

LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "postgres", "ticketing_postgres"})
DISPOSABLE_SUFFIXES = ("_test", "_tests")


class NotDisposableDatabaseError(RuntimeError):
    pass


def database_name_problem(name: str) -> str | None:
    if not name.lower().endswith(DISPOSABLE_SUFFIXES):
        return f"database {name!r} does not end with {' or '.join(DISPOSABLE_SUFFIXES)}"
    return None


def url_problem(url: URL) -> str | None:
    if url.get_backend_name() != "postgresql":
        return f"backend {url.get_backend_name()!r} is not postgresql"
    # No host means a local unix socket.
    host = (url.host or "localhost").lower()
    if host not in LOCAL_HOSTS:
        return f"host {host!r} is not a local database host"
    return database_name_problem(url.database or "")


async def require_disposable_database(store: SqlRecordStore) -> str:
    """Returns the connected database name, or raises unless it is a local throwaway one.

    The name is checked twice: as configured in the engine URL, and as reported by the
    server, which differs when a pooler maps the configured name to another database.
    """
    problem = url_problem(store.engine.url)
    connected = ""
    if problem is None:
        async with store.engine.connect() as conn:
            connected = str(await conn.scalar(text("SELECT current_database()")))
        problem = database_name_problem(connected)
    if problem is not None:
        raise NotDisposableDatabaseError(f"refusing to truncate tables: {problem}")
    return connected
