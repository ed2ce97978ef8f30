"""Database access layer using psycopg2.

Provides:
- get_conn(): Get a database connection from DATABASE_URL
- txn(): Context manager for short, safe transactions
- fetchone/fetchall: Query helpers
- for_update(): SELECT ... FOR UPDATE helper
- advisory_xact_lock(): transaction-scoped advisory lock on a string key
"""

import hashlib
import os
from contextlib import contextmanager
from typing import Any, Iterator, Sequence
from urllib.parse import urlparse

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor


def _dsn_has_password(dsn: str) -> bool:
    if "://" in dsn:
        return bool(urlparse(dsn).password)
    return any(part.startswith("password=") for part in dsn.split())


def get_conn() -> PgConnection:
    """Get a new database connection from DATABASE_URL.

    When the DSN carries no password and DB_PASSWORD is set, the password
    is passed separately so it never has to live in the URL.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    kwargs: dict[str, Any] = {}
    password = os.environ.get("DB_PASSWORD")
    if password and not _dsn_has_password(dsn):
        kwargs["password"] = password

    timeout_ms = os.environ.get("DB_STATEMENT_TIMEOUT_MS", "15000")
    kwargs["options"] = f"-c statement_timeout={int(timeout_ms)}"
    return psycopg2.connect(dsn, **kwargs)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Context manager for a short, safe transaction.

    If conn is None, creates a new connection that is closed on exit.
    Commits on successful exit, rolls back on exception.

    Example:
        with txn() as cur:
            cur.execute("UPDATE visitors SET status = 'OUT' WHERE id = %s", (1,))
    """
    owns_conn = conn is None
    if owns_conn:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owns_conn:
            conn.close()


def fetchone(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> tuple[Any, ...] | None:
    """Execute query and fetch one row (None if no results)."""
    cur.execute(query, params)
    return cur.fetchone()


def fetchall(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
) -> list[tuple[Any, ...]]:
    """Execute query and fetch all rows."""
    cur.execute(query, params)
    return cur.fetchall()


def for_update(
    cur: PgCursor,
    query: str,
    params: Sequence[Any] | None = None,
    *,
    nowait: bool = False,
) -> tuple[Any, ...] | None:
    """Execute SELECT ... FOR UPDATE and fetch one row.

    Use within a transaction to lock the selected row until commit/rollback.

    Args:
        cur: Database cursor.
        query: SELECT query (without FOR UPDATE).
        params: Query parameters.
        nowait: If True, fail immediately if row is locked.
    """
    suffix = " FOR UPDATE NOWAIT" if nowait else " FOR UPDATE"
    cur.execute(query.rstrip().rstrip(";") + suffix, params)
    return cur.fetchone()


def lock_key(name: str) -> int:
    """Stable signed 64-bit key for pg_advisory_xact_lock."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def advisory_xact_lock(cur: PgCursor, name: str) -> None:
    """Block until the transaction-scoped advisory lock for ``name`` is held.

    Released automatically on commit or rollback.
    """
    cur.execute("SELECT pg_advisory_xact_lock(%s)", (lock_key(name),))
