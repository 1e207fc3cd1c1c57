"""Pytest configuration: expose the backend package and fake the database.

``fake_db`` replaces ``psycopg2.connect`` so that the real psycopg2 pool
machinery runs against in-memory connections. Tests configure what queries
return (``rows``), whether they fail (``error``), whether connecting fails
(``connect_error``) and how long a query takes (``delay``).
"""

from __future__ import annotations

import pathlib
import sys
import threading
import time
import types
from typing import Any

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import pytest

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FakeCursor:
    """Cursor returning the rows configured on its FakeDatabase."""

    def __init__(self, conn: FakeConnection) -> None:
        self.conn = conn

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None

    def execute(self, sql: str, params: Any = None) -> None:
        db = self.conn.db
        with db.lock:
            db.executed.append((sql, params))
        if db.delay:
            time.sleep(db.delay)
        if db.error is not None:
            if isinstance(db.error, psycopg2.OperationalError) and not isinstance(
                db.error, psycopg2.errors.QueryCanceled
            ):
                self.conn.closed = 2
            raise db.error

    def fetchone(self) -> Any:
        rows = self.conn.db.rows
        return rows[0] if rows else None

    def fetchall(self) -> list[Any]:
        return list(self.conn.db.rows)


class FakeConnection:
    """Just enough of a psycopg2 connection for the pool and the queries."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.closed = 0
        self.info = types.SimpleNamespace(
            transaction_status=psycopg2.extensions.TRANSACTION_STATUS_IDLE
        )

    def cursor(self, cursor_factory: Any = None) -> FakeCursor:
        return FakeCursor(self)

    def rollback(self) -> None:
        return None

    def close(self) -> None:
        self.closed = 1


class FakeDatabase:
    """Stands in for the PostGIS server behind ``psycopg2.connect``."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.connections: list[FakeConnection] = []
        self.connect_args: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
        self.executed: list[tuple[str, Any]] = []
        self.rows: list[Any] = [(b"\x1a\x05tile!",)]
        self.error: Exception | None = None
        self.connect_error: Exception | None = None
        self.delay = 0.0

    def connect(self, *args: Any, **kwargs: Any) -> FakeConnection:
        if self.connect_error is not None:
            raise self.connect_error
        conn = FakeConnection(self)
        with self.lock:
            self.connections.append(conn)
            self.connect_args.append((args, kwargs))
        return conn


@pytest.fixture
def fake_db(monkeypatch: pytest.MonkeyPatch) -> FakeDatabase:
    """Route every psycopg2 connection to an in-memory fake."""
    db = FakeDatabase()
    monkeypatch.setattr(psycopg2, "connect", db.connect)
    return db
