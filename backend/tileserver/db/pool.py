"""Bounded PostgreSQL connection pool shared by all request threads.

psycopg2's ``ThreadedConnectionPool`` stores and recycles connections but
fails immediately with ``PoolError`` when every connection is checked out.
``ConnectionPool`` puts a bounded semaphore in front of it so callers wait
(up to ``timeout`` seconds) for a connection to come back instead, and it
discards connections that broke while in use so the next checkout opens a
fresh one.

Example:
    Borrow a connection for one query:
        >>> pool = setup_connection_pool(settings.database_url, max_size=10)
        >>> with pool.connection() as conn, conn.cursor() as cur:
        ...     cur.execute("SELECT 1")
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import TYPE_CHECKING

import psycopg2
import psycopg2.errors
import psycopg2.extensions
from psycopg2 import pool as pg_pool

from tileserver.core import errors

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

# Errors after which a connection can no longer be trusted.
BROKEN_CONNECTION_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError)
# OperationalError subclasses that leave the session usable after a rollback.
RECOVERABLE_ERRORS = (psycopg2.errors.QueryCanceled,)


class _RetainingConnectionPool(pg_pool.ThreadedConnectionPool):
    """ThreadedConnectionPool that keeps returned connections open.

    psycopg2 keeps at most ``minconn`` idle connections and closes the rest
    on ``putconn``. Here only one connection is opened up front, the others
    lazily, and all of them stay open up to ``maxconn``.
    """

    def __init__(self, maxconn: int, *args: object, **kwargs: object) -> None:
        super().__init__(1, maxconn, *args, **kwargs)
        self.minconn = maxconn


class ConnectionPool:
    """Thread-safe pool with a blocking, time-bounded checkout.

    Connections are opened lazily up to ``max_size``. Every successful
    ``acquire`` must be paired with exactly one ``release``; prefer the
    ``connection()`` context manager which guarantees it.
    """

    def __init__(
        self,
        dsn: str,
        max_size: int = 10,
        timeout: float = 10.0,
        statement_timeout_ms: int = 0,
    ) -> None:
        """Open the pool and its first connection.

        Args:
            dsn: libpq connection string.
            max_size: Maximum number of simultaneously open connections.
            timeout: Seconds ``acquire`` waits for a free connection.
            statement_timeout_ms: Per-statement timeout for every
                connection, 0 to disable.

        Raises:
            psycopg2.OperationalError: If the first connection fails.
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.timeout = timeout
        connect_kwargs: dict[str, str] = {}
        if statement_timeout_ms:
            connect_kwargs["options"] = f"-c statement_timeout={statement_timeout_ms}"
        self._pool = _RetainingConnectionPool(max_size, dsn, **connect_kwargs)
        self._slots = threading.BoundedSemaphore(max_size)

    def acquire(self) -> psycopg2.extensions.connection:
        """Check out a connection, waiting at most ``timeout`` seconds.

        Returns:
            A live connection owned by the caller until ``release``.

        Raises:
            PoolExhausted: If no connection was returned within the bound.
            PoolUnavailable: If a new connection could not be opened or the
                pool is closed.
        """
        if not self._slots.acquire(timeout=self.timeout):
            logger.warning(
                "No database connection free after %.1fs (pool size %d)",
                self.timeout,
                self.max_size,
            )
            raise errors.PoolExhausted(
                f"No connection available within {self.timeout}s"
            )
        try:
            conn = self._pool.getconn()
            while conn.closed:
                logger.info("Replacing closed pooled connection")
                self._pool.putconn(conn, close=True)
                conn = self._pool.getconn()
        except (psycopg2.Error, pg_pool.PoolError) as exc:
            self._slots.release()
            raise errors.PoolUnavailable(str(exc)) from exc
        return conn

    def release(
        self,
        conn: psycopg2.extensions.connection,
        discard: bool = False,
    ) -> None:
        """Return a connection to the pool and free its slot.

        Closed connections, or ones flagged with ``discard``, are closed and
        dropped; the next ``acquire`` opens a replacement.
        """
        close = discard or bool(conn.closed)
        if close:
            logger.info("Discarding broken database connection")
        try:
            try:
                self._pool.putconn(conn, close=close)
            except psycopg2.Error:
                # Rolling back the connection failed; drop it instead.
                logger.warning("Could not reset connection, discarding it")
                self._pool.putconn(conn, close=True)
        finally:
            self._slots.release()

    @contextlib.contextmanager
    def connection(self) -> Iterator[psycopg2.extensions.connection]:
        """Context manager pairing ``acquire`` with ``release``.

        The connection is discarded if the block raises an error that leaves
        it in an unknown state. A cancelled statement (statement_timeout)
        only rolls back and the connection is reused.
        """
        conn = self.acquire()
        discard = False
        try:
            yield conn
        except BROKEN_CONNECTION_ERRORS as exc:
            discard = not isinstance(exc, RECOVERABLE_ERRORS)
            raise
        finally:
            self.release(conn, discard=discard)

    def close(self) -> None:
        """Close every connection held by the pool."""
        self._pool.closeall()


def setup_connection_pool(
    dsn: str,
    max_size: int = 10,
    timeout: float = 10.0,
    statement_timeout_ms: int = 0,
) -> ConnectionPool:
    """Create the process-wide pool, failing fast if the database is down.

    Args:
        dsn: libpq connection string.
        max_size: Pool capacity.
        timeout: Seconds a request waits for a connection.
        statement_timeout_ms: Per-statement timeout, 0 to disable.

    Returns:
        A ready ConnectionPool.

    Raises:
        StartupError: If the database cannot be reached.
    """
    try:
        return ConnectionPool(
            dsn,
            max_size=max_size,
            timeout=timeout,
            statement_timeout_ms=statement_timeout_ms,
        )
    except psycopg2.Error as exc:
        raise errors.StartupError(
            f"Error connecting to postgres: {exc}"
        ) from exc
