"""Database access for the pattern store

darkpatch keeps its durable state in ONE SQLite database (default
darkpatch/data/darkpatch.db, overridable with DARKPATCH_DB_PATH).

Provides:
- Connection pooling (reuses connections, WAL mode)
- Integrity check on every new connection
- Transaction context manager (commit on success, rollback on error)
- Retry with exponential backoff on SQLITE_BUSY

Unlike a process-wide singleton, each Database instance owns its own pool so
that tests and multiple page instances can point at different files. The API
server uses the cached get_database() instance.
"""

from __future__ import annotations

import os
import random
import sqlite3
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from functools import lru_cache, wraps
from pathlib import Path
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, TypeVar

from darkpatch.config import (
    DB_CONNECT_TIMEOUT,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
    DB_RETRY_BASE_DELAY,
    DB_RETRY_JITTER,
    DB_RETRY_MAX,
    DB_RETRY_MAX_DELAY,
)
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter

F = TypeVar("F", bound=Callable[..., Any])

DB_PATH = Path(__file__).parent.parent / "data" / "darkpatch.db"

logger = get_logger(__name__)


def retry_on_db_lock(
    max_retries: int = DB_RETRY_MAX,
    base_delay: float = DB_RETRY_BASE_DELAY,
    max_delay: float = DB_RETRY_MAX_DELAY,
) -> Callable[[F], F]:
    """
    Decorator to retry database operations on SQLITE_BUSY errors

    SQLite returns "database is locked" when another process holds the write
    lock (e.g. two page instances flushing the same store file). Retries use
    exponential backoff with jitter.

    Side Effects:
        - Sleeps between retries
        - Logs warning messages for each retry attempt
        - Logs error when retries exhausted
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except sqlite3.OperationalError as e:
                    last_error = e

                    if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                        raise

                    if attempt >= max_retries:
                        logger.error(
                            "Database lock retry exhausted after %d attempts: %s",
                            max_retries,
                            e,
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    jitter = random.uniform(0, delay * DB_RETRY_JITTER)
                    sleep_time = delay + jitter

                    logger.warning(
                        "Database locked (attempt %d/%d), retrying in %.2fs: %s",
                        attempt + 1,
                        max_retries,
                        sleep_time,
                        e,
                    )

                    time.sleep(sleep_time)

            raise last_error  # type: ignore

        return wrapper  # type: ignore[return-value]

    return decorator


class DatabaseConnectionPool:
    """
    Thread-safe connection pool for SQLite

    Connections are configured with WAL journaling and Row factory.
    """

    def __init__(self, db_path: Path, pool_size: int = DB_POOL_SIZE):
        self.db_path = db_path
        self.pool_size = pool_size
        self.pool: Queue[sqlite3.Connection] = Queue(maxsize=pool_size)
        self.lock = Lock()
        self.closed = False
        self._initialize_pool()

    def _create_connection(self) -> sqlite3.Connection:
        """
        Create optimized SQLite connection

        Raises:
            RuntimeError: If database corruption is detected
        """
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=DB_CONNECT_TIMEOUT,
            check_same_thread=False,
        )

        try:
            result = conn.execute("PRAGMA quick_check(1)").fetchone()
            if result[0] != "ok":
                conn.close()
                logger.critical("Database corruption detected: %s", result[0])
                counter("database.corruption_detected")
                raise RuntimeError(f"Database corruption detected: {result[0]}")
        except sqlite3.DatabaseError as e:
            conn.close()
            logger.critical("Database corruption or error during integrity check: %s", e)
            counter("database.corruption_detected")
            raise RuntimeError(f"Database corruption detected: {e}") from e

        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.row_factory = sqlite3.Row

        return conn

    def _initialize_pool(self) -> None:
        for _ in range(self.pool_size):
            try:
                self.pool.put(self._create_connection())
            except Exception as e:
                logger.warning("Failed to create pooled connection: %s", e)

    def get_connection(self) -> sqlite3.Connection:
        """
        Get connection from pool, or a temporary one when the pool is drained.

        Raises:
            RuntimeError: If pool closed
        """
        if self.closed:
            raise RuntimeError("Connection pool has been closed")

        try:
            return self.pool.get(block=True, timeout=DB_POOL_TIMEOUT)
        except Empty:
            logger.warning(
                "Connection pool exhausted (pool_size=%d), creating temporary connection",
                self.pool_size,
            )
            counter("database.pool_exhausted")
            conn = self._create_connection()
            conn._is_temporary = True  # type: ignore[attr-defined]
            return conn

    def return_connection(self, conn: sqlite3.Connection) -> None:
        is_temp = getattr(conn, "_is_temporary", False)

        if self.closed or is_temp:
            conn.close()
            return

        try:
            self.pool.put_nowait(conn)
        except Full:
            logger.warning("Failed to return connection to pool (pool full), closing")
            conn.close()

    def close_all(self) -> None:
        """
        Close all pooled connections

        Side Effects:
            - Sets self.closed flag to True
            - Closes and drains every pooled connection
        """
        self.closed = True
        while not self.pool.empty():
            try:
                conn = self.pool.get_nowait()
                conn.close()
            except Empty:
                break


class Database:
    """One SQLite file plus its connection pool."""

    def __init__(self, db_path: Path | str | None = None, pool_size: int = DB_POOL_SIZE):
        self.db_path = Path(db_path) if db_path is not None else get_db_path()
        self.pool_size = pool_size
        self._pool: DatabaseConnectionPool | None = None

    def init_schema(self) -> None:
        """
        Create tables if missing (idempotent).

        Side Effects:
            - Creates the database file and parent directory if needed
        """
        from darkpatch.infrastructure.database_schema import init_database

        init_database(self.db_path)

    def _get_pool(self) -> DatabaseConnectionPool:
        if self._pool is None or self._pool.closed:
            self._pool = DatabaseConnectionPool(self.db_path, pool_size=self.pool_size)
        return self._pool

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get pooled database connection (context manager)

        Raises:
            FileNotFoundError: If database doesn't exist
        """
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")

        pool = self._get_pool()
        conn = pool.get_connection()
        try:
            yield conn
        finally:
            pool.return_connection(conn)

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database transactions

        Automatically commits on success, rolls back on error.
        """
        with self.connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def validate_schema(self) -> bool:
        from darkpatch.infrastructure.database_schema import validate_schema

        with self.connection() as conn:
            return validate_schema(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close_all()


def get_db_path() -> Path:
    """
    Get database path (environment-aware)

    Checks DARKPATCH_DB_PATH environment variable first,
    falls back to default location.
    """
    if env_path := os.getenv("DARKPATCH_DB_PATH"):
        return Path(env_path)

    return DB_PATH


@lru_cache(maxsize=1)
def get_database() -> Database:
    """
    Shared Database instance for the API server

    Side Effects:
        - Creates schema on first call
    """
    database = Database(get_db_path())
    database.init_schema()
    return database
