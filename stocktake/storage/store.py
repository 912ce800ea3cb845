import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from .schema import ensure_schema
from ..errors import StorageConflict

logger = logging.getLogger(__name__)


class Store:
    """
    Durable keyed store backed by one SQLite connection.

    Writers are serialized: `transaction()` takes an in-process lock and
    opens a `BEGIN IMMEDIATE` transaction, so every read-increment-write
    inside it is atomic with respect to any other writer, including other
    processes sharing the database file. Nested `transaction()` calls on the
    same thread join the outer transaction.
    """

    def __init__(self, db_path: Union[str, Path], slow_transaction_ms: int = 1000):
        self._db_path = db_path
        self._slow_transaction_ms = slow_transaction_ms
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._depth = 0

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @contextmanager
    def transaction(self, name: str = "transaction") -> Iterator[sqlite3.Connection]:
        """
        Run a block as one atomic write.

        Commits on success and rolls back on any exception. SQLite failures
        (locked database, constraint violations, I/O errors) are raised as
        StorageConflict so the caller can retry the whole operation.
        """
        with self._lock:
            conn = self._get_conn()
            if self._depth > 0:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            start = time.perf_counter()
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StorageConflict(f"Could not start {name}: {e}") from e

            self._depth = 1
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                self._rollback(conn, name)
                logger.error(f"Transaction '{name}' failed: {type(e).__name__}: {e}")
                raise StorageConflict(f"{name} failed: {e}") from e
            except BaseException:
                self._rollback(conn, name)
                raise
            finally:
                self._depth = 0
                elapsed_ms = (time.perf_counter() - start) * 1000
                if elapsed_ms > self._slow_transaction_ms:
                    logger.warning(f"Slow transaction '{name}': {elapsed_ms:.0f}ms")
                else:
                    logger.debug(f"Transaction '{name}' took {elapsed_ms:.2f}ms")

    @contextmanager
    def snapshot(self) -> Iterator[sqlite3.Connection]:
        """Read transaction: every query inside sees the same committed state."""
        with self._lock:
            conn = self._get_conn()
            if self._depth > 0:
                yield conn
                return
            conn.execute("BEGIN")
            self._depth = 1
            try:
                yield conn
            finally:
                self._depth = 0
                conn.execute("COMMIT")

    def _rollback(self, conn: sqlite3.Connection, name: str) -> None:
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            # Already rolled back by SQLite (e.g. after SQLITE_FULL)
            logger.debug(f"Rollback of '{name}' reported: {e}")
