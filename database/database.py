import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator

from database.errors import Unknown
from database.schema import ALL_TABLES, index_schema

logger = logging.getLogger(__name__)


class Database:
    """
    One SQLite connection plus a transaction scope.

    Writes are serialized through a re-entrant lock and `BEGIN IMMEDIATE`, so a
    read-modify-write inside `transaction()` never interleaves with another one.
    Nested `transaction()` calls join the outer transaction.
    """

    def __init__(self, path: str):
        self.path = path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._depth = 0

    # DB CONNECTION ==============================================

    def open(self) -> 'Database':
        if self._conn is not None:
            return self
        try:
            # isolation_level=None: we issue BEGIN/COMMIT ourselves
            conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        except sqlite3.Error as e:
            raise Unknown(f"Cannot open database {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row
        self._conn = conn
        logger.info(f"Opened database {self.path}")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            self._conn = None
            logger.info(f"Closed database {self.path}")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            if self._conn is None:
                raise Unknown('Database is not open')
            conn = self._conn

            if self._depth:
                self._depth += 1
                try:
                    yield conn
                finally:
                    self._depth -= 1
                return

            conn.execute('BEGIN IMMEDIATE')
            self._depth = 1
            try:
                yield conn
                conn.execute('COMMIT')
            except sqlite3.Error as e:
                conn.execute('ROLLBACK')
                raise Unknown(str(e)) from e
            except Exception:
                conn.execute('ROLLBACK')
                raise
            finally:
                self._depth = 0

    # SCHEMA =====================================================

    def init_db(self) -> None:
        """Create the four tables if absent. Safe on every start."""
        with self.transaction() as conn:
            for statement in ALL_TABLES:
                conn.execute(statement)
            for statement in index_schema:
                conn.execute(statement)
        logger.info("Schema ready")
