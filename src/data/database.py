"""
DuckDB access shared by the ballots and reports databases.

Readers open files read-only so the web API and verification scripts can
run while a tabulation writes a different file. A DuckDB file held by a
writer in another process raises a lock conflict; those are retried with
exponential backoff before giving up.
"""

import logging
import random
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import duckdb
import pandas as pd

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def _backoff_seconds(attempt: int, jitter: float) -> float:
    return (2**attempt) + random.uniform(0, jitter)  # nosec B311


class DatabaseConnectionManager:
    """Opens DuckDB connections, retrying while another process holds the lock."""

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries

    def get_connection(
        self, db_path: str, read_only: bool = True, max_retries: Optional[int] = None
    ) -> duckdb.DuckDBPyConnection:
        """
        Open a connection to db_path.

        A read-only request for a file that does not exist yet falls back to
        read-write, since DuckDB cannot create a file read-only.
        """
        attempts = max_retries or self.max_retries
        open_read_only = read_only and db_path != MEMORY_PATH and Path(db_path).exists()

        for attempt in range(1, attempts + 1):
            try:
                conn = duckdb.connect(db_path, read_only=open_read_only)
            except duckdb.IOException as e:
                if "Conflicting lock" not in str(e) or attempt == attempts:
                    logger.error(f"Could not open {db_path} (attempt {attempt}): {e}")
                    raise
                wait_time = _backoff_seconds(attempt - 1, 1.0)
                logger.warning(
                    f"{db_path} is locked; attempt {attempt}/{attempts}, "
                    f"retrying in {wait_time:.2f}s"
                )
                time.sleep(wait_time)
            else:
                mode = "read-only" if open_read_only else "read-write"
                logger.debug(f"Opened {mode} connection to {db_path}")
                return conn

        raise ConnectionError(f"No connection to {db_path} after {attempts} attempts")

    @contextmanager
    def get_temporary_connection(self, db_path: str, read_only: bool = True):
        """Yield a connection that is closed as soon as the block exits."""
        conn = self.get_connection(db_path, read_only)
        try:
            yield conn
        finally:
            try:
                conn.close()
            except duckdb.Error as e:
                logger.warning(f"Failed to close temporary connection to {db_path}: {e}")


_connection_manager = DatabaseConnectionManager()


class ElectionDatabase:
    """
    Thin wrapper over one DuckDB file (or an in-memory database).

    The long-lived connection is opened on first use. Callers that only
    need a quick read can go through query_with_retry, which uses a
    short-lived connection and never holds the file open.
    """

    def __init__(self, db_path: Optional[str] = None, read_only: bool = True):
        """
        Args:
            db_path: DuckDB file; None means an in-memory database
            read_only: Open existing files read-only
        """
        self.db_path = db_path or MEMORY_PATH
        self.read_only = read_only
        self._conn: Optional[duckdb.DuckDBPyConnection] = None

    @property
    def in_memory(self) -> bool:
        return self.db_path == MEMORY_PATH

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = _connection_manager.get_connection(self.db_path, self.read_only)
        return self._conn

    def execute_script(self, statements: Iterable[str]):
        for sql in statements:
            self.conn.execute(sql)

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None):
        return self.conn.execute(sql, [] if params is None else list(params))

    def executemany(self, sql: str, rows: Iterable[Sequence[Any]]):
        batch = [list(row) for row in rows]
        if batch:
            self.conn.executemany(sql, batch)

    @contextmanager
    def transaction(self):
        """Run the block's statements atomically; roll back if it raises."""
        conn = self.conn
        conn.begin()
        try:
            yield conn
        except Exception:
            conn.rollback()
            logger.warning(f"Rolled back transaction on {self.db_path}")
            raise
        conn.commit()

    def query(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        use_temporary_connection: bool = False,
    ) -> pd.DataFrame:
        """
        Run a query and return a DataFrame.

        Args:
            sql: Statement with ? placeholders
            params: Values for the placeholders
            use_temporary_connection: Read through a short-lived read-only
                connection instead of the shared one (ignored in memory)
        """
        args = [] if params is None else list(params)
        if not use_temporary_connection or self.in_memory:
            return self.conn.execute(sql, args).fetchdf()

        with _connection_manager.get_temporary_connection(self.db_path) as temp_conn:
            return temp_conn.execute(sql, args).fetchdf()

    def query_with_retry(
        self, sql: str, params: Optional[Sequence[Any]] = None, max_retries: int = 3
    ) -> pd.DataFrame:
        """Read through a temporary connection, retrying on I/O errors."""
        for attempt in range(1, max_retries + 1):
            try:
                return self.query(sql, params, use_temporary_connection=True)
            except duckdb.IOException as e:
                if attempt == max_retries:
                    logger.error(f"Query gave up after {max_retries} attempts: {e}")
                    raise
                wait_time = _backoff_seconds(attempt - 1, 0.5)
                logger.warning(f"Query failed ({e}); retrying in {wait_time:.2f}s")
                time.sleep(wait_time)

    def table_exists(self, table_name: str) -> bool:
        sql = "SELECT COUNT(*) FROM information_schema.tables WHERE table_name = ?"
        if self.in_memory or self._conn is not None:
            (count,) = self.conn.execute(sql, [table_name]).fetchone()
        else:
            with _connection_manager.get_temporary_connection(self.db_path) as temp_conn:
                (count,) = temp_conn.execute(sql, [table_name]).fetchone()
        return count > 0

    def close(self):
        if self._conn is None:
            return
        try:
            self._conn.close()
            logger.debug(f"Closed connection to {self.db_path}")
        except duckdb.Error as e:
            logger.warning(f"Failed to close connection to {self.db_path}: {e}")
        finally:
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
