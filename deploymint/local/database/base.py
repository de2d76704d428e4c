import sqlite3
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import List, Optional, Tuple, Any, Generator
from multiprocessing.synchronize import Lock as LockType

log = logging.getLogger(__name__)


class BaseDBManager:
    """
    Base class for database managers, providing connection handling and
    the small set of query helpers the managers build on.
    """

    def __init__(self, db_path: Path, lock: Optional[LockType] = None, enable_wal: bool = False):
        """
        Initializes the base database manager.

        :param db_path: The path to the SQLite database file.
        :param lock: An optional multiprocessing.Lock serializing access to the file.
        :param enable_wal: Whether to enable WAL (Write-Ahead Logging) mode.
        """
        self.db_path = Path(db_path)
        self.lock = lock
        self.enable_wal = enable_wal

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager yielding a fresh connection, holding the lock if one was given.

        :return Generator[sqlite3.Connection, None, None]: A generator yielding a database connection.
        """
        if self.lock:
            self.lock.acquire()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=10)
            conn.row_factory = sqlite3.Row
            if self.enable_wal:
                conn.execute("PRAGMA journal_mode=WAL;")
            try:
                yield conn
            finally:
                conn.close()
        finally:
            if self.lock:
                self.lock.release()

    def execute(self, sql: str, params: Optional[Tuple[Any, ...]] = None) -> List[sqlite3.Row]:
        """
        Executes a single statement and commits it.

        :param sql: The SQL command to execute.
        :param params: Optional parameters for the SQL command.
        :return: Any rows the statement produced.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(sql, params or ())
                conn.commit()
                return cursor.fetchall()
        except sqlite3.Error as e:
            log.error(f"Database operation failed: {e}")
            raise

    def execute_many(self, sql: str, params: List[Tuple[Any, ...]]) -> None:
        """
        Executes a statement once per parameter tuple in one transaction.

        :param sql: The SQL command to execute.
        :param params: A list of tuples containing parameters for each command.
        """
        try:
            with self._get_connection() as conn:
                conn.executemany(sql, params)
                conn.commit()
        except sqlite3.Error as e:
            log.error(f"Batch database operation failed: {e}")
            raise

    def fetch_all(self, sql: str, params: Optional[Tuple[Any, ...]] = None) -> List[sqlite3.Row]:
        """
        Fetches all rows of a query.

        :param sql: The SQL query.
        :param params: Optional parameters for the query.
        :return: A list of sqlite3.Row objects.
        """
        try:
            with self._get_connection() as conn:
                return conn.execute(sql, params or ()).fetchall()
        except sqlite3.Error as e:
            log.error(f"Failed to fetch data: {e}")
            raise
