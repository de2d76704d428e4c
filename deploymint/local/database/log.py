import json
import time
import sqlite3
import logging
from pathlib import Path
from collections import namedtuple
from typing import Iterable, List, Dict, Any, Optional, Tuple
from deploymint.local.database.base import BaseDBManager

LogEntry = namedtuple('LogEntry', ['timestamp', 'level', 'module', 'message'])
LaunchEvent = namedtuple('LaunchEvent', ['timestamp', 'identity', 'action', 'pid', 'ports', 'detail'])
log = logging.getLogger(__name__)


def _format_entry(row: sqlite3.Row) -> LogEntry:
    dt = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(row['timestamp']))
    return LogEntry(
        timestamp=row['timestamp'], level=row['level'], module=row['module'],
        message=f"{dt} - {row['level']:<8} - [{row['module']}] - {row['message']}"
    )


class LogDBManager(BaseDBManager):
    """
    Manages the supervisor's log database: application log records written by
    the SQLiteHandler and the launch/stop telemetry written by the supervisor.
    """

    def __init__(self, db_path: Path):
        """
        Initializes the LogDBManager.

        :param db_path: The path to the logging SQLite database file.
        """
        super().__init__(db_path, lock=None, enable_wal=True)

    def initialize_database(self) -> None:
        """
        Ensures all necessary tables exist in the database.
        """
        try:
            self.execute('''
                CREATE TABLE IF NOT EXISTS logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL,
                    level TEXT,
                    module TEXT,
                    funcName TEXT,
                    lineno INTEGER,
                    message TEXT
                )
            ''')
            self.execute('''
                CREATE TABLE IF NOT EXISTS launch_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp REAL,
                    identity TEXT,
                    action TEXT,
                    pid INTEGER,
                    ports TEXT,
                    detail TEXT
                )
            ''')
            log.debug("Log database tables created/verified.")
        except sqlite3.Error as e:
            log.critical(f"Could not create log database tables: {e}", exc_info=True)
            raise

    def insert_log_batch(self, log_entries: List[Dict[str, Any]]) -> None:
        """
        Inserts multiple log entries in a single transaction.

        :param log_entries: Dicts with keys: timestamp, level, module, funcName, lineno, message.
        """
        if not log_entries:
            return
        params = [(
            entry['timestamp'], entry['level'], entry['module'],
            entry['funcName'], entry['lineno'], entry['message']
        ) for entry in log_entries]
        try:
            self.execute_many(
                '''INSERT INTO logs (timestamp, level, module, funcName, lineno, message)
                   VALUES (?, ?, ?, ?, ?, ?)''',
                params
            )
        except sqlite3.Error as e:
            log.error(f"Failed to insert log batch of {len(log_entries)} entries: {e}", exc_info=True)
            raise

    def record_launch_event(
        self,
        identity: str,
        action: str,
        pid: Optional[int] = None,
        ports: Iterable[int] = (),
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Appends one launch/stop event. Failures are logged, never raised:
        telemetry must not decide the outcome of an operation.

        :param identity: The server identity.
        :param action: 'start', 'restart' or 'stop'.
        :param pid: The launched PID, if any.
        :param ports: Ports involved in the action.
        :param detail: Extra JSON-serializable detail (replaced or stopped PIDs).
        """
        try:
            self.execute(
                '''INSERT INTO launch_events (timestamp, identity, action, pid, ports, detail)
                   VALUES (?, ?, ?, ?, ?, ?)''',
                (time.time(), identity, action, pid, json.dumps(list(ports)), json.dumps(detail or {}))
            )
        except sqlite3.Error as e:
            log.error(f"Failed to record {action} event for {identity}: {e}")

    def fetch_launch_events(self, identity: Optional[str] = None, limit: int = 50) -> List[LaunchEvent]:
        """
        Fetches the most recent launch events, oldest first.

        :param identity: Only return events of this server if given.
        :param limit: Maximum number of events.
        """
        sql = "SELECT timestamp, identity, action, pid, ports, detail FROM launch_events"
        params: Tuple[Any, ...] = ()
        if identity is not None:
            sql += " WHERE identity = ?"
            params = (identity,)
        sql += " ORDER BY id DESC LIMIT ?"
        try:
            rows = self.fetch_all(sql, params + (limit,))
        except sqlite3.Error as e:
            log.error(f"Failed to fetch launch events: {e}")
            return []
        return [
            LaunchEvent(
                timestamp=row['timestamp'], identity=row['identity'], action=row['action'],
                pid=row['pid'], ports=json.loads(row['ports'] or "[]"), detail=json.loads(row['detail'] or "{}")
            )
            for row in reversed(rows)
        ]

    def fetch_last_entries(self, limit: int, include_debug: bool = False) -> List[LogEntry]:
        """
        Fetches the most recent N log entries, oldest first.

        :param limit: The maximum number of log entries to retrieve.
        :param include_debug: Whether DEBUG records are included.
        :return list: A list of LogEntry namedtuples.
        """
        level_filter = "" if include_debug else "WHERE level != 'DEBUG' "
        try:
            rows = self.fetch_all(
                f"SELECT id, timestamp, level, module, message FROM logs {level_filter}ORDER BY id DESC LIMIT ?",
                (limit,)
            )
        except sqlite3.Error as e:
            log.error(f"Failed to fetch log entries from database: {e}")
            return []
        return [_format_entry(row) for row in reversed(rows)]

    def listen_for_updates(self, last_timestamp: float) -> Tuple[List[LogEntry], float]:
        """
        Polls the database for new logs since the last known timestamp.

        :param last_timestamp: The Unix timestamp of the last known log entry.
        :return tuple: New LogEntry objects and the new latest timestamp.
        """
        try:
            rows = self.fetch_all(
                "SELECT timestamp, level, module, message FROM logs WHERE timestamp > ? ORDER BY timestamp ASC",
                (last_timestamp,)
            )
        except sqlite3.Error as e:
            log.error(f"Failed to poll log database for updates: {e}")
            return [], last_timestamp

        new_entries = [_format_entry(row) for row in rows]
        new_last_ts = max([last_timestamp] + [entry.timestamp for entry in new_entries])
        return new_entries, new_last_ts
