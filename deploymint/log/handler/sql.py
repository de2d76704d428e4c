import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional
from deploymint.local import app_globals
from deploymint.local.database import LogDBManager
from deploymint.log.handler.base import BufferedHandler


class SQLiteHandler(BufferedHandler):
    """
    Writes log records to the SQLite log database in batches and
    periodically warns when the database grows beyond its size limit.
    """
    thread_name = "SQLiteFlushThread"

    def __init__(self, db_path: Path):
        """
        Initializes the SQLite handler.

        :param db_path: The path to the SQLite database file.
        """
        super().__init__(
            flush_interval=app_globals.LOG_BUFFER_FLUSH_INTERVAL,
            batch_size=app_globals.LOG_BUFFER_SIZE,
        )
        self.db_path = Path(db_path)
        self.max_db_size_mb = app_globals.MAX_LOG_DB_SIZE_MB
        self.db_size_check_interval = app_globals.LOG_DB_SIZE_CHECK_INTERVAL_SECONDS
        self.db_size_check_thread: Optional[threading.Thread] = None
        self.logDB = LogDBManager(self.db_path)
        self.logDB.initialize_database()
        self.start()
        self.db_size_check_thread = threading.Thread(
            target=self._periodic_db_size_check, daemon=True, name="LogDbSizeCheckThread"
        )
        self.db_size_check_thread.start()

    def _make_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            "timestamp": record.created,
            "level": record.levelname,
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "message": record.getMessage(),
        }

    def _send(self, entries: List[Dict[str, Any]]) -> None:
        self.logDB.insert_log_batch(entries)

    def _check_db_file_size(self) -> None:
        """Logs a warning if the log database file exceeds the configured limit."""
        logger = logging.getLogger(__name__)
        try:
            file_size_mb = self.db_path.stat().st_size / (1024 * 1024)
        except FileNotFoundError:
            logger.debug(f"Log database file '{self.db_path}' not found during size check.")
            return
        except OSError as e:
            logger.error(f"Error checking log database file size for '{self.db_path}': {e}")
            return
        if file_size_mb > self.max_db_size_mb:
            logger.warning(
                f"Log database file '{self.db_path}' size ({file_size_mb:.2f} MB) "
                f"exceeds configured limit ({self.max_db_size_mb} MB)."
            )

    def _periodic_db_size_check(self) -> None:
        while not self.stop_event.wait(self.db_size_check_interval):
            self._check_db_file_size()

    def close(self) -> None:
        super().close()
        if self.db_size_check_thread and self.db_size_check_thread.is_alive():
            self.db_size_check_thread.join(timeout=1)
