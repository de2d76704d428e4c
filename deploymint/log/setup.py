import sys
import logging

from deploymint.local import app_globals
from deploymint.log.handler import SQLiteHandler, LokiHandler

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """Console formatter shared by the management console and the API server."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)


def setup_logging(console_level: int = logging.INFO, persist: bool = True) -> None:
    """
    Configures the root logger for the application.
    This sets up handlers for console, SQLite, and optionally Loki,
    clearing any previously configured handlers to prevent duplication.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param persist: Whether records are also written to the log database (and Loki).
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(logging.DEBUG)

    # Close and clear existing handlers to prevent re-adding them on re-runs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    if not persist:
        return

    # --- SQLite Handler (always enabled for all levels) ---
    try:
        app_globals.LOG_DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        sqlite_handler = SQLiteHandler(db_path=app_globals.LOG_DB_PATH)
        sqlite_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(sqlite_handler)
    except Exception as e:
        root_logger.error(f"Failed to initialize SQLite logging handler: {e}. Logging to DB will be disabled.")

    # --- Loki Handler (conditional) ---
    if app_globals.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(url=app_globals.LOKI_URL, org_id=app_globals.LOKI_ORG_ID)
            loki_handler.setLevel(logging.INFO) # Avoid spamming Loki with DEBUG logs
            loki_handler.setFormatter(MainFormatter())
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {app_globals.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
