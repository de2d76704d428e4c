"""
This module contains the configuration settings for the Deploymint supervisor.
It defines paths, API server settings, reclaim timings and logging configuration.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
DATA_DIR = pathlib.Path(os.getenv("DEPLOYMINT_DATA_DIR", str(BASE_DIR / "data")))
LOGS_DIR = DATA_DIR / "logs"

#* --- Application File Paths ---
SERVERS_FILE_PATH = pathlib.Path(os.getenv("DEPLOYMINT_SERVERS_FILE", str(BASE_DIR / "servers.json")))
PUBLIC_DIR = BASE_DIR / "public"
LOG_DB_PATH = LOGS_DIR / "deploymint_logs.db"
OVERRIDES_JSON_PATH = DATA_DIR / "overrides.json"

#* --- Process Titles ---
CONSOLE_PROCESS_TITLE = "Deploymint - Console"
API_PROCESS_TITLE = "Deploymint - API Server"

#* --- API Server Settings ---
API_HOST = os.getenv("DEPLOYMINT_API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("DEPLOYMINT_API_PORT", "4000"))
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("DEPLOYMINT_CORS_ORIGINS", "*").split(",") if o.strip()]

#* --- Launcher Settings ---
# 'auto' runs through the shell only when the command needs shell syntax.
# 'always' / 'never' force one behaviour.
LAUNCH_SHELL_MODE = os.getenv("DEPLOYMINT_LAUNCH_SHELL_MODE", "auto").lower()
SHELL_EXECUTABLE = os.getenv("DEPLOYMINT_SHELL", "cmd.exe" if sys.platform == "win32" else "/bin/sh")

# Grafana Loki (optional log shipping)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
LOKI_BATCH_SIZE = 200

#* --- Application variables ---
VERBOSE_LOGGING = False

#* --- MODIFIABLE SETTINGS (Changeable at runtime via 'config' command) ---
MODIFIABLE_SETTINGS = {
    # Reconciliation timings
    "RECLAIM_SETTLE_DELAY", "STOP_SETTLE_DELAY",
    # Logging
    "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL",
    "MAX_LOG_DB_SIZE_MB", "LOG_DB_SIZE_CHECK_INTERVAL_SECONDS", "LOG_HISTORY_COUNT",
}

#* --- Default Values for Modifiable Settings ---
RECLAIM_SETTLE_DELAY = float(os.getenv("DEPLOYMINT_RECLAIM_SETTLE_DELAY", "0.4"))  # seconds
STOP_SETTLE_DELAY = float(os.getenv("DEPLOYMINT_STOP_SETTLE_DELAY", "0.4"))        # seconds
LOG_BUFFER_SIZE = 100
LOG_BUFFER_FLUSH_INTERVAL = 10
MAX_LOG_DB_SIZE_MB = 100
LOG_DB_SIZE_CHECK_INTERVAL_SECONDS = 12 * 3600 # 12 hours
LOG_HISTORY_COUNT = 50
