"""
Logging handlers for the application.
This module provides batching logging handlers that ship records to the
SQLite log database and, optionally, to Grafana Loki.
"""

from .base import BufferedHandler
from .loki import LokiHandler
from .sql import SQLiteHandler

__all__ = ["BufferedHandler", "SQLiteHandler", "LokiHandler"]
