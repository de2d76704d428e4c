"""
This module initializes the local database management system.
It exposes the log database manager and its record types.
"""

from .log import LogDBManager, LogEntry, LaunchEvent

__all__ = ["LogDBManager", "LogEntry", "LaunchEvent"]
