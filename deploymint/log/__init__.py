"""
Logging module for the application.
This module provides functionality to set up logging and export logs to Excel.
"""

from .setup import setup_logging
from .export import export_logs_to_excel

__all__ = ["setup_logging", "export_logs_to_excel"]
