"""
Local package for the Deploymint supervisor.

This package provides application-level global configuration through the
app_globals module, the server configuration store, the log database and
the port reconciliation engine.
"""

from .global_config import app_globals

__all__ = ["app_globals"]
