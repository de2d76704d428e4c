"""
The Supervisor package.
Reconciles configured servers with the OS processes bound to their ports.

This package contains the ServerSupervisor orchestrator and its helper modules,
which together inspect ports, terminate occupants, reclaim ports and launch
detached server processes.
"""
from typing import Optional
from .errors import (
    ConfigurationMissing, DeploymintError, DirectoryNotFound, InvalidConfiguration, LaunchFailed,
    NoPortsConfigured, NotRunning, PortStillBound, ProbeFailure, TerminationFailed,
)
from .models import ActionResult, PortOccupancy, ReclaimResult, ServerConfig, ServerState, StatusReport
from .supervisor import ServerSupervisor

_default_supervisor: Optional[ServerSupervisor] = None


def create_supervisor() -> ServerSupervisor:
    """Builds a ServerSupervisor wired to the configured store, launcher and log database."""
    from deploymint.local import app_globals
    from deploymint.local.store import ServerConfigStore
    from deploymint.local.database import LogDBManager
    from .launcher import ProcessLauncher

    events = LogDBManager(app_globals.LOG_DB_PATH)
    events.initialize_database()
    return ServerSupervisor(
        store=ServerConfigStore(app_globals.SERVERS_FILE_PATH),
        launch=ProcessLauncher(app_globals.LAUNCH_SHELL_MODE, app_globals.SHELL_EXECUTABLE).launch,
        events=events,
        reclaim_settle_delay=float(app_globals.RECLAIM_SETTLE_DELAY),
        stop_settle_delay=float(app_globals.STOP_SETTLE_DELAY),
    )


def get_supervisor() -> ServerSupervisor:
    """Returns the process-wide supervisor, creating it on first use."""
    global _default_supervisor
    if _default_supervisor is None:
        _default_supervisor = create_supervisor()
    return _default_supervisor


__all__ = [
    "ServerSupervisor", "create_supervisor", "get_supervisor",
    "ActionResult", "PortOccupancy", "ReclaimResult", "ServerConfig", "ServerState", "StatusReport",
    "DeploymintError", "ConfigurationMissing", "InvalidConfiguration", "NoPortsConfigured",
    "DirectoryNotFound", "PortStillBound", "TerminationFailed", "LaunchFailed", "NotRunning", "ProbeFailure",
]
