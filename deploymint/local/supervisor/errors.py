"""
Exception taxonomy for the reconciliation engine.

Every failure the supervisor can report derives from `DeploymintError`.
The `http_status` attribute is the status the HTTP layer answers with when
the failure reaches it inside an unsuccessful result.
"""
from typing import Dict, Iterable, Optional, Sequence


class DeploymintError(Exception):
    """Base class for all supervisor failures."""
    http_status = 500


class ConfigurationMissing(DeploymintError):
    """No saved configuration exists for the identity."""
    http_status = 400

    def __init__(self, identity: str, message: Optional[str] = None):
        self.identity = identity
        super().__init__(message or "Server not configured. Please configure the server first.")


class InvalidConfiguration(DeploymintError):
    """A configuration could not be saved because a field is invalid."""
    http_status = 400


class NoPortsConfigured(DeploymintError):
    http_status = 400

    def __init__(self, identity: str):
        self.identity = identity
        super().__init__("No ports configured. Please add at least one port.")


class DirectoryNotFound(DeploymintError):
    http_status = 400

    def __init__(self, directory: str):
        self.directory = directory
        super().__init__(f"Directory not found: {directory}")


class PortStillBound(DeploymintError):
    """A port stayed occupied after termination and the settle delay."""

    def __init__(self, port: int, pids: Sequence[int]):
        self.port = port
        self.pids = tuple(pids)
        pid_list = ", ".join(str(pid) for pid in self.pids)
        super().__init__(f"Unable to free port {port}. Still in use by PID(s): {pid_list}")


class TerminationFailed(DeploymintError):
    """One or more PIDs could not be signalled."""

    def __init__(self, failures: Dict[int, str]):
        self.failures = dict(failures)
        detail = "; ".join(f"PID {pid}: {reason}" for pid, reason in self.failures.items())
        super().__init__(f"Could not terminate {len(self.failures)} process(es): {detail}")


class LaunchFailed(DeploymintError):
    pass


class NotRunning(DeploymintError):
    """Stop was requested but none of the configured ports is occupied."""
    http_status = 200

    def __init__(self, identity: str, ports: Iterable[int] = ()):
        self.identity = identity
        self.ports = tuple(ports)
        super().__init__("Server is not running")


class ProbeFailure(DeploymintError):
    """The OS socket/process query itself failed."""

    def __init__(self, port: int, reason: str):
        self.port = port
        super().__init__(f"Failed to inspect port {port}: {reason}")
