"""
Data types shared by the reconciliation engine.

None of these are persisted except `ServerConfig`, which the configuration
store reads and writes. Everything else is recomputed from the OS on every
call.
"""
import math
import numbers
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

# Keys that may carry port information in a persisted server entry, in the
# order their values are merged.
PORT_KEYS = ("port", "ports", "additionalPorts")
MAX_PORT = 65535


class ServerState(str, Enum):
    """Externally observed state of a managed server. Never stored."""
    UNCONFIGURED = "unconfigured"
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


def _coerce_port(value: Any) -> Optional[int]:
    """Returns the value as a port number in 1-65535, or None if it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value.isdecimal():
            return None
        value = int(value)
    elif isinstance(value, numbers.Real):
        if not math.isfinite(value) or value != int(value):
            return None
        value = int(value)
    else:
        return None
    return value if 0 < value <= MAX_PORT else None


def _iter_values(raw: Any) -> Iterable[Any]:
    if isinstance(raw, (list, tuple, set, frozenset)):
        return raw
    return (raw,)


def normalize_ports(entry: Mapping[str, Any]) -> Tuple[int, ...]:
    """
    Collects every port of a persisted server entry into one ordered, de-duplicated tuple.

    `port`, `ports` and `additionalPorts` are read in that order; each may be a
    scalar or a list. Values that are not integers in 1-65535 are skipped.

    :param entry: The raw mapping as stored on disk.
    :return: A tuple of unique valid ports, first occurrence first.
    """
    seen: Dict[int, None] = {}
    for key in PORT_KEYS:
        if key not in entry:
            continue
        for value in _iter_values(entry[key]):
            port = _coerce_port(value)
            if port is not None:
                seen.setdefault(port, None)
    return tuple(seen)


@dataclass(frozen=True)
class ServerConfig:
    """
    A managed server definition.

    Attributes:
        identity: Unique key of the server (a URL in the dashboard, any string works).
        directory: Working directory the command is launched in.
        command: Command line to launch.
        ports: Unique ports in 1-65535, first one is the primary port.
    """
    identity: str
    directory: str
    command: str
    ports: Tuple[int, ...] = ()

    @property
    def primary_port(self) -> Optional[int]:
        return self.ports[0] if self.ports else None

    @classmethod
    def from_dict(cls, identity: str, entry: Mapping[str, Any]) -> "ServerConfig":
        """Builds a config from its persisted representation."""
        return cls(
            identity=identity,
            directory=str(entry.get("directory") or ""),
            command=str(entry.get("command") or ""),
            ports=normalize_ports(entry),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Persisted representation. `port` mirrors the primary port for older readers."""
        data: Dict[str, Any] = {
            "directory": self.directory,
            "command": self.command,
            "ports": list(self.ports),
        }
        if self.ports:
            data["port"] = self.ports[0]
        return data


@dataclass(frozen=True)
class PortOccupancy:
    """Result of probing one port."""
    port: int
    running: bool = False
    pids: Tuple[int, ...] = ()

    @property
    def pid(self) -> Optional[int]:
        return self.pids[0] if self.pids else None

    def to_dict(self) -> Dict[str, Any]:
        return {"port": self.port, "running": self.running, "pid": self.pid, "pids": list(self.pids)}


@dataclass(frozen=True)
class ReclaimResult:
    """Outcome of freeing one port. `pids` are the occupants found before the reclaim."""
    port: int
    freed: bool = False
    pids: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"port": self.port, "pids": list(self.pids)}


def describe_port_pids(entries: Iterable[Any]) -> str:
    """Formats `[(port, pids)]`-like entries as '5050 (PID(s): 1, 2), 5051 (PID(s): 3)'."""
    return ", ".join(
        f"{entry.port} (PID(s): {', '.join(str(pid) for pid in entry.pids)})"
        for entry in entries
    )


@dataclass
class StatusReport:
    """Answer of a status query. Always produced, even when probing fails."""
    status: ServerState
    primary_port: Optional[int] = None
    pid: Optional[int] = None
    per_port: List[PortOccupancy] = field(default_factory=list)
    message: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.primary_port is not None:
            data["primaryPort"] = self.primary_port
        if self.pid is not None:
            data["pid"] = self.pid
        if self.per_port:
            data["perPortDetail"] = [occupancy.to_dict() for occupancy in self.per_port]
        if self.message:
            data["message"] = self.message
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data


@dataclass
class ActionResult:
    """Structured outcome of start, stop and restart."""
    action: str
    ok: bool
    message: Optional[str] = None
    pid: Optional[int] = None
    replaced_ports: List[ReclaimResult] = field(default_factory=list)
    stopped_ports: List[PortOccupancy] = field(default_factory=list)
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    http_status: int = 200

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok}
        if self.message:
            data["message"] = self.message
        if self.pid is not None:
            data["pid"] = self.pid
        if self.action == "stop":
            if self.ok:
                data["stoppedPorts"] = [{"port": o.port, "pids": list(o.pids)} for o in self.stopped_ports]
        else:
            data["replacedPorts"] = [result.to_dict() for result in self.replaced_ports]
        if self.error_message:
            data["errorMessage"] = self.error_message
        if self.error_kind:
            data["errorKind"] = self.error_kind
        return data
