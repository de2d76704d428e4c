import psutil
import logging
from typing import Dict, Iterable, List
from deploymint.local.supervisor.errors import ProbeFailure
from deploymint.local.supervisor.models import PortOccupancy

log = logging.getLogger(__name__)


#* --- Socket Table Access ---
def net_connections() -> List:
    """A wrapper for psutil.net_connections for easy testing/mocking if needed."""
    return psutil.net_connections(kind="tcp")

def process_iter() -> Iterable[psutil.Process]:
    """A wrapper for psutil.process_iter for easy testing/mocking if needed."""
    return psutil.process_iter()

def _validate_port(port: int) -> None:
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ValueError(f"Invalid port: {port!r}")

def _is_listener(conn, port: int) -> bool:
    """True for a TCP socket listening on the port. Client sockets and UDP are ignored."""
    return bool(conn.laddr) and conn.laddr.port == port and conn.status == psutil.CONN_LISTEN

def _pids_from_system_table(port: int) -> List[int]:
    """Collects owning PIDs of all TCP listeners on the port."""
    seen: Dict[int, None] = {}
    for conn in net_connections():
        if conn.pid and _is_listener(conn, port):
            seen.setdefault(conn.pid, None)
    return list(seen)

def _pids_from_process_scan(port: int) -> List[int]:
    """
    Per-process fallback used when the system-wide socket table is not readable
    (macOS without root). Processes we are not allowed to inspect are skipped.
    """
    seen: Dict[int, None] = {}
    for proc in process_iter():
        try:
            for conn in proc.net_connections(kind="tcp"):
                if _is_listener(conn, port):
                    seen.setdefault(proc.pid, None)
                    break
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return list(seen)


#* --- Port Inspection ---
def inspect_port(port: int) -> PortOccupancy:
    """
    Queries the OS for the processes listening on a TCP port.

    A port nobody uses is reported as `running=False`, never as an error.

    :param port: The port to probe.
    :return: The occupancy of the port, PIDs in the order the OS reported them.
    :raises ProbeFailure: If the OS query itself fails.
    """
    _validate_port(port)
    try:
        try:
            pids = _pids_from_system_table(port)
        except psutil.AccessDenied:
            log.debug(f"System socket table not readable, scanning processes for port {port}.")
            pids = _pids_from_process_scan(port)
    except (psutil.Error, OSError) as e:
        raise ProbeFailure(port, str(e) or type(e).__name__) from e

    if pids:
        log.debug(f"Port {port} is bound by PID(s): {pids}")
    return PortOccupancy(port=port, running=bool(pids), pids=tuple(pids))

def inspect_ports(ports: Iterable[int]) -> List[PortOccupancy]:
    """Probes each port in order. The first probe failure propagates."""
    return [inspect_port(port) for port in ports]
