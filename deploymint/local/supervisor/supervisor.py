import time
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional
from deploymint.local.database import LogDBManager
from deploymint.local.supervisor import ports as port_inspector
from deploymint.local.supervisor import terminate as process_terminator
from deploymint.local.supervisor.errors import (
    ConfigurationMissing, DeploymintError, DirectoryNotFound, NoPortsConfigured, NotRunning, TerminationFailed
)
from deploymint.local.supervisor.launcher import ProcessLauncher
from deploymint.local.supervisor.models import (
    ActionResult, PortOccupancy, ServerConfig, ServerState, StatusReport, describe_port_pids
)
from deploymint.local.supervisor.reclaim import PortReclaimer
from deploymint.local.supervisor.records import LaunchRegistry
from deploymint.local.supervisor.terminate import TerminationResult

if TYPE_CHECKING:
    from deploymint.local.store import ServerConfigStore

log = logging.getLogger(__name__)


class IdentityLocks:
    """Hands out one lock per server identity so lifecycle operations on the same server serialize."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, identity: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(identity, threading.Lock())


class ServerSupervisor:
    """
    Reconciles configured servers against the processes actually bound to their ports.

    Nothing about liveness is stored: every call re-probes the OS. The
    LaunchRegistry is bookkeeping only. All four operations return structured
    results and never raise past this class.
    """

    def __init__(
        self,
        store: "ServerConfigStore",
        inspect: Callable[[int], PortOccupancy] = port_inspector.inspect_port,
        terminate: Callable[[Iterable[int]], TerminationResult] = process_terminator.terminate_pids,
        reclaimer: Optional[PortReclaimer] = None,
        launch: Optional[Callable[[ServerConfig], int]] = None,
        registry: Optional[LaunchRegistry] = None,
        events: Optional[LogDBManager] = None,
        reclaim_settle_delay: Optional[float] = None,
        stop_settle_delay: float = 0.4,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        :param store: Configuration store the servers are loaded from.
        :param inspect: Port inspector.
        :param terminate: Process terminator.
        :param reclaimer: Port reclaimer, built from inspect/terminate if omitted.
        :param launch: Callable launching a config and returning its PID.
        :param registry: In-memory launch records.
        :param events: Optional log database receiving launch/stop telemetry.
        :param reclaim_settle_delay: Settle delay for the default reclaimer.
        :param stop_settle_delay: Single wait applied after a stop has signalled every port.
        :param sleep: Sleep function, replaceable in tests.
        """
        self.store = store
        self.inspect = inspect
        self.terminate = terminate
        self.sleep = sleep
        self.reclaimer = reclaimer or PortReclaimer(
            inspect=inspect, terminate=terminate, settle_delay=reclaim_settle_delay, sleep=sleep
        )
        self.launch = launch or ProcessLauncher().launch
        self.registry = registry or LaunchRegistry()
        self.events = events
        self.stop_settle_delay = stop_settle_delay
        self.locks = IdentityLocks()

    #* --- Helpers ---
    def _require_config(self, identity: str) -> ServerConfig:
        config = self.store.load(identity)
        if config is None:
            raise ConfigurationMissing(identity)
        if not config.ports:
            raise NoPortsConfigured(identity)
        return config

    def _failure(self, action: str, identity: str, error: Exception) -> ActionResult:
        if isinstance(error, DeploymintError):
            log.warning(f"{action.capitalize()} of {identity} failed: {error}")
            return ActionResult(
                action=action, ok=False, error_message=str(error),
                error_kind=type(error).__name__, http_status=error.http_status,
            )
        log.error(f"Unexpected error during {action} of {identity}: {error}", exc_info=True)
        return ActionResult(
            action=action, ok=False, error_message=str(error) or type(error).__name__,
            error_kind="InternalError", http_status=500,
        )

    def _record_event(self, identity: str, action: str, pid: Optional[int], ports: Iterable[int], detail: Dict) -> None:
        if self.events is not None:
            self.events.record_launch_event(identity, action, pid=pid, ports=ports, detail=detail)

    #* --- Public Operations ---
    def get_status(self, identity: str) -> StatusReport:
        """
        Reports whether a server is running by probing each of its ports.

        Never raises: a failing probe degrades the answer to `unknown`.

        :param identity: The server's unique key.
        :return: A StatusReport with the representative port/PID and per-port detail.
        """
        try:
            config = self.store.load(identity)
            if config is None:
                return StatusReport(ServerState.UNCONFIGURED, message="Server not configured")
            if not config.ports:
                return StatusReport(ServerState.UNCONFIGURED, message="No ports configured for server")

            checks = [self.inspect(port) for port in config.ports]
            running = next((check for check in checks if check.running), None)
            if running is not None:
                return StatusReport(ServerState.RUNNING, primary_port=running.port, pid=running.pid, per_port=checks)
            return StatusReport(ServerState.STOPPED, primary_port=config.ports[0], per_port=checks)
        except Exception as e:
            log.error(f"Status check for {identity} failed: {e}")
            return StatusReport(ServerState.UNKNOWN, error_message=str(e) or type(e).__name__)

    def start(self, identity: str) -> ActionResult:
        """Frees the server's ports, then launches it."""
        return self._launch(identity, "start")

    def restart(self, identity: str) -> ActionResult:
        """Same mechanics as start; the message says whether something was replaced."""
        return self._launch(identity, "restart")

    def _launch(self, identity: str, action: str) -> ActionResult:
        with self.locks.lock_for(identity):
            try:
                config = self._require_config(identity)
                replaced = self.reclaimer.reclaim_all(config.ports)
                if not Path(config.directory).is_dir():
                    raise DirectoryNotFound(config.directory)
                pid = self.launch(config)
            except Exception as e:
                return self._failure(action, identity, e)

            self.registry.record(identity, pid)
            self._record_event(
                identity, action, pid, config.ports,
                {"replacedPorts": [result.to_dict() for result in replaced]},
            )

        note = f" Replaced previous process(es) on port(s): {describe_port_pids(replaced)}." if replaced else ""
        if action == "restart":
            verb = "restarted" if replaced else "started"
            message = f"Server {verb} on port {config.primary_port}.{note}"
        else:
            message = f"Server starting on port {config.primary_port}.{note}"
        log.info(f"{identity}: {message}")
        return ActionResult(action=action, ok=True, message=message, pid=pid, replaced_ports=replaced)

    def stop(self, identity: str) -> ActionResult:
        """
        Terminates every process bound to the server's ports.

        A server with no occupied port yields `ok=False` (NotRunning) and changes
        nothing. The settle delay is applied once after all ports are signalled.

        :param identity: The server's unique key.
        :return: An ActionResult listing the stopped ports and PIDs.
        """
        with self.locks.lock_for(identity):
            try:
                config = self._require_config(identity)
                running: List[PortOccupancy] = [
                    check for check in (self.inspect(port) for port in config.ports) if check.running
                ]
                if not running:
                    raise NotRunning(identity, config.ports)

                signalled = set()
                for occupancy in running:
                    pending = [pid for pid in occupancy.pids if pid not in signalled]
                    if pending:
                        self.terminate(pending).raise_for_failures()
                        signalled.update(pending)
                self.sleep(self.stop_settle_delay)
            except NotRunning as e:
                log.info(f"Stop requested for {identity}, but it is not running.")
                return ActionResult(
                    action="stop", ok=False, error_message=str(e),
                    error_kind=type(e).__name__, http_status=e.http_status,
                )
            except DeploymintError as e:
                result = self._failure("stop", identity, e)
                if isinstance(e, TerminationFailed):
                    # Answered as an unsuccessful 200, like NotRunning
                    result.error_message = f"Failed to stop server: {e}"
                    result.http_status = 200
                return result
            except Exception as e:
                return self._failure("stop", identity, e)

            self.registry.drop(identity)
            self._record_event(
                identity, "stop", None, [o.port for o in running],
                {"stoppedPorts": [{"port": o.port, "pids": list(o.pids)} for o in running]},
            )

        message = f"Server stopped on port(s): {describe_port_pids(running)}"
        log.info(f"{identity}: {message}")
        return ActionResult(action="stop", ok=True, message=message, stopped_ports=running)
