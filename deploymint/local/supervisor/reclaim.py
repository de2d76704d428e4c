import time
import logging
from typing import Callable, Iterable, List, Optional
from deploymint.local.supervisor import ports as port_inspector
from deploymint.local.supervisor import terminate as process_terminator
from deploymint.local.supervisor.errors import PortStillBound
from deploymint.local.supervisor.models import PortOccupancy, ReclaimResult
from deploymint.local.supervisor.terminate import TerminationResult

log = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 0.4  # seconds


class PortReclaimer:
    """
    Frees ports by terminating their occupants and confirming the release.

    Every step of a reclaim (inspect, terminate, settle, re-inspect) runs
    sequentially in the caller's thread. Multiple ports are handled one after
    another so that ports sharing a process tree are never signalled twice
    concurrently.
    """

    def __init__(
        self,
        inspect: Callable[[int], PortOccupancy] = port_inspector.inspect_port,
        terminate: Callable[[Iterable[int]], TerminationResult] = process_terminator.terminate_pids,
        settle_delay: Optional[float] = DEFAULT_SETTLE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        :param inspect: Port inspector, returns the occupancy of one port.
        :param terminate: Process terminator for a batch of PIDs.
        :param settle_delay: Seconds to wait between termination and re-inspection.
        :param sleep: Sleep function, replaceable in tests.
        """
        self.inspect = inspect
        self.terminate = terminate
        self.settle_delay = DEFAULT_SETTLE_DELAY if settle_delay is None else settle_delay
        self.sleep = sleep

    def reclaim(self, port: int) -> ReclaimResult:
        """
        Guarantees that a port is free.

        :param port: The port to free.
        :return: `freed=False` with no PIDs if the port was already free, otherwise
                 `freed=True` with the PIDs that occupied it.
        :raises TerminationFailed: If an occupant could not be signalled.
        :raises PortStillBound: If the port is still occupied after the settle delay.
        """
        initial = self.inspect(port)
        if not initial.running:
            return ReclaimResult(port=port, freed=False, pids=())

        log.info(f"Port {port} is occupied by PID(s) {list(initial.pids)}. Reclaiming...")
        self.terminate(initial.pids).raise_for_failures()
        self.sleep(self.settle_delay)

        after = self.inspect(port)
        if after.running:
            log.error(f"Port {port} is still bound by PID(s) {list(after.pids)} after termination.")
            raise PortStillBound(port, after.pids)

        log.info(f"Port {port} reclaimed from PID(s) {list(initial.pids)}.")
        return ReclaimResult(port=port, freed=True, pids=initial.pids)

    def reclaim_all(self, ports: Iterable[int]) -> List[ReclaimResult]:
        """
        Reclaims each port in order, stopping at the first failure.

        :param ports: The ports to free.
        :return: One result per port that actually had to be freed.
        """
        return [result for result in (self.reclaim(port) for port in ports) if result.freed]
