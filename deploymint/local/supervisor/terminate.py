import os
import psutil
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List
from deploymint.local.supervisor.errors import TerminationFailed

log = logging.getLogger(__name__)


@dataclass
class TerminationResult:
    """
    Outcome of signalling a batch of PIDs.

    Attributes:
        terminated: PIDs that received the termination signal.
        already_gone: PIDs that no longer existed, counted as success.
        failures: PID to reason for every PID that could not be signalled.
    """
    terminated: List[int] = field(default_factory=list)
    already_gone: List[int] = field(default_factory=list)
    failures: Dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raises TerminationFailed if any PID could not be signalled."""
        if self.failures:
            raise TerminationFailed(self.failures)


def get_process_from_pid(pid: int) -> psutil.Process:
    """A wrapper for psutil.Process for easy testing/mocking if needed."""
    return psutil.Process(pid)

def terminate_pids(pids: Iterable[int]) -> TerminationResult:
    """
    Sends a graceful termination signal (SIGTERM on POSIX) to each PID in turn.

    Does not wait for the processes to exit. A PID that is already gone is a
    success; anything else, such as permission denied, is recorded per PID.

    :param pids: The process IDs to signal. Duplicates are signalled once.
    :return: A TerminationResult describing each PID's outcome.
    """
    result = TerminationResult()
    own_pid = os.getpid()
    for pid in dict.fromkeys(pids):
        if pid == own_pid:
            log.warning(f"Refusing to terminate the supervisor itself (PID {pid}).")
            result.failures[pid] = "refusing to terminate the supervisor process"
            continue
        try:
            proc = get_process_from_pid(pid)
            log.debug(f"Sending SIGTERM to PID {pid}")
            proc.terminate()
            result.terminated.append(pid)
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            log.debug(f"Process {pid} no longer exists, skipping termination.")
            result.already_gone.append(pid)
        except psutil.AccessDenied:
            log.warning(f"Permission denied while terminating PID {pid}.")
            result.failures[pid] = "permission denied"
        except psutil.Error as e:
            log.error(f"Failed to terminate PID {pid}: {e}")
            result.failures[pid] = str(e) or type(e).__name__
    return result
