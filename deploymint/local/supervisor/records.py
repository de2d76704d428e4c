import time
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class LaunchRecord:
    """Bookkeeping note about the last launch of a server. Never used to decide liveness."""
    identity: str
    pid: int
    start_time: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "identity": self.identity,
            "pid": self.pid,
            "startTime": time.strftime('%Y-%m-%dT%H:%M:%S', time.localtime(self.start_time)),
        }


class LaunchRegistry:
    """Thread-safe in-memory table of LaunchRecords keyed by identity."""

    def __init__(self) -> None:
        self._records: Dict[str, LaunchRecord] = {}
        self._lock = threading.Lock()

    def record(self, identity: str, pid: int) -> LaunchRecord:
        """Creates or overwrites the record for an identity."""
        entry = LaunchRecord(identity=identity, pid=pid, start_time=time.time())
        with self._lock:
            self._records[identity] = entry
        return entry

    def get(self, identity: str) -> Optional[LaunchRecord]:
        with self._lock:
            return self._records.get(identity)

    def drop(self, identity: str) -> Optional[LaunchRecord]:
        """Removes the record if there is one. A missing record is not an error."""
        with self._lock:
            return self._records.pop(identity, None)

    def snapshot(self) -> List[LaunchRecord]:
        with self._lock:
            return list(self._records.values())
