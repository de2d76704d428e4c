"""
Pytest configuration and shared fixtures

Points all data paths at a temporary directory before the package is
imported and provides an in-memory port table standing in for the OS.
"""

import os
import tempfile

_TEST_DATA_DIR = tempfile.mkdtemp(prefix="deploymint-tests-")
os.environ["DEPLOYMINT_DATA_DIR"] = _TEST_DATA_DIR
os.environ["DEPLOYMINT_SERVERS_FILE"] = os.path.join(_TEST_DATA_DIR, "servers.json")
os.environ["LOKI_ENABLED"] = "false"

import pytest
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set
from unittest.mock import Mock

from deploymint.local.store import ServerConfigStore
from deploymint.local.supervisor import ServerSupervisor
from deploymint.local.supervisor.models import PortOccupancy, ServerConfig
from deploymint.local.supervisor.terminate import TerminationResult

IDENTITY = "http://localhost:5050"


class FakePortTable:
    """
    In-memory stand-in for the OS socket table.

    `inspect` and `terminate` have the same signatures as the real port
    inspector and process terminator. Terminated PIDs disappear from every
    port unless they are marked stubborn; unkillable PIDs report a failure.
    """

    def __init__(self) -> None:
        self.bound: Dict[int, List[int]] = {}
        self.stubborn: Set[int] = set()
        self.unkillable: Dict[int, str] = {}
        self.terminate_calls: List[List[int]] = []
        self.inspect_calls: List[int] = []
        self.probe_error: Optional[Exception] = None

    def bind(self, port: int, *pids: int) -> None:
        self.bound.setdefault(port, []).extend(pids)

    def inspect(self, port: int) -> PortOccupancy:
        self.inspect_calls.append(port)
        if self.probe_error is not None:
            raise self.probe_error
        pids = tuple(self.bound.get(port, ()))
        return PortOccupancy(port=port, running=bool(pids), pids=pids)

    def terminate(self, pids: Iterable[int]) -> TerminationResult:
        pids = list(pids)
        self.terminate_calls.append(pids)
        result = TerminationResult()
        for pid in pids:
            if pid in self.unkillable:
                result.failures[pid] = self.unkillable[pid]
                continue
            result.terminated.append(pid)
            if pid in self.stubborn:
                continue
            for port in list(self.bound):
                self.bound[port] = [p for p in self.bound[port] if p != pid]
                if not self.bound[port]:
                    del self.bound[port]
        return result


class FakeLauncher:
    """Records launches and binds the launched PID to the primary port."""

    def __init__(self, table: FakePortTable, first_pid: int = 4000, bind: bool = True) -> None:
        self.table = table
        self.next_pid = first_pid
        self.bind = bind
        self.launched: List[ServerConfig] = []

    def __call__(self, config: ServerConfig) -> int:
        pid = self.next_pid
        self.next_pid += 1
        self.launched.append(config)
        if self.bind:
            self.table.bind(config.primary_port, pid)
        return pid


@pytest.fixture
def port_table() -> FakePortTable:
    return FakePortTable()


@pytest.fixture
def launcher(port_table: FakePortTable) -> FakeLauncher:
    return FakeLauncher(port_table)


@pytest.fixture
def store(tmp_path: Path) -> ServerConfigStore:
    """Configuration store backed by a file in the test's temp directory."""
    return ServerConfigStore(tmp_path / "servers.json")


@pytest.fixture
def server_dir(tmp_path: Path) -> Path:
    path = tmp_path / "app"
    path.mkdir()
    return path


@pytest.fixture
def sleep() -> Mock:
    return Mock()


@pytest.fixture
def supervisor(store, port_table, launcher, sleep) -> ServerSupervisor:
    """
    Supervisor wired to the fake port table and launcher

    Returns:
        ServerSupervisor that never touches real processes
    """
    return ServerSupervisor(
        store=store,
        inspect=port_table.inspect,
        terminate=port_table.terminate,
        launch=launcher,
        reclaim_settle_delay=0.4,
        stop_settle_delay=0.4,
        sleep=sleep,
    )


@pytest.fixture
def configured(store, server_dir) -> ServerConfig:
    """A saved server on port 5050 whose directory exists."""
    return store.save(ServerConfig(
        identity=IDENTITY, directory=str(server_dir), command="node server.js", ports=(5050,),
    ))
