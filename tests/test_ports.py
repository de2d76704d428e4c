"""
Unit tests for the port inspector

Tests inspect_port against mocked psutil socket tables.
"""

import psutil
import pytest
from types import SimpleNamespace
from unittest.mock import Mock, patch

from deploymint.local.supervisor import ports
from deploymint.local.supervisor.errors import ProbeFailure


def conn(port, pid, ip="127.0.0.1", status=psutil.CONN_LISTEN):
    """Builds a psutil-like connection entry, a TCP listener by default"""
    return SimpleNamespace(laddr=SimpleNamespace(ip=ip, port=port), raddr=(), pid=pid, status=status)


class TestInspectPort:
    """Tests for inspect_port"""

    def test_free_port_is_not_running(self):
        """Test a port nobody listens on reports running=False"""
        # Arrange
        table = [conn(8080, 10)]

        # Act
        with patch.object(ports, "net_connections", return_value=table):
            result = ports.inspect_port(5050)

        # Assert
        assert result.port == 5050
        assert result.running is False
        assert result.pids == ()

    def test_collects_unique_pids_in_order(self):
        """Test IPv4 and IPv6 sockets of one process collapse to one PID"""
        # Arrange
        table = [conn(5050, 20), conn(5050, 20, ip="::"), conn(5050, 21), conn(9000, 22)]

        # Act
        with patch.object(ports, "net_connections", return_value=table):
            result = ports.inspect_port(5050)

        # Assert
        assert result.running is True
        assert result.pids == (20, 21)
        assert result.pid == 20

    def test_ignores_entries_without_pid_or_address(self):
        """Test sockets without an owner or local address are skipped"""
        table = [conn(5050, None), SimpleNamespace(laddr=(), raddr=(), pid=30, status=psutil.CONN_LISTEN)]

        with patch.object(ports, "net_connections", return_value=table):
            result = ports.inspect_port(5050)

        assert result.running is False

    def test_udp_and_client_sockets_are_not_occupants(self):
        """Test only TCP listeners count: a UDP socket or an outgoing connection on the port is ignored"""
        # Arrange
        table = [
            conn(5050, 60, status=psutil.CONN_NONE),
            conn(5050, 61, status=psutil.CONN_ESTABLISHED),
            conn(5050, 62),
        ]

        # Act
        with patch.object(ports, "net_connections", return_value=table):
            result = ports.inspect_port(5050)

        # Assert
        assert result.pids == (62,)

    def test_system_table_queries_tcp_only(self):
        """Test the socket table is requested for TCP sockets only"""
        with patch.object(ports.psutil, "net_connections", return_value=[]) as mock_table:
            ports.net_connections()

        mock_table.assert_called_once_with(kind="tcp")

    def test_process_scan_queries_tcp_only(self):
        """Test the per-process fallback asks each process for TCP sockets only"""
        # Arrange
        proc = Mock(pid=70)
        proc.net_connections.return_value = [conn(5050, None, status=psutil.CONN_NONE)]

        # Act
        with patch.object(ports, "net_connections", side_effect=psutil.AccessDenied()), \
             patch.object(ports, "process_iter", return_value=[proc]):
            result = ports.inspect_port(5050)

        # Assert
        proc.net_connections.assert_called_once_with(kind="tcp")
        assert result.running is False

    def test_access_denied_falls_back_to_process_scan(self):
        """Test the per-process scan is used when the system table is denied"""
        # Arrange
        owner = Mock(pid=40)
        owner.net_connections.return_value = [conn(5050, None)]
        other = Mock(pid=41)
        other.net_connections.return_value = [conn(6000, None)]
        hidden = Mock(pid=42)
        hidden.net_connections.side_effect = psutil.AccessDenied(pid=42)

        # Act
        with patch.object(ports, "net_connections", side_effect=psutil.AccessDenied()), \
             patch.object(ports, "process_iter", return_value=[hidden, owner, other]):
            result = ports.inspect_port(5050)

        # Assert
        assert result.pids == (40,)

    def test_os_error_raises_probe_failure(self):
        """Test a failing OS query surfaces as ProbeFailure"""
        with patch.object(ports, "net_connections", side_effect=OSError("boom")):
            with pytest.raises(ProbeFailure) as exc_info:
                ports.inspect_port(5050)

        assert exc_info.value.port == 5050
        assert "boom" in str(exc_info.value)

    @pytest.mark.parametrize("port", [0, -5, 70000, "5050", True])
    def test_invalid_port_rejected(self, port):
        """Test ports outside 1-65535 are rejected before probing"""
        with pytest.raises(ValueError):
            ports.inspect_port(port)

    def test_inspect_ports_preserves_order(self):
        """Test inspect_ports probes each port in order"""
        table = [conn(5051, 50)]

        with patch.object(ports, "net_connections", return_value=table):
            results = ports.inspect_ports([5050, 5051])

        assert [r.port for r in results] == [5050, 5051]
        assert [r.running for r in results] == [False, True]
