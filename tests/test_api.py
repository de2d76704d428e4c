"""
Integration tests for the HTTP API

Tests the dashboard endpoints through Starlette's TestClient.
"""

import pytest
from starlette.testclient import TestClient

from deploymint.web.setup import create_app

from conftest import IDENTITY


@pytest.fixture
def client(supervisor, tmp_path) -> TestClient:
    """
    API test client bound to the fake-backed supervisor

    Returns:
        TestClient for API testing
    """
    return TestClient(create_app(supervisor=supervisor, public_dir=tmp_path / "no-dashboard"))


@pytest.fixture
def saved(client, server_dir):
    response = client.post("/api/server-config", json={
        "url": IDENTITY, "directory": str(server_dir), "command": "node server.js", "port": 5050,
    })
    assert response.status_code == 200
    return response.json()


class TestServerConfigEndpoints:
    """Tests for /api/server-config and /api/servers"""

    def test_save_returns_normalized_config(self, saved, server_dir):
        """Test saving echoes the stored, normalized config"""
        assert saved["success"] is True
        assert saved["config"] == {"directory": str(server_dir), "command": "node server.js", "ports": [5050], "port": 5050}

    def test_get_config(self, client, saved):
        """Test a saved config can be fetched by url"""
        response = client.get("/api/server-config", params={"url": IDENTITY})

        assert response.status_code == 200
        assert response.json()["found"] is True
        assert response.json()["config"]["ports"] == [5050]

    def test_get_unknown_config(self, client):
        """Test an unknown url reports found=False"""
        response = client.get("/api/server-config", params={"url": "http://nowhere"})

        assert response.status_code == 200
        assert response.json()["found"] is False

    def test_get_requires_url(self, client):
        """Test the url query parameter is required"""
        response = client.get("/api/server-config")

        assert response.status_code == 400
        assert response.json()["error"] == "URL is required"

    def test_save_missing_fields(self, client):
        """Test saving without directory or command is rejected"""
        response = client.post("/api/server-config", json={"url": IDENTITY, "port": 5050})

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_save_without_valid_port(self, client, server_dir):
        """Test saving with no usable port is rejected"""
        response = client.post("/api/server-config", json={
            "url": IDENTITY, "directory": str(server_dir), "command": "run", "port": "abc",
        })

        assert response.status_code == 400
        assert "port" in response.json()["error"]

    @pytest.mark.parametrize("port", [b"1e400", b"-1e400", b"NaN", b"70000"])
    def test_save_with_unusable_port_is_400(self, client, server_dir, port):
        """Test overflowing, NaN or out-of-range ports are a 400, never a 500"""
        body = b'{"url": "' + IDENTITY.encode() + b'", "directory": "' + server_dir.as_posix().encode() + b'", "command": "run", "port": ' + port + b"}"

        response = client.post("/api/server-config", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert "port" in response.json()["error"]

    def test_save_rejects_non_object_body(self, client):
        """Test a JSON array body is rejected"""
        response = client.post("/api/server-config", json=[1, 2])

        assert response.status_code == 400

    def test_list_and_delete(self, client, saved):
        """Test listing shows the server and delete removes it"""
        # Act
        listed = client.get("/api/servers").json()["servers"]
        deleted = client.delete("/api/server-config", params={"url": IDENTITY})
        deleted_again = client.delete("/api/server-config", params={"url": IDENTITY})

        # Assert
        assert [s["url"] for s in listed] == [IDENTITY]
        assert deleted.status_code == 200
        assert deleted_again.status_code == 404


class TestLifecycleEndpoints:
    """Tests for /api/status, /api/start, /api/stop and /api/restart"""

    def test_status_requires_url(self, client):
        """Test status without url is a 400"""
        assert client.get("/api/status").status_code == 400

    def test_status_unconfigured(self, client):
        """Test status of an unknown server"""
        response = client.get("/api/status", params={"url": "http://nowhere"})

        assert response.status_code == 200
        assert response.json()["status"] == "unconfigured"

    def test_start_status_stop_cycle(self, client, saved):
        """Test a full start, status and stop round through the API"""
        # Act
        started = client.post("/api/start", json={"url": IDENTITY})
        status = client.get("/api/status", params={"url": IDENTITY}).json()
        stopped = client.post("/api/stop", json={"url": IDENTITY})
        stopped_again = client.post("/api/stop", json={"url": IDENTITY})

        # Assert
        assert started.status_code == 200
        assert started.json()["success"] is True
        assert started.json()["message"] == "Server starting on port 5050."
        assert started.json()["replacedPorts"] == []
        assert status["status"] == "running"
        assert status["port"] == 5050
        assert status["pid"] == started.json()["pid"]
        assert stopped.json()["success"] is True
        assert stopped.json()["stoppedPorts"] == [{"port": 5050, "pids": [started.json()["pid"]]}]
        assert stopped_again.status_code == 200
        assert stopped_again.json() == {"success": False, "errorKind": "NotRunning", "error": "Server is not running"}

    def test_start_reports_replaced_processes(self, client, saved, port_table):
        """Test replaced occupants are listed in the start response"""
        port_table.bind(5050, 999)

        body = client.post("/api/restart", json={"url": IDENTITY}).json()

        assert body["success"] is True
        assert body["replacedPorts"] == [{"port": 5050, "pids": [999]}]
        assert body["message"].startswith("Server restarted on port 5050.")

    def test_start_unconfigured_is_400(self, client):
        """Test starting an unknown server maps to HTTP 400"""
        response = client.post("/api/start", json={"url": "http://nowhere"})

        assert response.status_code == 400
        assert response.json()["error"] == "Server not configured. Please configure the server first."
        assert response.json()["replacedPorts"] == []

    def test_port_still_bound_is_500(self, client, saved, port_table):
        """Test a port that cannot be freed maps to HTTP 500"""
        port_table.bind(5050, 5)
        port_table.stubborn.add(5)

        response = client.post("/api/start", json={"url": IDENTITY})

        assert response.status_code == 500
        assert response.json()["errorKind"] == "PortStillBound"

    def test_failed_stop_is_200(self, client, saved, port_table):
        """Test a stop whose termination fails answers 200 with success false"""
        port_table.bind(5050, 12)
        port_table.unkillable[12] = "permission denied"

        response = client.post("/api/stop", json={"url": IDENTITY})

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["errorKind"] == "TerminationFailed"
        assert "stoppedPorts" not in response.json()

    @pytest.mark.parametrize("path", ["/api/start", "/api/stop", "/api/restart"])
    def test_lifecycle_requires_url(self, client, path):
        """Test lifecycle endpoints reject bodies without url"""
        response = client.post(path, content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"] == "URL is required"

    def test_records_after_start(self, client, saved):
        """Test launch records list started servers"""
        pid = client.post("/api/start", json={"url": IDENTITY}).json()["pid"]

        records = client.get("/api/records").json()["records"]

        assert [(r["identity"], r["pid"]) for r in records] == [(IDENTITY, pid)]


class TestMiddleware:
    """Tests for response headers"""

    def test_security_headers(self, client):
        """Test security headers are set on API responses"""
        response = client.get("/api/servers")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Cache-Control"] == "no-store"
        assert "default-src 'self'" in response.headers["Content-Security-Policy"]

    def test_dashboard_is_served(self, supervisor, tmp_path):
        """Test the static dashboard is mounted when its directory exists"""
        # Arrange
        public = tmp_path / "public"
        public.mkdir()
        (public / "index.html").write_text("<h1>dashboard</h1>")
        client = TestClient(create_app(supervisor=supervisor, public_dir=public))

        # Act
        response = client.get("/")

        # Assert
        assert response.status_code == 200
        assert "dashboard" in response.text
