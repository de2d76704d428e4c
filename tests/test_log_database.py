"""
Unit tests for the log database, log handlers and Excel export

Tests LogDBManager queries, the buffered SQLite handler and export_logs_to_excel.
"""

import time
import logging
import pytest
from openpyxl import load_workbook
from unittest.mock import Mock

from deploymint.local.database import LogDBManager
from deploymint.log.export import escape_formula, export_logs_to_excel
from deploymint.log.handler import LokiHandler, SQLiteHandler


@pytest.fixture
def log_db(tmp_path) -> LogDBManager:
    db = LogDBManager(tmp_path / "logs" / "test.db")
    db.initialize_database()
    return db


def entry(message, level="INFO", ts=None):
    return {
        "timestamp": ts if ts is not None else time.time(), "level": level,
        "module": "tests", "funcName": "fn", "lineno": 1, "message": message,
    }


class TestLogDBManager:
    """Tests for LogDBManager"""

    def test_last_entries_skip_debug_by_default(self, log_db):
        """Test DEBUG records are hidden unless requested"""
        # Arrange
        log_db.insert_log_batch([entry("one", ts=1.0), entry("noise", "DEBUG", ts=2.0), entry("two", ts=3.0)])

        # Act
        visible = log_db.fetch_last_entries(10)
        everything = log_db.fetch_last_entries(10, include_debug=True)

        # Assert
        assert [e.message.split(" - ")[-1] for e in visible] == ["one", "two"]
        assert len(everything) == 3

    def test_listen_for_updates(self, log_db):
        """Test polling returns only newer entries and advances the timestamp"""
        log_db.insert_log_batch([entry("old", ts=10.0), entry("new", ts=20.0)])

        new_entries, last_ts = log_db.listen_for_updates(10.0)

        assert len(new_entries) == 1
        assert new_entries[0].message.endswith("new")
        assert last_ts == 20.0

    def test_launch_events_oldest_first(self, log_db):
        """Test launch events round-trip their ports and detail"""
        # Arrange
        log_db.record_launch_event("a", "start", pid=1, ports=[5050], detail={"replacedPorts": []})
        log_db.record_launch_event("b", "start", pid=2, ports=[6060])
        log_db.record_launch_event("a", "stop", ports=[5050])

        # Act
        for_a = log_db.fetch_launch_events("a")
        latest = log_db.fetch_launch_events(limit=1)

        # Assert
        assert [(e.action, e.pid, e.ports) for e in for_a] == [("start", 1, [5050]), ("stop", None, [5050])]
        assert for_a[0].detail == {"replacedPorts": []}
        assert [e.identity for e in latest] == ["a"]
        assert latest[0].action == "stop"

    def test_record_event_never_raises(self, tmp_path):
        """Test telemetry failures are swallowed when the table is missing"""
        db = LogDBManager(tmp_path / "empty.db")

        db.record_launch_event("a", "start", pid=1)

        assert db.fetch_launch_events() == []


class TestHandlers:
    """Tests for the buffered log handlers"""

    def test_sqlite_handler_persists_on_flush(self, tmp_path):
        """Test buffered records reach the database on flush"""
        # Arrange
        db_path = tmp_path / "handler.db"
        handler = SQLiteHandler(db_path)
        logger = logging.getLogger("tests.sqlite_handler")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)

        try:
            # Act
            logger.info("persist me")
            handler.flush()
        finally:
            logger.removeHandler(handler)
            handler.close()

        # Assert
        entries = LogDBManager(db_path).fetch_last_entries(5)
        assert entries[-1].message.endswith("persist me")

    def test_loki_handler_posts_streams(self):
        """Test the Loki handler pushes batched streams with the tenant header"""
        # Arrange
        session = Mock()
        session.post.return_value = Mock(status_code=204)
        handler = LokiHandler("http://loki:3100/", org_id="tenant", session=session)
        record = logging.LogRecord("tests", logging.INFO, __file__, 1, "hello", None, None)

        try:
            # Act
            handler.emit(record)
            handler.flush()
        finally:
            handler.close()

        # Assert
        url = session.post.call_args.args[0]
        kwargs = session.post.call_args.kwargs
        assert url == "http://loki:3100/loki/api/v1/push"
        assert kwargs["headers"]["X-Scope-OrgID"] == "tenant"
        assert kwargs["json"]["streams"][0]["stream"]["level"] == "info"


class TestExport:
    """Tests for export_logs_to_excel"""

    def test_escape_formula(self):
        """Test values Excel would evaluate are quoted"""
        assert escape_formula("=SUM(A1)") == "'=SUM(A1)"
        assert escape_formula("plain") == "plain"
        assert escape_formula(5) == 5

    def test_export_writes_both_sheets(self, log_db, tmp_path):
        """Test logs and launch events each get a sheet"""
        # Arrange
        log_db.insert_log_batch([entry("hello"), entry("careful", "WARNING")])
        log_db.record_launch_event("svc", "start", pid=9, ports=[5050])
        output = tmp_path / "out" / "export.xlsx"

        # Act
        ok = export_logs_to_excel(log_db.db_path, output)

        # Assert
        assert ok is True
        workbook = load_workbook(output)
        assert workbook.sheetnames == ["Logs", "Launch Events"]
        assert workbook["Logs"].max_row == 3

    def test_export_missing_database(self, tmp_path):
        """Test exporting a missing database reports failure"""
        assert export_logs_to_excel(tmp_path / "missing.db", tmp_path / "out.xlsx") is False
