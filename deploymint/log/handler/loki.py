import socket
import logging
import requests
from typing import Any, Dict, List, Optional
from deploymint.local import app_globals
from deploymint.log.handler.base import BufferedHandler


class LokiHandler(BufferedHandler):
    """
    Ships log records to a Grafana Loki instance through its push API.
    """
    thread_name = "LokiFlushThread"

    def __init__(self, url: str, org_id: Optional[str] = None, session: Optional[requests.Session] = None):
        """
        Initializes the Loki handler.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param session: Optional requests session, mainly for tests.
        """
        super().__init__(
            flush_interval=app_globals.LOG_BUFFER_FLUSH_INTERVAL,
            batch_size=app_globals.LOKI_BATCH_SIZE,
        )
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.session = session or requests.Session()
        self.hostname = socket.gethostname() or "unknown-host"
        self.start()

    def _make_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            "stream": {
                "job": "deploymint",
                "level": record.levelname.lower(),
                "hostname": self.hostname,
                "logger": record.name,
            },
            "values": [[str(int(record.created * 1e9)), self.format(record)]],
        }

    def _send(self, entries: List[Dict[str, Any]]) -> None:
        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id

        response = self.session.post(self.url, json={"streams": entries}, headers=headers, timeout=5)
        # 204 No Content is the success status for Loki push
        if response.status_code != 204:
            raise requests.HTTPError(
                f"Loki returned non-204 status: {response.status_code} - {response.text}",
                response=response,
            )
