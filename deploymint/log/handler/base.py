import sys
import logging
import threading
from typing import Any, Dict, List, Optional


class BufferedHandler(logging.Handler):
    """
    A logging handler that collects records in memory and ships them in
    batches from a background thread.

    Subclasses implement `_make_entry` (record -> payload) and `_send`
    (list of payloads -> backend). `_send` runs without the buffer lock held.
    """
    thread_name = "LogFlushThread"

    def __init__(self, flush_interval: float, batch_size: int):
        """
        :param flush_interval: Seconds between periodic flushes.
        :param batch_size: Buffer length that triggers an immediate flush.
        """
        super().__init__()
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.log_buffer: List[Dict[str, Any]] = []
        self.buffer_lock = threading.Lock()
        self.stop_event = threading.Event()
        self.flush_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Starts the periodic flush thread."""
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name=self.thread_name)
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush() # Final flush on stop

    def _make_entry(self, record: logging.LogRecord) -> Dict[str, Any]:
        raise NotImplementedError

    def _send(self, entries: List[Dict[str, Any]]) -> None:
        raise NotImplementedError

    def emit(self, record: logging.LogRecord) -> None:
        """
        Converts a log record and adds it to the buffer, flushing when the batch is full.

        :param record: The log record to be processed.
        """
        try:
            entry = self._make_entry(record)
        except Exception:
            self.handleError(record)
            return

        batch = None
        with self.buffer_lock:
            self.log_buffer.append(entry)
            if len(self.log_buffer) >= self.batch_size:
                batch, self.log_buffer = self.log_buffer, []
        if batch:
            self._send_safely(batch)

    def _send_safely(self, batch: List[Dict[str, Any]]) -> None:
        try:
            self._send(batch)
        except Exception as e:
            # Logging here could recurse into this handler.
            print(f"ERROR: {type(self).__name__} dropped {len(batch)} log records: {e}", file=sys.stderr)

    def flush(self) -> None:
        """Ships everything currently buffered."""
        with self.buffer_lock:
            batch, self.log_buffer = self.log_buffer, []
        if batch:
            self._send_safely(batch)

    def close(self) -> None:
        """Stops the flush thread and ships remaining records."""
        self.stop_event.set()
        if self.flush_thread and self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        self.flush()
        super().close()
