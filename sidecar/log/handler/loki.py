import os
import sys
import socket
import logging
import requests
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional


class LokiHandler(logging.Handler):
    """
    A custom logging handler that sends logs to a Grafana Loki instance
    in batches using a background thread.
    """
    def __init__(self, url: str, org_id: Optional[str] = None, job: str = "worker-sidecar",
                 flush_interval: float = 10, batch_size: int = 200):
        """
        Initializes the Loki handler.

        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param job: The value of the 'job' stream label.
        :param flush_interval: Seconds between background flushes.
        :param batch_size: Flush as soon as this many records are buffered.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.job = job
        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.send_lock = threading.Lock()
        self.flush_interval = flush_interval
        self.batch_size = batch_size
        self.hostname = os.getenv('HOSTNAME') or socket.gethostname()

        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True)
        self.flush_thread.name = "LokiFlushThread"
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        """
        Periodically flushes the log buffer. This runs in a background thread.
        The final flush is called when the handler is closed.
        """
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        """
        Formats a log record and adds it to the internal buffer.
        If the buffer reaches the batch size, it triggers a flush.

        :param record: The log record to be processed.
        """
        try:
            # Relayed worker output is already a full line.
            if record.name.startswith('proc.'):
                msg = record.getMessage()
                logger_name = record.name.split('.')[-1]
            else:
                msg = self.format(record)
                logger_name = record.name

            log_entry = {
                "stream": {
                    "job": self.job,
                    "level": record.levelname.lower(),
                    "hostname": self.hostname,
                    "logger": logger_name,
                },
                "values": [
                    [str(int(record.created * 1e9)), msg]
                ]
            }
            with self.buffer_lock:
                self.log_buffer.append(log_entry)
                should_flush = len(self.log_buffer) >= self.batch_size
            if should_flush:
                self.flush()
        except Exception:
            self.handleError(record)

    def _drain(self) -> List[Dict[str, Any]]:
        """Takes every buffered entry out of the buffer."""
        with self.buffer_lock:
            entries = list(self.log_buffer)
            self.log_buffer.clear()
        return entries

    def flush(self) -> None:
        """
        Sends the buffered logs to Loki. The network call happens outside the
        buffer lock so emitting threads are never blocked by it.
        """
        with self.send_lock:
            logs_to_send = self._drain()
            if not logs_to_send:
                return
            headers = {'Content-Type': 'application/json'}
            if self.org_id:
                headers['X-Scope-OrgID'] = self.org_id
            try:
                response = requests.post(self.url, json={"streams": logs_to_send}, headers=headers, timeout=5)
                # 204 No Content is the success status for Loki push
                if response.status_code != 204:
                    print(f"ERROR: Loki returned non-204 status: {response.status_code} - {response.text}", file=sys.stderr)
            except requests.RequestException as e:
                print(f"CRITICAL: Failed to send {len(logs_to_send)} logs to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        """
        Shuts down the handler, ensuring all buffered logs are flushed and the thread is joined.
        """
        self.stop_event.set()
        if self.flush_thread.is_alive() and self.flush_thread is not threading.current_thread():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
