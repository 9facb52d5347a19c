"""
Per-site log retention.

Every site gets a capped in-memory sequence of log entries (oldest evicted
first) that the API reads from, mirrored to an append-only file under the
logs directory. File writes happen on a background thread so that callers
never wait on disk; the file keeps every entry while the in-memory view only
keeps the most recent ones.
"""

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class Channel(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


@dataclass(frozen=True)
class LogEntry:
    """A single line of site output or a supervisor event."""

    timestamp: datetime
    channel: Channel
    message: str

    def format_line(self) -> str:
        return f"[{self.timestamp.isoformat()}] [{self.channel.value.upper()}] {self.message}"

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "channel": self.channel.value,
            "message": self.message,
        }


@dataclass
class _SiteLog:
    entries: deque
    total: int = 0


class LogStore:
    """Capped in-memory logs per site with a durable file mirror."""

    def __init__(self, logs_dir: Path, capacity: int = 1000):
        self.logs_dir = Path(logs_dir)
        self.capacity = capacity
        self._logs: dict[str, _SiteLog] = {}
        self._lock = threading.Lock()
        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._writer = threading.Thread(target=self._write_loop, name="hostly-log-writer", daemon=True)
        self._writer.start()

    def log_path(self, site: str) -> Path:
        return self.logs_dir / f"{site}.log"

    def append(self, site: str, channel: Channel | str, message) -> LogEntry:
        """Record a log entry for a site and queue it for the log file."""
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            channel=Channel(channel),
            message=str(message).strip(),
        )

        with self._lock:
            site_log = self._logs.get(site)
            if site_log is None:
                site_log = _SiteLog(entries=deque(maxlen=self.capacity))
                self._logs[site] = site_log
            site_log.entries.append(entry)
            site_log.total += 1
            closed = self._closed
            if not closed:
                self._queue.put((site, entry.format_line()))

        if closed:
            self._write_line(site, entry.format_line())
        return entry

    def read(self, site: str, n: int = 100) -> tuple[list[LogEntry], int]:
        """Return the most recent n entries and the total recorded this run."""
        with self._lock:
            site_log = self._logs.get(site)
            if site_log is None:
                return [], 0
            entries = list(site_log.entries)
            total = site_log.total

        if n <= 0:
            return [], total
        return entries[-n:], total

    def flush(self):
        """Block until every queued line has been written."""
        self._queue.join()

    def clear(self, site: str):
        """Drop a site's logs, in memory and on disk."""
        self.flush()
        with self._lock:
            self._logs.pop(site, None)

        try:
            self.log_path(site).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to remove log file for {site}: {e}")

    def close(self):
        """Flush pending writes and stop the writer thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(None)
        self.flush()
        self._writer.join(timeout=5)

    def _write_loop(self):
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                site, line = item
                self._write_line(site, line)
            finally:
                self._queue.task_done()

    def _write_line(self, site: str, line: str):
        try:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_path(site), "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error(f"Error writing log file for {site}: {e}")
