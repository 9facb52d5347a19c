"""
Port allocation for started sites.

Ports are handed out from a counter seeded just above the control port and
are never reused while the service runs. The counter stops at the top of the
TCP port range; a long-lived host that starts more than that many sites has
to be restarted.
"""

import threading

from .errors import PortsExhausted

MAX_PORT = 65535


class PortAllocator:
    """Hands out strictly increasing listen ports."""

    def __init__(self, control_port: int):
        self.control_port = control_port
        self._next = control_port + 1
        self._lock = threading.Lock()

    def next(self) -> int:
        """Return a port greater than every port returned so far."""
        with self._lock:
            if self._next > MAX_PORT:
                raise PortsExhausted(f"No ports left above {self.control_port}")
            port = self._next
            self._next += 1
            return port

    def peek(self) -> int:
        """Return the port the next call to next() would hand out."""
        with self._lock:
            return self._next
