"""
In-process connection gauges.
"""
import threading
from typing import Dict


class Gauge:
    """A counter that can go up and down from any thread."""

    def __init__(self, name: str):
        self.name = name
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> int:
        with self._lock:
            self._value += amount
            return self._value

    def dec(self, amount: int = 1) -> int:
        with self._lock:
            self._value -= amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


class HubMetrics:
    """Gauges for the hub's connection lifecycle."""

    def __init__(self):
        self.connections = Gauge("connections")
        self.initialized_connections = Gauge("initialized_connections")
        self.authorized_connections = Gauge("authorized_connections")

    def snapshot(self) -> Dict[str, int]:
        return {
            gauge.name: gauge.value
            for gauge in (
                self.connections,
                self.initialized_connections,
                self.authorized_connections,
            )
        }
