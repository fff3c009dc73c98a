"""Time sources for root expiry."""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> float:
        ...


class MonotonicClock:
    """Process-local monotonic seconds; use when state never leaves the process."""

    def now(self) -> float:
        return time.monotonic()


class WallClock:
    """Unix time; required when root timestamps are persisted across processes."""

    def now(self) -> float:
        return time.time()


class ManualClock:
    """Deterministic clock for tests and simulations."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, value: float) -> None:
        with self._lock:
            if value < self._now:
                raise ValueError("clock cannot move backwards")
            self._now = float(value)
