# facevote/clock.py
import time
import threading
from datetime import datetime, timedelta, timezone


class Clock:
    """Time source shared by the liveness timers and the server-side lockout/ledger."""

    def now(self) -> datetime:
        raise NotImplementedError

    def monotonic_ms(self) -> float:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock(Clock):
    """
    Clock that only moves when told to. Both readings advance together so
    liveness and lockout code can be driven from the same test.
    """

    def __init__(self, start: datetime = None):
        self._now = start or datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)
        self._ms = 0.0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def monotonic_ms(self) -> float:
        with self._lock:
            return self._ms

    def advance(self, ms: float = 0, **delta) -> None:
        step = timedelta(milliseconds=ms, **delta)
        with self._lock:
            self._now += step
            self._ms += step.total_seconds() * 1000.0

    def set(self, when: datetime) -> None:
        with self._lock:
            self._ms += (when - self._now).total_seconds() * 1000.0
            self._now = when


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
