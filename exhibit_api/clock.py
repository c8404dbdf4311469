"""
clock.py — Time source for expiry and rate-limit windows
========================================================
Credential expiry compares against wall-clock UTC time; rate-limit
windows use a monotonic counter so they are immune to clock jumps.
Both come from a ``Clock`` so tests can move time forward explicitly.
"""
from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Optional


class Clock:
    """Real time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class FrozenClock(Clock):
    """Manually advanced clock. Both readings move together."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._mono = 0.0
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def monotonic(self) -> float:
        with self._lock:
            return self._mono

    def advance(self, seconds: float = 0.0, *, minutes: float = 0.0) -> None:
        delta = seconds + minutes * 60
        with self._lock:
            self._now += timedelta(seconds=delta)
            self._mono += delta


_clock: Clock = Clock()


def get_clock() -> Clock:
    return _clock


def set_clock(clock: Clock) -> Clock:
    """Swap the process clock; returns the previous one so callers can restore it."""
    global _clock
    previous, _clock = _clock, clock
    return previous


def utcnow() -> datetime:
    return _clock.now()


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
