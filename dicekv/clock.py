"""Replaceable time source used by the server for expiry and access tracking."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol


class _Clock(Protocol):
    def now(self) -> datetime: ...


class RealClock:
    """Clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def _epoch() -> datetime:
    return datetime.fromtimestamp(0, timezone.utc)


@dataclass
class MockClock:
    """Clock that always reports a fixed, settable instant."""

    curr_time: datetime = field(default_factory=_epoch)

    def now(self) -> datetime:
        return self.curr_time

    def set_time(self, t: datetime) -> None:
        self.curr_time = t


@dataclass
class _ClockSlot:
    clock: _Clock


_slot = _ClockSlot(RealClock())


def set_clock(clock: _Clock) -> _Clock:
    """Install ``clock`` as the global time source and return the previous one.

    Raises TypeError if ``clock`` has no callable ``now`` method.
    """
    if not callable(getattr(clock, "now", None)):
        raise TypeError(f"clock must provide a callable now(), got {type(clock).__name__}")
    previous = _slot.clock
    _slot.clock = clock
    return previous


def get_current_time() -> datetime:
    """Return the current time according to the installed clock."""
    return _slot.clock.now()


def add_seconds_to_unix_epoch(seconds: int) -> int:
    """Return the current Unix time in whole seconds plus ``seconds``."""
    return math.floor(get_current_time().timestamp()) + seconds