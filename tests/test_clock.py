import time
from datetime import datetime, timedelta, timezone

import pytest

from dicekv.clock import (
    MockClock,
    RealClock,
    add_seconds_to_unix_epoch,
    get_current_time,
    set_clock,
)


@pytest.fixture
def restore_clock():
    previous = set_clock(RealClock())
    yield
    set_clock(previous)


def test_real_clock_reports_system_time():
    now = RealClock().now()
    assert now.tzinfo is not None
    assert abs(now.timestamp() - time.time()) < 5


def test_mock_clock_returns_given_time():
    moment = datetime.fromtimestamp(1724167183, timezone.utc)
    assert MockClock(moment).now() == moment


def test_mock_clock_set_time():
    clock = MockClock()
    later = clock.now() + timedelta(seconds=42)
    clock.set_time(later)
    assert clock.now() == later


def test_set_clock_returns_previous(restore_clock):
    first = MockClock()
    second = MockClock()
    set_clock(first)
    assert set_clock(second) is first


def test_get_current_time_uses_installed_clock(restore_clock):
    moment = datetime.fromtimestamp(1724167183, timezone.utc)
    set_clock(MockClock(moment))
    assert get_current_time() == moment


def test_add_seconds_from_epoch(restore_clock):
    set_clock(MockClock())
    assert add_seconds_to_unix_epoch(5) == 5


def test_add_seconds_to_fixed_time(restore_clock):
    set_clock(MockClock(datetime.fromtimestamp(1724167183, timezone.utc)))
    assert add_seconds_to_unix_epoch(0) == 1724167183
    assert add_seconds_to_unix_epoch(60) - add_seconds_to_unix_epoch(0) == 60


def test_add_seconds_ignores_fraction(restore_clock):
    base = datetime.fromtimestamp(1724167183, timezone.utc)
    set_clock(MockClock(base + timedelta(milliseconds=900)))
    assert add_seconds_to_unix_epoch(0) == 1724167183