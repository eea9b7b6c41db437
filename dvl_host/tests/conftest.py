"""
Shared fixtures: deterministic clock and simulated device.
"""

from datetime import datetime, timezone

import pytest

from dvl_host.commands import Session
from dvl_host.simulator import SimulatedDvl

WALL_TIME = datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only advances when slept on."""

    def __init__(self, start: float = 1000.0, wall: datetime = WALL_TIME) -> None:
        self.t = start
        self.wall = wall
        self.sleeps = []

    def monotonic(self) -> float:
        return self.t

    def now(self) -> datetime:
        return self.wall

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dvl(clock):
    """Simulated device waiting for login."""
    return SimulatedDvl(clock=clock)


@pytest.fixture
def session(dvl, clock):
    return Session(dvl, clock=clock)


@pytest.fixture
def open_dvl(clock):
    """Simulated device with no login step."""
    return SimulatedDvl(clock=clock, require_login=False)


@pytest.fixture
def open_session(open_dvl, clock):
    return Session(open_dvl, clock=clock)
