"""Shared fixtures: a hand-driven clock and a small session."""

import pytest

from models import SessionConfig
from scheduler import SessionScheduler

T0 = 1_700_000_000_000


class FakeClock:
    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sched(clock):
    """Two courts, teams of four."""
    return SessionScheduler(SessionConfig.with_courts(2, team_size=4, game_duration_min=15), clock=clock)


def add_players(sched, *names):
    ids = []
    for name in names:
        res = sched.add_player(name)
        assert res.ok, res.message
        ids.append(res.value.id)
    return ids


@pytest.fixture
def eight(sched):
    """Eight waiting players, registration order A..H."""
    return add_players(sched, *"ABCDEFGH")
