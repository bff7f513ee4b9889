"""
Court Rotation — data model

Everything the engine mutates lives in one SessionState aggregate:
- players (ordered by registration), teams (ordered by creation), courts (fixed order)
- SessionConfig: team size, game duration, court names, optional queue cap
- Timestamps are epoch milliseconds, read once per command by the coordinator.

Components raise CommandError(reason, message) when a precondition fails; the
coordinator turns that into a failed CommandResult.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from enum import Enum
from typing import Dict, List, Optional

# --------------------------------------------------------------------------- #
# Enums
# --------------------------------------------------------------------------- #


class PlayerState(str, Enum):
    WAITING = "waiting"
    PRIORITY = "priority"
    RESTING = "resting"
    QUEUED = "queued"
    PLAYING = "playing"


class TeamState(str, Enum):
    QUEUED = "queued"
    IN_GAME = "in-game"
    COMPLETED = "completed"


class CourtStatus(str, Enum):
    AVAILABLE = "available"
    IN_USE = "in-use"


ELIGIBLE_STATES = (PlayerState.WAITING, PlayerState.PRIORITY)
# states a caller may set directly; queued/playing belong to the engine
FREE_STATES = (PlayerState.WAITING, PlayerState.PRIORITY, PlayerState.RESTING)
ACTIVE_TEAM_STATES = (TeamState.QUEUED, TeamState.IN_GAME)


class Reason(str, Enum):
    INVALID_NAME = "invalid_name"
    INVALID_FIELD = "invalid_field"
    INVALID_STATE = "invalid_state"
    PLAYER_NOT_FOUND = "player_not_found"
    TEAM_NOT_FOUND = "team_not_found"
    COURT_NOT_FOUND = "court_not_found"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    QUEUE_FULL = "queue_full"
    TEAM_NOT_QUEUED = "team_not_queued"
    TEAM_INCOMPLETE = "team_incomplete"
    PLAYER_NOT_ELIGIBLE = "player_not_eligible"
    PLAYER_NOT_IN_TEAM = "player_not_in_team"
    SAME_TEAM = "same_team"
    TEAM_FULL = "team_full"
    NO_COURT_AVAILABLE = "no_court_available"
    COURT_IN_USE = "court_in_use"
    COURT_NOT_IN_USE = "court_not_in_use"
    NO_ACTIVE_GAMES = "no_active_games"
    NO_WAITING_PLAYERS = "no_waiting_players"
    NO_CHANGE = "no_change"


class CommandError(Exception):
    """A command's precondition failed; nothing was mutated."""

    def __init__(self, reason: Reason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason
        self.message = message or reason.value


# --------------------------------------------------------------------------- #
# Records
# --------------------------------------------------------------------------- #


def now_ms() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return uuid.uuid4().hex


@dataclasses.dataclass
class Player:
    id: str
    name: str
    state: PlayerState = PlayerState.WAITING
    game_count: int = 0
    last_game_end_at: Optional[int] = None
    teammate_history: Dict[str, int] = dataclasses.field(default_factory=dict)
    gender: Optional[str] = None
    rank: Optional[str] = None
    created_at: Optional[int] = None


@dataclasses.dataclass
class Team:
    id: str
    name: str
    player_ids: List[str]
    state: TeamState = TeamState.QUEUED
    court_id: Optional[str] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    created_at: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_TEAM_STATES


@dataclasses.dataclass
class Court:
    id: str
    name: str
    status: CourtStatus = CourtStatus.AVAILABLE
    team_id: Optional[str] = None
    timer_start: Optional[int] = None
    is_paused: bool = False
    paused_time: Optional[int] = None  # ms elapsed at the moment of pause

    def release(self) -> None:
        self.status = CourtStatus.AVAILABLE
        self.team_id = None
        self.timer_start = None
        self.is_paused = False
        self.paused_time = None


# --------------------------------------------------------------------------- #
# Session
# --------------------------------------------------------------------------- #


@dataclasses.dataclass
class SessionConfig:
    team_size: int = 4
    game_duration_min: int = 15
    court_names: List[str] = dataclasses.field(
        default_factory=lambda: [f"Court {i}" for i in range(1, 5)]
    )
    max_queued_teams: Optional[int] = None  # None: no cap

    def __post_init__(self):
        if self.team_size < 1:
            raise ValueError("team_size must be a positive integer")
        if not self.court_names:
            raise ValueError("a session needs at least one court")

    @classmethod
    def with_courts(cls, court_no: int, **kwargs) -> "SessionConfig":
        return cls(court_names=[f"Court {i}" for i in range(1, court_no + 1)], **kwargs)

    @property
    def court_no(self) -> int:
        return len(self.court_names)


@dataclasses.dataclass
class SessionState:
    config: SessionConfig
    players: Dict[str, Player] = dataclasses.field(default_factory=dict)
    teams: Dict[str, Team] = dataclasses.field(default_factory=dict)
    courts: List[Court] = dataclasses.field(default_factory=list)
    team_counter: int = 0

    @classmethod
    def create(cls, config: SessionConfig) -> "SessionState":
        return cls(config=config, courts=build_courts(config))

    # ---------------- lookups ---------------- #
    def player(self, player_id: str) -> Player:
        p = self.players.get(player_id)
        if p is None:
            raise CommandError(Reason.PLAYER_NOT_FOUND, f"no player with id {player_id!r}")
        return p

    def team(self, team_id: str) -> Team:
        t = self.teams.get(team_id)
        if t is None:
            raise CommandError(Reason.TEAM_NOT_FOUND, f"no team with id {team_id!r}")
        return t

    def court(self, court_id: str) -> Court:
        for c in self.courts:
            if c.id == court_id:
                return c
        raise CommandError(Reason.COURT_NOT_FOUND, f"no court with id {court_id!r}")

    def active_teams(self) -> List[Team]:
        return [t for t in self.teams.values() if t.is_active]

    def queued_teams(self) -> List[Team]:
        return [t for t in self.teams.values() if t.state == TeamState.QUEUED]

    def active_team_of(self, player_id: str) -> Optional[Team]:
        for t in self.teams.values():
            if t.is_active and player_id in t.player_ids:
                return t
        return None

    def next_team_name(self) -> str:
        self.team_counter += 1
        return f"Team {self.team_counter}"


def build_courts(config: SessionConfig) -> List[Court]:
    return [Court(id=f"court-{i}", name=name) for i, name in enumerate(config.court_names, start=1)]
