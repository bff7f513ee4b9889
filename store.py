"""
JSON snapshot store for a session.

The file holds one snapshot: settings, players, teams, courts, the team
counter and the audit trail. Every record is validated with pydantic on the
way in, so a hand-edited or truncated file fails loudly instead of producing
a session that breaks the engine's invariants later.

Writes go to a temp file in the same directory and are moved into place with
os.replace, so a crash mid-write keeps the previous snapshot.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import tempfile
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

from audit import AuditEntry, AuditType, missing_keys
from models import (
    Court,
    CourtStatus,
    Player,
    PlayerState,
    SessionConfig,
    SessionState,
    Team,
    TeamState,
    build_courts,
)

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Schemas
# --------------------------------------------------------------------------- #


class PlayerRecord(BaseModel):
    id: str
    name: str = Field(min_length=1)
    state: PlayerState = PlayerState.WAITING
    game_count: int = Field(0, ge=0)
    last_game_end_at: Optional[int] = None
    teammate_history: Dict[str, int] = Field(default_factory=dict)
    gender: Optional[str] = None
    rank: Optional[str] = None
    created_at: Optional[int] = None


class TeamRecord(BaseModel):
    id: str
    name: str
    player_ids: List[str]
    state: TeamState = TeamState.QUEUED
    court_id: Optional[str] = None
    started_at: Optional[int] = None
    ended_at: Optional[int] = None
    created_at: Optional[int] = None


class CourtRecord(BaseModel):
    id: str
    name: str
    status: CourtStatus = CourtStatus.AVAILABLE
    team_id: Optional[str] = None
    timer_start: Optional[int] = None
    is_paused: bool = False
    paused_time: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_binding(self) -> "CourtRecord":
        if (self.status == CourtStatus.IN_USE) != (self.team_id is not None):
            raise ValueError(f"court {self.id}: in-use courts need a team and free courts must not have one")
        if self.is_paused != (self.paused_time is not None):
            raise ValueError(f"court {self.id}: paused courts need paused_time and running ones must not have it")
        return self


class SettingsRecord(BaseModel):
    team_size: int = Field(4, ge=1)
    game_duration_min: int = Field(15, ge=1)
    court_names: List[str] = Field(min_length=1)
    max_queued_teams: Optional[int] = Field(None, ge=1)


class AuditRecord(BaseModel):
    id: str
    type: AuditType
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int

    @model_validator(mode="after")
    def check_payload(self) -> "AuditRecord":
        missing = missing_keys(self.type, self.payload)
        if missing:
            raise ValueError(f"{self.type.value} entry {self.id} lacks {', '.join(missing)}")
        return self


class SnapshotRecord(BaseModel):
    settings: SettingsRecord
    players: List[PlayerRecord] = Field(default_factory=list)
    teams: List[TeamRecord] = Field(default_factory=list)
    courts: List[CourtRecord] = Field(default_factory=list)
    team_counter: int = Field(0, ge=0)
    audit: List[AuditRecord] = Field(default_factory=list)
    saved_at: Optional[str] = None

    @model_validator(mode="after")
    def check_courts(self) -> "SnapshotRecord":
        if self.courts and len(self.courts) != len(self.settings.court_names):
            raise ValueError(
                f"{len(self.courts)} court records for {len(self.settings.court_names)} configured courts"
            )
        team_ids = {t.id for t in self.teams}
        for c in self.courts:
            if c.team_id is not None and c.team_id not in team_ids:
                raise ValueError(f"court {c.id} points at unknown team {c.team_id}")
        return self


# --------------------------------------------------------------------------- #
# Conversions
# --------------------------------------------------------------------------- #


def snapshot_of(state: SessionState, audit_entries: Iterable[AuditEntry] = ()) -> SnapshotRecord:
    return SnapshotRecord(
        settings=SettingsRecord(**dataclasses.asdict(state.config)),
        players=[PlayerRecord(**dataclasses.asdict(p)) for p in state.players.values()],
        teams=[TeamRecord(**dataclasses.asdict(t)) for t in state.teams.values()],
        courts=[CourtRecord(**dataclasses.asdict(c)) for c in state.courts],
        team_counter=state.team_counter,
        audit=[AuditRecord(**dataclasses.asdict(e)) for e in audit_entries],
        saved_at=datetime.now().isoformat(timespec="seconds"),
    )


def config_of(settings: SettingsRecord) -> SessionConfig:
    return SessionConfig(**settings.model_dump())


def state_of(snap: SnapshotRecord) -> SessionState:
    config = config_of(snap.settings)
    courts = [Court(**c.model_dump()) for c in snap.courts] or build_courts(config)
    return SessionState(
        config=config,
        players={p.id: Player(**p.model_dump()) for p in snap.players},
        teams={t.id: Team(**t.model_dump()) for t in snap.teams},
        courts=courts,
        team_counter=snap.team_counter,
    )


def audit_of(snap: SnapshotRecord) -> List[AuditEntry]:
    return [AuditEntry(**a.model_dump()) for a in snap.audit]


# --------------------------------------------------------------------------- #
# Store
# --------------------------------------------------------------------------- #


class JsonStore:
    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def read_snapshot(self) -> SnapshotRecord:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return SnapshotRecord.model_validate(data)

    def load_all(self) -> Tuple[List[Player], List[Team], List[Court], SessionConfig]:
        state = state_of(self.read_snapshot())
        return list(state.players.values()), list(state.teams.values()), state.courts, state.config

    def load_state(self) -> Tuple[SessionState, List[AuditEntry]]:
        snap = self.read_snapshot()
        return state_of(snap), audit_of(snap)

    def save(self, state: SessionState, audit_entries: Iterable[AuditEntry] = ()) -> None:
        data = snapshot_of(state, audit_entries).model_dump(mode="json")
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".session_", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        logger.debug("saved %d players / %d teams to %s", len(state.players), len(state.teams), self.path)
