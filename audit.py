"""Append-only audit log of successful session commands."""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from models import new_id

logger = logging.getLogger(__name__)


class AuditType(str, Enum):
    PLAYER_ADDED = "player_added"
    PLAYER_UPDATED = "player_updated"
    PLAYER_DELETED = "player_deleted"
    PLAYERS_DELETED = "players_deleted"
    PLAYER_STATE_UPDATED = "player_state_updated"
    GAME_COUNT_ADJUSTED = "game_count_adjusted"
    PLAYER_STATS_RESET = "player_stats_reset"
    TEAMS_MATCHED = "teams_matched"
    TEAM_CREATED = "team_created"
    TEAM_DELETED = "team_deleted"
    TEAM_UPDATED = "team_updated"
    TEAMS_PURGED = "teams_purged"
    PLAYER_SUBSTITUTED = "player_substituted"
    PLAYERS_SWAPPED = "players_swapped"
    PLAYER_RETURNED = "player_returned"
    PRIORITY_REFRESHED = "priority_refreshed"
    GAME_STARTED = "game_started"
    GAME_ENDED = "game_ended"
    ALL_GAMES_ENDED = "all_games_ended"
    TIMER_PAUSED = "timer_paused"
    TIMER_RESUMED = "timer_resumed"
    SESSION_RESET = "session_reset"


# keys every payload of a given type carries; checked when a log is loaded
PAYLOAD_KEYS: Dict[AuditType, Tuple[str, ...]] = {
    AuditType.PLAYER_ADDED: ("player_id", "name"),
    AuditType.PLAYER_UPDATED: ("player_id", "fields", "found"),
    AuditType.PLAYER_DELETED: ("player_id", "name"),
    AuditType.PLAYERS_DELETED: ("player_ids",),
    AuditType.PLAYER_STATE_UPDATED: ("player_ids", "state"),
    AuditType.GAME_COUNT_ADJUSTED: ("player_id", "delta", "game_count"),
    AuditType.PLAYER_STATS_RESET: ("players",),
    AuditType.TEAMS_MATCHED: ("teams",),
    AuditType.TEAM_CREATED: ("team_id", "name", "player_ids"),
    AuditType.TEAM_DELETED: ("team_id", "player_ids"),
    AuditType.TEAM_UPDATED: ("team_id", "added", "player_ids"),
    AuditType.TEAMS_PURGED: ("team_ids",),
    AuditType.PLAYER_SUBSTITUTED: ("team_id", "incoming", "outgoing"),
    AuditType.PLAYERS_SWAPPED: ("source_team_id", "source_player_id", "target_team_id", "target_player_id"),
    AuditType.PLAYER_RETURNED: ("player_id", "team_id", "team_dropped"),
    AuditType.PRIORITY_REFRESHED: ("player_ids",),
    AuditType.GAME_STARTED: ("team_id", "court_id"),
    AuditType.GAME_ENDED: ("team_id", "court_id", "player_ids"),
    AuditType.ALL_GAMES_ENDED: ("team_ids",),
    AuditType.TIMER_PAUSED: ("court_id", "paused_time"),
    AuditType.TIMER_RESUMED: ("court_id", "timer_start"),
    AuditType.SESSION_RESET: ("teams_dropped",),
}


def missing_keys(type: AuditType, payload: Dict[str, Any]) -> List[str]:
    return [k for k in PAYLOAD_KEYS.get(type, ()) if k not in payload]


@dataclasses.dataclass(frozen=True)
class AuditEntry:
    id: str
    type: AuditType
    payload: Dict[str, Any]
    timestamp: int


Sink = Callable[[AuditEntry], None]


class AuditLog:
    def __init__(self, entries: Optional[List[AuditEntry]] = None):
        self._entries: List[AuditEntry] = list(entries or [])
        self._sinks: List[Sink] = []

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def append(self, type: AuditType, payload: Dict[str, Any], timestamp: int) -> AuditEntry:
        entry = AuditEntry(id=new_id(), type=AuditType(type), payload=dict(payload), timestamp=timestamp)
        self._entries.append(entry)
        for sink in self._sinks:
            sink(entry)
        logger.debug("audit %s %s", entry.type.value, entry.payload)
        return entry

    def entries(self) -> List[AuditEntry]:
        return list(self._entries)

    def of_type(self, type: AuditType) -> List[AuditEntry]:
        return [e for e in self._entries if e.type == type]

    def __len__(self) -> int:
        return len(self._entries)
