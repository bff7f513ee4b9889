"""
Player registry: registration, edits, removal and game-count bookkeeping.

Every function validates first and mutates last, so a CommandError leaves the
state exactly as it was.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from models import (
    FREE_STATES,
    CommandError,
    Player,
    PlayerState,
    Reason,
    SessionState,
    new_id,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("name", "gender", "rank", "state")


def resolve_display_name(state: SessionState, name: str) -> str:
    trimmed = name.strip()
    if not trimmed:
        raise CommandError(Reason.INVALID_NAME, "player name cannot be empty")
    taken = {p.name for p in state.players.values()}
    existing = sum(1 for name in taken if name.startswith(trimmed))
    if not existing:
        return trimmed
    n = existing + 1
    # after deletions the count can land on a suffix still in use
    while f"{trimmed}({n})" in taken:
        n += 1
    return f"{trimmed}({n})"


def add_player(
    state: SessionState,
    name: str,
    now: int,
    gender: Optional[str] = None,
    rank: Optional[str] = None,
) -> Player:
    final_name = resolve_display_name(state, name)
    player = Player(id=new_id(), name=final_name, gender=gender, rank=rank, created_at=now)
    state.players[player.id] = player
    logger.debug("registered player %s as %r", player.id, final_name)
    return player


def _coerce_free_state(state: SessionState, player: Player, value: Any) -> PlayerState:
    try:
        target = PlayerState(value)
    except ValueError:
        raise CommandError(Reason.INVALID_STATE, f"unknown player state {value!r}") from None
    if target not in FREE_STATES:
        raise CommandError(Reason.INVALID_STATE, f"{target.value} is set by the engine, not by edits")
    if player.state not in FREE_STATES or state.active_team_of(player.id) is not None:
        raise CommandError(
            Reason.INVALID_STATE,
            f"{player.name} is {player.state.value}; remove them from their team first",
        )
    return target


def update_player(state: SessionState, player_id: str, fields: Dict[str, Any]) -> Optional[Player]:
    """Merge `fields` into the player. Returns None when the id is unknown (a no-op)."""
    unknown = sorted(set(fields) - set(EDITABLE_FIELDS))
    if unknown:
        raise CommandError(Reason.INVALID_FIELD, f"cannot edit {', '.join(unknown)}")
    player = state.players.get(player_id)
    if player is None:
        logger.debug("update for unknown player %s ignored", player_id)
        return None

    changes = dict(fields)
    if "name" in changes:
        changes["name"] = str(changes["name"]).strip()
        if not changes["name"]:
            raise CommandError(Reason.INVALID_NAME, "player name cannot be empty")
    if "state" in changes:
        changes["state"] = _coerce_free_state(state, player, changes["state"])

    for key, value in changes.items():
        setattr(player, key, value)
    return player


def set_player_state(state: SessionState, player_ids: Iterable[str], new_state: Any) -> List[Player]:
    players = [state.player(pid) for pid in dict.fromkeys(player_ids)]
    if not players:
        raise CommandError(Reason.PLAYER_NOT_FOUND, "no players given")
    targets = [_coerce_free_state(state, p, new_state) for p in players]
    for p, target in zip(players, targets):
        p.state = target
    return players


def delete_player(state: SessionState, player_id: str) -> Player:
    player = state.player(player_id)
    del state.players[player_id]
    # membership only; a short team stays on record but cannot start
    for team in state.teams.values():
        if player_id in team.player_ids:
            team.player_ids = [pid for pid in team.player_ids if pid != player_id]
            logger.debug("removed %s from %s (%d left)", player_id, team.name, len(team.player_ids))
    return player


def delete_waiting_players(state: SessionState) -> List[Player]:
    waiting = [p for p in state.players.values() if p.state == PlayerState.WAITING]
    if not waiting:
        raise CommandError(Reason.NO_WAITING_PLAYERS, "nobody is waiting")
    for p in waiting:
        delete_player(state, p.id)
    return waiting


def adjust_game_count(state: SessionState, player_id: str, delta: int) -> Player:
    player = state.player(player_id)
    player.game_count = max(0, player.game_count + int(delta))
    return player


def reset_player_stats(state: SessionState) -> int:
    for p in state.players.values():
        p.game_count = 0
        p.last_game_end_at = None
        p.teammate_history = {}
    return len(state.players)
