"""
Team formation — auto-match, manual teams and queued-team membership edits.

Fairness order for auto-match (stable):
1. priority players before waiting players
2. fewer games played first
3. longest rest first (never played sorts earliest)

The order then gets cut into consecutive team_size slices; leftovers stay put.
Teammate history is tracked for display only and is not part of the order.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from models import (
    ELIGIBLE_STATES,
    FREE_STATES,
    CommandError,
    Player,
    PlayerState,
    Reason,
    SessionState,
    Team,
    TeamState,
    new_id,
)

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Eligibility & ordering
# --------------------------------------------------------------------------- #


def is_eligible(state: SessionState, player: Player) -> bool:
    # both checks on purpose: a stale state must not pull a teamed player twice
    return player.state in ELIGIBLE_STATES and state.active_team_of(player.id) is None


def fairness_key(player: Player) -> Tuple[int, int, int, int]:
    tier = 0 if player.state == PlayerState.PRIORITY else 1
    rested = player.last_game_end_at
    return (tier, player.game_count, 0 if rested is None else 1, rested or 0)


def ordered_eligible(state: SessionState) -> List[Player]:
    eligible = [p for p in state.players.values() if is_eligible(state, p)]
    return sorted(eligible, key=fairness_key)


def partition(players: List[Player], team_size: int, limit: Optional[int] = None) -> List[List[Player]]:
    count = len(players) // team_size
    if limit is not None:
        count = min(count, limit)
    return [players[i * team_size:(i + 1) * team_size] for i in range(count)]


def _queue_room(state: SessionState) -> Optional[int]:
    cap = state.config.max_queued_teams
    if cap is None:
        return None
    return max(0, cap - len(state.queued_teams()))


def _form_team(state: SessionState, members: List[Player], now: int) -> Team:
    team = Team(
        id=new_id(),
        name=state.next_team_name(),
        player_ids=[p.id for p in members],
        created_at=now,
    )
    state.teams[team.id] = team
    for p in members:
        p.state = PlayerState.QUEUED
    return team


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


def auto_match(state: SessionState, now: int) -> List[Team]:
    team_size = state.config.team_size
    ordered = ordered_eligible(state)
    room = _queue_room(state)
    if room == 0:
        raise CommandError(Reason.QUEUE_FULL, "the queue already holds as many teams as allowed")
    groups = partition(ordered, team_size, room)
    if not groups:
        raise CommandError(
            Reason.NOT_ENOUGH_PLAYERS,
            f"need {team_size} eligible players, have {len(ordered)}",
        )

    teams = [_form_team(state, members, now) for members in groups]
    logger.debug(
        "auto-match formed %d team(s), %d eligible player(s) left over",
        len(teams), len(ordered) - len(teams) * team_size,
    )
    return teams


def create_team(state: SessionState, player_ids: Iterable[str], now: int) -> Team:
    ids = list(player_ids)
    team_size = state.config.team_size
    if len(set(ids)) != len(ids) or len(ids) != team_size:
        raise CommandError(Reason.TEAM_INCOMPLETE, f"pick exactly {team_size} different players")
    members = [state.player(pid) for pid in ids]
    for p in members:
        if p.state not in FREE_STATES or state.active_team_of(p.id) is not None:
            raise CommandError(Reason.PLAYER_NOT_ELIGIBLE, f"{p.name} is already {p.state.value}")
    return _form_team(state, members, now)


def refresh_priority(state: SessionState) -> List[Player]:
    """Promote waiting players stuck at the lowest game count (above zero) to priority."""
    counted = [p.game_count for p in state.players.values() if p.state != PlayerState.RESTING]
    if not counted:
        raise CommandError(Reason.NO_CHANGE, "no active players")
    lowest = min(counted)
    promoted = [
        p for p in state.players.values()
        if p.state == PlayerState.WAITING and p.game_count == lowest and p.game_count > 0
    ]
    if not promoted:
        raise CommandError(Reason.NO_CHANGE, "nobody needs priority")
    for p in promoted:
        p.state = PlayerState.PRIORITY
    return promoted


def _queued_team(state: SessionState, team_id: str) -> Team:
    team = state.team(team_id)
    if team.state != TeamState.QUEUED:
        raise CommandError(Reason.TEAM_NOT_QUEUED, f"{team.name} is {team.state.value}")
    return team


def _slot_of(team: Team, player_id: str) -> int:
    try:
        return team.player_ids.index(player_id)
    except ValueError:
        raise CommandError(Reason.PLAYER_NOT_IN_TEAM, f"{player_id!r} is not in {team.name}") from None


def delete_team(state: SessionState, team_id: str) -> Team:
    team = _queued_team(state, team_id)
    for pid in team.player_ids:
        p = state.players.get(pid)
        if p is not None:
            p.state = PlayerState.WAITING
    del state.teams[team_id]
    return team


def add_to_team(state: SessionState, team_id: str, player_ids: Iterable[str]) -> Team:
    """Fill open seats of a queued team (e.g. one left short by a deleted player)."""
    team = _queued_team(state, team_id)
    ids = list(dict.fromkeys(player_ids))
    if not ids:
        raise CommandError(Reason.PLAYER_NOT_FOUND, "no players given")
    room = state.config.team_size - len(team.player_ids)
    if len(ids) > room:
        raise CommandError(Reason.TEAM_FULL, f"{team.name} has {room} open seat(s), got {len(ids)}")
    incoming = [state.player(pid) for pid in ids]
    for p in incoming:
        if not is_eligible(state, p):
            raise CommandError(Reason.PLAYER_NOT_ELIGIBLE, f"{p.name} is {p.state.value}")

    team.player_ids = team.player_ids + ids
    for p in incoming:
        p.state = PlayerState.QUEUED
    logger.debug("%s refilled to %d/%d", team.name, len(team.player_ids), state.config.team_size)
    return team


def swap_waiting_with_queued(state: SessionState, waiting_id: str, team_id: str, queued_id: str) -> Team:
    team = _queued_team(state, team_id)
    slot = _slot_of(team, queued_id)
    incoming = state.player(waiting_id)
    if not is_eligible(state, incoming):
        raise CommandError(Reason.PLAYER_NOT_ELIGIBLE, f"{incoming.name} is {incoming.state.value}")
    outgoing = state.players.get(queued_id)

    # one write per side; the slot never holds both ids
    team.player_ids[slot] = incoming.id
    incoming.state = PlayerState.QUEUED
    if outgoing is not None:
        outgoing.state = PlayerState.WAITING
    return team


def swap_between_teams(
    state: SessionState,
    source_team_id: str,
    source_player_id: str,
    target_team_id: str,
    target_player_id: str,
) -> Tuple[Team, Team]:
    if source_team_id == target_team_id:
        raise CommandError(Reason.SAME_TEAM, "both players are on the same team")
    source = _queued_team(state, source_team_id)
    target = _queued_team(state, target_team_id)
    i = _slot_of(source, source_player_id)
    j = _slot_of(target, target_player_id)
    source.player_ids[i], target.player_ids[j] = target_player_id, source_player_id
    return source, target


def return_to_waiting(state: SessionState, player_id: str, team_id: str) -> Optional[Team]:
    """Pull a player out of a queued team. Returns the team, or None once it emptied and was dropped."""
    team = _queued_team(state, team_id)
    _slot_of(team, player_id)
    team.player_ids = [pid for pid in team.player_ids if pid != player_id]
    p = state.players.get(player_id)
    if p is not None:
        p.state = PlayerState.WAITING
    if not team.player_ids:
        del state.teams[team_id]
        return None
    return team


def purge_completed_teams(state: SessionState) -> List[Team]:
    done = [t for t in state.teams.values() if t.state == TeamState.COMPLETED]
    for t in done:
        del state.teams[t.id]
    return done
