"""
Court allocator — binds queued teams to free courts and runs the court timer.

Court:  available -> in-use -> available
Team:   queued -> in-game -> completed   (moves with its court)

The timer never stores accumulated time while running. Pausing records the
elapsed ms; resuming rebuilds a virtual start (now - paused_time) so that
now - timer_start stays the cumulative play time across any number of pauses.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from models import (
    CommandError,
    Court,
    CourtStatus,
    PlayerState,
    Reason,
    SessionConfig,
    SessionState,
    Team,
    TeamState,
)

logger = logging.getLogger(__name__)


def _pick_court(state: SessionState, court_id: Optional[str]) -> Court:
    if court_id is not None:
        court = state.court(court_id)
        if court.status != CourtStatus.AVAILABLE:
            raise CommandError(Reason.COURT_IN_USE, f"{court.name} is in use")
        return court
    for court in state.courts:
        if court.status == CourtStatus.AVAILABLE:
            return court
    raise CommandError(Reason.NO_COURT_AVAILABLE, "every court is in use")


def start_game(state: SessionState, team_id: str, now: int, court_id: Optional[str] = None) -> Tuple[Team, Court]:
    team = state.team(team_id)
    if team.state != TeamState.QUEUED:
        raise CommandError(Reason.TEAM_NOT_QUEUED, f"{team.name} is {team.state.value}")
    members = [state.players[pid] for pid in team.player_ids if pid in state.players]
    if len(members) != state.config.team_size:
        raise CommandError(
            Reason.TEAM_INCOMPLETE,
            f"{team.name} has {len(members)}/{state.config.team_size} players",
        )
    court = _pick_court(state, court_id)

    team.state = TeamState.IN_GAME
    team.court_id = court.id
    team.started_at = now
    court.status = CourtStatus.IN_USE
    court.team_id = team.id
    court.timer_start = now
    court.is_paused = False
    court.paused_time = None
    for p in members:
        p.state = PlayerState.PLAYING
    logger.debug("%s started on %s", team.name, court.name)
    return team, court


def _in_use(state: SessionState, court_id: str) -> Court:
    court = state.court(court_id)
    if court.status != CourtStatus.IN_USE or court.team_id is None:
        raise CommandError(Reason.COURT_NOT_IN_USE, f"{court.name} has no game running")
    return court


def end_game(state: SessionState, court_id: str, now: int) -> Tuple[Team, Court]:
    court = _in_use(state, court_id)
    team = state.team(court.team_id)

    team.state = TeamState.COMPLETED
    team.ended_at = now
    court.release()
    members = [state.players[pid] for pid in team.player_ids if pid in state.players]
    for p in members:
        p.state = PlayerState.WAITING
        p.game_count += 1
        p.last_game_end_at = now
        for other in members:
            if other.id != p.id:
                p.teammate_history[other.id] = p.teammate_history.get(other.id, 0) + 1
    logger.debug("%s finished on %s", team.name, court.name)
    return team, court


def end_all_games(state: SessionState, now: int) -> List[Team]:
    busy = [c.id for c in state.courts if c.status == CourtStatus.IN_USE and c.team_id is not None]
    if not busy:
        raise CommandError(Reason.NO_ACTIVE_GAMES, "no game is running")
    return [end_game(state, cid, now)[0] for cid in busy]


def toggle_timer(state: SessionState, court_id: str, now: int) -> Court:
    court = _in_use(state, court_id)
    if court.is_paused:
        court.timer_start = now - (court.paused_time or 0)
        court.is_paused = False
        court.paused_time = None
    else:
        court.paused_time = now - court.timer_start if court.timer_start is not None else 0
        court.is_paused = True
    return court


# --------------------------------------------------------------------------- #
# Display helpers
# --------------------------------------------------------------------------- #


def elapsed_ms(court: Court, now: int) -> int:
    if court.status != CourtStatus.IN_USE:
        return 0
    if court.is_paused:
        return court.paused_time or 0
    if court.timer_start is None:
        return 0
    return max(0, now - court.timer_start)


def remaining_ms(court: Court, config: SessionConfig, now: int) -> int:
    """Countdown against the configured game duration; negative once overtime."""
    return config.game_duration_min * 60_000 - elapsed_ms(court, now)


def fmt_clock(ms: int) -> str:
    sign = "-" if ms < 0 else ""
    secs = abs(ms) // 1000
    return f"{sign}{secs // 60:02d}:{secs % 60:02d}"
