#!/usr/bin/env python3
"""
Court Rotation — Scheduler (session coordinator + board renderer)

What's enforced:
- One writer: every command runs under the session lock with a single clock read.
- All-or-nothing: components validate before they mutate; a rejected command
  changes nothing and writes no audit entry.
- Exactly one audit entry per successful command.
- A player sits in at most one queued/in-game team; playing players == members
  of in-game teams; a court hosts at most one team (see invariant_violations).
- The store (if any) is written after the in-memory update. Store errors reach
  the caller untouched and the in-memory session stays as it is.

CLI:
  python3 scheduler.py --state session.json --output-md outputs/board.md
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
import threading
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import courts
import matching
import registry
from audit import AuditEntry, AuditLog, AuditType
from courts import elapsed_ms, fmt_clock, remaining_ms
from models import (
    CommandError,
    CourtStatus,
    PlayerState,
    Reason,
    SessionConfig,
    SessionState,
    TeamState,
    build_courts,
    now_ms,
)
from store import JsonStore

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------- #
# Results
# --------------------------------------------------------------------------- #


@dataclasses.dataclass
class CommandResult:
    ok: bool
    value: Any = None
    reason: Optional[Reason] = None
    message: str = ""
    entry: Optional[AuditEntry] = None

    @classmethod
    def failure(cls, err: CommandError) -> "CommandResult":
        return cls(ok=False, reason=err.reason, message=err.message)


Op = Callable[[int], Tuple[AuditType, Any, Dict[str, Any]]]

# --------------------------------------------------------------------------- #
# Invariants
# --------------------------------------------------------------------------- #


def invariant_violations(state: SessionState) -> List[str]:
    problems: List[str] = []

    seats = Counter(pid for t in state.active_teams() for pid in t.player_ids)
    for pid, n in seats.items():
        if n > 1:
            problems.append(f"player {pid} is in {n} active teams")

    in_game = sum(len(t.player_ids) for t in state.teams.values() if t.state == TeamState.IN_GAME)
    playing = sum(1 for p in state.players.values() if p.state == PlayerState.PLAYING)
    if in_game != playing:
        problems.append(f"{in_game} in-game seats but {playing} playing players")

    hosted = Counter(c.team_id for c in state.courts if c.status == CourtStatus.IN_USE)
    for tid, n in hosted.items():
        if n > 1:
            problems.append(f"team {tid} is on {n} courts")

    for c in state.courts:
        if (c.status == CourtStatus.IN_USE) != (c.team_id is not None):
            problems.append(f"{c.name}: status {c.status.value} with team {c.team_id}")
        if c.is_paused != (c.paused_time is not None):
            problems.append(f"{c.name}: paused={c.is_paused} paused_time={c.paused_time}")
    return problems


# --------------------------------------------------------------------------- #
# Coordinator
# --------------------------------------------------------------------------- #


class SessionScheduler:
    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        store=None,
        clock: Callable[[], int] = now_ms,
        state: Optional[SessionState] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.state = state if state is not None else SessionState.create(config or SessionConfig())
        self.audit = audit if audit is not None else AuditLog()
        self.store = store
        self.clock = clock
        self._lock = threading.RLock()

    @classmethod
    def from_store(cls, store, clock: Callable[[], int] = now_ms) -> "SessionScheduler":
        state, entries = store.load_state()
        return cls(store=store, clock=clock, state=state, audit=AuditLog(entries))

    @property
    def config(self) -> SessionConfig:
        return self.state.config

    def _run(self, op: Op) -> CommandResult:
        with self._lock:
            now = self.clock()
            try:
                kind, value, payload = op(now)
            except CommandError as err:
                logger.info("rejected: %s (%s)", err.message, err.reason.value)
                return CommandResult.failure(err)
            entry = self.audit.append(kind, payload, now)
            if self.store is not None:
                self.store.save(self.state, self.audit.entries())
            return CommandResult(ok=True, value=value, entry=entry)

    # ---------------- players ---------------- #
    def add_player(self, name: str, gender: Optional[str] = None, rank: Optional[str] = None) -> CommandResult:
        def op(now):
            p = registry.add_player(self.state, name, now, gender=gender, rank=rank)
            return AuditType.PLAYER_ADDED, p, {"player_id": p.id, "name": p.name}
        return self._run(op)

    def update_player(self, player_id: str, fields: Dict[str, Any]) -> CommandResult:
        def op(now):
            p = registry.update_player(self.state, player_id, fields)
            changed = {k: getattr(v, "value", v) for k, v in fields.items()}
            return AuditType.PLAYER_UPDATED, p, {"player_id": player_id, "fields": changed, "found": p is not None}
        return self._run(op)

    def set_player_state(self, player_ids: Iterable[str], new_state: Any) -> CommandResult:
        ids = list(player_ids)

        def op(now):
            players = registry.set_player_state(self.state, ids, new_state)
            target = players[0].state.value
            return AuditType.PLAYER_STATE_UPDATED, players, {"player_ids": [p.id for p in players], "state": target}
        return self._run(op)

    def delete_player(self, player_id: str) -> CommandResult:
        def op(now):
            p = registry.delete_player(self.state, player_id)
            return AuditType.PLAYER_DELETED, p, {"player_id": p.id, "name": p.name}
        return self._run(op)

    def delete_waiting_players(self) -> CommandResult:
        def op(now):
            gone = registry.delete_waiting_players(self.state)
            return AuditType.PLAYERS_DELETED, gone, {"player_ids": [p.id for p in gone]}
        return self._run(op)

    def adjust_game_count(self, player_id: str, delta: int) -> CommandResult:
        def op(now):
            p = registry.adjust_game_count(self.state, player_id, delta)
            return AuditType.GAME_COUNT_ADJUSTED, p, {
                "player_id": p.id, "delta": int(delta), "game_count": p.game_count,
            }
        return self._run(op)

    def reset_player_stats(self) -> CommandResult:
        def op(now):
            n = registry.reset_player_stats(self.state)
            return AuditType.PLAYER_STATS_RESET, n, {"players": n}
        return self._run(op)

    # ---------------- teams ---------------- #
    def auto_match(self) -> CommandResult:
        def op(now):
            teams = matching.auto_match(self.state, now)
            payload = {"teams": [{"team_id": t.id, "name": t.name, "player_ids": list(t.player_ids)} for t in teams]}
            return AuditType.TEAMS_MATCHED, teams, payload
        return self._run(op)

    def create_team(self, player_ids: Iterable[str]) -> CommandResult:
        ids = list(player_ids)

        def op(now):
            t = matching.create_team(self.state, ids, now)
            return AuditType.TEAM_CREATED, t, {"team_id": t.id, "name": t.name, "player_ids": list(t.player_ids)}
        return self._run(op)

    def refresh_priority(self) -> CommandResult:
        def op(now):
            promoted = matching.refresh_priority(self.state)
            return AuditType.PRIORITY_REFRESHED, promoted, {"player_ids": [p.id for p in promoted]}
        return self._run(op)

    def delete_team(self, team_id: str) -> CommandResult:
        def op(now):
            t = matching.delete_team(self.state, team_id)
            return AuditType.TEAM_DELETED, t, {"team_id": t.id, "player_ids": list(t.player_ids)}
        return self._run(op)

    def add_to_team(self, team_id: str, player_ids: Iterable[str]) -> CommandResult:
        ids = list(dict.fromkeys(player_ids))

        def op(now):
            t = matching.add_to_team(self.state, team_id, ids)
            return AuditType.TEAM_UPDATED, t, {"team_id": t.id, "added": ids, "player_ids": list(t.player_ids)}
        return self._run(op)

    def swap_waiting_with_queued(self, waiting_id: str, team_id: str, queued_id: str) -> CommandResult:
        def op(now):
            t = matching.swap_waiting_with_queued(self.state, waiting_id, team_id, queued_id)
            return AuditType.PLAYER_SUBSTITUTED, t, {
                "team_id": t.id, "incoming": waiting_id, "outgoing": queued_id,
            }
        return self._run(op)

    def swap_between_teams(
        self, source_team_id: str, source_player_id: str, target_team_id: str, target_player_id: str
    ) -> CommandResult:
        def op(now):
            pair = matching.swap_between_teams(
                self.state, source_team_id, source_player_id, target_team_id, target_player_id
            )
            return AuditType.PLAYERS_SWAPPED, pair, {
                "source_team_id": source_team_id, "source_player_id": source_player_id,
                "target_team_id": target_team_id, "target_player_id": target_player_id,
            }
        return self._run(op)

    def return_to_waiting(self, player_id: str, team_id: str) -> CommandResult:
        def op(now):
            t = matching.return_to_waiting(self.state, player_id, team_id)
            return AuditType.PLAYER_RETURNED, t, {
                "player_id": player_id, "team_id": team_id, "team_dropped": t is None,
            }
        return self._run(op)

    def purge_completed_teams(self) -> CommandResult:
        def op(now):
            done = matching.purge_completed_teams(self.state)
            return AuditType.TEAMS_PURGED, done, {"team_ids": [t.id for t in done]}
        return self._run(op)

    # ---------------- courts ---------------- #
    def start_game(self, team_id: str, court_id: Optional[str] = None) -> CommandResult:
        def op(now):
            t, c = courts.start_game(self.state, team_id, now, court_id)
            return AuditType.GAME_STARTED, (t, c), {"team_id": t.id, "court_id": c.id}
        return self._run(op)

    def end_game(self, court_id: str) -> CommandResult:
        def op(now):
            t, c = courts.end_game(self.state, court_id, now)
            return AuditType.GAME_ENDED, (t, c), {"team_id": t.id, "court_id": c.id, "player_ids": list(t.player_ids)}
        return self._run(op)

    def end_all_games(self) -> CommandResult:
        def op(now):
            ended = courts.end_all_games(self.state, now)
            return AuditType.ALL_GAMES_ENDED, ended, {"team_ids": [t.id for t in ended]}
        return self._run(op)

    def toggle_timer(self, court_id: str) -> CommandResult:
        def op(now):
            c = courts.toggle_timer(self.state, court_id, now)
            if c.is_paused:
                return AuditType.TIMER_PAUSED, c, {"court_id": c.id, "paused_time": c.paused_time}
            return AuditType.TIMER_RESUMED, c, {"court_id": c.id, "timer_start": c.timer_start}
        return self._run(op)

    # ---------------- session ---------------- #
    def reset_session(self) -> CommandResult:
        """Drop every team and free every court. Game counts and history stay."""
        def op(now):
            dropped = len(self.state.teams)
            self.state.teams.clear()
            self.state.courts = build_courts(self.state.config)
            self.state.team_counter = 0
            for p in self.state.players.values():
                if p.state in (PlayerState.QUEUED, PlayerState.PLAYING):
                    p.state = PlayerState.WAITING
            return AuditType.SESSION_RESET, dropped, {"teams_dropped": dropped}
        return self._run(op)

    # ---------------- queries ---------------- #
    def elapsed(self, court_id: str) -> int:
        with self._lock:
            return elapsed_ms(self.state.court(court_id), self.clock())

    def board(self) -> str:
        with self._lock:
            return render_board_md(self.state, self.clock())


# --------------------------------------------------------------------------- #
# Render
# --------------------------------------------------------------------------- #


def _names(state: SessionState, ids: Iterable[str]) -> str:
    return ", ".join(state.players[i].name for i in ids if i in state.players) or "-"


def render_board_md(state: SessionState, now: int) -> str:
    cfg = state.config
    lines: List[str] = []
    lines.append("# Session Board\n\n")
    lines.append(f"Courts: {cfg.court_no} | Team size: {cfg.team_size} | "
                 f"Game: {cfg.game_duration_min} min\n\n")

    lines.append("## Courts\n\n")
    lines.append("| # | Court | Team | Players | Elapsed | Left |\n")
    lines.append("| -:|-------|------|---------|--------:|-----:|\n")
    for i, c in enumerate(state.courts, start=1):
        team = state.teams.get(c.team_id) if c.team_id else None
        if team is None:
            lines.append(f"| {i} | {c.name} | (free) | - | - | - |\n")
            continue
        clock = fmt_clock(elapsed_ms(c, now)) + (" (paused)" if c.is_paused else "")
        lines.append(f"| {i} | {c.name} | {team.name} | {_names(state, team.player_ids)} | "
                     f"{clock} | {fmt_clock(remaining_ms(c, cfg, now))} |\n")
    lines.append("\n")

    queued = state.queued_teams()
    lines.append("## Queue\n\n")
    if queued:
        lines.append("| # | Team | Players |\n")
        lines.append("| -:|------|---------|\n")
        for i, t in enumerate(queued, start=1):
            short = "" if len(t.player_ids) == cfg.team_size else f" ({len(t.player_ids)}/{cfg.team_size})"
            lines.append(f"| {i} | {t.name}{short} | {_names(state, t.player_ids)} |\n")
    else:
        lines.append("(empty)\n")
    lines.append("\n")

    lines.append("## Players\n\n")
    lines.append("| Name | State | Games |\n")
    lines.append("|------|:-----:|------:|\n")
    for p in sorted(state.players.values(), key=matching.fairness_key):
        lines.append(f"| {p.name} | {p.state.value} | {p.game_count} |\n")
    lines.append("\n")
    return "".join(lines)


# --------------------------------------------------------------------------- #
# CLI
# --------------------------------------------------------------------------- #


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Court rotation – render the current session board")
    ap.add_argument("--state", default="session.json", help="session file written by app.py")
    ap.add_argument("--output-md", help="also write the board to this Markdown file")
    ap.add_argument("--debug", action="store_true", help="verbose logging + invariant report")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    store = JsonStore(args.state)
    if not store.exists():
        print(f"[ERROR] {args.state} not found. Run app.py first.")
        return 1
    sched = SessionScheduler.from_store(store)
    md = sched.board()
    print(md)
    if args.output_md:
        os.makedirs(os.path.dirname(os.path.abspath(args.output_md)), exist_ok=True)
        with open(args.output_md, "w", encoding="utf-8") as f:
            f.write(md)
        print(f"Saved: {os.path.abspath(args.output_md)}")
    if args.debug:
        problems = invariant_violations(sched.state)
        print("Invariants: " + ("ok" if not problems else "; ".join(problems)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
