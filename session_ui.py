#!/usr/bin/env python3
"""
Session UI
- Loads the session written by app.py and runs it from the terminal.
- Every command goes through the scheduler, so the session file and audit
  trail stay current after each step.
- Players are named (quote names with spaces), teams by number ("3" or
  "Team 3"), courts by position (1 = first court).
"""

from __future__ import annotations

import argparse
import logging
import shlex
import sys
from datetime import datetime
from typing import Callable, Dict, List, Optional

from models import CourtStatus, Player, PlayerState, Team, TeamState
from scheduler import CommandResult, SessionScheduler, invariant_violations
from store import JsonStore

HELP = """\
Commands:
  board                          show courts, queue and players
  add NAME [GENDER] [RANK]       register a player
  del NAME                       remove a player
  rest|wait|prio NAME...         set players resting / waiting / priority
  games NAME DELTA               adjust a player's game count (e.g. -1)
  match                          auto-match eligible players into teams
  team NAME...                   build a team by hand
  start TEAM [COURT]             put a queued team on a court
  end COURT|all                  finish the game on a court (or all)
  pause COURT                    pause / resume a court timer
  swap WAITING TEAM QUEUED       swap a waiting player into a queued team
  swapteams TEAM NAME TEAM NAME  swap two players across queued teams
  back NAME TEAM                 send a queued player back to waiting
  fill TEAM NAME...              add players to open seats of a queued team
  drop TEAM                      delete a queued team
  priority                       promote players with the fewest games
  purge                          forget finished teams
  clearwaiting                   remove every waiting player
  resetstats                     zero all game counts and teammate history
  reset                          clear all teams and free every court
  history NAME                   games played and teammates so far
  log [N]                        last N audit entries (default 10)
  check                          report invariant problems
  quit
"""


# ---------- Reference resolution ----------

def find_player(sched: SessionScheduler, ref: str) -> Player:
    players = list(sched.state.players.values())
    exact = [p for p in players if p.name.lower() == ref.lower()]
    if exact:
        return exact[0]
    prefix = [p for p in players if p.name.lower().startswith(ref.lower())]
    if len(prefix) == 1:
        return prefix[0]
    if not prefix:
        raise LookupError(f"no player called {ref!r}")
    raise LookupError(f"{ref!r} matches {', '.join(p.name for p in prefix)}")


def find_team(sched: SessionScheduler, ref: str) -> Team:
    label = ref if ref.lower().startswith("team") else f"Team {ref}"
    for t in sched.state.teams.values():
        if t.id == ref or t.name.lower() == label.lower():
            return t
    raise LookupError(f"no team {ref!r}")


def find_court_id(sched: SessionScheduler, ref: str) -> str:
    if ref.isdigit() and 1 <= int(ref) <= len(sched.state.courts):
        return sched.state.courts[int(ref) - 1].id
    for c in sched.state.courts:
        if ref in (c.id, c.name):
            return c.id
    raise LookupError(f"no court {ref!r}")


# ---------- Formatting ----------

def describe(res: CommandResult, done: str) -> str:
    if not res.ok:
        return f"[ERROR] {res.message} ({res.reason.value})"
    return done


def _team_line(sched: SessionScheduler, t: Team) -> str:
    names = ", ".join(sched.state.players[i].name for i in t.player_ids if i in sched.state.players)
    return f"  {t.name}: {names}"


# ---------- Commands ----------

def _player_ids(sched: SessionScheduler, refs: List[str]) -> List[str]:
    return [find_player(sched, r).id for r in refs]


def cmd_add(sched, args):
    if not args:
        return "usage: add NAME [GENDER] [RANK]"
    gender = args[1].lower() if len(args) > 1 else None
    rank = args[2].upper() if len(args) > 2 else None
    res = sched.add_player(args[0], gender=gender, rank=rank)
    return describe(res, f"Added {res.value.name}" if res.ok else "")


def cmd_del(sched, args):
    if not args:
        return "usage: del NAME"
    p = find_player(sched, " ".join(args))
    return describe(sched.delete_player(p.id), f"Removed {p.name}")


def _state_cmd(target: PlayerState):
    def run(sched, args):
        if not args:
            return "usage: rest|wait|prio NAME..."
        res = sched.set_player_state(_player_ids(sched, args), target)
        return describe(res, f"{len(args)} player(s) now {target.value}")
    return run


def cmd_games(sched, args):
    if len(args) != 2:
        return "usage: games NAME DELTA"
    p = find_player(sched, args[0])
    res = sched.adjust_game_count(p.id, int(args[1]))
    return describe(res, f"{p.name}: {p.game_count} game(s)")


def cmd_match(sched, args):
    res = sched.auto_match()
    if not res.ok:
        return describe(res, "")
    return "\n".join([f"Matched {len(res.value)} team(s):"] + [_team_line(sched, t) for t in res.value])


def cmd_team(sched, args):
    res = sched.create_team(_player_ids(sched, args))
    return describe(res, _team_line(sched, res.value).strip() if res.ok else "")


def cmd_start(sched, args):
    if not args:
        queued = sched.state.queued_teams()
        if not queued:
            return "[ERROR] no queued team"
        team = queued[0]
    else:
        team = find_team(sched, args[0])
    court_id = find_court_id(sched, args[1]) if len(args) > 1 else None
    res = sched.start_game(team.id, court_id)
    return describe(res, f"{team.name} on {res.value[1].name}" if res.ok else "")


def cmd_end(sched, args):
    if args and args[0] == "all":
        res = sched.end_all_games()
        return describe(res, f"Ended {len(res.value or [])} game(s)")
    if not args:
        return "usage: end COURT|all"
    res = sched.end_game(find_court_id(sched, args[0]))
    return describe(res, f"{res.value[0].name} finished" if res.ok else "")


def cmd_pause(sched, args):
    if not args:
        return "usage: pause COURT"
    res = sched.toggle_timer(find_court_id(sched, args[0]))
    if not res.ok:
        return describe(res, "")
    return f"{res.value.name} {'paused' if res.value.is_paused else 'running'}"


def cmd_swap(sched, args):
    if len(args) != 3:
        return "usage: swap WAITING TEAM QUEUED"
    waiting = find_player(sched, args[0])
    team = find_team(sched, args[1])
    queued = find_player(sched, args[2])
    res = sched.swap_waiting_with_queued(waiting.id, team.id, queued.id)
    return describe(res, f"{waiting.name} in, {queued.name} out of {team.name}")


def cmd_swapteams(sched, args):
    if len(args) != 4:
        return "usage: swapteams TEAM NAME TEAM NAME"
    a, b = find_team(sched, args[0]), find_team(sched, args[2])
    pa, pb = find_player(sched, args[1]), find_player(sched, args[3])
    res = sched.swap_between_teams(a.id, pa.id, b.id, pb.id)
    return describe(res, f"{pa.name} <-> {pb.name}")


def cmd_back(sched, args):
    if len(args) != 2:
        return "usage: back NAME TEAM"
    p, t = find_player(sched, args[0]), find_team(sched, args[1])
    res = sched.return_to_waiting(p.id, t.id)
    return describe(res, f"{p.name} back to waiting")


def cmd_drop(sched, args):
    if not args:
        return "usage: drop TEAM"
    t = find_team(sched, args[0])
    return describe(sched.delete_team(t.id), f"Deleted {t.name}")


def cmd_fill(sched, args):
    if len(args) < 2:
        return "usage: fill TEAM NAME..."
    t = find_team(sched, args[0])
    res = sched.add_to_team(t.id, _player_ids(sched, args[1:]))
    return describe(res, _team_line(sched, t).strip())


def fmt_time(ms: Optional[int]) -> str:
    return "-" if ms is None else datetime.fromtimestamp(ms / 1000).strftime("%H:%M")


def cmd_history(sched, args):
    if not args:
        return "usage: history NAME"
    p = find_player(sched, " ".join(args))
    players = sched.state.players
    # deleted teammates drop out; most frequent partner first
    mates = sorted(
        ((players[pid].name, n) for pid, n in p.teammate_history.items() if pid in players),
        key=lambda item: (-item[1], item[0]),
    )
    lines = [f"{p.name}: {p.game_count} game(s), last game ended {fmt_time(p.last_game_end_at)}"]
    if not mates:
        lines.append("  no teammates yet")
    lines.extend(f"  {name}  x{n}" for name, n in mates)
    return "\n".join(lines)


def cmd_log(sched, args):
    n = int(args[0]) if args else 10
    if n <= 0:
        return "usage: log [N]  (N >= 1)"
    entries = sched.audit.entries()[-n:]
    if not entries:
        return "(no entries)"
    return "\n".join(f"  {e.timestamp} {e.type.value} {e.payload}" for e in entries)


def cmd_check(sched, args):
    problems = invariant_violations(sched.state)
    return "Invariants ok" if not problems else "\n".join(f"[WARN] {p}" for p in problems)


def _simple(method: str, done: str):
    def run(sched, args):
        res = getattr(sched, method)()
        return describe(res, done)
    return run


COMMANDS: Dict[str, Callable[[SessionScheduler, List[str]], str]] = {
    "board": lambda sched, args: sched.board(),
    "add": cmd_add,
    "del": cmd_del,
    "rest": _state_cmd(PlayerState.RESTING),
    "wait": _state_cmd(PlayerState.WAITING),
    "prio": _state_cmd(PlayerState.PRIORITY),
    "games": cmd_games,
    "match": cmd_match,
    "team": cmd_team,
    "start": cmd_start,
    "end": cmd_end,
    "pause": cmd_pause,
    "swap": cmd_swap,
    "swapteams": cmd_swapteams,
    "back": cmd_back,
    "drop": cmd_drop,
    "fill": cmd_fill,
    "history": cmd_history,
    "priority": _simple("refresh_priority", "Priority updated"),
    "purge": _simple("purge_completed_teams", "Finished teams purged"),
    "clearwaiting": _simple("delete_waiting_players", "Waiting players removed"),
    "resetstats": _simple("reset_player_stats", "Game counts reset"),
    "reset": _simple("reset_session", "Session reset: all courts free"),
    "log": cmd_log,
    "check": cmd_check,
    "help": lambda sched, args: HELP,
}


def run_command(sched: SessionScheduler, line: str) -> str:
    try:
        parts = shlex.split(line)
    except ValueError as e:
        return f"[ERROR] {e}"
    if not parts:
        return ""
    handler = COMMANDS.get(parts[0].lower())
    if handler is None:
        return f"[ERROR] unknown command {parts[0]!r} (try 'help')"
    try:
        return handler(sched, parts[1:])
    except (LookupError, ValueError) as e:
        return f"[ERROR] {e}"


def summary_line(sched: SessionScheduler) -> str:
    st = sched.state
    busy = sum(1 for c in st.courts if c.status == CourtStatus.IN_USE)
    queued = sum(1 for t in st.teams.values() if t.state == TeamState.QUEUED)
    waiting = sum(1 for p in st.players.values() if p.state in (PlayerState.WAITING, PlayerState.PRIORITY))
    return f"Courts busy {busy}/{len(st.courts)} | queued teams {queued} | waiting {waiting}"


# ---------- Main Flow ----------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Court rotation – interactive session")
    ap.add_argument("--state", default="session.json", help="session file written by app.py")
    ap.add_argument("--debug", action="store_true", help="verbose logging")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    store = JsonStore(args.state)
    if not store.exists():
        print(f"[ERROR] {args.state} not found. Run app.py first.")
        return 1
    sched = SessionScheduler.from_store(store)

    print("=== Session ===")
    print(summary_line(sched))
    print("Type 'help' for commands.\n")
    while True:
        try:
            line = input("> ")
        except EOFError:
            break
        if line.strip().lower() in ("quit", "exit", "q"):
            break
        if line.strip().lower() == "reset":
            yn = input("Clear every team and free all courts? [y/N]: ").strip().lower()
            if yn not in ("y", "yes"):
                continue
        try:
            out = run_command(sched, line)
        except OSError as e:
            # state is current in memory; the file is behind until the next save
            out = f"[ERROR] could not save {args.state}: {e}"
        if out:
            print(out)

    print("\nSession saved. Have a great one! 👏")
    return 0


if __name__ == "__main__":
    sys.exit(main())
