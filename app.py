#!/usr/bin/env python3
"""
Court Rotation – Session Builder

Creates a fresh session file (default: session.json) from your inputs:
- number of courts, team size, game length
- the players present tonight (typed in, or read from a roster file)

An existing session file is only replaced after you confirm (or with --force),
since it holds tonight's game counts.

Roster file format: one player per line, optionally "name, gender, rank".
Blank lines and lines starting with '#' are skipped.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from models import SessionConfig
from scheduler import SessionScheduler
from store import JsonStore

RosterEntry = Tuple[str, Optional[str], Optional[str]]

COURT_RANGE = (1, 50)
TEAM_SIZE_RANGE = (1, 12)
DURATION_RANGE = (1, 120)


# ---------------------- Roster helpers ----------------------

def parse_roster_line(line: str) -> Optional[RosterEntry]:
    raw = line.strip()
    if not raw or raw.startswith("#"):
        return None
    cells = [c.strip() for c in raw.split(",")]
    name = cells[0]
    gender = cells[1].lower() if len(cells) > 1 and cells[1] else None
    rank = cells[2].upper() if len(cells) > 2 and cells[2] else None
    return (name, gender, rank) if name else None


def read_roster(path: Path) -> List[RosterEntry]:
    with path.open("r", encoding="utf-8") as f:
        entries = [parse_roster_line(line) for line in f]
    return [e for e in entries if e is not None]


def build_session(
    court_no: int,
    team_size: int,
    game_duration_min: int,
    roster: List[RosterEntry],
    store: Optional[JsonStore] = None,
) -> SessionScheduler:
    config = SessionConfig.with_courts(court_no, team_size=team_size, game_duration_min=game_duration_min)
    sched = SessionScheduler(config)
    for name, gender, rank in roster:
        res = sched.add_player(name, gender=gender, rank=rank)
        if not res.ok:
            print(f"  Skipped {name!r}: {res.message}")
    if store is not None:
        # attach after the roster so the file is written once
        store.save(sched.state, sched.audit.entries())
        sched.store = store
    return sched


# ---------------------- Interactive input ----------------------

def prompt_int(prompt: str, min_val: int, max_val: int | None = None, default: int | None = None) -> int:
    while True:
        raw = input(f"{prompt}{f' [{default}]' if default is not None else ''}: ").strip()
        if raw == "" and default is not None:
            return default
        if not re.fullmatch(r"\d+", raw):
            print("  Please enter an integer.")
            continue
        val = int(raw)
        if val < min_val or (max_val is not None and val > max_val):
            print(f"  Please enter a value between {min_val} and {max_val or '∞'}.")
            continue
        return val


def _flag_or_prompt(value: Optional[int], prompt: str, bounds: Tuple[int, int], default: int) -> int:
    return value if value is not None else prompt_int(prompt, *bounds, default=default)


def collect_roster() -> List[RosterEntry]:
    roster: List[RosterEntry] = []
    print("\n=== Enter players (blank line to finish) ===")
    print("  Format: name[, gender[, rank]]")
    while True:
        raw = input(f"Player {len(roster) + 1}: ")
        if raw.strip() == "":
            break
        entry = parse_roster_line(raw)
        if entry is None:
            print("  Cannot be empty.")
            continue
        roster.append(entry)
    return roster


def confirm_overwrite(path: str) -> bool:
    yn = input(f"{path} already exists. Replace it and lose tonight's counts? [y/N]: ").strip().lower()
    return yn in ("y", "yes")


# ---------------------- CLI ----------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Court rotation – session builder")
    ap.add_argument("--state", default="session.json", help="session file to create")
    ap.add_argument("--roster", help="roster file, one player per line (skips typing names)")
    ap.add_argument("--courts", type=int, help="number of courts booked")
    ap.add_argument("--team-size", type=int, help="players per team")
    ap.add_argument("--duration", type=int, help="minutes per game (for the countdown)")
    ap.add_argument("--force", action="store_true", help="replace an existing session file without asking")
    ap.add_argument("--debug", action="store_true", help="verbose logging")
    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)

    for flag, value, (lo, hi) in (
        ("--courts", args.courts, COURT_RANGE),
        ("--team-size", args.team_size, TEAM_SIZE_RANGE),
        ("--duration", args.duration, DURATION_RANGE),
    ):
        if value is not None and not lo <= value <= hi:
            print(f"[ERROR] {flag} must be between {lo} and {hi}.")
            return 1

    store = JsonStore(args.state)
    if store.exists() and not args.force and not confirm_overwrite(args.state):
        print("Kept the existing session.")
        return 0

    court_no = _flag_or_prompt(args.courts, "Number of courts booked", COURT_RANGE, 4)
    team_size = _flag_or_prompt(args.team_size, "Players per team", TEAM_SIZE_RANGE, 4)
    duration = _flag_or_prompt(args.duration, "Minutes per game", DURATION_RANGE, 15)

    if args.roster:
        roster_path = Path(args.roster)
        if not roster_path.exists():
            print(f"[ERROR] {args.roster} not found.")
            return 1
        roster = read_roster(roster_path)
    else:
        roster = collect_roster()

    sched = build_session(court_no, team_size, duration, roster, store=store)
    print(f"Saved: {Path(args.state).resolve()} "
          f"({len(sched.state.players)} players, {court_no} courts, teams of {team_size})")
    print("\nNext step: run 'python session_ui.py' to run the session.\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
