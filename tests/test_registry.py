"""
Tests for the player registry — registration, edits, removal, game counts.
"""

from audit import AuditType
from conftest import add_players
from models import PlayerState, Reason, TeamState


def test_add_player_trims_and_starts_waiting(sched, clock):
    res = sched.add_player("  Mina  ")

    assert res.ok
    p = res.value
    assert p.name == "Mina"
    assert p.state == PlayerState.WAITING
    assert p.game_count == 0
    assert p.last_game_end_at is None
    assert p.created_at == clock.now
    assert res.entry.type == AuditType.PLAYER_ADDED


def test_add_player_rejects_blank_name(sched):
    res = sched.add_player("   ")

    assert not res.ok
    assert res.reason == Reason.INVALID_NAME
    assert sched.state.players == {}
    assert len(sched.audit) == 0


def test_duplicate_names_get_numeric_suffix(sched):
    names = [sched.add_player(n).value.name for n in ("Kim", "Kim", " Kim", "Lee")]

    assert names == ["Kim", "Kim(2)", "Kim(3)", "Lee"]


def test_update_player_merges_fields(sched):
    (pid,) = add_players(sched, "Jun")

    res = sched.update_player(pid, {"name": " Junho ", "gender": "m", "rank": "B"})

    assert res.ok
    p = sched.state.players[pid]
    assert (p.name, p.gender, p.rank) == ("Junho", "m", "B")


def test_update_unknown_player_is_noop_but_audited(sched):
    add_players(sched, "Jun")
    before = dict(sched.state.players)

    res = sched.update_player("missing", {"rank": "A"})

    assert res.ok
    assert res.value is None
    assert sched.state.players == before
    assert res.entry.type == AuditType.PLAYER_UPDATED
    assert res.entry.payload["found"] is False


def test_update_player_cannot_touch_engine_states(sched):
    ids = add_players(sched, "A", "B", "C", "D")
    sched.auto_match()

    res = sched.update_player(ids[0], {"state": "waiting"})
    assert not res.ok
    assert res.reason == Reason.INVALID_STATE
    assert sched.state.players[ids[0]].state == PlayerState.QUEUED

    res = sched.update_player(ids[0], {"state": "playing"})
    assert res.reason == Reason.INVALID_STATE


def test_update_player_rejects_unknown_fields(sched):
    (pid,) = add_players(sched, "Jun")

    res = sched.update_player(pid, {"game_count": 99})

    assert not res.ok
    assert res.reason == Reason.INVALID_FIELD
    assert sched.state.players[pid].game_count == 0


def test_set_player_state_rest_and_back(sched):
    ids = add_players(sched, "A", "B", "C")

    res = sched.set_player_state(ids[:2], PlayerState.RESTING)
    assert res.ok
    assert [sched.state.players[i].state for i in ids] == [
        PlayerState.RESTING, PlayerState.RESTING, PlayerState.WAITING,
    ]

    assert sched.set_player_state(ids[:2], "waiting").ok
    assert all(sched.state.players[i].state == PlayerState.WAITING for i in ids)


def test_set_player_state_is_all_or_nothing(sched):
    ids = add_players(sched, "A", "B", "C", "D", "E")
    sched.auto_match()  # A-D queued, E waiting

    res = sched.set_player_state([ids[4], ids[0]], PlayerState.RESTING)

    assert not res.ok
    assert sched.state.players[ids[4]].state == PlayerState.WAITING


def test_delete_player_strips_team_membership_but_keeps_team(sched):
    ids = add_players(sched, "A", "B", "C", "D")
    team = sched.auto_match().value[0]

    res = sched.delete_player(ids[1])

    assert res.ok
    assert ids[1] not in sched.state.players
    assert team.id in sched.state.teams
    assert sched.state.teams[team.id].player_ids == [ids[0], ids[2], ids[3]]
    assert sched.state.teams[team.id].state == TeamState.QUEUED

    start = sched.start_game(team.id)
    assert not start.ok
    assert start.reason == Reason.TEAM_INCOMPLETE


def test_delete_unknown_player_fails_without_audit(sched):
    res = sched.delete_player("nobody")

    assert not res.ok
    assert res.reason == Reason.PLAYER_NOT_FOUND
    assert len(sched.audit) == 0


def test_delete_waiting_players_leaves_others(sched):
    ids = add_players(sched, "A", "B", "C", "D", "E", "F")
    sched.auto_match()  # A-D queued
    sched.set_player_state([ids[5]], PlayerState.RESTING)

    res = sched.delete_waiting_players()

    assert res.ok
    assert [p.id for p in res.value] == [ids[4]]
    assert set(sched.state.players) == set(ids) - {ids[4]}

    again = sched.delete_waiting_players()
    assert again.reason == Reason.NO_WAITING_PLAYERS


def test_adjust_game_count_clamps_at_zero(sched):
    (pid,) = add_players(sched, "Jun")

    assert sched.adjust_game_count(pid, 2).value.game_count == 2
    assert sched.adjust_game_count(pid, -5).value.game_count == 0
    assert sched.adjust_game_count("missing", 1).reason == Reason.PLAYER_NOT_FOUND


def test_reset_player_stats(sched, clock):
    ids = add_players(sched, "A", "B", "C", "D")
    team = sched.auto_match().value[0]
    court = sched.start_game(team.id).value[1]
    clock.advance(60_000)
    sched.end_game(court.id)

    res = sched.reset_player_stats()

    assert res.ok
    for pid in ids:
        p = sched.state.players[pid]
        assert (p.game_count, p.last_game_end_at, p.teammate_history) == (0, None, {})


def test_suffix_skips_names_still_in_use(sched):
    first, _ = add_players(sched, "Al", "Al")
    sched.delete_player(first)

    sched.add_player("Al")

    assert [p.name for p in sched.state.players.values()] == ["Al(2)", "Al(3)"]
