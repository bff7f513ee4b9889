"""
Tests for team formation — fairness order, partitioning, manual teams, swaps.
"""

import matching
from audit import AuditType
from conftest import add_players
from models import PlayerState, Reason, SessionConfig, TeamState
from scheduler import SessionScheduler, invariant_violations


def _names(sched, ids):
    return [sched.state.players[i].name for i in ids]


def test_nine_players_make_two_teams_and_one_leftover(sched):
    ids = dict(zip("ABCDEFGHI", add_players(sched, *"ABCDEFGHI")))
    for name in "BE":
        sched.update_player(ids[name], {"state": "priority"})
    for name, games in {"B": 3, "C": 2, "D": 1, "G": 5, "H": 1}.items():
        sched.adjust_game_count(ids[name], games)

    res = sched.auto_match()

    assert res.ok
    teams = res.value
    assert [_names(sched, t.player_ids) for t in teams] == [
        ["E", "B", "A", "F"],
        ["I", "D", "H", "C"],
    ]
    assert [t.name for t in teams] == ["Team 1", "Team 2"]
    assert all(t.state == TeamState.QUEUED for t in teams)
    leftover = sched.state.players[ids["G"]]
    assert leftover.state == PlayerState.WAITING
    assert leftover.game_count == 5
    queued = [p for p in sched.state.players.values() if p.state == PlayerState.QUEUED]
    assert len(queued) == 8


def test_auto_match_writes_one_audit_entry_for_all_teams(sched, eight):
    res = sched.auto_match()

    matched = sched.audit.of_type(AuditType.TEAMS_MATCHED)
    assert len(matched) == 1
    assert matched[0] is res.entry
    assert [t["team_id"] for t in res.entry.payload["teams"]] == [t.id for t in res.value]


def test_not_enough_players_changes_nothing(sched):
    ids = add_players(sched, "A", "B", "C")
    audit_before = len(sched.audit)

    res = sched.auto_match()

    assert not res.ok
    assert res.reason == Reason.NOT_ENOUGH_PLAYERS
    assert sched.state.teams == {}
    assert sched.state.team_counter == 0
    assert all(sched.state.players[i].state == PlayerState.WAITING for i in ids)
    assert len(sched.audit) == audit_before


def test_resting_and_teamed_players_are_not_eligible(sched):
    ids = add_players(sched, *"ABCDEFG")
    sched.auto_match()  # A-D queued
    sched.set_player_state([ids[4]], PlayerState.RESTING)

    eligible = matching.ordered_eligible(sched.state)

    assert _names(sched, [p.id for p in eligible]) == ["F", "G"]


def test_safety_filter_skips_player_already_on_active_team(sched):
    ids = add_players(sched, *"ABCDE")
    team = sched.auto_match().value[0]
    # stale record: state says waiting but the seat is still taken
    sched.state.players[ids[0]].state = PlayerState.WAITING

    eligible = matching.ordered_eligible(sched.state)

    assert ids[0] in team.player_ids
    assert [p.id for p in eligible] == [ids[4]]


def test_priority_tier_beats_lower_game_count(sched):
    ids = add_players(sched, "low", "prio")
    sched.adjust_game_count(ids[1], 7)
    sched.update_player(ids[1], {"state": "priority"})

    order = [p.id for p in matching.ordered_eligible(sched.state)]

    assert order == [ids[1], ids[0]]


def test_never_played_then_longest_rest_first(sched):
    ids = add_players(sched, "recent", "older", "fresh")
    players = sched.state.players
    for pid in ids[:2]:
        players[pid].game_count = 1
    players[ids[0]].last_game_end_at = 2_000
    players[ids[1]].last_game_end_at = 1_000
    players[ids[2]].game_count = 1  # same count, never finished a game here

    order = [p.name for p in matching.ordered_eligible(sched.state)]

    assert order == ["fresh", "older", "recent"]


def test_equal_players_keep_registration_order(sched):
    ids = add_players(sched, *"DCBA")

    assert [p.id for p in matching.ordered_eligible(sched.state)] == ids


def test_teammate_history_does_not_change_the_order(sched):
    ids = add_players(sched, *"ABCDEFGH")
    before = [p.id for p in matching.ordered_eligible(sched.state)]
    sched.state.players[ids[0]].teammate_history = {ids[1]: 9, ids[2]: 9, ids[3]: 9}

    after = [p.id for p in matching.ordered_eligible(sched.state)]

    assert after == before


def test_queue_cap_limits_new_teams(clock):
    cfg = SessionConfig.with_courts(2, team_size=2, max_queued_teams=2)
    sched = SessionScheduler(cfg, clock=clock)
    add_players(sched, *"ABCDEFGH")

    first = sched.auto_match()
    assert len(first.value) == 2

    second = sched.auto_match()
    assert not second.ok
    assert second.reason == Reason.QUEUE_FULL


def test_create_team_by_hand(sched):
    ids = add_players(sched, *"ABCDE")
    sched.set_player_state([ids[4]], PlayerState.RESTING)

    res = sched.create_team([ids[4], ids[0], ids[1], ids[2]])

    assert res.ok
    assert res.value.player_ids == [ids[4], ids[0], ids[1], ids[2]]
    assert sched.state.players[ids[4]].state == PlayerState.QUEUED
    assert sched.state.players[ids[3]].state == PlayerState.WAITING


def test_create_team_rejects_wrong_size_and_busy_players(sched):
    ids = add_players(sched, *"ABCDEFGH")
    assert sched.create_team(ids[:3]).reason == Reason.TEAM_INCOMPLETE
    assert sched.create_team([ids[0]] * 4).reason == Reason.TEAM_INCOMPLETE

    sched.create_team(ids[:4])
    res = sched.create_team([ids[0], ids[4], ids[5], ids[6]])

    assert res.reason == Reason.PLAYER_NOT_ELIGIBLE
    assert all(sched.state.players[i].state == PlayerState.WAITING for i in ids[4:])


def test_refresh_priority_promotes_lowest_count(sched):
    ids = add_players(sched, *"ABCD")
    for pid, games in zip(ids, (2, 1, 1, 3)):
        sched.adjust_game_count(pid, games)

    res = sched.refresh_priority()

    assert res.ok
    assert [p.id for p in res.value] == [ids[1], ids[2]]
    assert sched.state.players[ids[0]].state == PlayerState.WAITING


def test_refresh_priority_ignores_zero_game_sessions(sched):
    add_players(sched, *"ABCD")

    assert sched.refresh_priority().reason == Reason.NO_CHANGE


def test_swap_waiting_with_queued(sched):
    ids = add_players(sched, *"ABCDE")
    team = sched.auto_match().value[0]

    res = sched.swap_waiting_with_queued(ids[4], team.id, ids[1])

    assert res.ok
    assert team.player_ids == [ids[0], ids[4], ids[2], ids[3]]
    assert sched.state.players[ids[4]].state == PlayerState.QUEUED
    assert sched.state.players[ids[1]].state == PlayerState.WAITING
    assert invariant_violations(sched.state) == []


def test_swap_rejects_queued_incoming_player(sched, eight):
    first, second = sched.auto_match().value
    before = (list(first.player_ids), list(second.player_ids))

    res = sched.swap_waiting_with_queued(second.player_ids[0], first.id, first.player_ids[0])

    assert res.reason == Reason.PLAYER_NOT_ELIGIBLE
    assert (first.player_ids, second.player_ids) == before


def test_swap_between_teams(sched, eight):
    first, second = sched.auto_match().value
    a, b = first.player_ids[2], second.player_ids[0]

    res = sched.swap_between_teams(first.id, a, second.id, b)

    assert res.ok
    assert first.player_ids[2] == b
    assert second.player_ids[0] == a
    assert invariant_violations(sched.state) == []


def test_swap_between_teams_validates_both_sides(sched, eight):
    first, second = sched.auto_match().value
    before = (list(first.player_ids), list(second.player_ids))

    same = sched.swap_between_teams(first.id, first.player_ids[0], first.id, first.player_ids[1])
    wrong = sched.swap_between_teams(first.id, first.player_ids[0], second.id, first.player_ids[1])

    assert same.reason == Reason.SAME_TEAM
    assert wrong.reason == Reason.PLAYER_NOT_IN_TEAM
    assert (first.player_ids, second.player_ids) == before


def test_swaps_only_touch_queued_teams(sched, eight):
    first, second = sched.auto_match().value
    sched.start_game(first.id)

    res = sched.swap_between_teams(first.id, first.player_ids[0], second.id, second.player_ids[0])

    assert res.reason == Reason.TEAM_NOT_QUEUED


def test_return_to_waiting_drops_emptied_team(clock):
    sched = SessionScheduler(SessionConfig.with_courts(1, team_size=2), clock=clock)
    ids = add_players(sched, "A", "B")
    team = sched.auto_match().value[0]

    first = sched.return_to_waiting(ids[0], team.id)
    assert first.ok and first.value is team
    assert team.player_ids == [ids[1]]

    last = sched.return_to_waiting(ids[1], team.id)
    assert last.ok and last.value is None
    assert team.id not in sched.state.teams
    assert all(p.state == PlayerState.WAITING for p in sched.state.players.values())


def test_delete_team_frees_members(sched, eight):
    team = sched.auto_match().value[0]

    res = sched.delete_team(team.id)

    assert res.ok
    assert team.id not in sched.state.teams
    assert all(sched.state.players[i].state == PlayerState.WAITING for i in team.player_ids)


def test_delete_team_refuses_in_game_team(sched, eight):
    team = sched.auto_match().value[0]
    sched.start_game(team.id)

    res = sched.delete_team(team.id)

    assert res.reason == Reason.TEAM_NOT_QUEUED
    assert sched.state.teams[team.id].state == TeamState.IN_GAME


def test_purge_completed_teams(sched, eight):
    first, second = sched.auto_match().value
    court = sched.start_game(first.id).value[1]
    sched.end_game(court.id)

    res = sched.purge_completed_teams()

    assert [t.id for t in res.value] == [first.id]
    assert list(sched.state.teams) == [second.id]


def test_short_team_can_be_refilled_and_started(sched):
    ids = add_players(sched, *"ABCDE")
    team = sched.auto_match().value[0]
    sched.delete_player(ids[1])
    assert sched.start_game(team.id).reason == Reason.TEAM_INCOMPLETE

    res = sched.add_to_team(team.id, [ids[4]])

    assert res.ok
    assert team.player_ids == [ids[0], ids[2], ids[3], ids[4]]
    assert res.entry.type == AuditType.TEAM_UPDATED
    assert res.entry.payload["added"] == [ids[4]]
    assert sched.state.players[ids[4]].state == PlayerState.QUEUED
    assert sched.start_game(team.id).ok
    assert invariant_violations(sched.state) == []


def test_add_to_team_checks_seats_and_eligibility(sched):
    ids = add_players(sched, *"ABCDEFG")
    team = sched.auto_match().value[0]
    assert sched.add_to_team(team.id, [ids[4]]).reason == Reason.TEAM_FULL

    sched.delete_player(ids[0])
    sched.set_player_state([ids[5]], PlayerState.RESTING)
    audit_before = len(sched.audit)

    assert sched.add_to_team(team.id, [ids[5]]).reason == Reason.PLAYER_NOT_ELIGIBLE
    assert sched.add_to_team(team.id, [ids[4], ids[6]]).reason == Reason.TEAM_FULL
    assert sched.add_to_team("missing", [ids[4]]).reason == Reason.TEAM_NOT_FOUND
    assert team.player_ids == [ids[1], ids[2], ids[3]]
    assert sched.state.players[ids[4]].state == PlayerState.WAITING
    assert len(sched.audit) == audit_before


def test_add_to_team_refuses_in_game_team(clock):
    sched = SessionScheduler(SessionConfig.with_courts(1, team_size=2), clock=clock)
    ids = add_players(sched, "A", "B", "C")
    team = sched.auto_match().value[0]
    sched.start_game(team.id)

    assert sched.add_to_team(team.id, [ids[2]]).reason == Reason.TEAM_NOT_QUEUED
