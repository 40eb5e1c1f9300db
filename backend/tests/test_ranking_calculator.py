"""Ranking Calculator: aggregation, points, ordering, and standings invariants."""
import pytest
from sqlmodel import Session

from standings.models.tournament import SCORING_MODE_MATCH, SCORING_MODE_ROUNDS
from standings.services.errors import NotFoundError
from standings.services.match_result_service import (
    create_or_update_manual_result,
    create_or_update_result_from_round,
)
from standings.services.ranking_calculator import (
    ROUND_LOST,
    ROUND_TIED,
    ROUND_WON,
    ResultRow,
    calculate_rankings,
    calculate_rankings_for_scope,
    load_result_snapshot,
    resolve_scoring_mode,
    round_outcome,
)
from tests.factories import make_league, make_match, make_round, make_tournament, map_ids

A, B, C, D = 1, 2, 3, 4
NAMES = {A: "Alpha", B: "Bravo", C: "Charlie", D: "Delta"}

_next_id = iter(range(1, 10_000))


def row(match_id, team1, team2, tickets1, tickets2, winner="auto", map_id=None, week="1"):
    """Result row; winner="auto" derives it from tickets like the reconciler does"""
    result_id = next(_next_id)
    if winner == "auto":
        winner = team1 if tickets1 > tickets2 else team2 if tickets2 > tickets1 else None
    return ResultRow(
        result_id=result_id,
        match_id=match_id,
        map_id=map_id if map_id is not None else result_id,
        team1_id=team1,
        team2_id=team2,
        team1_tickets=tickets1,
        team2_tickets=tickets2,
        winning_team_id=winner,
        week=week,
    )


def by_team(standings):
    return {s.team_id: s for s in standings}


def assert_standings_invariants(standings, rows):
    ranks = [s.rank for s in standings]
    assert ranks == list(range(1, len(standings) + 1))
    for s in standings:
        assert s.victories + s.ties + s.losses == s.matches_played
        assert s.ticket_differential == s.tickets_for - s.tickets_against
        appearances = sum(1 for r in rows if s.team_id in (r.team1_id, r.team2_id))
        assert s.rounds_won + s.rounds_tied + s.rounds_lost == appearances


# ============================================================================
# Scenarios
# ============================================================================


def test_single_map_victory():
    rows = [row(1, A, B, 100, 50)]

    standings = calculate_rankings(rows, NAMES)
    teams = by_team(standings)

    assert [s.team_id for s in standings] == [A, B]
    assert teams[A].matches_played == 1
    assert teams[A].victories == 1
    assert teams[A].rounds_won == 1
    assert (teams[A].tickets_for, teams[A].tickets_against) == (100, 50)
    assert teams[A].points == 3
    assert teams[B].losses == 1
    assert teams[B].points == 0
    assert_standings_invariants(standings, rows)


def test_equal_tickets_is_a_tie_for_both():
    rows = [row(1, A, B, 50, 50)]

    teams = by_team(calculate_rankings(rows, NAMES))

    assert rows[0].winning_team_id is None
    assert teams[A].ties == teams[B].ties == 1
    assert teams[A].rounds_tied == teams[B].rounds_tied == 1
    assert teams[A].points == teams[B].points == 1


def test_replayed_map_counts_both_rounds_but_one_match():
    rows = [row(1, A, B, 100, 50, map_id=10), row(1, A, B, 30, 90, map_id=10), row(1, A, B, 80, 20, map_id=11)]

    standings = calculate_rankings(rows, NAMES)
    teams = by_team(standings)

    assert teams[A].matches_played == teams[B].matches_played == 1
    assert (teams[A].rounds_won, teams[A].rounds_lost) == (2, 1)
    assert (teams[B].rounds_won, teams[B].rounds_lost) == (1, 2)
    assert teams[A].victories == 1
    assert teams[B].losses == 1
    assert_standings_invariants(standings, rows)


def test_split_maps_make_a_match_tie():
    rows = [row(1, A, B, 100, 50), row(1, A, B, 10, 200)]

    teams = by_team(calculate_rankings(rows, NAMES))

    assert teams[A].ties == teams[B].ties == 1
    assert teams[A].points == teams[B].points == 1


def test_explicit_winner_overrides_tickets():
    # Forfeit: Bravo awarded the map despite fewer tickets
    rows = [row(1, A, B, 100, 50, winner=B)]

    teams = by_team(calculate_rankings(rows, NAMES))

    assert teams[B].victories == 1
    assert teams[A].losses == 1
    assert teams[A].tickets_for == 100


def test_round_outcome_without_winner_uses_tickets():
    r = row(1, A, B, 70, 40, winner=None)

    assert round_outcome(r, A) == ROUND_WON
    assert round_outcome(r, B) == ROUND_LOST
    assert round_outcome(row(1, A, B, 5, 5, winner=None), A) == ROUND_TIED


def test_team_orientation_across_results_does_not_matter():
    rows = [row(1, A, B, 100, 50), row(1, B, A, 20, 90)]

    teams = by_team(calculate_rankings(rows, NAMES))

    assert (teams[A].tickets_for, teams[A].tickets_against) == (190, 70)
    assert teams[A].rounds_won == 2


def test_results_without_both_teams_are_ignored():
    rows = [row(1, A, B, 100, 50), row(2, C, None, 100, 0, winner=None)]

    assert not rows[1].has_both_teams

    standings = calculate_rankings(rows, NAMES)

    assert {s.team_id for s in standings} == {A, B}


def test_empty_snapshot_gives_empty_standings():
    assert calculate_rankings([], NAMES) == []


# ============================================================================
# Ordering
# ============================================================================


def test_order_points_then_differential_then_tickets_for():
    rows = [
        row(1, A, C, 100, 90),  # A +10
        row(2, B, D, 200, 150),  # B +50
        row(3, C, D, 300, 100),  # C +200 this match
    ]

    standings = calculate_rankings(rows, NAMES)

    # A, B, C all 3 points; C diff 190, B 50, A 10; D 0 points
    assert [s.team_id for s in standings] == [C, B, A, D]


def test_tickets_for_breaks_equal_differential():
    rows = [row(1, A, C, 100, 50), row(2, B, D, 300, 250)]

    standings = calculate_rankings(rows, NAMES)

    assert [s.team_id for s in standings][:2] == [B, A]


def test_full_tie_broken_by_name_then_id():
    names = {A: "zulu", B: "Echo", C: "echo", D: "Mike"}
    rows = [row(1, A, B, 50, 50), row(2, C, D, 50, 50)]

    standings = calculate_rankings(rows, names)

    assert [s.team_id for s in standings] == [B, C, D, A]
    assert [s.rank for s in standings] == [1, 2, 3, 4]


def test_missing_team_name_falls_back_to_placeholder():
    standings = calculate_rankings([row(1, A, 99, 10, 0)], NAMES)

    assert by_team(standings)[99].team_name == "Team 99"


def test_rounds_scoring_mode_awards_rounds_won():
    rows = [row(1, A, B, 100, 50), row(1, A, B, 10, 90), row(1, A, B, 60, 40)]

    teams = by_team(calculate_rankings(rows, NAMES, scoring_mode=SCORING_MODE_ROUNDS))

    assert teams[A].points == 2
    assert teams[B].points == 1


def test_calculation_is_deterministic_and_order_independent():
    rows = [
        row(1, A, B, 100, 50),
        row(1, A, B, 40, 60),
        row(2, C, D, 70, 70),
        row(3, A, C, 10, 300),
        row(4, B, D, 90, 80),
    ]

    first = calculate_rankings(rows, NAMES)
    second = calculate_rankings(list(reversed(rows)), NAMES)

    assert first == second
    assert repr(first) == repr(calculate_rankings(rows, NAMES))
    assert_standings_invariants(first, rows)


# ============================================================================
# Scoped loading
# ============================================================================


def test_scope_loading_filters_by_week(session: Session):
    tournament, teams = make_league(session)
    week1 = make_match(session, tournament, teams["Alpha"], teams["Bravo"], week="1")
    week2 = make_match(session, tournament, teams["Alpha"], teams["Charlie"], week="2")
    for m, tickets in ((week1, (100, 50)), (week2, (10, 80))):
        create_or_update_manual_result(
            session,
            tournament.id,
            m.id,
            map_ids(m)[0],
            team1_id=m.team1_id,
            team2_id=m.team2_id,
            team1_tickets=tickets[0],
            team2_tickets=tickets[1],
        )

    assert len(load_result_snapshot(session, tournament.id, "1")) == 1
    assert len(load_result_snapshot(session, tournament.id)) == 2

    week1_standings = calculate_rankings_for_scope(session, tournament.id, "1")
    cumulative = by_team(calculate_rankings_for_scope(session, tournament.id))

    assert [s.team_name for s in week1_standings] == ["Alpha", "Bravo"]
    assert cumulative[teams["Alpha"].id].matches_played == 2
    assert cumulative[teams["Alpha"].id].points == 3
    assert cumulative[teams["Charlie"].id].points == 3
    assert calculate_rankings_for_scope(session, tournament.id, "7") == []


def test_round_link_round_trips_into_standings(session: Session):
    tournament, teams = make_league(session)
    match = make_match(session, tournament, teams["Alpha"], teams["Bravo"], week="1")
    make_round(session, "r1", tickets1=100, tickets2=50)
    create_or_update_result_from_round(session, tournament.id, match.id, map_ids(match)[0], "r1")

    teams_by_id = by_team(calculate_rankings_for_scope(session, tournament.id, "1"))

    alpha = teams_by_id[teams["Alpha"].id]
    assert (alpha.tickets_for, alpha.tickets_against, alpha.rounds_won) == (100, 50, 1)


def test_resolve_scoring_mode():
    assert resolve_scoring_mode(None, "CTF") == SCORING_MODE_MATCH
    assert resolve_scoring_mode(None, "ctf") == SCORING_MODE_MATCH
    assert resolve_scoring_mode(None, "Conquest") == SCORING_MODE_ROUNDS
    assert resolve_scoring_mode(None, None) == SCORING_MODE_MATCH
    assert resolve_scoring_mode(SCORING_MODE_MATCH, "Conquest") == SCORING_MODE_MATCH
    assert resolve_scoring_mode(SCORING_MODE_ROUNDS, "CTF") == SCORING_MODE_ROUNDS


def test_game_mode_picks_scoring_when_mode_unset(session: Session):
    points = {}
    for game_mode in ("CTF", "Conquest"):
        tournament, teams = make_league(session, name=game_mode, scoring_mode=None, game_mode=game_mode)
        match = make_match(session, tournament, teams["Alpha"], teams["Bravo"], week="1")
        for map_id in map_ids(match):
            create_or_update_manual_result(
                session,
                tournament.id,
                match.id,
                map_id,
                team1_id=match.team1_id,
                team2_id=match.team2_id,
                team1_tickets=100,
                team2_tickets=50,
            )
        standings = by_team(calculate_rankings_for_scope(session, tournament.id, "1"))
        points[game_mode] = (standings[teams["Alpha"].id].points, standings[teams["Bravo"].id].points)

    assert points["CTF"] == (3, 0)
    assert points["Conquest"] == (2, 0)


def test_scope_for_unknown_tournament_raises(session: Session):
    make_tournament(session)

    with pytest.raises(NotFoundError):
        calculate_rankings_for_scope(session, 999)
