"""
Ranking Calculator

Pure, deterministic standings computation over a snapshot of match results
for one tournament scope (a week label, or cumulative = all weeks).

Algorithm:
1. Qualifying results: both team IDs set, week matches the scope
2. Per match: count rounds won/tied/lost per team; strictly more rounds won
   is a match victory, equal rounds won is a match tie
3. Per team: sum tickets, rounds and match outcomes across matches
4. Points: "match" mode 3*V + 1*T; "rounds" mode = rounds won. A tournament
   without an explicit mode scores CTF by match, any other game mode by
   rounds, and no game mode by match
5. Order: points desc, ticket differential desc, tickets for desc,
   team name asc, team id asc; ranks 1..N with no duplicates

Same input always produces the same output; no data for a scope is an empty list.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlmodel import Session, select

from standings.models.match_result import MatchResult
from standings.models.team import Team
from standings.models.tournament import GAME_MODE_CTF, SCORING_MODE_MATCH, SCORING_MODE_ROUNDS, Tournament
from standings.services.errors import NotFoundError
from standings.utils.weeks import scope_label

logger = logging.getLogger(__name__)

POINTS_PER_VICTORY = 3
POINTS_PER_TIE = 1
POINTS_PER_LOSS = 0

ROUND_WON = "won"
ROUND_TIED = "tied"
ROUND_LOST = "lost"


@dataclass(frozen=True)
class ResultRow:
    """Immutable view of one qualifying MatchResult"""

    result_id: int
    match_id: int
    map_id: int
    team1_id: int
    team2_id: int
    team1_tickets: int
    team2_tickets: int
    winning_team_id: Optional[int]
    week: Optional[str]

    @property
    def has_both_teams(self) -> bool:
        return self.team1_id is not None and self.team2_id is not None

    @classmethod
    def from_result(cls, result: MatchResult) -> "ResultRow":
        return cls(
            result_id=result.id,
            match_id=result.match_id,
            map_id=result.map_id,
            team1_id=result.team1_id,
            team2_id=result.team2_id,
            team1_tickets=result.team1_tickets or 0,
            team2_tickets=result.team2_tickets or 0,
            winning_team_id=result.winning_team_id,
            week=result.week,
        )


@dataclass(frozen=True)
class TeamStanding:
    team_id: int
    team_name: str
    rank: int
    matches_played: int
    victories: int
    ties: int
    losses: int
    rounds_won: int
    rounds_tied: int
    rounds_lost: int
    tickets_for: int
    tickets_against: int
    ticket_differential: int
    points: int


class _TeamTotals:
    __slots__ = (
        "matches_played",
        "victories",
        "ties",
        "losses",
        "rounds_won",
        "rounds_tied",
        "rounds_lost",
        "tickets_for",
        "tickets_against",
    )

    def __init__(self):
        for name in self.__slots__:
            setattr(self, name, 0)


def round_outcome(row: ResultRow, team_id: int) -> str:
    """Outcome of one result for one of its two teams.

    A set winner decides. Without a winner, equal tickets are a tie and
    unequal tickets fall back to the ticket count.
    """
    if row.winning_team_id is not None:
        return ROUND_WON if row.winning_team_id == team_id else ROUND_LOST
    own, other = _tickets_for(row, team_id)
    if own == other:
        return ROUND_TIED
    return ROUND_WON if own > other else ROUND_LOST


def _tickets_for(row: ResultRow, team_id: int) -> Tuple[int, int]:
    if row.team1_id == team_id:
        return row.team1_tickets, row.team2_tickets
    return row.team2_tickets, row.team1_tickets


def resolve_scoring_mode(scoring_mode: Optional[str], game_mode: Optional[str]) -> str:
    if scoring_mode:
        return scoring_mode
    if not game_mode or game_mode.upper() == GAME_MODE_CTF:
        return SCORING_MODE_MATCH
    return SCORING_MODE_ROUNDS


def compute_points(victories: int, ties: int, losses: int, rounds_won: int, scoring_mode: str) -> int:
    if scoring_mode == SCORING_MODE_ROUNDS:
        return rounds_won
    return victories * POINTS_PER_VICTORY + ties * POINTS_PER_TIE + losses * POINTS_PER_LOSS


def calculate_rankings(
    results: Iterable[ResultRow],
    team_names: Mapping[int, str],
    scoring_mode: str = SCORING_MODE_MATCH,
) -> List[TeamStanding]:
    """Turn a result snapshot into ordered standings."""
    rows = sorted(
        (r for r in results if r.has_both_teams),
        key=lambda r: (r.match_id, r.map_id, r.result_id),
    )
    if not rows:
        return []

    totals: Dict[int, _TeamTotals] = {}
    # match_id -> team_id -> rounds won in that match
    match_rounds: Dict[int, Dict[int, int]] = {}

    for row in rows:
        for team_id in (row.team1_id, row.team2_id):
            team = totals.setdefault(team_id, _TeamTotals())
            own, other = _tickets_for(row, team_id)
            team.tickets_for += own
            team.tickets_against += other

            outcome = round_outcome(row, team_id)
            if outcome == ROUND_WON:
                team.rounds_won += 1
            elif outcome == ROUND_TIED:
                team.rounds_tied += 1
            else:
                team.rounds_lost += 1

            per_match = match_rounds.setdefault(row.match_id, {})
            per_match[team_id] = per_match.get(team_id, 0) + (1 if outcome == ROUND_WON else 0)

    for match_id in sorted(match_rounds):
        per_match = match_rounds[match_id]
        best = max(per_match.values())
        leaders = [t for t, won in per_match.items() if won == best]
        for team_id, won in per_match.items():
            team = totals[team_id]
            team.matches_played += 1
            if won < best:
                team.losses += 1
            elif len(leaders) == 1:
                team.victories += 1
            else:
                team.ties += 1

    def _name(team_id: int) -> str:
        return team_names.get(team_id) or f"Team {team_id}"

    unranked = []
    for team_id, t in totals.items():
        points = compute_points(t.victories, t.ties, t.losses, t.rounds_won, scoring_mode)
        unranked.append((team_id, t, points))

    unranked.sort(
        key=lambda item: (
            -item[2],
            -(item[1].tickets_for - item[1].tickets_against),
            -item[1].tickets_for,
            _name(item[0]).lower(),
            item[0],
        )
    )

    standings = []
    for index, (team_id, t, points) in enumerate(unranked):
        standings.append(
            TeamStanding(
                team_id=team_id,
                team_name=_name(team_id),
                rank=index + 1,
                matches_played=t.matches_played,
                victories=t.victories,
                ties=t.ties,
                losses=t.losses,
                rounds_won=t.rounds_won,
                rounds_tied=t.rounds_tied,
                rounds_lost=t.rounds_lost,
                tickets_for=t.tickets_for,
                tickets_against=t.tickets_against,
                ticket_differential=t.tickets_for - t.tickets_against,
                points=points,
            )
        )
    return standings


# ============================================================================
# Snapshot loading
# ============================================================================


def load_result_snapshot(session: Session, tournament_id: int, week: Optional[str] = None) -> List[ResultRow]:
    """Qualifying results for a scope. week=None loads every week (cumulative)."""
    query = select(MatchResult).where(
        MatchResult.tournament_id == tournament_id,
        MatchResult.team1_id.is_not(None),
        MatchResult.team2_id.is_not(None),
    )
    if week is not None:
        query = query.where(MatchResult.week == week)
    results = session.exec(query.order_by(MatchResult.match_id, MatchResult.map_id, MatchResult.id)).all()
    return [ResultRow.from_result(r) for r in results]


def load_team_names(session: Session, tournament_id: int) -> Dict[int, str]:
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    return {t.id: t.name for t in teams}


def calculate_rankings_for_scope(session: Session, tournament_id: int, week: Optional[str] = None) -> List[TeamStanding]:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")

    scoring_mode = resolve_scoring_mode(tournament.scoring_mode, tournament.game_mode)
    rows = load_result_snapshot(session, tournament_id, week)
    standings = calculate_rankings(rows, load_team_names(session, tournament_id), scoring_mode)

    if not rows:
        logger.debug("No match results for tournament %s scope %s", tournament_id, scope_label(week))
    else:
        logger.info(
            "Calculated %d standings from %d results | tournament=%s scope=%s mode=%s",
            len(standings),
            len(rows),
            tournament_id,
            scope_label(week),
            scoring_mode,
        )
    return standings
