"""
Recalculation Orchestrator

Persists Ranking Calculator output per (tournament, scope). Each scope is
replaced in a single transaction: delete old rows, insert new rows, bump the
scope's RankingSnapshot generation. Readers see the old set or the new set,
never a mix. A failed scope rolls back to its previous set.

Scopes:
- cumulative (week=None) is recomputed by every entry point
- recalculate_all: every week label present in the tournament's results
- recalculate_from_week: known weeks at or after a label, in display order
- recalculate_week: one label, validated against known and ranked weeks
- recalculate_weeks: specific labels (targeted trigger after a single write)

Every entry point holds tournament_lock for its whole run, so two
recalculations of the same tournament in this process never interleave.
"""
import functools
import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from standings.models.match_result import MatchResult
from standings.models.ranking import Ranking, RankingSnapshot
from standings.models.tournament import Tournament
from standings.services.errors import NotFoundError, RecalculationTimeoutError, WeekNotFoundError
from standings.services.ranking_calculator import TeamStanding, calculate_rankings_for_scope
from standings.utils.weeks import scope_label, sort_weeks, week_clause, week_sort_key

logger = logging.getLogger(__name__)

# One writer per tournament in this process: the background queue and the
# explicit recalculation / sweep endpoints share these locks
_tournament_locks = {}
_tournament_locks_guard = threading.Lock()


@dataclass
class ScopeRecalculation:
    week: Optional[str]
    generation: int
    standings: List[TeamStanding] = field(default_factory=list)

    @property
    def rows_written(self) -> int:
        return len(self.standings)


@dataclass
class RecalculationSummary:
    tournament_id: int
    cumulative: Optional[ScopeRecalculation] = None
    weeks: Dict[str, ScopeRecalculation] = field(default_factory=dict)

    @property
    def weeks_recalculated(self) -> List[str]:
        return sort_weeks(self.weeks.keys())

    @property
    def total_rankings_updated(self) -> int:
        total = self.cumulative.rows_written if self.cumulative else 0
        return total + sum(s.rows_written for s in self.weeks.values())


def _require_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


@contextmanager
def tournament_lock(tournament_id: int):
    """Serialize ranking writes for one tournament. Re-entrant within a thread."""
    with _tournament_locks_guard:
        lock = _tournament_locks.setdefault(tournament_id, threading.RLock())
    with lock:
        yield


def _serialized(func):
    @functools.wraps(func)
    def wrapper(session: Session, tournament_id: int, *args, **kwargs):
        with tournament_lock(tournament_id):
            return func(session, tournament_id, *args, **kwargs)

    return wrapper


def _check_deadline(deadline: Optional[float], tournament_id: int, week: Optional[str]) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise RecalculationTimeoutError(
            f"Recalculation for tournament {tournament_id} timed out before scope {scope_label(week)}"
        )


def list_known_weeks(session: Session, tournament_id: int) -> List[str]:
    """Distinct week labels present in the tournament's results, in display order."""
    weeks = session.exec(
        select(MatchResult.week).where(MatchResult.tournament_id == tournament_id, MatchResult.week.is_not(None)).distinct()
    ).all()
    return sort_weeks(weeks)


def _ranked_weeks(session: Session, tournament_id: int) -> List[str]:
    weeks = session.exec(
        select(RankingSnapshot.week).where(
            RankingSnapshot.tournament_id == tournament_id, RankingSnapshot.week.is_not(None)
        )
    ).all()
    return sort_weeks(weeks)


@_serialized
def recalculate_scope(
    session: Session,
    tournament_id: int,
    week: Optional[str] = None,
    deadline: Optional[float] = None,
) -> ScopeRecalculation:
    """Recompute one scope and atomically replace its persisted rankings."""
    _require_tournament(session, tournament_id)
    _check_deadline(deadline, tournament_id, week)

    standings = calculate_rankings_for_scope(session, tournament_id, week)

    try:
        snapshot = session.exec(
            select(RankingSnapshot).where(
                RankingSnapshot.tournament_id == tournament_id,
                week_clause(RankingSnapshot.week, week),
            )
        ).first()
        if snapshot is None:
            snapshot = RankingSnapshot(tournament_id=tournament_id, week=week, generation=0)
        generation = snapshot.generation + 1
        now = datetime.utcnow()

        old_rankings = session.exec(
            select(Ranking).where(Ranking.tournament_id == tournament_id, week_clause(Ranking.week, week))
        ).all()
        for old in old_rankings:
            session.delete(old)
        removed = len(old_rankings)
        # Deletes reach the DB before inserts in the same transaction
        session.flush()

        for s in standings:
            session.add(
                Ranking(
                    tournament_id=tournament_id,
                    team_id=s.team_id,
                    week=week,
                    generation=generation,
                    rank=s.rank,
                    matches_played=s.matches_played,
                    victories=s.victories,
                    ties=s.ties,
                    losses=s.losses,
                    rounds_won=s.rounds_won,
                    rounds_tied=s.rounds_tied,
                    rounds_lost=s.rounds_lost,
                    tickets_for=s.tickets_for,
                    tickets_against=s.tickets_against,
                    ticket_differential=s.ticket_differential,
                    points=s.points,
                    updated_at=now,
                )
            )

        snapshot.generation = generation
        snapshot.row_count = len(standings)
        snapshot.computed_at = now
        session.add(snapshot)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception(
            "Ranking replacement rolled back | tournament=%s scope=%s", tournament_id, scope_label(week)
        )
        raise

    logger.info(
        "Rankings replaced | tournament=%s scope=%s generation=%d removed=%d inserted=%d",
        tournament_id,
        scope_label(week),
        generation,
        removed,
        len(standings),
    )
    return ScopeRecalculation(week=week, generation=generation, standings=standings)


@_serialized
def recalculate_weeks(
    session: Session,
    tournament_id: int,
    weeks: Iterable[Optional[str]],
    deadline: Optional[float] = None,
) -> RecalculationSummary:
    """Cumulative plus the given week labels (None entries are ignored)."""
    _require_tournament(session, tournament_id)
    summary = RecalculationSummary(tournament_id=tournament_id)
    summary.cumulative = recalculate_scope(session, tournament_id, None, deadline)
    for week in sort_weeks(weeks):
        summary.weeks[week] = recalculate_scope(session, tournament_id, week, deadline)
    return summary


@_serialized
def recalculate_all(session: Session, tournament_id: int, deadline: Optional[float] = None) -> RecalculationSummary:
    """Cumulative plus every week. Weeks that lost all their results are emptied."""
    _require_tournament(session, tournament_id)
    known = list_known_weeks(session, tournament_id)
    stale = [w for w in _ranked_weeks(session, tournament_id) if w not in known]
    if stale:
        logger.info("Clearing standings for weeks without results | tournament=%s weeks=%s", tournament_id, stale)

    logger.info("Full ranking recalculation | tournament=%s weeks=%s", tournament_id, known)
    return recalculate_weeks(session, tournament_id, known + stale, deadline)


@_serialized
def recalculate_week(
    session: Session,
    tournament_id: int,
    week: str,
    deadline: Optional[float] = None,
) -> RecalculationSummary:
    """Cumulative plus one week. The week must have results or stored standings."""
    _require_tournament(session, tournament_id)
    known = list_known_weeks(session, tournament_id)
    if week not in known and week not in _ranked_weeks(session, tournament_id):
        logger.warning("Requested week '%s' not found in tournament %s. Available weeks: %s", week, tournament_id, known)
        raise WeekNotFoundError(week, known)
    return recalculate_weeks(session, tournament_id, [week], deadline)


@_serialized
def recalculate_from_week(
    session: Session,
    tournament_id: int,
    week: str,
    deadline: Optional[float] = None,
) -> RecalculationSummary:
    """Cumulative plus every known week sorting at or after `week`.

    Raises WeekNotFoundError without writing anything when `week` is unknown.
    """
    _require_tournament(session, tournament_id)
    known = list_known_weeks(session, tournament_id)
    if week not in known:
        logger.warning(
            "Requested from-week '%s' not found in tournament %s. Available weeks: %s", week, tournament_id, known
        )
        raise WeekNotFoundError(week, known)

    start = week_sort_key(week)
    selected = [w for w in known if week_sort_key(w) >= start]
    logger.info("Recalculating rankings from week '%s' onwards | tournament=%s weeks=%s", week, tournament_id, selected)
    return recalculate_weeks(session, tournament_id, selected, deadline)


def get_leaderboard(session: Session, tournament_id: int, week: Optional[str] = None):
    """Persisted rankings for a scope ordered by rank, plus the snapshot marker (None if never computed)."""
    _require_tournament(session, tournament_id)
    snapshot = session.exec(
        select(RankingSnapshot).where(
            RankingSnapshot.tournament_id == tournament_id,
            week_clause(RankingSnapshot.week, week),
        )
    ).first()
    rankings = session.exec(
        select(Ranking)
        .where(Ranking.tournament_id == tournament_id, week_clause(Ranking.week, week))
        .order_by(Ranking.rank)
    ).all()
    return snapshot, list(rankings)
