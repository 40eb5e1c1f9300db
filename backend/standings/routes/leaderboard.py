"""
Leaderboard: persisted standings per scope, known weeks, explicit recalculation
and orphan cleanup. Explicit recalculation runs inline and returns a summary.
"""
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from standings.database import get_session
from standings.models.team import Team
from standings.models.tournament import Tournament
from standings.routes.http_errors import to_http_exception
from standings.services.consistency_sweeper import sweep_orphans
from standings.services.errors import StandingsError, WeekNotFoundError
from standings.services.recalculation_service import (
    RecalculationSummary,
    get_leaderboard,
    list_known_weeks,
    recalculate_all,
    recalculate_from_week,
    recalculate_week,
)
from standings.utils.weeks import CUMULATIVE_LABEL

router = APIRouter()


class RankingRead(BaseModel):
    rank: int
    team_id: int
    team_name: str
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


class LeaderboardResponse(BaseModel):
    tournament_id: int
    week: Optional[str] = None  # null = cumulative
    generation: int = 0  # 0 = never computed
    computed_at: Optional[datetime] = None
    rankings: List[RankingRead] = []


class WeeksResponse(BaseModel):
    tournament_id: int
    weeks: List[str]


class RecalculateRequest(BaseModel):
    week: Optional[str] = None
    from_week: Optional[str] = None


class RecalculateResponse(BaseModel):
    tournament_id: int
    weeks_recalculated: List[str]
    generations: Dict[str, int]  # scope label -> new generation
    total_rankings_updated: int


class OrphanCleanupResponse(BaseModel):
    tournament_id: int
    removed_count: int
    removed_result_ids: List[int]
    total_rankings_updated: int


def _require_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def _summary_response(summary: RecalculationSummary) -> RecalculateResponse:
    generations = {week: scope.generation for week, scope in summary.weeks.items()}
    if summary.cumulative is not None:
        generations[CUMULATIVE_LABEL] = summary.cumulative.generation
    return RecalculateResponse(
        tournament_id=summary.tournament_id,
        weeks_recalculated=summary.weeks_recalculated,
        generations=generations,
        total_rankings_updated=summary.total_rankings_updated,
    )


@router.get("/tournaments/{tournament_id}/leaderboard", response_model=LeaderboardResponse)
def read_leaderboard(
    tournament_id: int,
    week: Optional[str] = None,
    session: Session = Depends(get_session),
) -> LeaderboardResponse:
    """Current standings for a week, or cumulative when week is omitted."""
    _require_tournament(session, tournament_id)
    snapshot, rankings = get_leaderboard(session, tournament_id, week or None)

    team_names = {
        t.id: t.name for t in session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    }
    return LeaderboardResponse(
        tournament_id=tournament_id,
        week=week or None,
        generation=snapshot.generation if snapshot else 0,
        computed_at=snapshot.computed_at if snapshot else None,
        rankings=[
            RankingRead(
                rank=r.rank,
                team_id=r.team_id,
                team_name=team_names.get(r.team_id, f"Team {r.team_id}"),
                matches_played=r.matches_played,
                victories=r.victories,
                ties=r.ties,
                losses=r.losses,
                rounds_won=r.rounds_won,
                rounds_tied=r.rounds_tied,
                rounds_lost=r.rounds_lost,
                tickets_for=r.tickets_for,
                tickets_against=r.tickets_against,
                ticket_differential=r.ticket_differential,
                points=r.points,
            )
            for r in rankings
        ],
    )


@router.get("/tournaments/{tournament_id}/leaderboard/weeks", response_model=WeeksResponse)
def read_weeks(tournament_id: int, session: Session = Depends(get_session)) -> WeeksResponse:
    _require_tournament(session, tournament_id)
    return WeeksResponse(tournament_id=tournament_id, weeks=list_known_weeks(session, tournament_id))


@router.post("/tournaments/{tournament_id}/leaderboard/recalculate", response_model=RecalculateResponse)
def trigger_recalculation(
    tournament_id: int,
    payload: Optional[RecalculateRequest] = None,
    session: Session = Depends(get_session),
) -> RecalculateResponse:
    """Recalculate all weeks, a single week, or every week from `from_week` onward."""
    _require_tournament(session, tournament_id)
    payload = payload or RecalculateRequest()
    if payload.week and payload.from_week:
        raise HTTPException(status_code=400, detail="Specify either week or from_week, not both")

    try:
        if payload.from_week:
            summary = recalculate_from_week(session, tournament_id, payload.from_week)
        elif payload.week:
            summary = recalculate_week(session, tournament_id, payload.week)
        else:
            summary = recalculate_all(session, tournament_id)
    except WeekNotFoundError as e:
        raise HTTPException(status_code=400, detail={"message": str(e), "known_weeks": e.known_weeks})
    except StandingsError as e:
        raise to_http_exception(e)

    return _summary_response(summary)


@router.post(
    "/tournaments/{tournament_id}/maintenance/cleanup-orphaned-results",
    response_model=OrphanCleanupResponse,
)
def cleanup_orphaned_results(tournament_id: int, session: Session = Depends(get_session)) -> OrphanCleanupResponse:
    """Delete results whose map no longer exists, then recalculate all standings."""
    _require_tournament(session, tournament_id)
    try:
        sweep = sweep_orphans(session, tournament_id)
    except StandingsError as e:
        raise to_http_exception(e)

    return OrphanCleanupResponse(
        tournament_id=tournament_id,
        removed_count=sweep.removed_count,
        removed_result_ids=sweep.removed_result_ids,
        total_rankings_updated=sweep.recalculation.total_rankings_updated if sweep.recalculation else 0,
    )
