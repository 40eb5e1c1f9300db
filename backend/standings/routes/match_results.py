"""
Match result entry: link rounds to maps, enter/correct results by hand,
override team mapping, delete.

Every mutation schedules a background recalculation of the touched week(s)
plus cumulative. Standings may lag the write by one recomputation.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from standings.database import get_session
from standings.models.match_result import MatchResult
from standings.models.tournament import Tournament
from standings.routes.http_errors import to_http_exception
from standings.services.errors import StandingsError
from standings.services.match_result_service import (
    ReconcileOutcome,
    create_or_update_manual_result,
    create_or_update_result_from_round,
    delete_match_result,
    get_match_result,
    list_match_results,
    override_team_mapping,
    relink_round,
)
from standings.services.recalculation_queue import RecalculationQueue, get_recalculation_queue

router = APIRouter()


class RoundResultCreate(BaseModel):
    round_id: str


class ManualResultCreate(BaseModel):
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_tickets: Optional[int] = None
    team2_tickets: Optional[int] = None
    winning_team_id: Optional[int] = None
    round_id: Optional[str] = None


class TeamMappingUpdate(BaseModel):
    team1_id: int
    team2_id: int


class RoundLinkUpdate(BaseModel):
    round_id: Optional[str] = None  # null unlinks


class MatchResultRead(BaseModel):
    id: int
    tournament_id: int
    match_id: int
    map_id: int
    round_id: Optional[str] = None
    week: Optional[str] = None
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_tickets: int
    team2_tickets: int
    winning_team_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MatchResultWriteResponse(BaseModel):
    result: MatchResultRead
    created: bool = False
    team_mapping_warning: Optional[str] = None


class MatchResultListResponse(BaseModel):
    items: List[MatchResultRead]
    total: int
    page: int
    page_size: int


class MatchResultDeleteResponse(BaseModel):
    deleted: bool = True
    id: int
    week: Optional[str] = None


def _require_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def _to_read(result: MatchResult) -> MatchResultRead:
    return MatchResultRead.model_validate(result)


def _write_response(outcome: ReconcileOutcome) -> MatchResultWriteResponse:
    return MatchResultWriteResponse(
        result=_to_read(outcome.result),
        created=outcome.created,
        team_mapping_warning=outcome.warning,
    )


@router.post(
    "/tournaments/{tournament_id}/matches/{match_id}/maps/{map_id}/round-result",
    response_model=MatchResultWriteResponse,
)
def create_result_from_round(
    tournament_id: int,
    match_id: int,
    map_id: int,
    payload: RoundResultCreate,
    session: Session = Depends(get_session),
    queue: RecalculationQueue = Depends(get_recalculation_queue),
) -> MatchResultWriteResponse:
    """Link a reported round to a map; teams are auto-detected (see team_mapping_warning)."""
    _require_tournament(session, tournament_id)
    try:
        outcome = create_or_update_result_from_round(session, tournament_id, match_id, map_id, payload.round_id)
    except StandingsError as e:
        raise to_http_exception(e)

    queue.request(tournament_id, outcome.affected_weeks)
    return _write_response(outcome)


@router.post(
    "/tournaments/{tournament_id}/matches/{match_id}/maps/{map_id}/result",
    response_model=MatchResultWriteResponse,
)
def create_manual_result(
    tournament_id: int,
    match_id: int,
    map_id: int,
    payload: ManualResultCreate,
    session: Session = Depends(get_session),
    queue: RecalculationQueue = Depends(get_recalculation_queue),
) -> MatchResultWriteResponse:
    """Enter or correct a result by hand. Omitted fields keep their stored values."""
    _require_tournament(session, tournament_id)
    try:
        outcome = create_or_update_manual_result(
            session,
            tournament_id,
            match_id,
            map_id,
            team1_id=payload.team1_id,
            team2_id=payload.team2_id,
            team1_tickets=payload.team1_tickets,
            team2_tickets=payload.team2_tickets,
            winning_team_id=payload.winning_team_id,
            round_id=payload.round_id,
        )
    except StandingsError as e:
        raise to_http_exception(e)

    queue.request(tournament_id, outcome.affected_weeks)
    return _write_response(outcome)


@router.get("/tournaments/{tournament_id}/match-results", response_model=MatchResultListResponse)
def list_results(
    tournament_id: int,
    week: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    session: Session = Depends(get_session),
) -> MatchResultListResponse:
    _require_tournament(session, tournament_id)
    try:
        result_page = list_match_results(session, tournament_id, week=week, page=page, page_size=page_size)
    except StandingsError as e:
        raise to_http_exception(e)
    return MatchResultListResponse(
        items=[_to_read(r) for r in result_page.items],
        total=result_page.total,
        page=result_page.page,
        page_size=result_page.page_size,
    )


@router.get("/tournaments/{tournament_id}/match-results/{result_id}", response_model=MatchResultRead)
def get_result(
    tournament_id: int,
    result_id: int,
    session: Session = Depends(get_session),
) -> MatchResultRead:
    try:
        return _to_read(get_match_result(session, result_id, tournament_id))
    except StandingsError as e:
        raise to_http_exception(e)


@router.put(
    "/tournaments/{tournament_id}/match-results/{result_id}/teams",
    response_model=MatchResultWriteResponse,
)
def update_team_mapping(
    tournament_id: int,
    result_id: int,
    payload: TeamMappingUpdate,
    session: Session = Depends(get_session),
    queue: RecalculationQueue = Depends(get_recalculation_queue),
) -> MatchResultWriteResponse:
    """Correct which tournament team played each side. Tickets are left untouched."""
    try:
        get_match_result(session, result_id, tournament_id)
        result = override_team_mapping(session, result_id, payload.team1_id, payload.team2_id)
    except StandingsError as e:
        raise to_http_exception(e)

    queue.request(tournament_id, [result.week])
    return MatchResultWriteResponse(result=_to_read(result))


@router.put(
    "/tournaments/{tournament_id}/match-results/{result_id}/round",
    response_model=MatchResultWriteResponse,
)
def update_linked_round(
    tournament_id: int,
    result_id: int,
    payload: RoundLinkUpdate,
    session: Session = Depends(get_session),
    queue: RecalculationQueue = Depends(get_recalculation_queue),
) -> MatchResultWriteResponse:
    """Link the result to another round, or unlink it with round_id=null."""
    try:
        outcome = relink_round(session, tournament_id, result_id, payload.round_id)
    except StandingsError as e:
        raise to_http_exception(e)

    queue.request(tournament_id, outcome.affected_weeks)
    return _write_response(outcome)


@router.delete(
    "/tournaments/{tournament_id}/match-results/{result_id}",
    response_model=MatchResultDeleteResponse,
)
def delete_result(
    tournament_id: int,
    result_id: int,
    session: Session = Depends(get_session),
    queue: RecalculationQueue = Depends(get_recalculation_queue),
) -> MatchResultDeleteResponse:
    try:
        deleted = delete_match_result(session, result_id, tournament_id)
    except StandingsError as e:
        raise to_http_exception(e)

    queue.request(tournament_id, [deleted.week])
    return MatchResultDeleteResponse(id=deleted.id, week=deleted.week)
