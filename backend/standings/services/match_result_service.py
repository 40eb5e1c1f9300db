"""
Match Result Reconciler

Creates and updates MatchResult rows, either from a Round Source entry
(auto-detected team mapping) or from manually entered values.

Rules:
- One live result per (match_id, map_id): writes update the lowest-id row in place
- Team IDs, when set, belong to the match and differ from each other
- winning_team_id, when set, is team1_id or team2_id; equal tickets force it to None
- Team-mapping ambiguity is returned as a warning string, never raised
- Nothing here triggers ranking recalculation; callers schedule it
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from standings.models.match import Match
from standings.models.match_map import MatchMap
from standings.models.match_result import MatchResult
from standings.models.round import Round
from standings.services.errors import NotFoundError, ValidationError
from standings.services.team_mapping import detect_team_mapping

logger = logging.getLogger(__name__)


@dataclass
class ReconcileOutcome:
    result: MatchResult
    warning: Optional[str] = None
    created: bool = False
    previous_week: Optional[str] = None

    @property
    def affected_weeks(self) -> Set[Optional[str]]:
        """Week scopes whose standings this write can change (None = cumulative only)"""
        return {w for w in (self.previous_week, self.result.week) if w is not None}


@dataclass(frozen=True)
class DeletedResult:
    id: int
    tournament_id: int
    match_id: int
    map_id: int
    week: Optional[str] = None


@dataclass
class ResultPage:
    items: List[MatchResult] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50


# ============================================================================
# Lookups
# ============================================================================


def _require_match(session: Session, tournament_id: int, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise NotFoundError(f"Match {match_id} not found in tournament {tournament_id}")
    return match


def _require_map(session: Session, match: Match, map_id: int) -> MatchMap:
    map_ = session.get(MatchMap, map_id)
    if not map_ or map_.match_id != match.id:
        raise NotFoundError(f"Map {map_id} not found in match {match.id}")
    return map_


def _require_round(session: Session, round_id: str) -> Round:
    round_ = session.get(Round, round_id)
    if not round_:
        raise ValidationError(f"Round '{round_id}' not found")
    return round_


def _require_result(session: Session, result_id: int, tournament_id: Optional[int] = None) -> MatchResult:
    result = session.get(MatchResult, result_id)
    if not result or (tournament_id is not None and result.tournament_id != tournament_id):
        raise NotFoundError(f"Match result {result_id} not found")
    return result


def _find_existing(session: Session, match_id: int, map_id: int) -> Optional[MatchResult]:
    return session.exec(
        select(MatchResult)
        .where(MatchResult.match_id == match_id, MatchResult.map_id == map_id)
        .order_by(MatchResult.id)
    ).first()


# ============================================================================
# Validation helpers
# ============================================================================


def _validate_team_ids(match: Match, team1_id: Optional[int], team2_id: Optional[int]) -> None:
    allowed = set(match.team_ids())
    for team_id in (team1_id, team2_id):
        if team_id is not None and team_id not in allowed:
            raise ValidationError(f"Team {team_id} is not playing in match {match.id}")
    if team1_id is not None and team1_id == team2_id:
        raise ValidationError("Team 1 and Team 2 cannot be the same")


def winner_from_tickets(
    team1_id: Optional[int], team2_id: Optional[int], team1_tickets: int, team2_tickets: int
) -> Optional[int]:
    """Side with more tickets wins; equal tickets or an unassigned side gives None"""
    if team1_id is None or team2_id is None:
        return None
    if team1_tickets > team2_tickets:
        return team1_id
    if team2_tickets > team1_tickets:
        return team2_id
    return None


def _commit(session: Session, result: MatchResult, action: str) -> MatchResult:
    try:
        session.add(result)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to %s match result for match %s map %s", action, result.match_id, result.map_id)
        raise
    session.refresh(result)
    return result


def _apply_round(session: Session, match: Match, result: MatchResult, round_: Round) -> Optional[str]:
    """Pull teams, tickets and winner from the round onto result. Returns the mapping warning."""
    mapping = detect_team_mapping(session, match, round_, exclude_result_id=result.id)

    tickets1 = round_.tickets1 if round_.tickets1 is not None else 0
    tickets2 = round_.tickets2 if round_.tickets2 is not None else 0

    result.round_id = round_.round_id
    result.week = match.week
    result.team1_id = mapping.team1_id
    result.team2_id = mapping.team2_id
    result.team1_tickets = tickets1
    result.team2_tickets = tickets2
    result.winning_team_id = winner_from_tickets(mapping.team1_id, mapping.team2_id, tickets1, tickets2)
    result.updated_at = datetime.utcnow()
    return mapping.warning


# ============================================================================
# Operations
# ============================================================================


def create_or_update_result_from_round(
    session: Session,
    tournament_id: int,
    match_id: int,
    map_id: int,
    round_id: str,
) -> ReconcileOutcome:
    """Link a round to a match map and pull its teams/tickets/winner into the result."""
    match = _require_match(session, tournament_id, match_id)
    _require_map(session, match, map_id)
    round_ = _require_round(session, round_id)

    existing = _find_existing(session, match_id, map_id)
    result = existing or MatchResult(tournament_id=tournament_id, match_id=match_id, map_id=map_id)
    previous_week = existing.week if existing else None

    warning = _apply_round(session, match, result, round_)
    _commit(session, result, "link round to")

    logger.info(
        "%s match result %s from round %s (tournament=%s match=%s map=%s)",
        "Updated" if existing else "Created",
        result.id,
        round_id,
        tournament_id,
        match_id,
        map_id,
    )
    return ReconcileOutcome(result=result, warning=warning, created=existing is None, previous_week=previous_week)


def create_or_update_manual_result(
    session: Session,
    tournament_id: int,
    match_id: int,
    map_id: int,
    team1_id: Optional[int] = None,
    team2_id: Optional[int] = None,
    team1_tickets: Optional[int] = None,
    team2_tickets: Optional[int] = None,
    winning_team_id: Optional[int] = None,
    round_id: Optional[str] = None,
) -> ReconcileOutcome:
    """
    Enter or correct a result by hand. Omitted values keep what is already stored.

    Ticket precedence: explicit value, then the round given in this call, then
    the stored value (0 for a new result). Without an explicit winner, the
    stored winner survives if tickets were not touched and it is still one of
    the two teams; otherwise the winner is derived from tickets.
    """
    match = _require_match(session, tournament_id, match_id)
    _require_map(session, match, map_id)
    round_ = _require_round(session, round_id) if round_id else None
    _validate_team_ids(match, team1_id, team2_id)

    existing = _find_existing(session, match_id, map_id)
    result = existing or MatchResult(tournament_id=tournament_id, match_id=match_id, map_id=map_id)
    previous_week = existing.week if existing else None

    new_team1 = team1_id if team1_id is not None else result.team1_id
    new_team2 = team2_id if team2_id is not None else result.team2_id

    warning = None
    if round_ is not None and team1_id is None and team2_id is None and (new_team1 is None or new_team2 is None):
        mapping = detect_team_mapping(session, match, round_, exclude_result_id=result.id)
        new_team1, new_team2 = mapping.team1_id, mapping.team2_id
        warning = mapping.warning

    # Partial update may pair a new team with a stored one
    if new_team1 is not None and new_team1 == new_team2:
        raise ValidationError("Team 1 and Team 2 cannot be the same")

    def _tickets(explicit: Optional[int], from_round: Optional[int], stored: int) -> int:
        if explicit is not None:
            return explicit
        if from_round is not None:
            return from_round
        return stored or 0

    new_tickets1 = _tickets(team1_tickets, round_.tickets1 if round_ else None, result.team1_tickets)
    new_tickets2 = _tickets(team2_tickets, round_.tickets2 if round_ else None, result.team2_tickets)
    if new_tickets1 < 0 or new_tickets2 < 0:
        raise ValidationError("Tickets cannot be negative")

    if winning_team_id is not None:
        if new_team1 is None or new_team2 is None or winning_team_id not in (new_team1, new_team2):
            raise ValidationError("Winning team must be one of the two teams in the match")
        new_winner: Optional[int] = winning_team_id
    else:
        tickets_touched = team1_tickets is not None or team2_tickets is not None or round_ is not None
        stored_winner = result.winning_team_id
        if not tickets_touched and stored_winner is not None and stored_winner in (new_team1, new_team2):
            new_winner = stored_winner
        else:
            new_winner = winner_from_tickets(new_team1, new_team2, new_tickets1, new_tickets2)

    if new_tickets1 == new_tickets2:
        new_winner = None

    result.team1_id = new_team1
    result.team2_id = new_team2
    result.team1_tickets = new_tickets1
    result.team2_tickets = new_tickets2
    result.winning_team_id = new_winner
    result.week = match.week
    if round_ is not None:
        result.round_id = round_.round_id
    result.updated_at = datetime.utcnow()
    _commit(session, result, "save manual")

    logger.info(
        "%s manual match result %s (tournament=%s match=%s map=%s round=%s) tickets=%d-%d winner=%s",
        "Updated" if existing else "Created",
        result.id,
        tournament_id,
        match_id,
        map_id,
        result.round_id,
        new_tickets1,
        new_tickets2,
        new_winner,
    )
    return ReconcileOutcome(result=result, warning=warning, created=existing is None, previous_week=previous_week)


def override_team_mapping(session: Session, result_id: int, team1_id: int, team2_id: int) -> MatchResult:
    """Reassign which tournament team played each side. Tickets are never changed.

    The winner is re-derived from the stored tickets and the new sides.
    """
    result = _require_result(session, result_id)
    match = session.get(Match, result.match_id)
    if not match:
        raise NotFoundError(f"Match {result.match_id} for result {result_id} not found")
    if team1_id is None or team2_id is None:
        raise ValidationError("Both Team 1 and Team 2 must be provided")
    _validate_team_ids(match, team1_id, team2_id)

    result.team1_id = team1_id
    result.team2_id = team2_id
    result.winning_team_id = winner_from_tickets(team1_id, team2_id, result.team1_tickets, result.team2_tickets)
    result.updated_at = datetime.utcnow()
    _commit(session, result, "override team mapping of")

    logger.info(
        "Overrode team mapping for result %s: team1=%s team2=%s winner=%s",
        result_id,
        team1_id,
        team2_id,
        result.winning_team_id,
    )
    return result


def relink_round(
    session: Session, tournament_id: int, result_id: int, round_id: Optional[str]
) -> ReconcileOutcome:
    """Point an existing result at a different round, or unlink it (round_id=None).

    Linking re-detects teams and pulls tickets from the new round. Unlinking
    keeps teams, tickets and winner as entered.
    """
    result = _require_result(session, result_id, tournament_id)
    previous_week = result.week

    if not round_id:
        result.round_id = None
        result.updated_at = datetime.utcnow()
        _commit(session, result, "unlink round from")
        logger.info("Unlinked round from match result %s in tournament %s", result_id, tournament_id)
        return ReconcileOutcome(result=result, previous_week=previous_week)

    match = _require_match(session, tournament_id, result.match_id)
    round_ = _require_round(session, round_id)
    warning = _apply_round(session, match, result, round_)
    _commit(session, result, "relink round to")

    logger.info("Linked round %s to match result %s in tournament %s", round_id, result_id, tournament_id)
    return ReconcileOutcome(result=result, warning=warning, previous_week=previous_week)


def delete_match_result(session: Session, result_id: int, tournament_id: Optional[int] = None) -> DeletedResult:
    """Delete a result. Returns what was removed so the caller can recalculate its week."""
    result = _require_result(session, result_id, tournament_id)
    deleted = DeletedResult(
        id=result.id,
        tournament_id=result.tournament_id,
        match_id=result.match_id,
        map_id=result.map_id,
        week=result.week,
    )
    try:
        session.delete(result)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Failed to delete match result %s", result_id)
        raise

    logger.info("Deleted match result %s from tournament %s", result_id, deleted.tournament_id)
    return deleted


def get_match_result(session: Session, result_id: int, tournament_id: Optional[int] = None) -> MatchResult:
    return _require_result(session, result_id, tournament_id)


def list_match_results(
    session: Session,
    tournament_id: int,
    week: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> ResultPage:
    """Results for a tournament, optionally one week, ordered by (match, map, id)."""
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")

    query = select(MatchResult).where(MatchResult.tournament_id == tournament_id)
    if week is not None:
        query = query.where(MatchResult.week == week)
    all_rows = session.exec(query.order_by(MatchResult.match_id, MatchResult.map_id, MatchResult.id)).all()

    start = (page - 1) * page_size
    return ResultPage(items=list(all_rows[start : start + page_size]), total=len(all_rows), page=page, page_size=page_size)
