"""
Consistency Sweeper

Removes match results whose map no longer exists. Map edits elsewhere are not
transactionally coupled to result deletion, so such orphans can appear; they
are a maintenance condition, not a write-time error. A sweep always finishes
with a full recalculation of the tournament.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from standings.models.match_map import MatchMap
from standings.models.match_result import MatchResult
from standings.models.tournament import Tournament
from standings.services.errors import NotFoundError
from standings.services.recalculation_service import RecalculationSummary, recalculate_all, tournament_lock

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    tournament_id: int
    removed_count: int = 0
    removed_result_ids: List[int] = field(default_factory=list)
    recalculation: Optional[RecalculationSummary] = None


def find_orphaned_results(session: Session, tournament_id: int) -> List[MatchResult]:
    existing_maps = select(MatchMap.id)
    return list(
        session.exec(
            select(MatchResult)
            .where(MatchResult.tournament_id == tournament_id, MatchResult.map_id.not_in(existing_maps))
            .order_by(MatchResult.id)
        ).all()
    )


def sweep_orphans(session: Session, tournament_id: int, recalculate: bool = True) -> SweepResult:
    """Delete orphaned results, then recalculate every scope of the tournament."""
    if not session.get(Tournament, tournament_id):
        raise NotFoundError(f"Tournament {tournament_id} not found")

    with tournament_lock(tournament_id):
        orphans = find_orphaned_results(session, tournament_id)
        sweep = SweepResult(tournament_id=tournament_id)

        if orphans:
            logger.warning("Found %d orphaned match results in tournament %s", len(orphans), tournament_id)
            try:
                for orphan in orphans:
                    logger.info(
                        "Removing orphaned match result %s (match=%s missing map=%s week=%s)",
                        orphan.id,
                        orphan.match_id,
                        orphan.map_id,
                        orphan.week,
                    )
                    sweep.removed_result_ids.append(orphan.id)
                    session.delete(orphan)
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                logger.exception("Orphan cleanup rolled back | tournament=%s", tournament_id)
                raise
            sweep.removed_count = len(sweep.removed_result_ids)
        else:
            logger.info("No orphaned match results in tournament %s", tournament_id)

        if recalculate:
            sweep.recalculation = recalculate_all(session, tournament_id)
    return sweep
