"""
Team Mapping: assign a round's two in-game team labels to a match's two teams.

Best-effort only. Detection never raises for ambiguity; it returns a
TeamMapping whose `warning` describes what could not be established and the
caller decides whether to surface it.

Evidence, strongest first:
1. Roster: round participants per label vs. the match teams' rosters
2. Prior maps: label -> team assignments from this match's other linked results
3. Default: round team1 -> Match.team1 (provisional)
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from sqlmodel import Session, select

from standings.models.match import Match
from standings.models.match_result import MatchResult
from standings.models.round import Round, RoundPlayer
from standings.models.team import TeamPlayer

logger = logging.getLogger(__name__)

SOURCE_ROSTER = "roster"
SOURCE_PRIOR_MAPS = "prior_maps"
SOURCE_DEFAULT = "default"


@dataclass(frozen=True)
class TeamMapping:
    team1_id: int  # tournament team playing as the round's team1 label
    team2_id: int  # tournament team playing as the round's team2 label
    source: str
    warning: Optional[str] = None
    swapped: bool = False  # round team1 label played as Match.team2


def _oriented(match: Match, swapped: bool, source: str, warning: Optional[str] = None) -> TeamMapping:
    if swapped:
        return TeamMapping(match.team2_id, match.team1_id, source, warning, swapped=True)
    return TeamMapping(match.team1_id, match.team2_id, source, warning)


def _normalize_label(label: Optional[str]) -> Optional[str]:
    if label is None:
        return None
    label = label.strip()
    return label.lower() if label else None


def _roster_orientation(session: Session, match: Match, round_: Round) -> Optional[bool]:
    """True = swapped, False = straight, None = no decisive roster evidence"""
    label1 = _normalize_label(round_.team1_label)
    label2 = _normalize_label(round_.team2_label)
    if not label1 or not label2 or label1 == label2:
        return None

    participants = session.exec(select(RoundPlayer).where(RoundPlayer.round_id == round_.round_id)).all()
    if not participants:
        return None

    by_label: Dict[str, Set[str]] = {label1: set(), label2: set()}
    for p in participants:
        label = _normalize_label(p.team_label)
        if label in by_label:
            by_label[label].add(p.player_name.strip().lower())

    roster_rows = session.exec(
        select(TeamPlayer).where(
            TeamPlayer.tournament_id == match.tournament_id,
            TeamPlayer.team_id.in_([match.team1_id, match.team2_id]),
        )
    ).all()
    rosters: Dict[int, Set[str]] = {match.team1_id: set(), match.team2_id: set()}
    for row in roster_rows:
        rosters[row.team_id].add(row.player_name.strip().lower())

    straight = len(by_label[label1] & rosters[match.team1_id]) + len(by_label[label2] & rosters[match.team2_id])
    swapped = len(by_label[label1] & rosters[match.team2_id]) + len(by_label[label2] & rosters[match.team1_id])

    logger.debug(
        "Roster evidence for match %s round %s: straight=%d swapped=%d",
        match.id,
        round_.round_id,
        straight,
        swapped,
    )
    if straight == swapped:
        return None
    return swapped > straight


def _prior_label_assignments(
    session: Session, match: Match, exclude_result_id: Optional[int]
) -> Tuple[Dict[str, int], List[str]]:
    """Collect label -> team from this match's other round-linked results.

    Returns (assignments, conflicts). A label seen with two different teams
    is reported in conflicts and left out of assignments.
    """
    query = select(MatchResult).where(
        MatchResult.match_id == match.id,
        MatchResult.round_id.is_not(None),
        MatchResult.team1_id.is_not(None),
        MatchResult.team2_id.is_not(None),
    )
    if exclude_result_id is not None:
        query = query.where(MatchResult.id != exclude_result_id)
    prior_results = session.exec(query.order_by(MatchResult.id)).all()

    seen: Dict[str, Set[int]] = {}
    for result in prior_results:
        prior_round = session.get(Round, result.round_id)
        if prior_round is None:
            continue
        for label, team_id in (
            (_normalize_label(prior_round.team1_label), result.team1_id),
            (_normalize_label(prior_round.team2_label), result.team2_id),
        ):
            if label:
                seen.setdefault(label, set()).add(team_id)

    assignments = {label: next(iter(teams)) for label, teams in seen.items() if len(teams) == 1}
    conflicts = sorted(label for label, teams in seen.items() if len(teams) > 1)
    return assignments, conflicts


def _prior_orientation(
    session: Session, match: Match, round_: Round, exclude_result_id: Optional[int]
) -> Tuple[Optional[bool], Optional[str], bool]:
    """Orientation implied by prior maps.

    Returns (swapped or None, warning, had_priors).
    """
    assignments, conflicts = _prior_label_assignments(session, match, exclude_result_id)
    had_priors = bool(assignments or conflicts)
    if not had_priors:
        return None, None, False

    label1 = _normalize_label(round_.team1_label)
    label2 = _normalize_label(round_.team2_label)

    if conflicts and (label1 in conflicts or label2 in conflicts):
        return None, (
            f"Prior maps of match {match.id} assign team label(s) {', '.join(conflicts)} "
            "to different teams; team mapping could not be established"
        ), True

    team_for_1 = assignments.get(label1) if label1 else None
    team_for_2 = assignments.get(label2) if label2 else None
    match_teams = set(match.team_ids())

    # Labels must still refer to this match's teams
    if team_for_1 is not None and team_for_1 not in match_teams:
        team_for_1 = None
    if team_for_2 is not None and team_for_2 not in match_teams:
        team_for_2 = None

    if team_for_1 is not None and team_for_2 is not None:
        if team_for_1 == team_for_2:
            return None, (
                f"Round {round_.round_id} labels '{round_.team1_label}' and '{round_.team2_label}' "
                f"both map to team {team_for_1} on prior maps; team mapping could not be established"
            ), True
        return team_for_1 == match.team2_id, None, True
    if team_for_1 is not None:
        return team_for_1 == match.team2_id, None, True
    if team_for_2 is not None:
        return team_for_2 == match.team1_id, None, True

    return None, (
        f"Round {round_.round_id} team labels ('{round_.team1_label}', '{round_.team2_label}') "
        f"do not correspond to the labels used on prior maps of match {match.id}; "
        "team mapping assigned provisionally"
    ), True


def detect_team_mapping(
    session: Session,
    match: Match,
    round_: Round,
    exclude_result_id: Optional[int] = None,
) -> TeamMapping:
    """Map the round's team1/team2 labels onto match.team1_id/team2_id.

    exclude_result_id keeps the result being re-linked from voting on its own mapping.
    """
    prior_swapped, prior_warning, _ = _prior_orientation(session, match, round_, exclude_result_id)
    roster_swapped = _roster_orientation(session, match, round_)

    if roster_swapped is not None:
        warning = None
        if prior_swapped is not None and prior_swapped != roster_swapped:
            warning = (
                f"Roster evidence for round {round_.round_id} contradicts the orientation "
                f"used on prior maps of match {match.id}; roster mapping applied"
            )
        mapping = _oriented(match, roster_swapped, SOURCE_ROSTER, warning)
    elif prior_swapped is not None:
        mapping = _oriented(match, prior_swapped, SOURCE_PRIOR_MAPS)
    else:
        mapping = _oriented(match, False, SOURCE_DEFAULT, prior_warning)

    if mapping.warning:
        logger.warning("Team mapping warning for round %s: %s", round_.round_id, mapping.warning)
    else:
        logger.info(
            "Detected team mapping for round %s: team1=%s team2=%s source=%s",
            round_.round_id,
            mapping.team1_id,
            mapping.team2_id,
            mapping.source,
        )
    return mapping
