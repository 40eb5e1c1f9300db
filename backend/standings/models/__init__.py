from standings.models.match import Match
from standings.models.match_map import MatchMap
from standings.models.match_result import MatchResult
from standings.models.ranking import Ranking, RankingSnapshot
from standings.models.round import Round, RoundPlayer
from standings.models.team import Team, TeamPlayer
from standings.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "TeamPlayer",
    "Match",
    "MatchMap",
    "Round",
    "RoundPlayer",
    "MatchResult",
    "Ranking",
    "RankingSnapshot",
]
