# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from standings.models.match import Match  # noqa: F401
from standings.models.match_map import MatchMap  # noqa: F401
from standings.models.match_result import MatchResult  # noqa: F401
from standings.models.ranking import Ranking, RankingSnapshot  # noqa: F401
from standings.models.round import Round, RoundPlayer  # noqa: F401
from standings.models.team import Team, TeamPlayer  # noqa: F401
from standings.models.tournament import Tournament  # noqa: F401
