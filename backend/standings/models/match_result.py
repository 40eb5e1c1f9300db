from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class MatchResult(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    map_id: int = Field(foreign_key="matchmap.id", index=True, ondelete="CASCADE")
    round_id: Optional[str] = Field(default=None, foreign_key="round.round_id")  # null for manual entries
    week: Optional[str] = Field(default=None, index=True)  # denormalized from Match.week

    # Tournament teams (null until assigned)
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")
    winning_team_id: Optional[int] = Field(default=None, foreign_key="team.id")  # null = draw / undecided

    team1_tickets: int = Field(default=0)
    team2_tickets: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
