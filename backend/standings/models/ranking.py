from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class Ranking(SQLModel, table=True):
    """One team's standing in one scope. week NULL = cumulative."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id")
    week: Optional[str] = Field(default=None, index=True)
    generation: int = Field(default=1)

    rank: int

    # Match-level
    matches_played: int = Field(default=0)
    victories: int = Field(default=0)
    ties: int = Field(default=0)
    losses: int = Field(default=0)

    # Map-level
    rounds_won: int = Field(default=0)
    rounds_tied: int = Field(default=0)
    rounds_lost: int = Field(default=0)

    tickets_for: int = Field(default=0)
    tickets_against: int = Field(default=0)
    ticket_differential: int = Field(default=0)

    points: int = Field(default=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class RankingSnapshot(SQLModel, table=True):
    """Generation marker for the current ranking set of a (tournament, scope)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    week: Optional[str] = Field(default=None)
    generation: int = Field(default=0)
    row_count: int = Field(default=0)
    computed_at: datetime = Field(default_factory=datetime.utcnow)
