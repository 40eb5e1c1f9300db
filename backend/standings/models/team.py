from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from standings.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    tag: Optional[str] = None  # short clan tag, e.g. "[GGE]"
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
    players: List["TeamPlayer"] = Relationship(back_populates="team")


class TeamPlayer(SQLModel, table=True):
    # A player may be on at most one team per tournament
    __table_args__ = (SAUniqueConstraint("tournament_id", "player_name", name="uq_tournament_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    player_name: str
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    team: "Team" = Relationship(back_populates="players")
