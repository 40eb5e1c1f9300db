from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from standings.models.match_map import MatchMap
    from standings.models.team import Team
    from standings.models.tournament import Tournament


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team1_id: int = Field(foreign_key="team.id")
    team2_id: int = Field(foreign_key="team.id")
    scheduled_at: datetime
    week: Optional[str] = Field(default=None)  # free-form label, e.g. "Week 3"
    server_name: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    maps: List["MatchMap"] = Relationship(
        back_populates="match", sa_relationship_kwargs={"order_by": "MatchMap.map_order"}
    )
    team1: "Team" = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.team1_id"})
    team2: "Team" = Relationship(sa_relationship_kwargs={"foreign_keys": "Match.team2_id"})

    def team_ids(self) -> tuple:
        return (self.team1_id, self.team2_id)
