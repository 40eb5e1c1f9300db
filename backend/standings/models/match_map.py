from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from standings.models.match import Match


class MatchMap(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    map_name: str
    map_order: int = Field(default=0)  # 0-based position in the best-of-N sequence
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")  # side / picker, optional

    match: "Match" = Relationship(back_populates="maps")
