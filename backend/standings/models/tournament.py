from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from standings.models.match import Match
    from standings.models.team import Team

SCORING_MODE_MATCH = "match"  # 3 per match victory, 1 per match tie
SCORING_MODE_ROUNDS = "rounds"  # 1 per round won

GAME_MODE_CTF = "CTF"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    game: Optional[str] = None  # bf1942, fh2, bfvietnam
    game_mode: Optional[str] = None  # Conquest, CTF, ...
    scoring_mode: Optional[str] = None  # "match" | "rounds"; None follows game_mode
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
