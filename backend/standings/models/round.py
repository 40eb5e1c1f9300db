"""
Round Source tables. Populated by the telemetry collector; read-only here.
"""
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, Relationship, SQLModel


class Round(SQLModel, table=True):
    round_id: str = Field(primary_key=True)
    server_name: Optional[str] = None
    map_name: Optional[str] = None
    team1_label: Optional[str] = None
    team2_label: Optional[str] = None
    tickets1: Optional[int] = None
    tickets2: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    players: List["RoundPlayer"] = Relationship(back_populates="round")


class RoundPlayer(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    round_id: str = Field(foreign_key="round.round_id", index=True)
    player_name: str
    team_label: str

    round: "Round" = Relationship(back_populates="players")
