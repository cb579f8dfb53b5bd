from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from musikmadness.models.bracket_matchup import BracketMatchup
    from musikmadness.models.participant import Participant

STATUS_OPEN = "OPEN"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
TOURNAMENT_STATUSES = (STATUS_OPEN, STATUS_IN_PROGRESS, STATUS_COMPLETED)


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    genre: str
    description: Optional[str] = None
    language: str = Field(default="Any Language")
    rules: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    start_date: date
    end_date: date
    max_players: int
    creator_id: str = Field(index=True)
    status: str = Field(default=STATUS_OPEN, index=True)  # OPEN | IN_PROGRESS | COMPLETED

    # Bracket (set once at begin time)
    bracket_size: Optional[int] = Field(default=None)  # 2, 4, 8, 16, 32, 64 ...
    seeding_policy: Optional[str] = Field(default=None)  # "standard" | "random"
    bracket_version: int = Field(default=0)  # bumped on every bracket write (compare-and-swap)
    champion_participant_id: Optional[str] = Field(default=None)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    participants: List["Participant"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
    matchups: List["BracketMatchup"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )
