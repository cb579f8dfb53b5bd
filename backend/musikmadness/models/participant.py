from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from musikmadness.models.tournament import Tournament


class Participant(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "participant_id", name="uq_tournament_participant"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    participant_id: str  # user id
    display_name: str  # snapshot taken at join time
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="participants")
