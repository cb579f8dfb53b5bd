from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from musikmadness.models.tournament import Tournament

SLOT_PARTICIPANT = "PARTICIPANT"
SLOT_AWAITING = "AWAITING"
SLOT_BYE = "BYE"


class BracketMatchup(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "matchup_code", name="uq_tournament_matchup_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    matchup_code: str  # "R1M1"
    round_number: int
    sequence_in_round: int

    # Slot 1
    player1_kind: str  # PARTICIPANT | AWAITING | BYE
    player1_participant_id: Optional[str] = Field(default=None)
    player1_display_name: str  # username, "BYE" or "Winner of R1M1"
    player1_source_code: Optional[str] = Field(default=None)  # feeder matchup for AWAITING slots
    player1_score: int = Field(default=0)

    # Slot 2
    player2_kind: str
    player2_participant_id: Optional[str] = Field(default=None)
    player2_display_name: str
    player2_source_code: Optional[str] = Field(default=None)
    player2_score: int = Field(default=0)

    winner_participant_id: Optional[str] = Field(default=None)
    is_bye: bool = Field(default=False)
    is_placeholder: bool = Field(default=False)
    resolved_at: Optional[datetime] = Field(default=None)

    tournament: "Tournament" = Relationship(back_populates="matchups")
