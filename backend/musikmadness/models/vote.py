from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class Vote(SQLModel, table=True):
    # One vote per voter per matchup
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "matchup_code", "voter_id", name="uq_vote_voter_matchup"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    matchup_code: str
    voter_id: str
    participant_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
