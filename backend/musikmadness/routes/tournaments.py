import math
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy import delete
from sqlmodel import Session, func, select

from musikmadness.database import get_session
from musikmadness.models.bracket_matchup import BracketMatchup
from musikmadness.models.participant import Participant
from musikmadness.models.tournament import STATUS_OPEN, TOURNAMENT_STATUSES, Tournament
from musikmadness.models.vote import Vote
from musikmadness.services import bracket_service
from musikmadness.utils.http_errors import SERVICE_ERRORS, to_http_exception

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    genre: str
    description: Optional[str] = None
    language: Optional[str] = None
    rules: Optional[List[str]] = None
    start_date: date
    end_date: date
    max_players: int
    creator_id: str

    @field_validator("name", "genre", "creator_id")
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("max_players")
    @classmethod
    def validate_max_players(cls, v):
        if v < 2:
            raise ValueError("max_players must be at least 2")
        return v

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class TournamentUpdate(BaseModel):
    organizer_id: str
    name: Optional[str] = None
    genre: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    rules: Optional[List[str]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    max_players: Optional[int] = None

    # Omitted fields are left unchanged; an explicit null is only allowed
    # for the nullable columns (description, rules).
    @field_validator("name", "genre", "language")
    @classmethod
    def validate_not_blank(cls, v):
        if v is None:
            raise ValueError("must not be null")
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("start_date", "end_date")
    @classmethod
    def validate_date_not_null(cls, v):
        if v is None:
            raise ValueError("must not be null")
        return v

    @field_validator("max_players")
    @classmethod
    def validate_max_players(cls, v):
        if v is None:
            raise ValueError("must not be null")
        if v < 2:
            raise ValueError("max_players must be at least 2")
        return v


class TournamentResponse(BaseModel):
    id: int
    name: str
    genre: str
    description: Optional[str]
    language: str
    rules: Optional[List[str]] = None
    start_date: date
    end_date: date
    max_players: int
    creator_id: str
    status: str
    bracket_size: Optional[int] = None
    seeding_policy: Optional[str] = None
    bracket_version: int
    champion_participant_id: Optional[str] = None
    participant_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    total: int
    page: int
    pages: int


class TournamentListResponse(BaseModel):
    tournaments: List[TournamentResponse]
    pagination: Pagination


class ParticipantJoin(BaseModel):
    participant_id: str
    display_name: str

    @field_validator("participant_id", "display_name")
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ParticipantResponse(BaseModel):
    participant_id: str
    display_name: str
    joined_at: datetime

    class Config:
        from_attributes = True


def _to_response(session: Session, tournament: Tournament) -> TournamentResponse:
    count = session.exec(
        select(func.count(Participant.id)).where(Participant.tournament_id == tournament.id)
    ).one()
    response = TournamentResponse.model_validate(tournament)
    response.participant_count = count
    return response


@router.get("/tournaments", response_model=TournamentListResponse)
def list_tournaments(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """List tournaments, newest first, optionally filtered by status"""
    query = select(Tournament)
    count_query = select(func.count(Tournament.id))
    if status:
        status = status.upper()
        if status not in TOURNAMENT_STATUSES:
            raise HTTPException(status_code=422, detail=f"Invalid status: {status}")
        query = query.where(Tournament.status == status)
        count_query = count_query.where(Tournament.status == status)

    total = session.exec(count_query).one()
    tournaments = session.exec(
        query.order_by(Tournament.created_at.desc(), Tournament.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()

    return TournamentListResponse(
        tournaments=[_to_response(session, t) for t in tournaments],
        pagination=Pagination(total=total, page=page, pages=math.ceil(total / limit)),
    )


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a new tournament (status OPEN)"""
    data = tournament_data.model_dump(exclude_none=True)
    tournament = Tournament(**data)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return _to_response(session, tournament)


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return _to_response(session, tournament)


@router.put("/tournaments/{tournament_id}", response_model=TournamentResponse)
def update_tournament(tournament_id: int, tournament_data: TournamentUpdate, session: Session = Depends(get_session)):
    """Update tournament details. Capacity can only change while the tournament is OPEN."""
    try:
        tournament = bracket_service.get_tournament(session, tournament_id)
        bracket_service.require_organizer(tournament, tournament_data.organizer_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    update_data = tournament_data.model_dump(exclude_unset=True, exclude={"organizer_id"})
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields provided for update")

    if "max_players" in update_data:
        if tournament.status != STATUS_OPEN:
            raise HTTPException(status_code=409, detail="max_players cannot change once the tournament has begun")
        joined = session.exec(
            select(func.count(Participant.id)).where(Participant.tournament_id == tournament_id)
        ).one()
        if update_data["max_players"] < joined:
            raise HTTPException(
                status_code=400,
                detail=f"max_players cannot be lower than the {joined} participants already joined",
            )

    start = update_data.get("start_date", tournament.start_date)
    end = update_data.get("end_date", tournament.end_date)
    if end <= start:
        raise HTTPException(status_code=422, detail="end_date must be after start_date")

    for field, value in update_data.items():
        setattr(tournament, field, value)

    tournament.updated_at = datetime.utcnow()
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return _to_response(session, tournament)


@router.delete("/tournaments/{tournament_id}", status_code=204)
def delete_tournament(tournament_id: int, organizer_id: str, session: Session = Depends(get_session)):
    """Delete a tournament with its participants, bracket and votes"""
    try:
        tournament = bracket_service.get_tournament(session, tournament_id)
        bracket_service.require_organizer(tournament, organizer_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    try:
        # Children first
        session.execute(delete(Vote).where(Vote.tournament_id == tournament_id))
        session.execute(delete(BracketMatchup).where(BracketMatchup.tournament_id == tournament_id))
        session.execute(delete(Participant).where(Participant.tournament_id == tournament_id))
        session.execute(delete(Tournament).where(Tournament.id == tournament_id))
        session.commit()
    except Exception as e:
        session.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to delete tournament: {str(e)}")

    return Response(status_code=204)


# ============================================================================
# Participants
# ============================================================================


@router.get("/tournaments/{tournament_id}/participants", response_model=List[ParticipantResponse])
def list_participants(tournament_id: int, session: Session = Depends(get_session)):
    """Participants in join order"""
    try:
        bracket_service.get_tournament(session, tournament_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return bracket_service.list_participants(session, tournament_id)


@router.post(
    "/tournaments/{tournament_id}/participants",
    response_model=ParticipantResponse,
    status_code=201,
)
def join_tournament(tournament_id: int, payload: ParticipantJoin, session: Session = Depends(get_session)):
    """Join an OPEN tournament. The display name is snapshotted for the bracket."""
    try:
        return bracket_service.join_tournament(
            session, tournament_id, payload.participant_id, payload.display_name
        )
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)


@router.delete("/tournaments/{tournament_id}/participants/{participant_id}", status_code=204)
def leave_tournament(tournament_id: int, participant_id: str, session: Session = Depends(get_session)):
    """Leave a tournament before it begins"""
    try:
        bracket_service.leave_tournament(session, tournament_id, participant_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return Response(status_code=204)
