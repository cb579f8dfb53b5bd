"""
Bracket runtime: begin, read, organizer winner selection, voting and round close.

Matchups serialize in the camelCase shape the frontend consumes:
{matchupId, roundNumber, player1, player2, winnerParticipantId, isPlaceholder, isBye}.
"""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from musikmadness.database import get_session
from musikmadness.models.tournament import Tournament
from musikmadness.services import bracket_service
from musikmadness.services.advancement_engine import AdvanceResult
from musikmadness.services.bracket_builder import Bracket, Matchup
from musikmadness.utils.http_errors import SERVICE_ERRORS, to_http_exception

router = APIRouter()


class SlotResponse(BaseModel):
    participant_id: Optional[str] = Field(default=None, alias="participantId")
    display_name: str = Field(alias="displayName")
    score: int = 0

    class Config:
        populate_by_name = True


class MatchupResponse(BaseModel):
    matchup_id: str = Field(alias="matchupId")
    round_number: int = Field(alias="roundNumber")
    player1: SlotResponse
    player2: SlotResponse
    winner_participant_id: Optional[str] = Field(default=None, alias="winnerParticipantId")
    is_placeholder: bool = Field(alias="isPlaceholder")
    is_bye: bool = Field(alias="isBye")

    class Config:
        populate_by_name = True


class MatchupDetailResponse(MatchupResponse):
    tournament_id: int = Field(alias="tournamentId")
    tournament_name: str = Field(alias="tournamentName")
    status: str  # completed | bye | active | upcoming


class BracketResponse(BaseModel):
    tournament_id: int = Field(alias="tournamentId")
    status: str
    bracket_size: int = Field(alias="bracketSize")
    total_rounds: int = Field(alias="totalRounds")
    bracket_version: int = Field(alias="bracketVersion")
    champion_participant_id: Optional[str] = Field(default=None, alias="championParticipantId")
    matchups: List[MatchupResponse]

    class Config:
        populate_by_name = True


class AdvanceResponse(BaseModel):
    matchup_id: str = Field(alias="matchupId")
    winner_participant_id: str = Field(alias="winnerParticipantId")
    changed: List[str]
    completed: bool
    bracket: BracketResponse

    class Config:
        populate_by_name = True


class ResolvedMatchupResponse(BaseModel):
    matchup_id: str = Field(alias="matchupId")
    winner_participant_id: str = Field(alias="winnerParticipantId")

    class Config:
        populate_by_name = True


class RoundCloseResponse(BaseModel):
    round_number: int = Field(alias="roundNumber")
    resolved: List[ResolvedMatchupResponse]
    changed: List[str]
    completed: bool
    bracket: BracketResponse

    class Config:
        populate_by_name = True


class BeginRequest(BaseModel):
    organizer_id: str
    seeding_policy: Optional[Literal["standard", "random"]] = None
    random_seed: Optional[int] = None


class WinnerRequest(BaseModel):
    organizer_id: str
    winner_participant_id: str
    expected_version: Optional[int] = None


class CloseVotingRequest(BaseModel):
    organizer_id: str


class VoteRequest(BaseModel):
    voter_id: str
    participant_id: str


class VoteResponse(BaseModel):
    voter_id: str = Field(alias="voterId")
    participant_id: str = Field(alias="participantId")
    matchup: MatchupResponse

    class Config:
        populate_by_name = True


def _matchup_status(m: Matchup) -> str:
    if m.is_resolved and not m.is_bye:
        return "completed"
    if m.is_bye:
        return "bye"
    if m.is_placeholder:
        return "upcoming"
    return "active"


def _bracket_response(tournament: Tournament, bracket: Bracket) -> BracketResponse:
    return BracketResponse.model_validate(bracket_service.serialize_bracket(tournament, bracket))


def _load_or_404(session: Session, tournament: Tournament) -> Bracket:
    bracket = bracket_service.load_bracket(session, tournament)
    if bracket is None:
        raise HTTPException(status_code=404, detail="Bracket not generated for this tournament yet")
    return bracket


def _advance_response(session: Session, tournament_id: int, result: AdvanceResult) -> AdvanceResponse:
    tournament = bracket_service.get_tournament(session, tournament_id)
    bracket = _load_or_404(session, tournament)
    return AdvanceResponse(
        matchup_id=result.matchup_id,
        winner_participant_id=result.winner_participant_id,
        changed=result.changed,
        completed=result.completed,
        bracket=_bracket_response(tournament, bracket),
    )


@router.post("/tournaments/{tournament_id}/begin", response_model=BracketResponse)
def begin_tournament(tournament_id: int, payload: BeginRequest, session: Session = Depends(get_session)):
    """Generate the bracket from the current participants and move the tournament to IN_PROGRESS.
    The bracket is built exactly once; a second begin is rejected with 409."""
    try:
        bracket = bracket_service.begin_tournament(
            session,
            tournament_id,
            organizer_id=payload.organizer_id,
            policy=payload.seeding_policy,
            rng_seed=payload.random_seed,
        )
        tournament = bracket_service.get_tournament(session, tournament_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return _bracket_response(tournament, bracket)


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketResponse)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)):
    """Full bracket, ordered by round then position"""
    try:
        tournament = bracket_service.get_tournament(session, tournament_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)
    return _bracket_response(tournament, _load_or_404(session, tournament))


@router.get(
    "/tournaments/{tournament_id}/bracket/matchups/{matchup_id}",
    response_model=MatchupDetailResponse,
)
def get_matchup(tournament_id: int, matchup_id: str, session: Session = Depends(get_session)):
    try:
        tournament = bracket_service.get_tournament(session, tournament_id)
        bracket = _load_or_404(session, tournament)
        matchup = bracket.get(matchup_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    return MatchupDetailResponse.model_validate(
        {
            **bracket_service.serialize_matchup(matchup),
            "tournamentId": tournament.id,
            "tournamentName": tournament.name,
            "status": _matchup_status(matchup),
        }
    )


@router.post(
    "/tournaments/{tournament_id}/bracket/matchups/{matchup_id}/winner",
    response_model=AdvanceResponse,
)
def select_matchup_winner(
    tournament_id: int,
    matchup_id: str,
    payload: WinnerRequest,
    session: Session = Depends(get_session),
):
    """Organizer declares the winner. Re-sending the recorded winner is a no-op;
    a different winner for a resolved matchup is a 409."""
    try:
        result = bracket_service.select_winner(
            session,
            tournament_id,
            matchup_id,
            payload.winner_participant_id,
            organizer_id=payload.organizer_id,
            expected_version=payload.expected_version,
        )
        return _advance_response(session, tournament_id, result)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)


@router.post(
    "/tournaments/{tournament_id}/bracket/matchups/{matchup_id}/votes",
    response_model=VoteResponse,
    status_code=201,
)
def vote_on_matchup(
    tournament_id: int,
    matchup_id: str,
    payload: VoteRequest,
    session: Session = Depends(get_session),
):
    """One vote per voter per matchup; the vote is added to the chosen player's score"""
    try:
        vote = bracket_service.cast_vote(
            session, tournament_id, matchup_id, payload.voter_id, payload.participant_id
        )
        tournament = bracket_service.get_tournament(session, tournament_id)
        matchup = _load_or_404(session, tournament).get(matchup_id)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    return VoteResponse(
        voter_id=vote.voter_id,
        participant_id=vote.participant_id,
        matchup=MatchupResponse.model_validate(bracket_service.serialize_matchup(matchup)),
    )


@router.post(
    "/tournaments/{tournament_id}/bracket/matchups/{matchup_id}/close",
    response_model=AdvanceResponse,
)
def close_matchup_voting(
    tournament_id: int,
    matchup_id: str,
    payload: CloseVotingRequest,
    session: Session = Depends(get_session),
):
    """Resolve a matchup by vote tally. A tie returns 409; the organizer must select a winner."""
    try:
        result = bracket_service.close_voting(session, tournament_id, matchup_id, payload.organizer_id)
        return _advance_response(session, tournament_id, result)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)


@router.post(
    "/tournaments/{tournament_id}/bracket/rounds/{round_number}/close",
    response_model=RoundCloseResponse,
)
def close_round_voting(
    tournament_id: int,
    round_number: int,
    payload: CloseVotingRequest,
    session: Session = Depends(get_session),
):
    """Resolve every open matchup of a round by vote tally in one write.
    Any tied matchup rejects the whole round with 409."""
    try:
        result = bracket_service.close_round(session, tournament_id, round_number, payload.organizer_id)
        tournament = bracket_service.get_tournament(session, tournament_id)
        bracket = _load_or_404(session, tournament)
    except SERVICE_ERRORS as e:
        raise to_http_exception(e)

    return RoundCloseResponse(
        round_number=round_number,
        resolved=[
            ResolvedMatchupResponse(matchup_id=r.matchup_id, winner_participant_id=r.winner_participant_id)
            for r in result.results
        ],
        changed=result.changed,
        completed=result.completed,
        bracket=_bracket_response(tournament, bracket),
    )
