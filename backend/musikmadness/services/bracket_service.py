"""
Tournament bracket lifecycle on top of the pure bracket core.

- begin: seed + build from the current participants, persist all matchups
- select winner / close voting / close round: advance + persist the changed matchups
- votes: one per voter per matchup, tallied into the slot score

Bracket writes are serialised per tournament with a compare-and-swap on
Tournament.bracket_version; begin is guarded by a conditional status update.
"""
import hashlib
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional, Union

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from musikmadness.models.bracket_matchup import SLOT_AWAITING, SLOT_BYE, SLOT_PARTICIPANT, BracketMatchup
from musikmadness.models.participant import Participant
from musikmadness.models.tournament import (
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    STATUS_OPEN,
    Tournament,
)
from musikmadness.models.vote import Vote
from musikmadness.services.advancement_engine import AdvanceResult, RoundResult, advance, advance_round
from musikmadness.services.bracket_builder import (
    AwaitingMatch,
    Bracket,
    BracketSlot,
    Bye,
    Known,
    Matchup,
    build,
)
from musikmadness.services.bracket_errors import (
    AlreadyJoined,
    ConcurrentBracketUpdate,
    DuplicateVote,
    InvalidMatchup,
    InvalidWinner,
    NotTournamentOrganizer,
    ParticipantNotFound,
    TournamentFull,
    TournamentNotFound,
    TournamentStateError,
    UnknownSeedingPolicy,
    VoteTie,
    VotingClosed,
)
from musikmadness.services.bracket_seeding import POLICY_RANDOM, SEEDING_POLICIES
from musikmadness.services.bracket_seeding import Participant as SeedParticipant
from musikmadness.services.bracket_seeding import seed
from musikmadness.utils.matchup_codes import parse_matchup_id

logger = logging.getLogger(__name__)


def resolve_seeding_policy(policy: Optional[str]) -> str:
    normalized = (policy or "").strip().lower()
    if normalized not in SEEDING_POLICIES:
        raise UnknownSeedingPolicy(
            f"Unknown seeding policy: {policy!r} (expected one of {', '.join(SEEDING_POLICIES)})"
        )
    return normalized


# Fails at import on a misconfigured environment
DEFAULT_SEEDING_POLICY = resolve_seeding_policy(os.getenv("DEFAULT_SEEDING_POLICY", POLICY_RANDOM))


# ============================================================================
# Lookups and guards
# ============================================================================


def get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise TournamentNotFound("Tournament not found")
    return tournament


def require_organizer(tournament: Tournament, organizer_id: Optional[str]) -> None:
    if not organizer_id or tournament.creator_id != organizer_id:
        raise NotTournamentOrganizer("Only the tournament creator can perform this action")


def stable_rng_seed(tournament_id: int) -> int:
    """Deterministic shuffle seed for a tournament. Same id always yields same value."""
    digest = hashlib.sha256(f"musikmadness:{tournament_id}".encode()).hexdigest()
    return int(digest[:12], 16)


def list_participants(session: Session, tournament_id: int) -> List[Participant]:
    """Participants in join order (joined_at, then id)."""
    return session.exec(
        select(Participant)
        .where(Participant.tournament_id == tournament_id)
        .order_by(Participant.joined_at, Participant.id)
    ).all()


# ============================================================================
# Joining
# ============================================================================


def join_tournament(session: Session, tournament_id: int, participant_id: str, display_name: str) -> Participant:
    tournament = get_tournament(session, tournament_id)
    if tournament.status != STATUS_OPEN:
        raise TournamentStateError("Tournament is not open for submissions")

    existing = session.exec(
        select(Participant).where(
            Participant.tournament_id == tournament_id,
            Participant.participant_id == participant_id,
        )
    ).first()
    if existing:
        raise AlreadyJoined("You have already joined this tournament")

    if len(list_participants(session, tournament_id)) >= tournament.max_players:
        raise TournamentFull("Tournament is full")

    participant = Participant(
        tournament_id=tournament_id,
        participant_id=participant_id,
        display_name=display_name,
    )
    session.add(participant)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise AlreadyJoined("You have already joined this tournament")
    session.refresh(participant)
    return participant


def leave_tournament(session: Session, tournament_id: int, participant_id: str) -> None:
    tournament = get_tournament(session, tournament_id)
    if tournament.status != STATUS_OPEN:
        raise TournamentStateError("Participants cannot leave once the tournament has begun")

    participant = session.exec(
        select(Participant).where(
            Participant.tournament_id == tournament_id,
            Participant.participant_id == participant_id,
        )
    ).first()
    if not participant:
        raise ParticipantNotFound("Participant not found")

    session.delete(participant)
    session.commit()


# ============================================================================
# Row <-> core conversion
# ============================================================================


def _slot_columns(slot: BracketSlot) -> Dict:
    occupant = slot.occupant
    if isinstance(occupant, Known):
        kind, source = SLOT_PARTICIPANT, None
    elif isinstance(occupant, AwaitingMatch):
        kind, source = SLOT_AWAITING, occupant.matchup_id
    else:
        kind, source = SLOT_BYE, None
    return {
        "kind": kind,
        "participant_id": slot.participant_id,
        "display_name": slot.display_name,
        "source_code": source,
        "score": slot.score,
    }


def _write_matchup(row: BracketMatchup, matchup: Matchup, include_scores: bool = True) -> None:
    """Copy a core matchup onto its row. Scores are left alone when
    include_scores is False, since votes update them concurrently in SQL."""
    for number, slot in ((1, matchup.player1), (2, matchup.player2)):
        for column, value in _slot_columns(slot).items():
            if column == "score" and not include_scores:
                continue
            setattr(row, f"player{number}_{column}", value)
    row.winner_participant_id = matchup.winner_participant_id
    row.is_bye = matchup.is_bye
    row.is_placeholder = matchup.is_placeholder


def _row_from_matchup(tournament_id: int, matchup: Matchup, now: datetime) -> BracketMatchup:
    row = BracketMatchup(
        tournament_id=tournament_id,
        matchup_code=matchup.matchup_id,
        round_number=matchup.round_number,
        sequence_in_round=matchup.index,
        player1_kind=SLOT_PARTICIPANT,
        player1_display_name="",
        player2_kind=SLOT_PARTICIPANT,
        player2_display_name="",
    )
    _write_matchup(row, matchup)
    if matchup.is_resolved:
        row.resolved_at = now
    return row


def _slot_from_row(row: BracketMatchup, number: int) -> BracketSlot:
    kind = getattr(row, f"player{number}_kind")
    score = getattr(row, f"player{number}_score") or 0
    if kind == SLOT_PARTICIPANT:
        occupant = Known(
            participant_id=getattr(row, f"player{number}_participant_id"),
            display_name=getattr(row, f"player{number}_display_name"),
        )
    elif kind == SLOT_AWAITING:
        occupant = AwaitingMatch(matchup_id=getattr(row, f"player{number}_source_code"))
    elif kind == SLOT_BYE:
        occupant = Bye()
    else:
        raise ValueError(f"Unknown slot kind {kind!r} on matchup {row.matchup_code}")
    return BracketSlot(occupant=occupant, score=score)


def _matchup_from_row(row: BracketMatchup) -> Matchup:
    return Matchup(
        round_number=row.round_number,
        index=row.sequence_in_round,
        player1=_slot_from_row(row, 1),
        player2=_slot_from_row(row, 2),
        winner_participant_id=row.winner_participant_id,
    )


def _load_rows(session: Session, tournament_id: int) -> List[BracketMatchup]:
    return session.exec(
        select(BracketMatchup)
        .where(BracketMatchup.tournament_id == tournament_id)
        .order_by(BracketMatchup.round_number, BracketMatchup.sequence_in_round)
    ).all()


def load_bracket(session: Session, tournament: Tournament) -> Optional[Bracket]:
    """Rebuild the core Bracket from persisted rows; None before begin."""
    if not tournament.bracket_size:
        return None
    rows = _load_rows(session, tournament.id)
    return Bracket(size=tournament.bracket_size, matchups=[_matchup_from_row(r) for r in rows])


# ============================================================================
# Begin
# ============================================================================


def begin_tournament(
    session: Session,
    tournament_id: int,
    organizer_id: str,
    policy: Optional[str] = None,
    rng_seed: Optional[int] = None,
) -> Bracket:
    """Generate the bracket from the current participants and start the tournament."""
    tournament = get_tournament(session, tournament_id)
    require_organizer(tournament, organizer_id)
    if tournament.status != STATUS_OPEN:
        raise TournamentStateError("Tournament is not in a state to be started (must be OPEN)")

    policy = resolve_seeding_policy(policy or DEFAULT_SEEDING_POLICY)
    if rng_seed is None:
        rng_seed = stable_rng_seed(tournament_id)

    participants = [
        SeedParticipant(participant_id=p.participant_id, display_name=p.display_name)
        for p in list_participants(session, tournament_id)
    ]
    # Seeding/building errors surface here, before anything is written
    bracket = build(seed(participants, policy=policy, rng_seed=rng_seed))

    now = datetime.utcnow()
    try:
        claimed = session.execute(
            update(Tournament)
            .where(Tournament.id == tournament_id, Tournament.status == STATUS_OPEN)
            .values(
                status=STATUS_IN_PROGRESS,
                bracket_size=bracket.size,
                seeding_policy=policy,
                bracket_version=1,
                started_at=now,
                updated_at=now,
            )
        )
        if claimed.rowcount != 1:
            session.rollback()
            logger.warning("Tournament %d begin lost race: already started", tournament_id)
            raise TournamentStateError("Tournament has already begun")

        for matchup in bracket:
            session.add(_row_from_matchup(tournament_id, matchup, now))
        session.commit()
    except TournamentStateError:
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(tournament)
    logger.info(
        "Tournament %d begun: %d participants, bracket size %d, policy=%s, byes=%d",
        tournament_id,
        len(participants),
        bracket.size,
        policy,
        sum(1 for m in bracket.round(1) if m.is_bye),
    )
    return bracket


# ============================================================================
# Resolution
# ============================================================================


def _require_bracket(session: Session, tournament: Tournament) -> Bracket:
    if tournament.status == STATUS_OPEN:
        raise TournamentStateError("Tournament has not begun yet")
    bracket = load_bracket(session, tournament)
    if bracket is None:
        raise TournamentStateError("Bracket not generated for this tournament yet")
    return bracket


def _persist_advance(
    session: Session,
    tournament: Tournament,
    bracket: Bracket,
    result: Union[AdvanceResult, RoundResult],
    resolved: List[str],
    label: str,
) -> None:
    """Write the changed matchups and bump bracket_version in one transaction.

    Scores of the *resolved* matchups are not written back: votes increment
    them in SQL and would be lost to the values loaded with the bracket.
    """
    tournament_id = tournament.id
    version = tournament.bracket_version
    rows_by_code = {r.matchup_code: r for r in _load_rows(session, tournament_id)}
    now = datetime.utcnow()

    values = {"bracket_version": version + 1, "updated_at": now}
    if result.completed:
        values.update(
            status=STATUS_COMPLETED,
            champion_participant_id=result.champion,
            completed_at=now,
        )

    try:
        swapped = session.execute(
            update(Tournament)
            .where(Tournament.id == tournament_id, Tournament.bracket_version == version)
            .values(**values)
        )
        if swapped.rowcount != 1:
            session.rollback()
            logger.warning(
                "Tournament %d bracket write lost race at version %d (%s)",
                tournament_id,
                version,
                label,
            )
            raise ConcurrentBracketUpdate("Bracket was modified concurrently; reload and retry")

        for code in result.changed:
            row = rows_by_code[code]
            _write_matchup(row, bracket.get(code), include_scores=code not in resolved)
            if row.winner_participant_id and row.resolved_at is None:
                row.resolved_at = now
            session.add(row)
        session.commit()
    except ConcurrentBracketUpdate:
        raise
    except Exception:
        session.rollback()
        raise

    session.refresh(tournament)


def _resolve(
    session: Session,
    tournament: Tournament,
    bracket: Bracket,
    matchup_id: str,
    winner_participant_id: str,
) -> AdvanceResult:
    result = advance(bracket, matchup_id, winner_participant_id)
    if result.no_op:
        return result

    _persist_advance(session, tournament, bracket, result, resolved=[matchup_id], label=matchup_id)
    logger.info(
        "Tournament %d: %s won by %s (updated %s)",
        tournament.id,
        matchup_id,
        winner_participant_id,
        ", ".join(result.changed),
    )
    if result.completed:
        logger.info("Tournament %d completed, champion %s", tournament.id, result.champion)
    return result

    _persist_advance(session, tournament, bracket, result)
    logger.info(
        "Tournament %d: %s won by %s (updated %s)",
        tournament.id,
        matchup_id,
        winner_participant_id,
        ", ".join(result.changed),
    )
    if result.completed:
        logger.info("Tournament %d completed, champion %s", tournament.id, result.champion)
    return result


def select_winner(
    session: Session,
    tournament_id: int,
    matchup_id: str,
    winner_participant_id: str,
    organizer_id: str,
    expected_version: Optional[int] = None,
) -> AdvanceResult:
    """Organizer override: declare the winner of a matchup."""
    tournament = get_tournament(session, tournament_id)
    require_organizer(tournament, organizer_id)
    bracket = _require_bracket(session, tournament)

    if expected_version is not None and expected_version != tournament.bracket_version:
        raise ConcurrentBracketUpdate(
            f"Bracket version is {tournament.bracket_version}, expected {expected_version}"
        )

    return _resolve(session, tournament, bracket, matchup_id, winner_participant_id)


# ============================================================================
# Voting
# ============================================================================


def _get_row(session: Session, tournament_id: int, matchup_id: str) -> BracketMatchup:
    row = None
    if parse_matchup_id(matchup_id):
        row = session.exec(
            select(BracketMatchup).where(
                BracketMatchup.tournament_id == tournament_id,
                BracketMatchup.matchup_code == matchup_id,
            )
        ).first()
    if not row:
        raise InvalidMatchup(f"Matchup {matchup_id} not found")
    return row


def cast_vote(
    session: Session,
    tournament_id: int,
    matchup_id: str,
    voter_id: str,
    participant_id: str,
) -> Vote:
    """Record one vote and add it to the voted player's score."""
    tournament = get_tournament(session, tournament_id)
    if tournament.status != STATUS_IN_PROGRESS:
        raise TournamentStateError("Votes are only accepted while the tournament is in progress")

    row = _get_row(session, tournament_id, matchup_id)
    if row.winner_participant_id or row.is_placeholder or row.is_bye:
        raise VotingClosed(f"Matchup {matchup_id} is not open for voting")

    if participant_id == row.player1_participant_id:
        score_column = BracketMatchup.player1_score
    elif participant_id == row.player2_participant_id:
        score_column = BracketMatchup.player2_score
    else:
        raise InvalidWinner(f"Participant {participant_id} is not playing in matchup {matchup_id}")

    vote = Vote(
        tournament_id=tournament_id,
        matchup_code=matchup_id,
        voter_id=voter_id,
        participant_id=participant_id,
    )
    session.add(vote)
    try:
        session.flush()
        # Guarded on the row still being undecided; a winner may have been
        # committed since the row was read above.
        counted = session.execute(
            update(BracketMatchup)
            .where(BracketMatchup.id == row.id, BracketMatchup.winner_participant_id.is_(None))
            .values({score_column.key: score_column + 1})
            .execution_options(synchronize_session=False)
        )
        if counted.rowcount != 1:
            session.rollback()
            logger.info("Tournament %d: vote on %s arrived after it was decided", tournament_id, matchup_id)
            raise VotingClosed(f"Matchup {matchup_id} is not open for voting")
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DuplicateVote("You have already voted on this matchup")

    session.refresh(vote)
    return vote


def _tally_winner(matchup: Matchup) -> str:
    p1, p2 = matchup.player1, matchup.player2
    if p1.score == p2.score:
        raise VoteTie(f"Matchup {matchup.matchup_id} is tied {p1.score}-{p2.score}; select a winner")
    return (p1 if p1.score > p2.score else p2).participant_id


def close_voting(session: Session, tournament_id: int, matchup_id: str, organizer_id: str) -> AdvanceResult:
    """Resolve a matchup by its vote tally. A level tally needs an organizer decision."""
    tournament = get_tournament(session, tournament_id)
    require_organizer(tournament, organizer_id)
    bracket = _require_bracket(session, tournament)
    matchup = bracket.get(matchup_id)

    if matchup.is_resolved:
        return _resolve(session, tournament, bracket, matchup_id, matchup.winner_participant_id)
    if not (matchup.player1.is_known and matchup.player2.is_known):
        raise InvalidWinner(f"Matchup {matchup_id} is not ready: both players must be known")

    return _resolve(session, tournament, bracket, matchup_id, _tally_winner(matchup))


def close_round(session: Session, tournament_id: int, round_number: int, organizer_id: str) -> RoundResult:
    """
    Close voting on every open matchup of a round in one bracket write.

    All or nothing: if any open matchup is tied, nothing is resolved and
    VoteTie lists the tied matchups. Matchups still waiting on a feeder are
    left as they are.
    """
    tournament = get_tournament(session, tournament_id)
    require_organizer(tournament, organizer_id)
    bracket = _require_bracket(session, tournament)

    matchups = bracket.round(round_number)
    if not matchups:
        raise InvalidMatchup(f"Round {round_number} not found")

    open_matchups = [m for m in matchups if not m.is_resolved and not m.is_placeholder]
    tied = [m.matchup_id for m in open_matchups if m.player1.score == m.player2.score]
    if tied:
        raise VoteTie(f"Round {round_number} has tied matchups ({', '.join(tied)}); select their winners first")

    winners = {m.matchup_id: _tally_winner(m) for m in open_matchups}
    result = advance_round(bracket, round_number, winners)
    if result.no_op:
        return result

    _persist_advance(
        session,
        tournament,
        bracket,
        result,
        resolved=result.resolved,
        label=f"round {round_number}",
    )
    logger.info(
        "Tournament %d: round %d closed, %d matchups decided (updated %s)",
        tournament.id,
        round_number,
        len(result.results),
        ", ".join(result.changed),
    )
    if result.completed:
        logger.info("Tournament %d completed, champion %s", tournament.id, result.champion)
    return result


# ============================================================================
# Serialization
# ============================================================================


def serialize_matchup(matchup: Matchup) -> Dict:
    return matchup.to_dict()


def serialize_bracket(tournament: Tournament, bracket: Bracket) -> Dict:
    """Bracket payload with the tournament's runtime fields"""
    return {
        "tournamentId": tournament.id,
        "status": tournament.status,
        "bracketVersion": tournament.bracket_version,
        "championParticipantId": tournament.champion_participant_id,
        **bracket.to_dict(),
    }
