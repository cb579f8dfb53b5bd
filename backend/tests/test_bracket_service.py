"""Service layer: persistence of the bracket and version-guarded writes."""
from datetime import date

import pytest
from sqlalchemy import update
from sqlmodel import Session, select

from musikmadness.models.bracket_matchup import SLOT_AWAITING, SLOT_BYE, SLOT_PARTICIPANT, BracketMatchup
from musikmadness.models.tournament import STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_OPEN, Tournament
from musikmadness.models.vote import Vote
from musikmadness.services import bracket_service
from musikmadness.services.bracket_errors import (
    AlreadyJoined,
    ConcurrentBracketUpdate,
    DuplicateVote,
    InvalidMatchup,
    NotTournamentOrganizer,
    TournamentFull,
    TournamentNotFound,
    TournamentStateError,
    UnknownSeedingPolicy,
    VoteTie,
    VotingClosed,
)


@pytest.fixture
def tournament(session: Session) -> Tournament:
    t = Tournament(
        name="Synthwave Cup",
        genre="Synthwave",
        start_date=date(2026, 5, 1),
        end_date=date(2026, 5, 31),
        max_players=8,
        creator_id="org",
    )
    session.add(t)
    session.commit()
    session.refresh(t)
    return t


def _join(session: Session, tournament: Tournament, n: int) -> None:
    for i in range(1, n + 1):
        bracket_service.join_tournament(session, tournament.id, f"u{i}", f"User {i}")


def _rows(session: Session, tournament_id: int) -> dict:
    rows = session.exec(select(BracketMatchup).where(BracketMatchup.tournament_id == tournament_id)).all()
    return {r.matchup_code: r for r in rows}


def test_stable_rng_seed():
    assert bracket_service.stable_rng_seed(7) == bracket_service.stable_rng_seed(7)
    assert bracket_service.stable_rng_seed(7) != bracket_service.stable_rng_seed(8)


def test_unknown_tournament(session: Session):
    with pytest.raises(TournamentNotFound):
        bracket_service.get_tournament(session, 404)


def test_join_rules(session: Session, tournament: Tournament):
    tournament.max_players = 2
    session.add(tournament)
    session.commit()

    _join(session, tournament, 2)
    with pytest.raises(AlreadyJoined):
        bracket_service.join_tournament(session, tournament.id, "u1", "Again")
    with pytest.raises(TournamentFull):
        bracket_service.join_tournament(session, tournament.id, "u3", "User 3")

    names = [p.display_name for p in bracket_service.list_participants(session, tournament.id)]
    assert names == ["User 1", "User 2"]


def test_begin_persists_every_matchup(session: Session, tournament: Tournament):
    _join(session, tournament, 3)
    bracket = bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    session.refresh(tournament)
    assert tournament.status == STATUS_IN_PROGRESS
    assert tournament.bracket_size == 4
    assert tournament.seeding_policy == "standard"
    assert tournament.bracket_version == 1
    assert tournament.started_at is not None

    rows = _rows(session, tournament.id)
    assert set(rows) == {m.matchup_id for m in bracket}

    bye = rows["R1M1"]
    assert (bye.player1_kind, bye.player2_kind) == (SLOT_PARTICIPANT, SLOT_BYE)
    assert bye.is_bye and bye.winner_participant_id == "u1"
    assert bye.resolved_at is not None

    final = rows["R2M1"]
    assert final.player1_kind == SLOT_PARTICIPANT
    assert final.player1_participant_id == "u1"
    assert final.player2_kind == SLOT_AWAITING
    assert final.player2_source_code == "R1M2"
    assert final.is_placeholder


def test_load_bracket_round_trips(session: Session, tournament: Tournament):
    _join(session, tournament, 5)
    built = bracket_service.begin_tournament(session, tournament.id, "org", policy="random", rng_seed=3)

    loaded = bracket_service.load_bracket(session, tournament)
    assert loaded.to_dict() == built.to_dict()


def test_load_bracket_before_begin(session: Session, tournament: Tournament):
    assert bracket_service.load_bracket(session, tournament) is None


def test_default_policy_is_deterministic_per_tournament(session: Session, tournament: Tournament, monkeypatch):
    monkeypatch.setattr(bracket_service, "DEFAULT_SEEDING_POLICY", "random")
    _join(session, tournament, 6)
    bracket = bracket_service.begin_tournament(session, tournament.id, "org")

    from musikmadness.services.bracket_builder import build
    from musikmadness.services.bracket_seeding import Participant, seed

    players = [Participant(f"u{i}", f"User {i}") for i in range(1, 7)]
    expected = build(seed(players, policy="random", rng_seed=bracket_service.stable_rng_seed(tournament.id)))
    assert bracket.to_dict() == expected.to_dict()


def test_begin_rejects_non_organizer(session: Session, tournament: Tournament):
    _join(session, tournament, 2)
    with pytest.raises(NotTournamentOrganizer):
        bracket_service.begin_tournament(session, tournament.id, "u1")
    session.refresh(tournament)
    assert tournament.status == STATUS_OPEN


def test_begin_loses_race(session: Session, tournament: Tournament, monkeypatch):
    _join(session, tournament, 2)
    real_build = bracket_service.build

    def build_then_start_elsewhere(slots):
        bracket = real_build(slots)
        # Another request starts the tournament between the check and the claim
        session.execute(update(Tournament).where(Tournament.id == tournament.id).values(status=STATUS_IN_PROGRESS))
        return bracket

    monkeypatch.setattr(bracket_service, "build", build_then_start_elsewhere)
    with pytest.raises(TournamentStateError):
        bracket_service.begin_tournament(session, tournament.id, "org")
    assert _rows(session, tournament.id) == {}


def test_winner_write_loses_race(session: Session, tournament: Tournament, monkeypatch):
    _join(session, tournament, 4)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    real_load_rows = bracket_service._load_rows
    calls = []

    def load_rows_then_bump(sess, tournament_id):
        calls.append(tournament_id)
        if len(calls) == 2:
            # A concurrent writer commits version 2 after our read of version 1
            sess.execute(
                update(Tournament)
                .where(Tournament.id == tournament_id)
                .values(bracket_version=Tournament.bracket_version + 1)
            )
        return real_load_rows(sess, tournament_id)

    monkeypatch.setattr(bracket_service, "_load_rows", load_rows_then_bump)
    with pytest.raises(ConcurrentBracketUpdate):
        bracket_service.select_winner(session, tournament.id, "R1M1", "u1", organizer_id="org")

    monkeypatch.undo()
    session.expire_all()
    assert _rows(session, tournament.id)["R1M1"].winner_participant_id is None
    assert _rows(session, tournament.id)["R2M1"].player1_kind == SLOT_AWAITING


def test_version_bumps_once_per_write(session: Session, tournament: Tournament):
    _join(session, tournament, 4)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    bracket_service.select_winner(session, tournament.id, "R1M1", "u1", organizer_id="org")
    bracket_service.select_winner(session, tournament.id, "R1M1", "u1", organizer_id="org")
    session.refresh(tournament)
    assert tournament.bracket_version == 2

    rows = _rows(session, tournament.id)
    assert rows["R1M1"].resolved_at is not None
    assert rows["R2M1"].player1_participant_id == "u1"
    assert rows["R2M1"].player1_display_name == "User 1"


def test_duplicate_vote_leaves_score(session: Session, tournament: Tournament):
    _join(session, tournament, 2)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    bracket_service.cast_vote(session, tournament.id, "R1M1", "fan", "u2")
    with pytest.raises(DuplicateVote):
        bracket_service.cast_vote(session, tournament.id, "R1M1", "fan", "u1")

    session.expire_all()
    row = _rows(session, tournament.id)["R1M1"]
    assert (row.player1_score, row.player2_score) == (0, 1)
    assert len(session.exec(select(Vote)).all()) == 1


def test_vote_during_winner_write_is_kept(session: Session, tournament: Tournament, monkeypatch):
    _join(session, tournament, 4)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")
    bracket_service.cast_vote(session, tournament.id, "R1M1", "fan-1", "u1")

    real_load_rows = bracket_service._load_rows
    calls = []

    def load_rows_with_late_vote(sess, tournament_id):
        calls.append(tournament_id)
        if len(calls) == 2:
            # A vote lands after the bracket was loaded for the winner write
            sess.execute(
                update(BracketMatchup)
                .where(BracketMatchup.tournament_id == tournament_id, BracketMatchup.matchup_code == "R1M1")
                .values(player2_score=BracketMatchup.player2_score + 1)
                .execution_options(synchronize_session=False)
            )
        return real_load_rows(sess, tournament_id)

    monkeypatch.setattr(bracket_service, "_load_rows", load_rows_with_late_vote)
    bracket_service.select_winner(session, tournament.id, "R1M1", "u1", organizer_id="org")
    monkeypatch.undo()

    session.expire_all()
    rows = _rows(session, tournament.id)
    assert rows["R1M1"].winner_participant_id == "u1"
    assert (rows["R1M1"].player1_score, rows["R1M1"].player2_score) == (1, 1)
    assert rows["R2M1"].player1_participant_id == "u1"
    assert rows["R2M1"].player1_score == 0


def test_vote_after_winner_committed_is_rejected(session: Session, tournament: Tournament, monkeypatch):
    _join(session, tournament, 4)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    real_get_row = bracket_service._get_row

    def get_row_then_decide(sess, tournament_id, matchup_id):
        row = real_get_row(sess, tournament_id, matchup_id)
        # The organizer decides the matchup after the vote read the row
        sess.execute(
            update(BracketMatchup)
            .where(BracketMatchup.id == row.id)
            .values(winner_participant_id="u1")
            .execution_options(synchronize_session=False)
        )
        return row

    monkeypatch.setattr(bracket_service, "_get_row", get_row_then_decide)
    with pytest.raises(VotingClosed):
        bracket_service.cast_vote(session, tournament.id, "R1M1", "fan-1", "u4")
    monkeypatch.undo()

    session.expire_all()
    row = _rows(session, tournament.id)["R1M1"]
    assert (row.player1_score, row.player2_score) == (0, 0)
    assert session.exec(select(Vote)).all() == []


def test_close_round_resolves_every_open_matchup(session: Session, tournament: Tournament):
    _join(session, tournament, 5)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")
    # R1M1 u1 v BYE, R1M2 u4 v u5, R1M3 u3 v BYE, R1M4 u2 v BYE
    bracket_service.cast_vote(session, tournament.id, "R1M2", "fan-1", "u5")

    result = bracket_service.close_round(session, tournament.id, 1, "org")

    assert result.resolved == ["R1M2"]
    assert result.changed == ["R1M2", "R2M1"]
    session.refresh(tournament)
    assert tournament.bracket_version == 2
    rows = _rows(session, tournament.id)
    assert rows["R1M2"].winner_participant_id == "u5"
    assert rows["R1M2"].player2_score == 1
    assert rows["R2M1"].player2_participant_id == "u5"


def test_close_round_is_all_or_nothing_on_ties(session: Session, tournament: Tournament):
    _join(session, tournament, 8)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")
    # R1M1 u1 v u8, R1M2 u4 v u5, R1M3 u3 v u6, R1M4 u2 v u7
    for code, choice in (("R1M1", "u1"), ("R1M2", "u5"), ("R1M3", "u3")):
        bracket_service.cast_vote(session, tournament.id, code, "fan-1", choice)

    with pytest.raises(VoteTie) as exc:
        bracket_service.close_round(session, tournament.id, 1, "org")
    assert "R1M4" in str(exc.value)

    session.refresh(tournament)
    assert tournament.bracket_version == 1
    assert all(r.winner_participant_id is None for r in _rows(session, tournament.id).values())


def test_close_round_completes_tournament(session: Session, tournament: Tournament):
    _join(session, tournament, 2)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")
    bracket_service.cast_vote(session, tournament.id, "R1M1", "fan-1", "u2")

    result = bracket_service.close_round(session, tournament.id, 1, "org")

    assert result.completed
    assert result.champion == "u2"
    session.refresh(tournament)
    assert tournament.status == STATUS_COMPLETED
    assert tournament.champion_participant_id == "u2"


def test_close_round_with_nothing_open_is_no_op(session: Session, tournament: Tournament):
    _join(session, tournament, 4)
    bracket_service.begin_tournament(session, tournament.id, "org", policy="standard")

    # Round 2 is still waiting on its feeders
    result = bracket_service.close_round(session, tournament.id, 2, "org")
    assert result.no_op
    session.refresh(tournament)
    assert tournament.bracket_version == 1

    with pytest.raises(InvalidMatchup):
        bracket_service.close_round(session, tournament.id, 3, "org")


def test_resolve_seeding_policy():
    assert bracket_service.resolve_seeding_policy(" Standard ") == "standard"
    assert bracket_service.resolve_seeding_policy("random") == "random"
    with pytest.raises(UnknownSeedingPolicy):
        bracket_service.resolve_seeding_policy("snake")
    with pytest.raises(UnknownSeedingPolicy):
        bracket_service.resolve_seeding_policy(None)


def test_misconfigured_default_policy_leaves_tournament_open(session: Session, tournament: Tournament, monkeypatch):
    monkeypatch.setattr(bracket_service, "DEFAULT_SEEDING_POLICY", "snake")
    _join(session, tournament, 4)

    with pytest.raises(UnknownSeedingPolicy):
        bracket_service.begin_tournament(session, tournament.id, "org")
    session.refresh(tournament)
    assert tournament.status == STATUS_OPEN
