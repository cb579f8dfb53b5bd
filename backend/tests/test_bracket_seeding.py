"""
Tests for bracket seeding: power-of-two padding, fold placement, BYE distribution.
"""
import pytest

from musikmadness.services.bracket_errors import DuplicateParticipant, InsufficientParticipants
from musikmadness.services.bracket_seeding import (
    BYE,
    Participant,
    bracket_fold_positions,
    next_power_of_two,
    seed,
)


def _players(n: int) -> list[Participant]:
    return [Participant(participant_id=f"u{i}", display_name=f"User {i}") for i in range(1, n + 1)]


def _ids(slots) -> list:
    return [None if s is BYE else s.participant_id for s in slots]


class TestNextPowerOfTwo:
    def test_values(self):
        assert [next_power_of_two(n) for n in (1, 2, 3, 4, 5, 8, 9, 33)] == [1, 2, 4, 4, 8, 8, 16, 64]


class TestBracketFoldPositions:
    def test_4_entries(self):
        assert bracket_fold_positions(4) == [1, 4, 2, 3]

    def test_8_entries(self):
        assert bracket_fold_positions(8) == [1, 8, 4, 5, 3, 6, 2, 7]

    def test_round_one_pairs_sum_to_size_plus_one(self):
        for n in (2, 4, 8, 16, 32, 64):
            positions = bracket_fold_positions(n)
            assert sorted(positions) == list(range(1, n + 1))
            for i in range(0, n, 2):
                assert positions[i] + positions[i + 1] == n + 1

    def test_top_two_seeds_in_opposite_halves(self):
        for n in (4, 8, 16, 32):
            positions = bracket_fold_positions(n)
            half = n // 2
            assert 1 in positions[:half]
            assert 2 in positions[half:]


class TestSeedStandard:
    def test_power_of_two_has_no_byes(self):
        slots = seed(_players(4))
        assert _ids(slots) == ["u1", "u4", "u2", "u3"]
        assert BYE not in slots

    def test_three_players_pad_to_four(self):
        slots = seed(_players(3))
        assert _ids(slots) == ["u1", None, "u2", "u3"]

    def test_five_players_pad_to_eight_with_three_byes(self):
        slots = seed(_players(5))
        assert len(slots) == 8
        assert _ids(slots) == ["u1", None, "u4", "u5", "u3", None, "u2", None]

    def test_byes_go_to_top_seeds(self):
        slots = seed(_players(6))
        ids = _ids(slots)
        bye_opponents = sorted(
            ids[i] if ids[i + 1] is None else ids[i + 1]
            for i in range(0, len(ids), 2)
            if None in (ids[i], ids[i + 1])
        )
        assert bye_opponents == ["u1", "u2"]

    def test_never_pairs_two_byes(self):
        for n in range(2, 70):
            slots = seed(_players(n))
            assert len(slots) == next_power_of_two(n)
            assert slots.count(BYE) == len(slots) - n
            for i in range(0, len(slots), 2):
                assert not (slots[i] is BYE and slots[i + 1] is BYE), f"n={n} pair {i // 2 + 1}"

    def test_every_participant_placed_once(self):
        players = _players(11)
        slots = seed(players)
        placed = [s for s in slots if s is not BYE]
        assert sorted(p.participant_id for p in placed) == sorted(p.participant_id for p in players)


class TestSeedRandom:
    def test_same_seed_same_slots(self):
        players = _players(9)
        assert seed(players, policy="random", rng_seed=42) == seed(players, policy="random", rng_seed=42)

    def test_is_permutation_with_byes(self):
        players = _players(13)
        slots = seed(players, policy="random", rng_seed=7)
        assert len(slots) == 16
        assert slots.count(BYE) == 3
        assert sorted(s.participant_id for s in slots if s is not BYE) == sorted(p.participant_id for p in players)

    def test_does_not_mutate_input(self):
        players = _players(6)
        before = list(players)
        seed(players, policy="random", rng_seed=1)
        assert players == before

    def test_random_never_pairs_two_byes(self):
        for n in range(2, 40):
            slots = seed(_players(n), policy="random", rng_seed=n)
            for i in range(0, len(slots), 2):
                assert not (slots[i] is BYE and slots[i + 1] is BYE)


class TestSeedValidation:
    @pytest.mark.parametrize("n", [0, 1])
    def test_fewer_than_two_participants(self, n):
        with pytest.raises(InsufficientParticipants):
            seed(_players(n))

    def test_duplicate_participant(self):
        players = _players(3) + [Participant(participant_id="u2", display_name="Again")]
        with pytest.raises(DuplicateParticipant):
            seed(players)

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            seed(_players(4), policy="snake")
