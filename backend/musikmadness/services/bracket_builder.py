"""
Single-elimination bracket construction.

A bracket of size 2^k has k rounds; round r holds size / 2^r matchups.
Round 1 pairs seeded slot 2i with slot 2i+1. Later rounds start as
AwaitingMatch placeholders that point at their feeder matchups and are
filled as winners become known. BYE matchups resolve at construction time
and their winners cascade forward before the bracket is returned.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Union

from musikmadness.services.bracket_errors import InvalidBracketTopology, InvalidMatchup
from musikmadness.services.bracket_seeding import BYE, Participant, SeedSlot
from musikmadness.utils.matchup_codes import format_matchup_id, next_matchup_position, parse_matchup_id

BYE_DISPLAY_NAME = "BYE"

STATE_PLACEHOLDER = "PLACEHOLDER"
STATE_PENDING = "PENDING"
STATE_RESOLVED = "RESOLVED"


# ---------------------------------------------------------------------------
# Slot occupants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Known:
    participant_id: str
    display_name: str


@dataclass(frozen=True)
class AwaitingMatch:
    matchup_id: str


@dataclass(frozen=True)
class Bye:
    pass


Occupant = Union[Known, AwaitingMatch, Bye]


@dataclass
class BracketSlot:
    occupant: Occupant
    score: int = 0

    @property
    def participant_id(self) -> Optional[str]:
        if isinstance(self.occupant, Known):
            return self.occupant.participant_id
        return None

    @property
    def display_name(self) -> str:
        if isinstance(self.occupant, Known):
            return self.occupant.display_name
        if isinstance(self.occupant, AwaitingMatch):
            return f"Winner of {self.occupant.matchup_id}"
        return BYE_DISPLAY_NAME

    @property
    def is_known(self) -> bool:
        return isinstance(self.occupant, Known)

    @property
    def is_bye(self) -> bool:
        return isinstance(self.occupant, Bye)

    @property
    def is_awaiting(self) -> bool:
        return isinstance(self.occupant, AwaitingMatch)


@dataclass
class Matchup:
    round_number: int
    index: int
    player1: BracketSlot
    player2: BracketSlot
    winner_participant_id: Optional[str] = None

    @property
    def matchup_id(self) -> str:
        return format_matchup_id(self.round_number, self.index)

    @property
    def slots(self) -> tuple:
        return (self.player1, self.player2)

    @property
    def is_bye(self) -> bool:
        return any(s.is_bye for s in self.slots)

    @property
    def is_placeholder(self) -> bool:
        return any(s.is_awaiting for s in self.slots)

    @property
    def is_resolved(self) -> bool:
        return self.winner_participant_id is not None

    @property
    def state(self) -> str:
        if self.is_resolved:
            return STATE_RESOLVED
        if self.is_placeholder:
            return STATE_PLACEHOLDER
        return STATE_PENDING

    def occupant_ids(self) -> List[str]:
        return [s.participant_id for s in self.slots if s.participant_id is not None]

    def slot(self, number: int) -> BracketSlot:
        return self.player1 if number == 1 else self.player2

    def to_dict(self) -> Dict:
        """Serialized shape shared with the HTTP layer."""
        return {
            "matchupId": self.matchup_id,
            "roundNumber": self.round_number,
            "player1": _slot_dict(self.player1),
            "player2": _slot_dict(self.player2),
            "winnerParticipantId": self.winner_participant_id,
            "isPlaceholder": self.is_placeholder,
            "isBye": self.is_bye,
        }


def _slot_dict(slot: BracketSlot) -> Dict:
    return {
        "participantId": slot.participant_id,
        "displayName": slot.display_name,
        "score": slot.score,
    }


@dataclass
class Bracket:
    size: int
    matchups: List[Matchup] = field(default_factory=list)

    def __post_init__(self):
        self._by_id: Dict[str, Matchup] = {m.matchup_id: m for m in self.matchups}

    def __iter__(self) -> Iterator[Matchup]:
        return iter(self.matchups)

    def __len__(self) -> int:
        return len(self.matchups)

    @property
    def total_rounds(self) -> int:
        return self.size.bit_length() - 1

    def get(self, matchup_id: str) -> Matchup:
        m = self._by_id.get(matchup_id)
        if m is None:
            raise InvalidMatchup(f"Matchup {matchup_id} not found")
        return m

    def find(self, matchup_id: str) -> Optional[Matchup]:
        return self._by_id.get(matchup_id)

    def round(self, round_number: int) -> List[Matchup]:
        return [m for m in self.matchups if m.round_number == round_number]

    @property
    def final_matchup(self) -> Matchup:
        return self.get(format_matchup_id(self.total_rounds, 1))

    @property
    def is_complete(self) -> bool:
        return self.final_matchup.is_resolved

    @property
    def champion(self) -> Optional[str]:
        return self.final_matchup.winner_participant_id

    def next_matchup(self, matchup: Matchup) -> Optional[Matchup]:
        """Matchup the winner of *matchup* feeds, or None for the final."""
        if matchup.round_number >= self.total_rounds:
            return None
        next_round, next_index, _ = next_matchup_position(matchup.round_number, matchup.index)
        return self.get(format_matchup_id(next_round, next_index))

    def to_dict(self) -> Dict:
        return {
            "bracketSize": self.size,
            "totalRounds": self.total_rounds,
            "matchups": [m.to_dict() for m in self.matchups],
        }


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def _occupant_for(slot: SeedSlot) -> Occupant:
    if slot is BYE:
        return Bye()
    if isinstance(slot, Participant):
        return Known(participant_id=slot.participant_id, display_name=slot.display_name)
    raise InvalidBracketTopology(f"Unsupported seeded slot: {slot!r}")


def build(seeded_slots: Sequence[SeedSlot]) -> Bracket:
    """Build the full bracket for a power-of-two list of seeded slots.

    A round-1 BYE vs BYE pairing is rejected with InvalidBracketTopology;
    seed() never produces one.
    """
    size = len(seeded_slots)
    if size < 2 or size & (size - 1):
        raise InvalidBracketTopology(f"Slot count must be a power of two >= 2, got {size}")

    total_rounds = size.bit_length() - 1
    matchups: List[Matchup] = []

    for i in range(size // 2):
        a = _occupant_for(seeded_slots[2 * i])
        b = _occupant_for(seeded_slots[2 * i + 1])
        if isinstance(a, Bye) and isinstance(b, Bye):
            raise InvalidBracketTopology(
                f"Matchup {format_matchup_id(1, i + 1)} pairs two BYEs"
            )
        matchups.append(Matchup(round_number=1, index=i + 1, player1=BracketSlot(a), player2=BracketSlot(b)))

    for r in range(2, total_rounds + 1):
        for i in range(1, size // (2 ** r) + 1):
            matchups.append(
                Matchup(
                    round_number=r,
                    index=i,
                    player1=BracketSlot(AwaitingMatch(format_matchup_id(r - 1, 2 * i - 1))),
                    player2=BracketSlot(AwaitingMatch(format_matchup_id(r - 1, 2 * i))),
                )
            )

    bracket = Bracket(size=size, matchups=matchups)
    for m in bracket.round(1):
        settle(bracket, m)
    return bracket


# ---------------------------------------------------------------------------
# Propagation (shared with the advancement engine)
# ---------------------------------------------------------------------------


def settle(bracket: Bracket, matchup: Matchup) -> List[str]:
    """Auto-resolve *matchup* if it is a BYE and push any known result forward.

    Returns the ids of matchups changed, in order. Walks at most one chain
    toward the final, so the work is bounded by the remaining rounds.
    """
    changed: List[str] = []
    current: Optional[Matchup] = matchup

    while current is not None:
        if not current.is_resolved:
            if current.is_placeholder:
                break
            known = [s for s in current.slots if s.is_known]
            if len(known) != 1:
                # Two known players wait for a vote or an organizer decision.
                break
            current.winner_participant_id = known[0].participant_id
            changed.append(current.matchup_id)

        nxt = bracket.next_matchup(current)
        if nxt is None:
            break
        target = fill_from_feeder(nxt, current)
        if target is None:
            break
        if nxt.matchup_id not in changed:
            changed.append(nxt.matchup_id)
        current = nxt

    return changed


def fill_from_feeder(nxt: Matchup, feeder: Matchup) -> Optional[BracketSlot]:
    """Replace the AwaitingMatch placeholder in *nxt* that points at *feeder*.

    Returns the filled slot, or None when that slot was already filled.
    """
    _, _, slot_number = next_matchup_position(feeder.round_number, feeder.index)
    slot = nxt.slot(slot_number)
    if not (isinstance(slot.occupant, AwaitingMatch) and slot.occupant.matchup_id == feeder.matchup_id):
        return None

    winner = next(s for s in feeder.slots if s.participant_id == feeder.winner_participant_id)
    slot.occupant = Known(participant_id=winner.participant_id, display_name=winner.display_name)
    slot.score = 0
    return slot


def matchup_round_sizes(bracket: Bracket) -> Dict[int, int]:
    """Matchup count per round, e.g. {1: 4, 2: 2, 3: 1} for an 8 bracket."""
    sizes: Dict[int, int] = {}
    for m in bracket:
        sizes[m.round_number] = sizes.get(m.round_number, 0) + 1
    return sizes


def feeder_ids(matchup_id: str) -> List[str]:
    """Round r-1 matchups that feed *matchup_id* (empty for round 1)."""
    parsed = parse_matchup_id(matchup_id)
    if parsed is None:
        raise InvalidMatchup(f"Malformed matchup id: {matchup_id}")
    round_number, index = parsed
    if round_number == 1:
        return []
    return [format_matchup_id(round_number - 1, 2 * index - 1), format_matchup_id(round_number - 1, 2 * index)]
