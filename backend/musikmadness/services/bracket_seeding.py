"""
Bracket seeding: order participants into round-1 slots and pad with BYEs.

Seeds are placed in bracket-fold order: seed s meets seed (size + 1 - s) in
round 1, and if chalk holds seed 1 meets seed 2 in the final. Missing seeds
(n + 1 .. size) are BYEs, so byes go to the top seeds and a BYE never faces
another BYE.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

from musikmadness.services.bracket_errors import DuplicateParticipant, InsufficientParticipants, UnknownSeedingPolicy

POLICY_STANDARD = "standard"
POLICY_RANDOM = "random"
SEEDING_POLICIES = (POLICY_STANDARD, POLICY_RANDOM)


@dataclass(frozen=True)
class Participant:
    """Seeding input: user id plus display name snapshot."""
    participant_id: str
    display_name: str


class _ByeSentinel:
    _instance: Optional["_ByeSentinel"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "BYE"

    def __reduce__(self):
        return "BYE"


BYE = _ByeSentinel()

SeedSlot = Union[Participant, _ByeSentinel]


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (n >= 1)."""
    size = 1
    while size < n:
        size *= 2
    return size


def bracket_fold_positions(n: int) -> List[int]:
    """Standard bracket-fold positions for *n* entries (n a power of two).

    Returns a flat list of seed numbers in bracket position order.
    Consecutive pairs indicate which seeds meet in round 1:
      4-entry  -> [1, 4, 2, 3]       -> (1v4), (2v3)
      8-entry  -> [1, 8, 4, 5, ...]   -> (1v8), (4v5), ...
    """
    if n == 1:
        return [1]
    if n == 2:
        return [1, 2]

    half = bracket_fold_positions(n // 2)

    expanded: List[int] = []
    for s in half:
        expanded.append(s)
        expanded.append(n + 1 - s)

    mid = len(expanded) // 2
    top = expanded[:mid]
    bot = expanded[mid:]
    if len(bot) >= 4:
        bot = bot[:-4] + bot[-2:] + bot[-4:-2]

    return top + bot


def seed(
    participants: Sequence[Participant],
    policy: str = POLICY_STANDARD,
    rng_seed: Optional[int] = None,
) -> List[SeedSlot]:
    """Seed *participants* into a power-of-two slot list.

    policy "standard" treats the input order as seed order (first = seed 1).
    policy "random" shuffles with random.Random(rng_seed) first; the same
    input order and rng_seed always produce the same slots.
    """
    if policy not in SEEDING_POLICIES:
        raise UnknownSeedingPolicy(f"Unknown seeding policy: {policy}")
    if len(participants) < 2:
        raise InsufficientParticipants(
            f"At least 2 participants are required, got {len(participants)}"
        )

    seen = set()
    for p in participants:
        if p.participant_id in seen:
            raise DuplicateParticipant(f"Participant {p.participant_id} appears more than once")
        seen.add(p.participant_id)

    ordered = list(participants)
    if policy == POLICY_RANDOM:
        random.Random(rng_seed).shuffle(ordered)

    size = next_power_of_two(len(ordered))
    by_seed = {i + 1: p for i, p in enumerate(ordered)}

    return [by_seed.get(s, BYE) for s in bracket_fold_positions(size)]
