"""
Advancement: record a matchup winner and propagate it through the bracket.

All validation happens before the first write, so a failed advance leaves
the bracket untouched. Writes are limited to the resolved matchup, the
matchup it feeds, and any BYE cascade beyond that.

Callers persisting the bracket must serialise advances per tournament;
this module assumes a single writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from musikmadness.services.bracket_builder import Bracket, Matchup, settle
from musikmadness.services.bracket_errors import InvalidMatchup, InvalidWinner, MatchupAlreadyResolved


@dataclass
class AdvanceResult:
    matchup_id: str
    winner_participant_id: str
    changed: List[str] = field(default_factory=list)
    completed: bool = False
    champion: Optional[str] = None

    @property
    def no_op(self) -> bool:
        return not self.changed


@dataclass
class RoundResult:
    round_number: int
    results: List[AdvanceResult] = field(default_factory=list)
    completed: bool = False
    champion: Optional[str] = None

    @property
    def resolved(self) -> List[str]:
        return [r.matchup_id for r in self.results]

    @property
    def changed(self) -> List[str]:
        changed: List[str] = []
        for r in self.results:
            changed.extend(mid for mid in r.changed if mid not in changed)
        return changed

    @property
    def no_op(self) -> bool:
        return not self.results


def _check(matchup: Matchup, winner_participant_id: str) -> bool:
    """Validate a winner for *matchup*. True means it is already recorded (no-op)."""
    if matchup.is_resolved:
        if matchup.winner_participant_id == winner_participant_id:
            return True
        raise MatchupAlreadyResolved(
            f"Matchup {matchup.matchup_id} already won by {matchup.winner_participant_id}"
        )

    if not (matchup.player1.is_known and matchup.player2.is_known):
        raise InvalidWinner(f"Matchup {matchup.matchup_id} is not ready: both players must be known")

    if winner_participant_id not in matchup.occupant_ids():
        raise InvalidWinner(
            f"Participant {winner_participant_id} is not playing in matchup {matchup.matchup_id}"
        )
    return False


def _apply(bracket: Bracket, matchup: Matchup, winner_participant_id: str) -> AdvanceResult:
    matchup.winner_participant_id = winner_participant_id
    changed = [matchup.matchup_id]
    for mid in settle(bracket, matchup):
        if mid not in changed:
            changed.append(mid)

    return AdvanceResult(
        matchup_id=matchup.matchup_id,
        winner_participant_id=winner_participant_id,
        changed=changed,
        completed=bracket.is_complete,
        champion=bracket.champion,
    )


def advance(bracket: Bracket, matchup_id: str, winner_participant_id: str) -> AdvanceResult:
    """Set the winner of *matchup_id* and push it into the next round.

    Re-submitting the recorded winner is a no-op; a different winner for a
    resolved matchup raises MatchupAlreadyResolved.
    """
    matchup = bracket.get(matchup_id)
    if _check(matchup, winner_participant_id):
        return AdvanceResult(
            matchup_id=matchup_id,
            winner_participant_id=winner_participant_id,
            completed=bracket.is_complete,
            champion=bracket.champion,
        )
    return _apply(bracket, matchup, winner_participant_id)


def advance_round(bracket: Bracket, round_number: int, winners: Dict[str, str]) -> RoundResult:
    """Resolve several matchups of one round together.

    Every winner is checked before any is applied, so one bad entry leaves
    the whole round untouched. Matchups of a single round never feed each
    other, which keeps the up-front checks valid while applying.
    """
    checked = []
    for matchup_id, winner_participant_id in winners.items():
        matchup = bracket.get(matchup_id)
        if matchup.round_number != round_number:
            raise InvalidMatchup(f"Matchup {matchup_id} is not in round {round_number}")
        if not _check(matchup, winner_participant_id):
            checked.append((matchup, winner_participant_id))

    results = [_apply(bracket, m, w) for m, w in checked]
    return RoundResult(
        round_number=round_number,
        results=results,
        completed=bracket.is_complete,
        champion=bracket.champion,
    )


def pending_matchups(bracket: Bracket) -> List[str]:
    """Matchups with both players known and no winner, in bracket order."""
    return [m.matchup_id for m in bracket if not m.is_resolved and not m.is_placeholder and not m.is_bye]
