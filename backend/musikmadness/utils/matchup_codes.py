"""
Canonical matchup codes: "R{round}M{index}", both 1-based.

Codes are stable for the lifetime of a tournament; vote endpoints and the UI
address matchups by them.
"""
import re
from typing import Optional, Tuple

_CODE_RE = re.compile(r"^R(\d+)M(\d+)$")


def format_matchup_id(round_number: int, index: int) -> str:
    if round_number < 1 or index < 1:
        raise ValueError(f"round and index are 1-based, got R{round_number}M{index}")
    return f"R{round_number}M{index}"


def parse_matchup_id(matchup_id: Optional[str]) -> Optional[Tuple[int, int]]:
    """
    Return (round_number, index) for a well-formed code, else None.

    - "R1M3" -> (1, 3)
    - "r1m3", "R0M1", "R1M", None -> None
    """
    if not matchup_id:
        return None
    m = _CODE_RE.match(matchup_id)
    if not m:
        return None
    round_number, index = int(m.group(1)), int(m.group(2))
    if round_number < 1 or index < 1:
        return None
    return round_number, index


def next_matchup_position(round_number: int, index: int) -> Tuple[int, int, int]:
    """
    Where the winner of (round_number, index) plays next.

    Returns (next_round, next_index, slot) with slot 1 for odd indexes
    (M1, M3, ...) and slot 2 for even ones.
    """
    return round_number + 1, (index + 1) // 2, 1 if index % 2 == 1 else 2
