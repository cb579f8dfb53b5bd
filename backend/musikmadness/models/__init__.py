from musikmadness.models.bracket_matchup import BracketMatchup
from musikmadness.models.participant import Participant
from musikmadness.models.tournament import Tournament
from musikmadness.models.vote import Vote

__all__ = [
    "Tournament",
    "Participant",
    "BracketMatchup",
    "Vote",
]
