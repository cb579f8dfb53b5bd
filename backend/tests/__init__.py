# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from musikmadness.models.bracket_matchup import BracketMatchup  # noqa: F401
from musikmadness.models.participant import Participant  # noqa: F401
from musikmadness.models.tournament import Tournament  # noqa: F401
from musikmadness.models.vote import Vote  # noqa: F401
