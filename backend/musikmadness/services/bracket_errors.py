"""
Bracket error taxonomy.

Every error carries the HTTP status the routers surface it with, so the
routes can translate any BracketError / TournamentServiceError uniformly.
"""


class BracketError(Exception):
    """Base exception for bracket seeding, building and advancement"""

    status_code = 400


class InsufficientParticipants(BracketError):
    """Fewer than two participants at seed time"""

    pass


class DuplicateParticipant(BracketError):
    """The same participant id appears twice in the seed list"""

    pass


class UnknownSeedingPolicy(BracketError, ValueError):
    """Seeding policy is not one of the supported policies"""

    pass


class InvalidBracketTopology(BracketError):
    """Degenerate pairing or slot count during build"""

    pass


class InvalidMatchup(BracketError):
    """Unknown matchup id"""

    status_code = 404


class MatchupAlreadyResolved(BracketError):
    """A different winner was submitted for a resolved matchup"""

    status_code = 409


class InvalidWinner(BracketError):
    """Winner is not an occupant, or the occupants are not known yet"""

    pass


class TournamentServiceError(Exception):
    """Base exception for tournament lifecycle operations"""

    status_code = 400


class TournamentNotFound(TournamentServiceError):
    status_code = 404


class NotTournamentOrganizer(TournamentServiceError):
    status_code = 403


class TournamentStateError(TournamentServiceError):
    """Operation not allowed in the tournament's current status"""

    status_code = 409


class TournamentFull(TournamentServiceError):
    status_code = 409


class AlreadyJoined(TournamentServiceError):
    status_code = 409


class ParticipantNotFound(TournamentServiceError):
    status_code = 404


class DuplicateVote(TournamentServiceError):
    status_code = 409


class VotingClosed(TournamentServiceError):
    """Matchup is not accepting votes (placeholder, bye or resolved)"""

    pass


class VoteTie(TournamentServiceError):
    """Vote tally is level; the organizer has to select the winner"""

    status_code = 409


class ConcurrentBracketUpdate(TournamentServiceError):
    """Bracket version changed underneath the caller"""

    status_code = 409
