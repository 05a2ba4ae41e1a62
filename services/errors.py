"""
services/errors.py — Tournament Engine Error Taxonomy

Every domain failure raised by the services is a TournamentError whose
``kind`` is one of a small, stable set of strings. Callers can switch on
``kind`` (or catch the class) and show ``message`` to the user.
"""


class TournamentError(Exception):
    """Base class for recoverable tournament errors.

    Attributes:
        kind: Stable error kind (NotFound, InvalidState, ...)
        message: Human-readable description
    """

    kind = "TournamentError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


# -----------------------------------------------------------------------------
# Kinds
# -----------------------------------------------------------------------------


class NotFound(TournamentError):
    kind = "NotFound"


class InvalidState(TournamentError):
    kind = "InvalidState"


class Forbidden(TournamentError):
    kind = "Forbidden"


class CapacityExceeded(TournamentError):
    kind = "CapacityExceeded"


class DuplicateRegistration(TournamentError):
    kind = "DuplicateRegistration"


class DuplicateMembership(TournamentError):
    kind = "DuplicateMembership"


class ValidationError(TournamentError):
    kind = "ValidationError"


class StorageError(TournamentError):
    """Unexpected failure in the storage layer (wraps aiosqlite.Error)."""

    kind = "StorageError"


# -----------------------------------------------------------------------------
# Specific errors
# -----------------------------------------------------------------------------


class TournamentNotFound(NotFound):
    def __init__(self, tournament_id: int):
        self.tournament_id = tournament_id
        super().__init__(f"Tournament {tournament_id} not found.")


class MatchNotFound(NotFound):
    def __init__(self, match_id: int):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found.")


class TeamNotFound(NotFound):
    def __init__(self, team_id: int):
        self.team_id = team_id
        super().__init__(f"Team {team_id} not found.")


class ParticipantNotFound(NotFound):
    pass


class MatchNotActive(InvalidState):
    def __init__(self, match_id: int):
        self.match_id = match_id
        super().__init__(f"Match {match_id} is not active.")


class TournamentStarted(InvalidState):
    pass


class TournamentFull(CapacityExceeded):
    def __init__(self, tournament_id: int, max_participants: int):
        self.tournament_id = tournament_id
        self.max_participants = max_participants
        super().__init__(
            f"Tournament {tournament_id} is full ({max_participants} participants)."
        )


class AlreadyRegistered(DuplicateRegistration):
    pass


class InvalidWinner(ValidationError):
    pass


class TeamMismatch(ValidationError):
    pass


class NotTeamFormat(ValidationError):
    pass
