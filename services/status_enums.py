"""
Status Enums for the Tournament Engine

Canonical definitions for tournament, participant and match lifecycle
states, plus the tournament format / bracket type vocabularies.
All services should import from here.
"""

from enum import Enum


class TournamentStatus(str, Enum):
    """Tournament lifecycle states."""

    UPCOMING = "UPCOMING"  # Registration open, bracket not generated
    ACTIVE = "ACTIVE"  # Bracket generated, matches being played
    COMPLETED = "COMPLETED"  # Final decided, rewards issued
    CANCELLED = "CANCELLED"  # Abandoned by the creator


class ParticipantStatus(str, Enum):
    """Participant lifecycle states."""

    REGISTERED = "REGISTERED"  # Signed up, has not played yet
    ACTIVE = "ACTIVE"  # Won (or received a bye) and is still alive
    ELIMINATED = "ELIMINATED"  # Lost a match
    WINNER = "WINNER"  # Champion


class MatchStatus(str, Enum):
    """Bracket match lifecycle states."""

    SCHEDULED = "SCHEDULED"  # Created, waiting to be played
    ACTIVE = "ACTIVE"  # Marked as being played
    COMPLETED = "COMPLETED"  # Result recorded (or bye resolved)


class TournamentFormat(str, Enum):
    """Who enters the tournament."""

    SOLO = "solo"
    TEAM = "team"
    CLAN = "clan"


class BracketType(str, Enum):
    """Bracket shape. Only single elimination is implemented."""

    SINGLE_ELIMINATION = "single-elimination"
    DOUBLE_ELIMINATION = "double-elimination"
    ROUND_ROBIN = "round-robin"
    SWISS = "swiss"


class TeamRole(str, Enum):
    CAPTAIN = "CAPTAIN"
    MEMBER = "MEMBER"


SUPPORTED_BRACKET_TYPES = {BracketType.SINGLE_ELIMINATION}
