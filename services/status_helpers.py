# services/status_helpers.py
from __future__ import annotations

from services.status_enums import MatchStatus, TournamentStatus


# ── Tournament status helpers ──────────────────────────────────────────────

# Legal lifecycle edges; anything else is rejected.
_TRANSITIONS = {
    TournamentStatus.UPCOMING.value: {
        TournamentStatus.ACTIVE.value,
        TournamentStatus.CANCELLED.value,
    },
    TournamentStatus.ACTIVE.value: {
        TournamentStatus.COMPLETED.value,
        TournamentStatus.CANCELLED.value,
    },
    TournamentStatus.COMPLETED.value: set(),
    TournamentStatus.CANCELLED.value: set(),
}


def is_tournament_open(status: str) -> bool:
    return status == TournamentStatus.UPCOMING.value


def is_tournament_running(status: str) -> bool:
    return status == TournamentStatus.ACTIVE.value


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, set())


# ── Match status helpers ───────────────────────────────────────────────────


def is_match_completed(status: str) -> bool:
    return status == MatchStatus.COMPLETED.value


def is_match_open(status: str) -> bool:
    """Scheduled or active."""
    return status in (
        MatchStatus.SCHEDULED.value,
        MatchStatus.ACTIVE.value,
    )


OPEN_MATCH_STATUSES = (MatchStatus.SCHEDULED.value, MatchStatus.ACTIVE.value)
