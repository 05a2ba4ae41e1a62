"""
services/models.py — Tournament Engine Records
==============================================
Plain dataclasses for the rows the services read and write, plus the
entrant variant that says *who* a participant row stands for.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


# -----------------------------------------------------------------------------
# Entrant variant
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class UserEntrant:
    """A user playing for themselves."""

    user_id: str


@dataclass(frozen=True)
class TeamEntrant:
    """A team, registered by one of its members."""

    team_id: int


@dataclass(frozen=True)
class ClanEntrant:
    """A user representing their clan."""

    clan_id: int


EntrantRef = Union[UserEntrant, TeamEntrant, ClanEntrant]


def entrant_ref(
    user_id: Optional[str],
    team_id: Optional[int] = None,
    clan_id: Optional[int] = None,
) -> EntrantRef:
    """A team wins over a clan, a clan over the bare user."""
    if team_id is not None:
        return TeamEntrant(team_id)
    if clan_id is not None:
        return ClanEntrant(clan_id)
    return UserEntrant(user_id)


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------


@dataclass
class Tournament:
    """Tournament record."""

    id: int
    name: str
    game: str
    format: str  # solo / team / clan
    bracket_type: str
    max_participants: int
    status: str
    creator_id: str
    description: Optional[str] = None
    entry_fee: float = 0.0
    prize_pool: float = 0.0
    start_date: Optional[int] = None
    end_date: Optional[int] = None
    winner_id: Optional[str] = None  # user id of the champion
    created_at: Optional[int] = None
    current_participants: int = 0


@dataclass
class Participant:
    """One registered entrant of a tournament."""

    id: int
    tournament_id: int
    user_id: Optional[str]
    status: str
    team_id: Optional[int] = None
    clan_id: Optional[int] = None
    seed: Optional[int] = None
    joined_at: Optional[int] = None

    @property
    def entrant(self) -> EntrantRef:
        return entrant_ref(self.user_id, self.team_id, self.clan_id)


@dataclass
class TeamMember:
    user_id: str
    role: str


@dataclass
class Team:
    """Team record (team-format tournaments only)."""

    id: int
    tournament_id: int
    name: str
    captain_id: str
    tag: Optional[str] = None
    created_at: Optional[int] = None
    members: List[TeamMember] = field(default_factory=list)

    @property
    def member_ids(self) -> List[str]:
        return [m.user_id for m in self.members]


@dataclass
class Match:
    """Bracket match."""

    id: int
    tournament_id: int
    round: int
    match_index: int
    player1_id: Optional[int] = None
    player2_id: Optional[int] = None  # None = BYE
    winner_id: Optional[int] = None
    score: Any = None
    status: str = "SCHEDULED"
    created_at: Optional[int] = None
    completed_at: Optional[int] = None

    @property
    def is_bye(self) -> bool:
        return self.player2_id is None

    @property
    def loser_id(self) -> Optional[int]:
        if self.winner_id is None:
            return None
        if self.winner_id == self.player1_id:
            return self.player2_id
        return self.player1_id

    def involves(self, participant_id: int) -> bool:
        return participant_id in (self.player1_id, self.player2_id)


@dataclass
class TournamentDetails:
    """Tournament with its participants and matches."""

    tournament: Tournament
    participants: List[Participant]
    matches: List[Match]

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def match_count(self) -> int:
        return len(self.matches)


@dataclass
class TournamentPage:
    """One page of a tournament listing or search."""

    tournaments: List[Tournament]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)


# -----------------------------------------------------------------------------
# Row converters
# -----------------------------------------------------------------------------


def encode_score(score: Any) -> Optional[str]:
    if score is None:
        return None
    return json.dumps(score)


def decode_score(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


def row_to_tournament(row) -> Tournament:
    """Convert a DB row to Tournament object."""
    return Tournament(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        game=row["game"],
        format=row["format"],
        bracket_type=row["bracket_type"],
        max_participants=row["max_participants"],
        entry_fee=row["entry_fee"],
        prize_pool=row["prize_pool"],
        status=row["status"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        creator_id=row["creator_id"],
        winner_id=row["winner_id"],
        created_at=row["created_at"],
        current_participants=(
            row["participant_count"] if "participant_count" in row.keys() else 0
        ),
    )


def row_to_participant(row) -> Participant:
    """Convert a DB row to Participant object."""
    return Participant(
        id=row["id"],
        tournament_id=row["tournament_id"],
        user_id=row["user_id"],
        team_id=row["team_id"],
        clan_id=row["clan_id"],
        seed=row["seed"],
        status=row["status"],
        joined_at=row["joined_at"],
    )


def row_to_match(row) -> Match:
    """Convert a DB row to Match object."""
    return Match(
        id=row["id"],
        tournament_id=row["tournament_id"],
        round=row["round"],
        match_index=row["match_index"],
        player1_id=row["player1_id"],
        player2_id=row["player2_id"],
        winner_id=row["winner_id"],
        score=decode_score(row["score"]),
        status=row["status"],
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )


def group_by_round(matches: List[Match]) -> Dict[int, List[Match]]:
    bracket: Dict[int, List[Match]] = {}
    for match in matches:
        bracket.setdefault(match.round, []).append(match)
    return bracket
