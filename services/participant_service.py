"""
services/participant_service.py — Participant Registry
------------------------------------------------------
Registration and withdrawal of entrants while a tournament is UPCOMING.

Enforces capacity, one row per user, and the format rules:
- solo: no team; clan optional (a user may represent their clan)
- team: a team of this tournament that includes the user, one row per team
- clan: clan id required
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import aiosqlite

from config import RewardPolicy
from database import transaction
from services import queries
from services import side_effects as fx
from services.errors import (
    AlreadyRegistered,
    DuplicateRegistration,
    InvalidState,
    ParticipantNotFound,
    TeamMismatch,
    TournamentFull,
    ValidationError,
)
from services.models import (
    ClanEntrant,
    EntrantRef,
    Participant,
    TeamEntrant,
    entrant_ref,
    row_to_participant,
)
from services.side_effects import SideEffectDispatcher
from services.status_enums import ParticipantStatus, TournamentFormat
from services.status_helpers import is_tournament_open

log = logging.getLogger(__name__)


class ParticipantService:
    """
    Participant Registry.

    Provides:
    - register / withdraw while the tournament is UPCOMING
    - participant lookups
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        dispatcher: Optional[SideEffectDispatcher] = None,
        policy: Optional[RewardPolicy] = None,
    ):
        self.db = db
        self.db.row_factory = aiosqlite.Row
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.policy = policy or RewardPolicy()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    async def register(
        self,
        tournament_id: int,
        user_id: str,
        team_id: Optional[int] = None,
        clan_id: Optional[int] = None,
    ) -> Participant:
        """
        Register a user (or the team/clan they act for) in a tournament.

        Raises:
            TournamentNotFound, InvalidState, TournamentFull,
            AlreadyRegistered, DuplicateRegistration, TeamMismatch,
            ValidationError
        """
        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)

            if not is_tournament_open(tournament.status):
                raise InvalidState(
                    f"Cannot join tournament {tournament_id}: status is {tournament.status}."
                )

            if await self.get_participant_for_user(tournament_id, user_id):
                raise AlreadyRegistered(
                    f"User {user_id} is already registered for tournament {tournament_id}."
                )

            if tournament.current_participants >= tournament.max_participants:
                raise TournamentFull(tournament_id, tournament.max_participants)

            entrant = entrant_ref(user_id, team_id, clan_id)
            await self._check_format(tournament_id, tournament.format, user_id, entrant)

            now = int(time.time())
            cursor = await self.db.execute(
                """
                INSERT INTO tournament_participants (
                    tournament_id, user_id, team_id, clan_id, status, joined_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    tournament_id,
                    user_id,
                    team_id,
                    clan_id,
                    ParticipantStatus.REGISTERED.value,
                    now,
                ),
            )
            participant = Participant(
                id=cursor.lastrowid,
                tournament_id=tournament_id,
                user_id=user_id,
                team_id=team_id,
                clan_id=clan_id,
                status=ParticipantStatus.REGISTERED.value,
                joined_at=now,
            )

        log.info(
            f"[REGISTRY] Registered participant {participant.id} in tournament "
            f"{tournament_id}: user={user_id} team={team_id} clan={clan_id}"
        )

        await self.dispatcher.dispatch(
            [
                fx.award_xp(user_id, self.policy.join_xp, "Joined a tournament"),
                fx.notify(
                    user_id,
                    "Tournament Joined",
                    f'You have successfully joined "{tournament.name}"!',
                    {"tournament_id": tournament_id, "participant_id": participant.id},
                ),
            ]
        )
        return participant

    async def _check_format(
        self,
        tournament_id: int,
        tournament_format: str,
        user_id: str,
        entrant: EntrantRef,
    ) -> None:
        """Validate the entrant reference against the tournament format."""
        if tournament_format == TournamentFormat.TEAM.value:
            if not isinstance(entrant, TeamEntrant):
                raise TeamMismatch("Team tournaments require a team id.")
            team_id = entrant.team_id

            cursor = await self.db.execute(
                """
                SELECT 1 FROM team_members m
                JOIN teams t ON t.id = m.team_id
                WHERE m.team_id = ? AND m.user_id = ? AND t.tournament_id = ?
                """,
                (team_id, user_id, tournament_id),
            )
            if await cursor.fetchone() is None:
                raise TeamMismatch(
                    f"User {user_id} is not a member of team {team_id} in this tournament."
                )

            cursor = await self.db.execute(
                """
                SELECT 1 FROM tournament_participants
                WHERE tournament_id = ? AND team_id = ?
                """,
                (tournament_id, team_id),
            )
            if await cursor.fetchone() is not None:
                raise DuplicateRegistration(f"Team {team_id} is already registered.")
            return

        if isinstance(entrant, TeamEntrant):
            raise TeamMismatch("Cannot join with a team in a non-team tournament.")

        if tournament_format == TournamentFormat.CLAN.value and not isinstance(
            entrant, ClanEntrant
        ):
            raise ValidationError("Clan tournaments require a clan id.")

    async def withdraw(self, tournament_id: int, user_id: str) -> None:
        """Remove a user's registration. Only legal while UPCOMING."""
        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)

            if not is_tournament_open(tournament.status):
                raise InvalidState(
                    f"Cannot leave tournament {tournament_id}: status is {tournament.status}."
                )

            cursor = await self.db.execute(
                """
                DELETE FROM tournament_participants
                WHERE tournament_id = ? AND user_id = ?
                """,
                (tournament_id, user_id),
            )
            if cursor.rowcount == 0:
                raise ParticipantNotFound(
                    f"User {user_id} is not registered for tournament {tournament_id}."
                )

        log.info(
            f"[REGISTRY] Removed user {user_id} from tournament {tournament_id}"
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_participant(self, participant_id: int) -> Participant:
        participant = await queries.fetch_participant(self.db, participant_id)
        if participant is None:
            raise ParticipantNotFound(f"Participant {participant_id} not found.")
        return participant

    async def get_participant_for_user(
        self,
        tournament_id: int,
        user_id: str,
    ) -> Optional[Participant]:
        cursor = await self.db.execute(
            """
            SELECT * FROM tournament_participants
            WHERE tournament_id = ? AND user_id = ?
            """,
            (tournament_id, user_id),
        )
        row = await cursor.fetchone()
        return row_to_participant(row) if row else None

    async def list_participants(self, tournament_id: int) -> List[Participant]:
        await queries.require_tournament(self.db, tournament_id)
        return await queries.fetch_participants(self.db, tournament_id)

    async def count_participants(self, tournament_id: int) -> int:
        return await queries.count_participants(self.db, tournament_id)
