"""
services/team_service.py — Team Manager
---------------------------------------
Groups users into a team tied to one team-format tournament.

A user belongs to at most one team per tournament; the captain is always
a member with role CAPTAIN.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional

import aiosqlite

from database import transaction
from services import queries
from services.errors import (
    DuplicateMembership,
    NotTeamFormat,
    TeamNotFound,
    TournamentStarted,
    ValidationError,
)
from services.models import Team, TeamMember
from services.status_enums import TeamRole, TournamentFormat
from services.status_helpers import is_tournament_open

log = logging.getLogger(__name__)


class TeamService:
    """Team creation and roster lookups for team-format tournaments."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self.db.row_factory = aiosqlite.Row

    async def create_team(
        self,
        tournament_id: int,
        captain_id: str,
        name: str,
        tag: Optional[str] = None,
        member_ids: Iterable[str] = (),
    ) -> Team:
        """
        Create a team with the captain plus the given members.

        Raises:
            TournamentNotFound, NotTeamFormat, TournamentStarted,
            DuplicateMembership, ValidationError
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Team name is required.")

        # Captain first, duplicates collapse
        roster: List[str] = [captain_id]
        for member_id in member_ids:
            if member_id not in roster:
                roster.append(member_id)

        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)

            if tournament.format != TournamentFormat.TEAM.value:
                raise NotTeamFormat(
                    f"Tournament {tournament_id} is not a team tournament."
                )

            if not is_tournament_open(tournament.status):
                raise TournamentStarted(
                    f"Cannot create a team after tournament {tournament_id} has started."
                )

            placeholders = ", ".join("?" for _ in roster)
            cursor = await self.db.execute(
                f"""
                SELECT user_id FROM team_members
                WHERE tournament_id = ? AND user_id IN ({placeholders})
                """,
                (tournament_id, *roster),
            )
            taken = [row["user_id"] for row in await cursor.fetchall()]
            if taken:
                raise DuplicateMembership(
                    f"Already in a team for this tournament: {', '.join(sorted(taken))}"
                )

            now = int(time.time())
            cursor = await self.db.execute(
                """
                INSERT INTO teams (tournament_id, name, tag, captain_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (tournament_id, name, tag, captain_id, now),
            )
            team_id = cursor.lastrowid

            members = [
                TeamMember(
                    user_id=user_id,
                    role=(
                        TeamRole.CAPTAIN.value
                        if user_id == captain_id
                        else TeamRole.MEMBER.value
                    ),
                )
                for user_id in roster
            ]
            await self.db.executemany(
                """
                INSERT INTO team_members (team_id, tournament_id, user_id, role)
                VALUES (?, ?, ?, ?)
                """,
                [(team_id, tournament_id, m.user_id, m.role) for m in members],
            )

        log.info(
            f"[TEAM] Created team {team_id} '{name}' in tournament {tournament_id} "
            f"with {len(members)} members"
        )

        return Team(
            id=team_id,
            tournament_id=tournament_id,
            name=name,
            tag=tag,
            captain_id=captain_id,
            created_at=now,
            members=members,
        )

    async def get_team(self, team_id: int) -> Team:
        cursor = await self.db.execute("SELECT * FROM teams WHERE id = ?", (team_id,))
        row = await cursor.fetchone()
        if not row:
            raise TeamNotFound(team_id)
        return await self._row_to_team(row)

    async def list_teams(self, tournament_id: int) -> List[Team]:
        cursor = await self.db.execute(
            "SELECT * FROM teams WHERE tournament_id = ? ORDER BY id ASC",
            (tournament_id,),
        )
        rows = await cursor.fetchall()
        return [await self._row_to_team(row) for row in rows]

    async def get_team_for_user(
        self, tournament_id: int, user_id: str
    ) -> Optional[Team]:
        """The team a user plays for in a tournament, if any."""
        cursor = await self.db.execute(
            """
            SELECT team_id FROM team_members
            WHERE tournament_id = ? AND user_id = ?
            """,
            (tournament_id, user_id),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return await self.get_team(row["team_id"])

    async def list_member_ids(self, team_id: int) -> List[str]:
        return await queries.fetch_team_member_ids(self.db, team_id)

    async def _row_to_team(self, row) -> Team:
        cursor = await self.db.execute(
            "SELECT user_id, role FROM team_members WHERE team_id = ? ORDER BY id ASC",
            (row["id"],),
        )
        members = [
            TeamMember(user_id=m["user_id"], role=m["role"])
            for m in await cursor.fetchall()
        ]
        return Team(
            id=row["id"],
            tournament_id=row["tournament_id"],
            name=row["name"],
            tag=row["tag"],
            captain_id=row["captain_id"],
            created_at=row["created_at"],
            members=members,
        )
