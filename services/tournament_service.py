"""
services/tournament_service.py — Tournament Lifecycle Controller
================================================================
Creation, edits and status transitions of tournaments, plus the public
query surface (details, listing, search).

Status progression:
  UPCOMING → ACTIVE → COMPLETED
      ↘         ↘
       CANCELLED  CANCELLED

ACTIVE → COMPLETED is driven by the final match result (see
services/reward_service.py); everything else starts here.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import aiosqlite

from config import RewardPolicy
from database import transaction
from services import queries
from services import side_effects as fx
from services.bracket_service import BracketService
from services.errors import Forbidden, InvalidState, ValidationError
from services.models import (
    Match,
    Tournament,
    TournamentDetails,
    TournamentPage,
    row_to_tournament,
)
from services.side_effects import SideEffect, SideEffectDispatcher
from services.status_enums import (
    SUPPORTED_BRACKET_TYPES,
    BracketType,
    TournamentFormat,
    TournamentStatus,
)
from services.status_helpers import can_transition, is_tournament_open

log = logging.getLogger(__name__)


class TournamentService:
    """
    Service for managing tournaments.

    Provides:
    - Tournament creation and edits (creator only, while UPCOMING)
    - start (bracket generation) and cancel
    - Lookups, listing and search
    """

    MIN_PARTICIPANTS = 2
    MAX_PARTICIPANTS = 256

    # Fields update() accepts
    EDITABLE_FIELDS = {
        "name",
        "description",
        "game",
        "bracket_type",
        "max_participants",
        "entry_fee",
        "prize_pool",
        "start_date",
        "end_date",
    }

    VALID_FORMATS = {f.value for f in TournamentFormat}
    VALID_BRACKET_TYPES = {b.value for b in BracketType}

    def __init__(
        self,
        db: aiosqlite.Connection,
        bracket: Optional[BracketService] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
        policy: Optional[RewardPolicy] = None,
    ):
        self.db = db
        self.db.row_factory = aiosqlite.Row
        self.bracket = bracket or BracketService(db)
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.policy = policy or RewardPolicy()

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _validate_fields(self, fields: Dict[str, Any]) -> None:
        """Check each given field; raises ValidationError on the first bad one."""
        for key in ("name", "game"):
            if key in fields and not (fields[key] or "").strip():
                raise ValidationError(f"Tournament {key} is required.")

        if "format" in fields and fields["format"] not in self.VALID_FORMATS:
            raise ValidationError(
                f"Invalid format: {fields['format']}. "
                f"Must be one of {', '.join(sorted(self.VALID_FORMATS))}."
            )

        if (
            "bracket_type" in fields
            and fields["bracket_type"] not in self.VALID_BRACKET_TYPES
        ):
            raise ValidationError(f"Invalid bracket type: {fields['bracket_type']}.")

        if "max_participants" in fields:
            size = fields["max_participants"]
            if (
                not isinstance(size, int)
                or isinstance(size, bool)
                or not self.MIN_PARTICIPANTS <= size <= self.MAX_PARTICIPANTS
            ):
                raise ValidationError(
                    f"Invalid size: {size}. Must be between "
                    f"{self.MIN_PARTICIPANTS} and {self.MAX_PARTICIPANTS}."
                )

        for key in ("entry_fee", "prize_pool"):
            if key not in fields:
                continue
            amount = fields[key]
            if not isinstance(amount, (int, float)) or isinstance(amount, bool):
                raise ValidationError(f"{key} must be a number, got {amount!r}.")
            if amount < 0:
                raise ValidationError(f"{key} cannot be negative.")

        start_date = fields.get("start_date")
        end_date = fields.get("end_date")
        if start_date is not None and end_date is not None and end_date < start_date:
            raise ValidationError("end_date cannot be before start_date.")

    # -------------------------------------------------------------------------
    # Tournament CRUD
    # -------------------------------------------------------------------------

    async def create_tournament(
        self,
        creator_id: str,
        name: str,
        game: str,
        max_participants: int,
        format: str = TournamentFormat.SOLO.value,
        bracket_type: str = BracketType.SINGLE_ELIMINATION.value,
        description: Optional[str] = None,
        entry_fee: float = 0,
        prize_pool: float = 0,
        start_date: Optional[int] = None,
        end_date: Optional[int] = None,
    ) -> Tournament:
        """
        Create a new tournament in UPCOMING status.

        Raises:
            ValidationError: a field is missing or out of range
        """
        self._validate_fields(
            {
                "name": name,
                "game": game,
                "max_participants": max_participants,
                "format": format,
                "bracket_type": bracket_type,
                "entry_fee": entry_fee,
                "prize_pool": prize_pool,
                "start_date": start_date,
                "end_date": end_date,
            }
        )

        now = int(time.time())
        async with transaction(self.db):
            cursor = await self.db.execute(
                """
                INSERT INTO tournaments (
                    name, description, game, format, bracket_type,
                    max_participants, entry_fee, prize_pool, status,
                    start_date, end_date, creator_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    name.strip(),
                    description,
                    game.strip(),
                    format,
                    bracket_type,
                    max_participants,
                    entry_fee,
                    prize_pool,
                    TournamentStatus.UPCOMING.value,
                    start_date,
                    end_date,
                    creator_id,
                    now,
                ),
            )
            tournament = await queries.require_tournament(self.db, cursor.lastrowid)

        log.info(
            f"[TOURNAMENT] Created tournament {tournament.id}: {tournament.name} "
            f"({format}, {bracket_type}, size={max_participants}) by {creator_id}"
        )

        await self.dispatcher.dispatch(
            [
                fx.award_xp(creator_id, self.policy.create_xp, "Created a tournament"),
                fx.notify(
                    creator_id,
                    "Tournament Created",
                    f'Your tournament "{tournament.name}" has been created.',
                    {"tournament_id": tournament.id},
                ),
            ]
        )
        return tournament

    async def update(
        self,
        tournament_id: int,
        actor_user_id: str,
        **fields: Any,
    ) -> Tournament:
        """
        Edit an UPCOMING tournament.

        Raises:
            TournamentNotFound, Forbidden, InvalidState, ValidationError
        """
        unknown = set(fields) - self.EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update field(s): {', '.join(sorted(unknown))}."
            )
        if not fields:
            raise ValidationError("Nothing to update.")

        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)
            self._require_creator(tournament, actor_user_id)

            if not is_tournament_open(tournament.status):
                raise InvalidState(
                    f"Cannot edit tournament {tournament_id}: status is {tournament.status}."
                )

            # Validate against the merged record so date ordering holds
            merged = {
                "start_date": tournament.start_date,
                "end_date": tournament.end_date,
                **fields,
            }
            self._validate_fields(merged)

            new_size = fields.get("max_participants")
            if new_size is not None and new_size < tournament.current_participants:
                raise ValidationError(
                    f"max_participants cannot drop below the "
                    f"{tournament.current_participants} registered participants."
                )

            columns = sorted(fields)
            assignments = ", ".join(f"{column} = ?" for column in columns)
            await self.db.execute(
                f"UPDATE tournaments SET {assignments} WHERE id = ?",
                (*[fields[column] for column in columns], tournament_id),
            )
            tournament = await queries.require_tournament(self.db, tournament_id)

        log.info(
            f"[TOURNAMENT] Tournament {tournament_id} updated by {actor_user_id}: "
            f"{', '.join(columns)}"
        )
        return tournament

    def _require_creator(self, tournament: Tournament, actor_user_id: str) -> None:
        if actor_user_id != tournament.creator_id:
            raise Forbidden(
                f"Only the creator can manage tournament {tournament.id}."
            )

    # -------------------------------------------------------------------------
    # Status Transitions
    # -------------------------------------------------------------------------

    async def start(self, tournament_id: int, actor_user_id: str) -> Tournament:
        """
        UPCOMING → ACTIVE, generating the round 1 bracket in the same transaction.

        Raises:
            TournamentNotFound, Forbidden, InvalidState, ValidationError
        """
        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)
            self._require_creator(tournament, actor_user_id)

            if not is_tournament_open(tournament.status):
                raise InvalidState(
                    f"Cannot start tournament {tournament_id}: status is {tournament.status}."
                )

            if tournament.bracket_type not in {b.value for b in SUPPORTED_BRACKET_TYPES}:
                raise ValidationError(
                    f"Bracket type '{tournament.bracket_type}' is not supported yet."
                )

            if tournament.current_participants < self.MIN_PARTICIPANTS:
                raise InvalidState(
                    "Need at least 2 participants to start a tournament."
                )

            cursor = await self.db.execute(
                """
                UPDATE tournaments SET status = ?, start_date = COALESCE(start_date, ?)
                WHERE id = ? AND status = ?
                """,
                (
                    TournamentStatus.ACTIVE.value,
                    int(time.time()),
                    tournament_id,
                    TournamentStatus.UPCOMING.value,
                ),
            )
            if cursor.rowcount == 0:
                raise InvalidState(f"Tournament {tournament_id} was already started.")

            matches = await self.bracket.generate_bracket(tournament_id)
            tournament = await queries.require_tournament(self.db, tournament_id)
            effects = await self._start_notifications(tournament, matches)

        log.info(
            f"[TOURNAMENT] Tournament {tournament_id} status → ACTIVE "
            f"({tournament.current_participants} participants, {len(matches)} matches)"
        )

        await self.dispatcher.dispatch(effects)
        return tournament

    async def _start_notifications(
        self, tournament: Tournament, matches: List[Match]
    ) -> List[SideEffect]:
        effects = fx.notify_all(
            await self._all_user_ids(tournament.id),
            "Tournament Started",
            f'"{tournament.name}" has started!',
            {"tournament_id": tournament.id},
        )
        effects.extend(await self.bracket.scheduled_notifications(tournament, matches))
        return effects

    async def cancel(
        self,
        tournament_id: int,
        actor_user_id: str,
        reason: Optional[str] = None,
    ) -> Tournament:
        """
        Cancel a tournament that has not completed yet. No rewards are issued.

        Raises:
            TournamentNotFound, Forbidden, InvalidState
        """
        async with transaction(self.db):
            tournament = await queries.require_tournament(self.db, tournament_id)
            self._require_creator(tournament, actor_user_id)

            if not can_transition(tournament.status, TournamentStatus.CANCELLED.value):
                raise InvalidState(
                    f"Cannot cancel tournament {tournament_id}: status is {tournament.status}."
                )

            cursor = await self.db.execute(
                """
                UPDATE tournaments SET status = ?, end_date = ?
                WHERE id = ? AND status IN (?, ?)
                """,
                (
                    TournamentStatus.CANCELLED.value,
                    int(time.time()),
                    tournament_id,
                    TournamentStatus.UPCOMING.value,
                    TournamentStatus.ACTIVE.value,
                ),
            )
            if cursor.rowcount == 0:
                raise InvalidState(f"Tournament {tournament_id} already finished.")

            tournament = await queries.require_tournament(self.db, tournament_id)
            message = f'"{tournament.name}" has been cancelled.'
            if reason:
                message = f"{message} Reason: {reason}"
            effects = fx.notify_all(
                await self._all_user_ids(tournament_id),
                "Tournament Cancelled",
                message,
                {"tournament_id": tournament_id},
            )

        log.info(
            f"[TOURNAMENT] Tournament {tournament_id} status → CANCELLED"
            + (f" ({reason})" if reason else "")
        )

        await self.dispatcher.dispatch(effects)
        return tournament

    async def _all_user_ids(self, tournament_id: int) -> List[str]:
        user_ids: List[str] = []
        for participant in await queries.fetch_participants(self.db, tournament_id):
            user_ids.extend(await queries.participant_user_ids(self.db, participant))
        return user_ids

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_by_id(self, tournament_id: int) -> Optional[Tournament]:
        """Get tournament by ID."""
        return await queries.fetch_tournament(self.db, tournament_id)

    async def get_details(self, tournament_id: int) -> TournamentDetails:
        """Tournament with its participants and matches."""
        tournament = await queries.require_tournament(self.db, tournament_id)
        return TournamentDetails(
            tournament=tournament,
            participants=await queries.fetch_participants(self.db, tournament_id),
            matches=await queries.fetch_matches(self.db, tournament_id),
        )

    async def get_bracket(self, tournament_id: int) -> Dict[int, List[Match]]:
        return await self.bracket.get_bracket(tournament_id)

    async def list_tournaments(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> TournamentPage:
        """Tournaments ordered by start date, optionally filtered by status."""
        where = ""
        params: List[Any] = []
        if status:
            where = "WHERE t.status = ?"
            params.append(status)
        return await self._page(where, params, page, limit)

    async def search_tournaments(
        self,
        query: str,
        page: int = 1,
        limit: int = 20,
    ) -> TournamentPage:
        """Case-insensitive match on name, description or game."""
        term = (query or "").strip().lower()
        # % and _ are literal in the user's query
        term = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{term}%"
        where = r"""
            WHERE lower(t.name) LIKE ? ESCAPE '\'
               OR lower(COALESCE(t.description, '')) LIKE ? ESCAPE '\'
               OR lower(t.game) LIKE ? ESCAPE '\'
        """
        return await self._page(where, [pattern, pattern, pattern], page, limit)

    async def _page(
        self,
        where: str,
        params: List[Any],
        page: int,
        limit: int,
    ) -> TournamentPage:
        page = max(1, page)
        limit = max(1, limit)

        cursor = await self.db.execute(
            f"SELECT COUNT(*) FROM tournaments t {where}",
            params,
        )
        total = (await cursor.fetchone())[0]

        cursor = await self.db.execute(
            f"""
            {queries.TOURNAMENT_SELECT}
            {where}
            ORDER BY t.start_date IS NULL, t.start_date ASC, t.id ASC
            LIMIT ? OFFSET ?
            """,
            (*params, limit, (page - 1) * limit),
        )
        rows = await cursor.fetchall()
        return TournamentPage(
            tournaments=[row_to_tournament(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
        )
