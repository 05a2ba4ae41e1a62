"""
services/match_service.py — Round Advancement Engine
====================================================
Records match results and moves the bracket forward.

After every result:
  - round still has open matches  -> wait
  - round decided, one winner     -> tournament complete (RewardService)
  - round decided, 2+ winners     -> create the next round from the winners,
                                     in the order of the matches they won

Everything happens in one transaction; notifications and rewards go out
after commit.
"""

from __future__ import annotations

import logging
import time
from typing import Any, List, Optional

import aiosqlite

from database import transaction
from services import queries
from services import side_effects as fx
from services.bracket_service import BracketService
from services.errors import (
    Forbidden,
    InvalidState,
    InvalidWinner,
    MatchNotActive,
    ValidationError,
)
from services.models import Match, Tournament, encode_score
from services.reward_service import RewardService
from services.side_effects import SideEffect, SideEffectDispatcher
from services.status_enums import MatchStatus, ParticipantStatus
from services.status_helpers import (
    OPEN_MATCH_STATUSES,
    is_match_completed,
    is_match_open,
    is_tournament_running,
)

log = logging.getLogger(__name__)


class MatchService:
    """
    Service for match results and bracket progression.

    Provides:
    - submit_match_result (complete a match and advance)
    - start_match (SCHEDULED -> ACTIVE)
    - match lookups
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        bracket: Optional[BracketService] = None,
        rewards: Optional[RewardService] = None,
        dispatcher: Optional[SideEffectDispatcher] = None,
    ):
        self.db = db
        self.db.row_factory = aiosqlite.Row
        self.bracket = bracket or BracketService(db)
        self.rewards = rewards or RewardService(db)
        self.dispatcher = dispatcher or SideEffectDispatcher()

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    async def submit_match_result(
        self,
        match_id: int,
        winner_participant_id: int,
        score: Any,
        actor_user_id: str,
    ) -> Match:
        """
        Complete a match and advance the bracket.

        Args:
            match_id: The match ID
            winner_participant_id: Participant ID of the winner
            score: Opaque score payload (stored as JSON)
            actor_user_id: User submitting the result

        Raises:
            ValidationError, MatchNotFound, MatchNotActive, InvalidState,
            Forbidden, InvalidWinner
        """
        try:
            encoded_score = encode_score(score)
        except (TypeError, ValueError):
            raise ValidationError("Score must be JSON-serializable.")

        async with transaction(self.db):
            match = await queries.require_match(self.db, match_id)

            if is_match_completed(match.status):
                raise MatchNotActive(match_id)

            tournament = await queries.require_tournament(self.db, match.tournament_id)
            if not is_tournament_running(tournament.status):
                raise InvalidState(
                    f"Tournament {tournament.id} is not in progress "
                    f"(status: {tournament.status})."
                )

            await self._authorize(tournament, match, actor_user_id)

            if match.is_bye or not match.involves(winner_participant_id):
                raise InvalidWinner(
                    f"Participant {winner_participant_id} is not playing in match {match_id}."
                )

            now = int(time.time())
            placeholders = ", ".join("?" for _ in OPEN_MATCH_STATUSES)
            cursor = await self.db.execute(
                f"""
                UPDATE matches
                SET status = ?, winner_id = ?, score = ?, completed_at = ?
                WHERE id = ? AND status IN ({placeholders})
                """,
                (
                    MatchStatus.COMPLETED.value,
                    winner_participant_id,
                    encoded_score,
                    now,
                    match_id,
                    *OPEN_MATCH_STATUSES,
                ),
            )
            if cursor.rowcount == 0:
                log.warning(f"[MATCH] Lost race completing match {match_id}")
                raise MatchNotActive(match_id)

            match.status = MatchStatus.COMPLETED.value
            match.winner_id = winner_participant_id
            match.score = score
            match.completed_at = now

            loser_id = match.loser_id
            await self.db.execute(
                "UPDATE tournament_participants SET status = ? WHERE id = ?",
                (ParticipantStatus.ACTIVE.value, winner_participant_id),
            )
            await self.db.execute(
                "UPDATE tournament_participants SET status = ? WHERE id = ?",
                (ParticipantStatus.ELIMINATED.value, loser_id),
            )

            log.info(
                f"[MATCH] Match {match_id} completed: winner={winner_participant_id}, "
                f"loser={loser_id}, round={match.round}, tournament={tournament.id}"
            )

            effects = await self._result_notifications(tournament, match)
            effects.extend(await self._advance(tournament, match.round))

        await self.dispatcher.dispatch(effects)
        return match

    async def _authorize(
        self, tournament: Tournament, match: Match, actor_user_id: str
    ) -> None:
        """Creator, either side's user, or a member of either side's team."""
        if actor_user_id == tournament.creator_id:
            return

        for participant_id in (match.player1_id, match.player2_id):
            if participant_id is None:
                continue
            participant = await queries.fetch_participant(self.db, participant_id)
            if participant is None:
                continue
            if actor_user_id in await queries.participant_user_ids(self.db, participant):
                return

        raise Forbidden(
            f"User {actor_user_id} may not report match {match.id}."
        )

    async def _advance(self, tournament: Tournament, round_num: int) -> List[SideEffect]:
        """Create the next round or complete the tournament once a round is decided."""
        round_matches = await queries.fetch_matches(self.db, tournament.id, round_num)

        if any(is_match_open(m.status) for m in round_matches):
            return []

        winners = [m.winner_id for m in round_matches if m.winner_id is not None]

        if len(winners) == 1:
            return await self.rewards.resolve_completion(tournament.id, round_matches[0])

        next_round = round_num + 1
        if await queries.fetch_matches(self.db, tournament.id, next_round):
            log.warning(
                f"[MATCH] Round {next_round} already exists for tournament {tournament.id}"
            )
            return []

        matches = await self.bracket.create_round(tournament.id, next_round, winners)
        log.info(
            f"[MATCH] Advanced tournament {tournament.id} to round {next_round} "
            f"with {len(matches)} matches"
        )
        return await self.bracket.scheduled_notifications(tournament, matches)

    async def _result_notifications(
        self, tournament: Tournament, match: Match
    ) -> List[SideEffect]:
        effects: List[SideEffect] = []
        data = {"tournament_id": tournament.id, "match_id": match.id}

        for participant_id, won in (
            (match.winner_id, True),
            (match.loser_id, False),
        ):
            participant = await queries.fetch_participant(self.db, participant_id)
            if participant is None:
                continue
            if won:
                title = "Match Won"
                message = f'You advanced in "{tournament.name}".'
            else:
                title = "Match Lost"
                message = f'You were eliminated from "{tournament.name}".'
            effects.extend(
                fx.notify_all(
                    await queries.participant_user_ids(self.db, participant),
                    title,
                    message,
                    data,
                )
            )
        return effects

    # -------------------------------------------------------------------------
    # Match start
    # -------------------------------------------------------------------------

    async def start_match(self, match_id: int, actor_user_id: str) -> Match:
        """
        Mark a scheduled match as being played.

        Raises:
            MatchNotFound, MatchNotActive, InvalidState, Forbidden
        """
        async with transaction(self.db):
            match = await queries.require_match(self.db, match_id)

            if is_match_completed(match.status):
                raise MatchNotActive(match_id)

            tournament = await queries.require_tournament(self.db, match.tournament_id)
            if not is_tournament_running(tournament.status):
                raise InvalidState(
                    f"Tournament {tournament.id} is not in progress "
                    f"(status: {tournament.status})."
                )

            await self._authorize(tournament, match, actor_user_id)

            cursor = await self.db.execute(
                "UPDATE matches SET status = ? WHERE id = ? AND status = ?",
                (MatchStatus.ACTIVE.value, match_id, MatchStatus.SCHEDULED.value),
            )
            if cursor.rowcount == 0:
                raise InvalidState(f"Match {match_id} is already in progress.")

            match.status = MatchStatus.ACTIVE.value

        log.info(f"[MATCH] Match {match_id} started by {actor_user_id}")
        return match

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_match(self, match_id: int) -> Match:
        return await queries.require_match(self.db, match_id)

    async def list_matches(
        self,
        tournament_id: int,
        round_num: Optional[int] = None,
    ) -> List[Match]:
        await queries.require_tournament(self.db, tournament_id)
        return await queries.fetch_matches(self.db, tournament_id, round_num)
