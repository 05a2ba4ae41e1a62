"""
services/reward_service.py — Completion & Reward Resolver
---------------------------------------------------------
Runs inside the transaction that decides the final match:

- flips the tournament ACTIVE -> COMPLETED (conditional UPDATE)
- marks the champion WINNER
- returns the reward / notification effects for the caller to dispatch
  after commit

Rewards are issued only when the status flip actually happened, so a
tournament pays out at most once.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

import aiosqlite

from config import RewardPolicy
from services import queries
from services import side_effects as fx
from services.errors import InvalidState, ParticipantNotFound
from services.models import Match, Participant
from services.side_effects import SideEffect
from services.status_enums import ParticipantStatus, TournamentStatus

log = logging.getLogger(__name__)


class RewardService:
    """Completion detection and terminal rewards."""

    def __init__(self, db: aiosqlite.Connection, policy: Optional[RewardPolicy] = None):
        self.db = db
        self.db.row_factory = aiosqlite.Row
        self.policy = policy or RewardPolicy()

    async def resolve_completion(
        self, tournament_id: int, final_match: Match
    ) -> List[SideEffect]:
        """
        Complete the tournament with the winner of ``final_match``.

        Must be called inside the caller's transaction. Returns an empty
        list when the tournament was not ACTIVE any more.
        """
        if final_match.winner_id is None:
            raise InvalidState(f"Final match {final_match.id} has no winner.")

        champion = await queries.fetch_participant(self.db, final_match.winner_id)
        if champion is None:
            raise ParticipantNotFound(
                f"Champion participant {final_match.winner_id} not found."
            )

        now = int(time.time())
        cursor = await self.db.execute(
            """
            UPDATE tournaments
            SET status = ?, winner_id = ?, end_date = ?
            WHERE id = ? AND status = ?
            """,
            (
                TournamentStatus.COMPLETED.value,
                champion.user_id,
                now,
                tournament_id,
                TournamentStatus.ACTIVE.value,
            ),
        )
        if cursor.rowcount == 0:
            log.warning(
                f"[REWARDS] Tournament {tournament_id} was not ACTIVE; "
                f"skipping completion for match {final_match.id}"
            )
            return []

        await self.db.execute(
            "UPDATE tournament_participants SET status = ? WHERE id = ?",
            (ParticipantStatus.WINNER.value, champion.id),
        )

        tournament = await queries.require_tournament(self.db, tournament_id)
        log.info(
            f"[REWARDS] Tournament {tournament_id} completed: champion participant "
            f"{champion.id} (user {champion.user_id})"
        )

        effects = await self._champion_effects(tournament.name, tournament_id, champion)

        runner_up_id = final_match.loser_id
        if runner_up_id is not None:
            runner_up = await queries.fetch_participant(self.db, runner_up_id)
            if runner_up is not None:
                effects.append(fx.game_stats(runner_up.user_id, games_played=1))

        everyone: List[str] = []
        for participant in await queries.fetch_participants(self.db, tournament_id):
            everyone.extend(await queries.participant_user_ids(self.db, participant))
        effects.extend(
            fx.notify_all(
                everyone,
                "Tournament Completed",
                f'"{tournament.name}" has finished.',
                {"tournament_id": tournament_id, "winner_id": champion.user_id},
            )
        )
        return effects

    async def _champion_effects(
        self, tournament_name: str, tournament_id: int, champion: Participant
    ) -> List[SideEffect]:
        effects: List[SideEffect] = []
        winners = await queries.participant_user_ids(self.db, champion)

        effects.append(
            fx.award_xp(champion.user_id, self.policy.win_xp, "Won a tournament")
        )
        effects.append(fx.game_stats(champion.user_id, wins=1, games_played=1))

        if champion.clan_id is not None:
            effects.append(
                fx.clan_xp(
                    champion.clan_id, self.policy.clan_win_xp, "Member won tournament"
                )
            )

        effects.extend(
            fx.notify_all(
                winners,
                "Tournament Victory!",
                f'Congratulations! You won "{tournament_name}"!',
                {"tournament_id": tournament_id},
            )
        )
        return effects
