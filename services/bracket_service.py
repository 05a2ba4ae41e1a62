"""
services/bracket_service.py — Bracket Generator
================================================
Seeds registered participants and lays out single elimination rounds.

Round 1:
  1. Take all REGISTERED participants
  2. Shuffle them (injectable RNG so tests can fix the order)
  3. Seed = position + 1
  4. Pair seeds (1,2), (3,4), ...
  5. Odd count: the last seed gets a BYE match that is already COMPLETED

Later rounds reuse the same pairing for the previous round's winners.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Dict, List, Optional, Sequence, Tuple

import aiosqlite

from services import queries
from services import side_effects as fx
from services.errors import InvalidState
from services.models import Match, Tournament, encode_score, group_by_round
from services.side_effects import SideEffect
from services.status_enums import MatchStatus, ParticipantStatus

log = logging.getLogger(__name__)

BYE_SCORE = {"bye": True}


def pair_entrants(entrant_ids: Sequence[int]) -> List[Tuple[int, Optional[int]]]:
    """
    Pair entrants in order: (1st, 2nd), (3rd, 4th), ...

    An odd trailing entrant is paired with None (a bye).
    """
    pairs: List[Tuple[int, Optional[int]]] = []
    for i in range(0, len(entrant_ids), 2):
        player2 = entrant_ids[i + 1] if i + 1 < len(entrant_ids) else None
        pairs.append((entrant_ids[i], player2))
    return pairs


class BracketService:
    """
    Service for single elimination bracket layout.

    generate_bracket() and create_round() write rows but never open a
    transaction themselves; callers run them inside one.
    """

    def __init__(self, db: aiosqlite.Connection, rng: Optional[random.Random] = None):
        self.db = db
        self.db.row_factory = aiosqlite.Row
        self.rng = rng or random.Random()

    # -------------------------------------------------------------------------
    # Bracket Generation
    # -------------------------------------------------------------------------

    async def generate_bracket(self, tournament_id: int) -> List[Match]:
        """
        Seed participants and create round 1.

        Returns the round 1 matches (byes included).

        Raises:
            InvalidState: bracket already exists or fewer than 2 participants
        """
        existing = await queries.fetch_matches(self.db, tournament_id)
        if existing:
            raise InvalidState(
                f"Bracket already generated for tournament {tournament_id}."
            )

        participants = await queries.fetch_participants(
            self.db, tournament_id, ParticipantStatus.REGISTERED.value
        )
        if len(participants) < 2:
            raise InvalidState("Need at least 2 participants to generate a bracket.")

        self.rng.shuffle(participants)

        await self.db.executemany(
            "UPDATE tournament_participants SET seed = ? WHERE id = ?",
            [(seed, p.id) for seed, p in enumerate(participants, start=1)],
        )
        for seed, participant in enumerate(participants, start=1):
            participant.seed = seed

        matches = await self.create_round(
            tournament_id, 1, [p.id for p in participants]
        )

        log.info(
            f"[BRACKET] Built bracket for tournament {tournament_id}: "
            f"{len(participants)} participants, {len(matches)} round 1 matches"
        )
        return matches

    async def create_round(
        self,
        tournament_id: int,
        round_num: int,
        entrant_ids: Sequence[int],
    ) -> List[Match]:
        """Insert one round of matches for the ordered entrants."""
        now = int(time.time())
        matches: List[Match] = []

        for index, (player1_id, player2_id) in enumerate(pair_entrants(entrant_ids)):
            if player2_id is None:
                # BYE: resolved on creation
                status = MatchStatus.COMPLETED.value
                winner_id = player1_id
                score = BYE_SCORE
                completed_at = now
            else:
                status = MatchStatus.SCHEDULED.value
                winner_id = None
                score = None
                completed_at = None

            cursor = await self.db.execute(
                """
                INSERT INTO matches (
                    tournament_id, round, match_index,
                    player1_id, player2_id, winner_id, score,
                    status, created_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tournament_id,
                    round_num,
                    index,
                    player1_id,
                    player2_id,
                    winner_id,
                    encode_score(score),
                    status,
                    now,
                    completed_at,
                ),
            )

            if player2_id is None:
                await self.db.execute(
                    "UPDATE tournament_participants SET status = ? WHERE id = ?",
                    (ParticipantStatus.ACTIVE.value, player1_id),
                )
                log.info(
                    f"[BRACKET] Participant {player1_id} receives a bye in round {round_num}"
                )

            matches.append(
                Match(
                    id=cursor.lastrowid,
                    tournament_id=tournament_id,
                    round=round_num,
                    match_index=index,
                    player1_id=player1_id,
                    player2_id=player2_id,
                    winner_id=winner_id,
                    score=score,
                    status=status,
                    created_at=now,
                    completed_at=completed_at,
                )
            )

        return matches

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_bracket(self, tournament_id: int) -> Dict[int, List[Match]]:
        """All matches grouped by round (ascending), in creation order."""
        await queries.require_tournament(self.db, tournament_id)
        matches = await queries.fetch_matches(self.db, tournament_id)
        return group_by_round(matches)

    async def scheduled_notifications(
        self, tournament: Tournament, matches: Sequence[Match]
    ) -> List[SideEffect]:
        """Match Scheduled notices for both sides of every playable match."""
        effects: List[SideEffect] = []
        for match in matches:
            if match.is_bye:
                continue
            user_ids: List[str] = []
            for participant_id in (match.player1_id, match.player2_id):
                participant = await queries.fetch_participant(self.db, participant_id)
                if participant is not None:
                    user_ids.extend(
                        await queries.participant_user_ids(self.db, participant)
                    )
            effects.extend(
                fx.notify_all(
                    user_ids,
                    "Match Scheduled",
                    f'Round {match.round} of "{tournament.name}" is ready to play.',
                    {
                        "tournament_id": tournament.id,
                        "match_id": match.id,
                        "round": match.round,
                    },
                )
            )
        return effects
