"""
services/queries.py — Shared read queries
=========================================
Row lookups used by more than one service. Every function takes the
connection explicitly so it can run inside or outside a transaction.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from services.errors import MatchNotFound, TournamentNotFound
from services.models import (
    Match,
    Participant,
    Tournament,
    row_to_match,
    row_to_participant,
    row_to_tournament,
)

TOURNAMENT_SELECT = """
    SELECT t.*,
           (SELECT COUNT(*) FROM tournament_participants p
             WHERE p.tournament_id = t.id) AS participant_count
    FROM tournaments t
"""


async def fetch_tournament(
    db: aiosqlite.Connection, tournament_id: int
) -> Optional[Tournament]:
    cursor = await db.execute(
        f"{TOURNAMENT_SELECT} WHERE t.id = ?",
        (tournament_id,),
    )
    row = await cursor.fetchone()
    if not row:
        return None
    return row_to_tournament(row)


async def require_tournament(db: aiosqlite.Connection, tournament_id: int) -> Tournament:
    tournament = await fetch_tournament(db, tournament_id)
    if tournament is None:
        raise TournamentNotFound(tournament_id)
    return tournament


async def fetch_participant(
    db: aiosqlite.Connection, participant_id: int
) -> Optional[Participant]:
    cursor = await db.execute(
        "SELECT * FROM tournament_participants WHERE id = ?",
        (participant_id,),
    )
    row = await cursor.fetchone()
    return row_to_participant(row) if row else None


async def fetch_participants(
    db: aiosqlite.Connection,
    tournament_id: int,
    status: Optional[str] = None,
) -> List[Participant]:
    """Participants in registration order, optionally filtered by status."""
    if status:
        cursor = await db.execute(
            """
            SELECT * FROM tournament_participants
            WHERE tournament_id = ? AND status = ?
            ORDER BY id ASC
            """,
            (tournament_id, status),
        )
    else:
        cursor = await db.execute(
            """
            SELECT * FROM tournament_participants
            WHERE tournament_id = ?
            ORDER BY id ASC
            """,
            (tournament_id,),
        )
    rows = await cursor.fetchall()
    return [row_to_participant(row) for row in rows]


async def count_participants(db: aiosqlite.Connection, tournament_id: int) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM tournament_participants WHERE tournament_id = ?",
        (tournament_id,),
    )
    row = await cursor.fetchone()
    return row[0]


async def fetch_match(db: aiosqlite.Connection, match_id: int) -> Optional[Match]:
    cursor = await db.execute(
        "SELECT * FROM matches WHERE id = ?",
        (match_id,),
    )
    row = await cursor.fetchone()
    return row_to_match(row) if row else None


async def require_match(db: aiosqlite.Connection, match_id: int) -> Match:
    match = await fetch_match(db, match_id)
    if match is None:
        raise MatchNotFound(match_id)
    return match


async def fetch_matches(
    db: aiosqlite.Connection,
    tournament_id: int,
    round_num: Optional[int] = None,
) -> List[Match]:
    """Matches in creation order, optionally for a single round."""
    if round_num:
        cursor = await db.execute(
            """
            SELECT * FROM matches
            WHERE tournament_id = ? AND round = ?
            ORDER BY id ASC
            """,
            (tournament_id, round_num),
        )
    else:
        cursor = await db.execute(
            """
            SELECT * FROM matches
            WHERE tournament_id = ?
            ORDER BY round ASC, id ASC
            """,
            (tournament_id,),
        )
    rows = await cursor.fetchall()
    return [row_to_match(row) for row in rows]


async def fetch_team_member_ids(db: aiosqlite.Connection, team_id: int) -> List[str]:
    cursor = await db.execute(
        "SELECT user_id FROM team_members WHERE team_id = ? ORDER BY id ASC",
        (team_id,),
    )
    rows = await cursor.fetchall()
    return [row["user_id"] for row in rows]


async def participant_user_ids(
    db: aiosqlite.Connection, participant: Participant
) -> List[str]:
    """Users who act for a participant: the whole roster for a team entry."""
    if participant.team_id is not None:
        members = await fetch_team_member_ids(db, participant.team_id)
        if members:
            return members
    return [participant.user_id] if participant.user_id else []
