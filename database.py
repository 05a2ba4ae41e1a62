"""
database.py — Tournament Engine Database Module
-----------------------------------------------
Provides DB initialization and the transaction helper every mutating
service operation runs under.

Tables:
- meta: Schema version tracking
- tournaments: Tournament records and lifecycle status
- teams / team_members: Team-format rosters
- tournament_participants: Registered entrants (seeded at start)
- matches: Single elimination bracket matches
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import aiosqlite

from config import DB_NAME
from services.errors import StorageError

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Idempotency flag
_db_initialized = False

# One writer at a time per connection
_write_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = (
    weakref.WeakKeyDictionary()
)


SCHEMA = [
    # ------------------------------------------------------------------
    # META - Schema version tracking
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS meta (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
    # ------------------------------------------------------------------
    # TOURNAMENTS
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS tournaments (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        name                    TEXT NOT NULL,
        description             TEXT,
        game                    TEXT NOT NULL,
        format                  TEXT NOT NULL DEFAULT 'solo',
        bracket_type            TEXT NOT NULL DEFAULT 'single-elimination',
        max_participants        INTEGER NOT NULL,
        entry_fee               REAL NOT NULL DEFAULT 0,
        prize_pool              REAL NOT NULL DEFAULT 0,
        status                  TEXT NOT NULL DEFAULT 'UPCOMING',
        start_date              INTEGER,
        end_date                INTEGER,
        creator_id              TEXT NOT NULL,
        winner_id               TEXT,
        created_at              INTEGER DEFAULT (strftime('%s', 'now')),
        CHECK (max_participants BETWEEN 2 AND 256)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tournaments_status ON tournaments(status, start_date)",
    # ------------------------------------------------------------------
    # TEAMS - Team-format rosters, one team per user per tournament
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS teams (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        tournament_id           INTEGER NOT NULL,
        name                    TEXT NOT NULL,
        tag                     TEXT,
        captain_id              TEXT NOT NULL,
        created_at              INTEGER DEFAULT (strftime('%s', 'now')),
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_members (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        team_id                 INTEGER NOT NULL,
        tournament_id           INTEGER NOT NULL,
        user_id                 TEXT NOT NULL,
        role                    TEXT NOT NULL DEFAULT 'MEMBER',
        UNIQUE (tournament_id, user_id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_team_members_team ON team_members(team_id)",
    # ------------------------------------------------------------------
    # TOURNAMENT_PARTICIPANTS - Registered entrants
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS tournament_participants (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        tournament_id           INTEGER NOT NULL,
        user_id                 TEXT,
        team_id                 INTEGER,
        clan_id                 INTEGER,
        seed                    INTEGER,
        status                  TEXT NOT NULL DEFAULT 'REGISTERED',
        joined_at               INTEGER DEFAULT (strftime('%s', 'now')),
        UNIQUE (tournament_id, user_id),
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id),
        FOREIGN KEY (team_id) REFERENCES teams(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_participants_tournament ON tournament_participants(tournament_id)",
    # ------------------------------------------------------------------
    # MATCHES - SE bracket matches
    # ------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS matches (
        id                      INTEGER PRIMARY KEY AUTOINCREMENT,
        tournament_id           INTEGER NOT NULL,
        round                   INTEGER NOT NULL,
        match_index             INTEGER NOT NULL,
        player1_id              INTEGER,
        player2_id              INTEGER,
        winner_id               INTEGER,
        score                   TEXT,
        status                  TEXT NOT NULL DEFAULT 'SCHEDULED',
        created_at              INTEGER DEFAULT (strftime('%s', 'now')),
        completed_at            INTEGER,
        UNIQUE (tournament_id, round, match_index),
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id),
        FOREIGN KEY (player1_id) REFERENCES tournament_participants(id),
        FOREIGN KEY (player2_id) REFERENCES tournament_participants(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_matches_tournament ON matches(tournament_id, round)",
]


async def init_db_once(db_path: Optional[str] = None) -> float:
    """
    Idempotent database initialization. Safe to call multiple times.

    Returns the time taken in seconds (0 if already initialized).
    """
    global _db_initialized
    if _db_initialized:
        log.debug("Database already initialized, skipping")
        return 0.0

    start = time.perf_counter()
    await init_db(db_path)
    _db_initialized = True
    elapsed = time.perf_counter() - start
    return elapsed


def reset_db_init_flag():
    """Reset the initialization flag (for testing only)."""
    global _db_initialized
    _db_initialized = False


async def init_schema(db: aiosqlite.Connection) -> None:
    """Create all tables on an open connection."""
    await db.execute("PRAGMA foreign_keys = ON")

    for statement in SCHEMA:
        await db.execute(statement)

    await db.execute(
        """
        INSERT OR REPLACE INTO meta (key, value)
        VALUES ('schema_version', ?)
        """,
        (str(SCHEMA_VERSION),),
    )
    await db.commit()


async def init_db(db_path: Optional[str] = None) -> None:
    """Initialize the database file with the engine schema."""
    target_db = db_path or DB_NAME

    async with aiosqlite.connect(target_db) as db:
        await init_schema(db)

    log.info("[DB] Schema initialized at %s (v%s)", target_db, SCHEMA_VERSION)


async def get_db(db_path: Optional[str] = None) -> aiosqlite.Connection:
    """Get a database connection."""
    db = await aiosqlite.connect(db_path or DB_NAME)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA foreign_keys = ON")
    return db


def _write_lock(db: aiosqlite.Connection) -> asyncio.Lock:
    lock = _write_locks.get(db)
    if lock is None:
        lock = asyncio.Lock()
        _write_locks[db] = lock
    return lock


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """
    Run a block of statements as one atomic unit.

    Writers on the same connection are serialized; BEGIN IMMEDIATE takes
    SQLite's write lock so other processes see either all or none of the
    block. Any exception rolls back. aiosqlite errors surface as
    StorageError, domain errors propagate unchanged.
    """
    async with _write_lock(db):
        try:
            await db.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            log.error(f"[DB] Could not begin transaction: {e}")
            raise StorageError(f"Database error: {e}") from e

        try:
            yield db
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            log.error(f"[DB] Transaction rolled back: {e}")
            raise StorageError(f"Database error: {e}") from e
        except BaseException:
            await db.rollback()
            raise


async def validate_db_connectivity(db_path: Optional[str] = None) -> bool:
    """
    Validate database connectivity.
    Returns True if connection succeeds, raises exception otherwise.
    """
    target_db = db_path or DB_NAME
    try:
        async with aiosqlite.connect(target_db) as db:
            await db.execute("SELECT 1")
        return True
    except Exception as e:
        log.error(f"[DB] Database connectivity check failed: {e}")
        raise


async def get_core_tables() -> list[str]:
    """Return list of core tables that should exist."""
    return [
        "meta",
        "tournaments",
        "teams",
        "team_members",
        "tournament_participants",
        "matches",
    ]


async def validate_schema(db: aiosqlite.Connection) -> dict:
    """
    Validate all core tables exist on an open connection.
    Returns dict with table names and their existence status.
    """
    core_tables = await get_core_tables()
    result = {}

    for table in core_tables:
        async with db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
        ) as cursor:
            row = await cursor.fetchone()
            result[table] = row is not None

    return result
