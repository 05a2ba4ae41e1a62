"""
engine.py — Tournament Engine Entry Point
-----------------------------------------
Wires the services over one database connection and the platform
collaborators, with pre-flight checks and clean shutdown.

Run directly to initialise the database and verify configuration:

    python engine.py
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys
import time
from typing import Optional

import aiosqlite

from config import (
    DB_NAME,
    PLATFORM_API_KEY,
    PLATFORM_API_URL,
    RewardPolicy,
    configure_logging,
)
from database import (
    get_db,
    init_db_once,
    init_schema,
    validate_db_connectivity,
    validate_schema,
)
from services.bracket_service import BracketService
from services.match_service import MatchService
from services.participant_service import ParticipantService
from services.platform_client import PlatformClient
from services.reward_service import RewardService
from services.side_effects import SideEffectDispatcher
from services.team_service import TeamService
from services.tournament_service import TournamentService

log = logging.getLogger("tournament-engine")


class TournamentEngine:
    """
    Tournament engine composition root.

    Services (all sharing one connection):
    - tournaments: lifecycle controller + queries
    - participants: registration
    - teams: team rosters
    - bracket: seeding and bracket layout
    - matches: results and round advancement
    - rewards: completion and terminal rewards
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        progression=None,
        clans=None,
        notifier=None,
        rng: Optional[random.Random] = None,
        policy: Optional[RewardPolicy] = None,
        platform: Optional[PlatformClient] = None,
    ):
        self.db = db
        self.platform = platform
        self.policy = policy or RewardPolicy.from_env()

        self.dispatcher = SideEffectDispatcher(
            progression=progression,
            clans=clans,
            notifier=notifier,
        )
        self.bracket = BracketService(db, rng=rng)
        self.rewards = RewardService(db, self.policy)
        self.participants = ParticipantService(db, self.dispatcher, self.policy)
        self.teams = TeamService(db)
        self.matches = MatchService(db, self.bracket, self.rewards, self.dispatcher)
        self.tournaments = TournamentService(
            db, self.bracket, self.dispatcher, self.policy
        )

    async def close(self) -> None:
        """Close the platform session and the database connection."""
        if self.platform is not None:
            try:
                await self.platform.close()
            except Exception:
                log.exception("Error closing platform client")
        await self.db.close()
        log.info("Shutdown: database connection closed")


async def open_engine(
    db_path: Optional[str] = None,
    progression=None,
    clans=None,
    notifier=None,
    rng: Optional[random.Random] = None,
) -> TournamentEngine:
    """
    Open the database and build an engine.

    When no collaborators are passed and PLATFORM_API_URL is set, one
    PlatformClient serves as progression, clan and notification backend.
    """
    db = await get_db(db_path)
    await init_schema(db)

    platform = None
    if progression is None and clans is None and notifier is None and PLATFORM_API_URL:
        platform = PlatformClient(PLATFORM_API_URL, PLATFORM_API_KEY)
        progression = clans = notifier = platform
        log.info(f"[PLATFORM-CLIENT] Using platform API at {PLATFORM_API_URL}")

    return TournamentEngine(
        db,
        progression=progression,
        clans=clans,
        notifier=notifier,
        rng=rng,
        platform=platform,
    )


async def run_startup_checks(db_path: Optional[str] = None) -> None:
    """
    Pre-flight checks.
    Validates database connectivity, schema and collaborator configuration.
    Fails fast with clear errors if anything is missing.
    """
    target_db = db_path or DB_NAME

    print("\n" + "=" * 60)
    print(">> Tournament Engine — Pre-flight Checks")
    print("=" * 60)

    # 1. Database connectivity
    try:
        await validate_db_connectivity(target_db)
        print(f"[✓] Database connectivity ............. OK ({target_db})")
    except Exception as e:
        raise RuntimeError(
            f"❌ Database connection failed: {e}\n"
            f"   Check that {target_db} is accessible and not locked."
        )

    # 2. Schema
    start = time.perf_counter()
    try:
        await init_db_once(target_db)
        print(
            f"[✓] Schema initialization ............. OK "
            f"({time.perf_counter() - start:.2f}s)"
        )
    except Exception as e:
        raise RuntimeError(f"❌ Schema initialization failed: {e}")

    # 3. Required tables
    async with aiosqlite.connect(target_db) as db:
        schema_status = await validate_schema(db)
    missing = [t for t, exists in schema_status.items() if not exists]
    if missing:
        raise RuntimeError(f"❌ Schema validation failed: missing tables {', '.join(missing)}")
    print("[✓] Core tables validated ............. OK")

    # 4. Platform collaborators (optional)
    if PLATFORM_API_URL:
        if not PLATFORM_API_KEY:
            raise RuntimeError(
                "❌ PLATFORM_API_URL is set but PLATFORM_API_KEY is empty.\n"
                "   Set it in your .env file or environment variables."
            )
        print(f"[✓] Platform API ...................... OK ({PLATFORM_API_URL})")
    else:
        print("[!] Platform API ...................... not configured (rewards disabled)")

    print("-" * 60)
    print("[+] Pre-flight checks complete")
    print("-" * 60 + "\n")


# -----------------------------------------------------------------------------
# Main Entry
# -----------------------------------------------------------------------------


async def main() -> int:
    """Run pre-flight checks and report tournament counts by status."""
    configure_logging()

    try:
        await run_startup_checks()
    except RuntimeError as e:
        log.error(str(e))
        return 1

    engine = await open_engine()
    try:
        cursor = await engine.db.execute(
            "SELECT status, COUNT(*) AS n FROM tournaments GROUP BY status ORDER BY status"
        )
        rows = await cursor.fetchall()
        if not rows:
            log.info("No tournaments yet")
        for row in rows:
            log.info(f"[TOURNAMENT] {row['status']}: {row['n']}")
    finally:
        await engine.close()
    return 0


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nEngine stopped.")


if __name__ == "__main__":
    cli()
