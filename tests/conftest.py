"""
tests/conftest.py — Shared fixtures
===================================
In-memory aiosqlite databases built from the real schema, plus recording
fakes for the progression / clan / notification collaborators.
"""

import random
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import aiosqlite

from config import RewardPolicy
from database import init_schema
from engine import TournamentEngine

# NOTE: With `asyncio_mode = auto` pytest-asyncio manages the event loop
# automatically. Do NOT define a custom event_loop fixture here.


# -----------------------------------------------------------------------------
# Collaborator fakes
# -----------------------------------------------------------------------------


class FakeProgression:
    """Records XP awards and stat increments. Can fail the first N calls."""

    def __init__(self, fail_times: int = 0):
        self.fail_times = fail_times
        self.xp = []
        self.stats = []
        self.calls = 0

    def _maybe_fail(self):
        self.calls += 1
        if self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeError("progression service unavailable")

    async def award_xp(self, user_id, amount, reason):
        self._maybe_fail()
        self.xp.append((user_id, amount, reason))

    async def increment_game_stats(self, user_id, wins=0, games_played=0):
        self._maybe_fail()
        self.stats.append((user_id, wins, games_played))

    def xp_for(self, reason):
        return [entry for entry in self.xp if entry[2] == reason]


class FakeClans:
    def __init__(self):
        self.clan_xp = []

    async def award_clan_xp(self, clan_id, amount, reason):
        self.clan_xp.append((clan_id, amount, reason))


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, user_id, title, message, data=None):
        self.sent.append((user_id, title, message, data or {}))

    def titles_for(self, user_id):
        return [title for uid, title, _, _ in self.sent if uid == user_id]

    def recipients(self, title):
        return [uid for uid, t, _, _ in self.sent if t == title]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def test_db():
    """Create an in-memory test database with the engine schema."""
    # Use a single connection - :memory: DBs are per-connection
    db = await aiosqlite.connect(":memory:")
    db.row_factory = aiosqlite.Row
    await init_schema(db)

    yield db

    # Ensure connection is closed to prevent hang
    await db.close()


@pytest.fixture
def progression():
    return FakeProgression()


@pytest.fixture
def clans():
    return FakeClans()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def engine(test_db, progression, clans, notifier):
    """Engine with recording collaborators and a fixed seeding RNG."""
    eng = TournamentEngine(
        test_db,
        progression=progression,
        clans=clans,
        notifier=notifier,
        rng=random.Random(1234),
        policy=RewardPolicy(),
    )
    eng.dispatcher.retry_delay = 0
    return eng


@pytest.fixture
def make_tournament(engine):
    """Factory: create a tournament owned by creator-1."""

    async def _make(size=8, format="solo", creator="creator-1", **kwargs):
        return await engine.tournaments.create_tournament(
            creator,
            kwargs.pop("name", "Spring Cup"),
            kwargs.pop("game", "Chess"),
            size,
            format=format,
            **kwargs,
        )

    return _make


@pytest.fixture
def add_players(engine):
    """Factory: register `count` solo players named user-1..user-N."""

    async def _add(tournament_id, count, prefix="user"):
        players = []
        for i in range(1, count + 1):
            players.append(
                await engine.participants.register(tournament_id, f"{prefix}-{i}")
            )
        return players

    return _add


@pytest.fixture
def play_round(engine):
    """Factory: complete every open match of a round, player1 winning."""

    async def _play(tournament_id, round_num, actor="creator-1"):
        results = []
        for match in await engine.matches.list_matches(tournament_id, round_num):
            if match.status == "COMPLETED":
                continue
            results.append(
                await engine.matches.submit_match_result(
                    match.id, match.player1_id, {"p1": 2, "p2": 0}, actor
                )
            )
        return results

    return _play
