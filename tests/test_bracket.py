"""
tests/test_bracket.py — Bracket Generator
=========================================
Seeding, round 1 pairing and bye handling.
"""

import math
import random

import pytest

from services.bracket_service import BracketService, pair_entrants
from services.errors import InvalidState


class TestPairEntrants:
    def test_even_count(self):
        assert pair_entrants([1, 2, 3, 4]) == [(1, 2), (3, 4)]

    def test_odd_count_gives_trailing_bye(self):
        assert pair_entrants([5, 6, 7]) == [(5, 6), (7, None)]

    def test_single_entrant(self):
        assert pair_entrants([9]) == [(9, None)]

    def test_empty(self):
        assert pair_entrants([]) == []


class TestGenerateBracket:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [2, 3, 5, 8, 13, 16])
    async def test_seeds_are_a_permutation(
        self, engine, make_tournament, add_players, count
    ):
        t = await make_tournament(size=16)
        await add_players(t.id, count)
        await engine.tournaments.start(t.id, "creator-1")

        participants = await engine.participants.list_participants(t.id)
        assert sorted(p.seed for p in participants) == list(range(1, count + 1))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [2, 3, 5, 8, 13, 16])
    async def test_everyone_plays_exactly_once_in_round_one(
        self, engine, make_tournament, add_players, count
    ):
        t = await make_tournament(size=16)
        players = await add_players(t.id, count)
        await engine.tournaments.start(t.id, "creator-1")

        round_one = await engine.matches.list_matches(t.id, 1)
        assert len(round_one) == math.ceil(count / 2)

        slots = [m.player1_id for m in round_one] + [
            m.player2_id for m in round_one if m.player2_id is not None
        ]
        assert sorted(slots) == sorted(p.id for p in players)

    @pytest.mark.asyncio
    async def test_pairs_follow_seed_order(self, engine, make_tournament, add_players):
        t = await make_tournament(size=8)
        await add_players(t.id, 8)
        await engine.tournaments.start(t.id, "creator-1")

        seed_of = {
            p.id: p.seed for p in await engine.participants.list_participants(t.id)
        }
        round_one = await engine.matches.list_matches(t.id, 1)
        assert [(seed_of[m.player1_id], seed_of[m.player2_id]) for m in round_one] == [
            (1, 2),
            (3, 4),
            (5, 6),
            (7, 8),
        ]
        assert all(m.status == "SCHEDULED" for m in round_one)
        assert [m.match_index for m in round_one] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_odd_count_creates_completed_bye(
        self, engine, make_tournament, add_players
    ):
        t = await make_tournament(size=8)
        await add_players(t.id, 3)
        await engine.tournaments.start(t.id, "creator-1")

        round_one = await engine.matches.list_matches(t.id, 1)
        byes = [m for m in round_one if m.is_bye]
        assert len(byes) == 1

        bye = byes[0]
        assert bye.status == "COMPLETED"
        assert bye.winner_id == bye.player1_id
        assert bye.score == {"bye": True}
        assert bye.completed_at is not None

        lucky = await engine.participants.get_participant(bye.player1_id)
        assert lucky.status == "ACTIVE"
        assert lucky.seed == 3

    @pytest.mark.asyncio
    async def test_same_rng_seed_same_bracket(self, test_db, make_tournament, add_players):
        t1 = await make_tournament(name="A")
        t2 = await make_tournament(name="B")
        await add_players(t1.id, 8, prefix="a")
        await add_players(t2.id, 8, prefix="b")

        # Same registration order, same RNG seed
        for t in (t1, t2):
            bracket = BracketService(test_db, rng=random.Random(99))
            await bracket.generate_bracket(t.id)

        async def seeds(tid, prefix):
            cursor = await test_db.execute(
                "SELECT user_id, seed FROM tournament_participants WHERE tournament_id = ?",
                (tid,),
            )
            return {row["user_id"][len(prefix):]: row["seed"] for row in await cursor.fetchall()}

        assert await seeds(t1.id, "a") == await seeds(t2.id, "b")

    @pytest.mark.asyncio
    async def test_refuses_second_generation(self, test_db, make_tournament, add_players):
        t = await make_tournament()
        await add_players(t.id, 4)
        bracket = BracketService(test_db, rng=random.Random(1))
        await bracket.generate_bracket(t.id)

        with pytest.raises(InvalidState):
            await bracket.generate_bracket(t.id)

    @pytest.mark.asyncio
    async def test_needs_two_participants(self, test_db, make_tournament, add_players):
        t = await make_tournament()
        await add_players(t.id, 1)

        with pytest.raises(InvalidState):
            await BracketService(test_db).generate_bracket(t.id)


class TestGetBracket:
    @pytest.mark.asyncio
    async def test_grouped_by_round(self, engine, make_tournament, add_players, play_round):
        t = await make_tournament()
        await add_players(t.id, 8)
        await engine.tournaments.start(t.id, "creator-1")
        await play_round(t.id, 1)

        bracket = await engine.tournaments.get_bracket(t.id)
        assert list(bracket) == [1, 2]
        assert len(bracket[1]) == 4
        assert len(bracket[2]) == 2
