"""
tests/test_engine.py — Composition root
=======================================
"""

import pytest

import engine as engine_module
from database import reset_db_init_flag
from engine import open_engine, run_startup_checks

from conftest import FakeNotifier


@pytest.fixture
def fresh_init_flag():
    reset_db_init_flag()
    yield
    reset_db_init_flag()


class TestEngine:
    @pytest.mark.asyncio
    async def test_startup_checks_pass_on_new_file(self, tmp_path, fresh_init_flag, capsys):
        await run_startup_checks(str(tmp_path / "checks.db"))
        assert "Pre-flight checks complete" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_platform_url_requires_key(
        self, tmp_path, fresh_init_flag, monkeypatch
    ):
        monkeypatch.setattr(engine_module, "PLATFORM_API_URL", "http://platform.local")
        monkeypatch.setattr(engine_module, "PLATFORM_API_KEY", "")

        with pytest.raises(RuntimeError):
            await run_startup_checks(str(tmp_path / "checks.db"))

    @pytest.mark.asyncio
    async def test_open_engine_round_trip(self, tmp_path, fresh_init_flag):
        notifier = FakeNotifier()
        eng = await open_engine(str(tmp_path / "engine.db"), notifier=notifier)
        try:
            t = await eng.tournaments.create_tournament("creator-1", "Cup", "Chess", 4)
            await eng.participants.register(t.id, "user-1")
            assert (await eng.tournaments.get_by_id(t.id)).current_participants == 1
            assert eng.platform is None
            assert "Tournament Joined" in notifier.titles_for("user-1")
        finally:
            await eng.close()

    @pytest.mark.asyncio
    async def test_open_engine_uses_platform_client(
        self, tmp_path, fresh_init_flag, monkeypatch
    ):
        monkeypatch.setattr(engine_module, "PLATFORM_API_URL", "http://platform.local")
        monkeypatch.setattr(engine_module, "PLATFORM_API_KEY", "secret")

        eng = await open_engine(str(tmp_path / "engine.db"))
        try:
            assert eng.platform is not None
            assert eng.dispatcher.progression is eng.platform
            assert eng.dispatcher.notifier is eng.platform
        finally:
            await eng.close()
