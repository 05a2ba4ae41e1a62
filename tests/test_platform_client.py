"""
tests/test_platform_client.py — Platform API client
===================================================
Runs PlatformClient against a local aiohttp test server.
"""

import pytest
from aiohttp import web
from aiohttp import test_utils

from services.platform_client import PlatformAPIError, PlatformClient
from services.side_effects import SideEffectDispatcher
from services import side_effects as fx

API_KEY = "test-secret"


@pytest.fixture
async def platform_server():
    """Fake platform API that records every authenticated request."""
    received = []

    async def record(request: web.Request) -> web.Response:
        if request.headers.get("X-Platform-API-Key") != API_KEY:
            return web.json_response({"error": "unauthorized"}, status=401)
        received.append((request.method, request.path, await request.json()))
        return web.json_response({"ok": True})

    async def broken(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    async def no_content(request: web.Request) -> web.Response:
        received.append((request.method, request.path, await request.json()))
        return web.Response(status=204)

    app = web.Application()
    app.router.add_post("/users/{user_id}/xp", record)
    app.router.add_post("/users/{user_id}/stats", record)
    app.router.add_post("/clans/{clan_id}/xp", broken)
    app.router.add_post("/notifications", no_content)

    server = test_utils.TestServer(app)
    await server.start_server()
    server.received = received

    yield server

    await server.close()


@pytest.fixture
async def client(platform_server):
    c = PlatformClient(str(platform_server.make_url("/")), API_KEY)
    yield c
    await c.close()


class TestPlatformClient:
    @pytest.mark.asyncio
    async def test_award_xp(self, client, platform_server):
        result = await client.award_xp("user-1", 50, "Joined a tournament")

        assert result == {"ok": True}
        assert platform_server.received == [
            ("POST", "/users/user-1/xp", {"amount": 50, "reason": "Joined a tournament"})
        ]

    @pytest.mark.asyncio
    async def test_increment_game_stats(self, client, platform_server):
        await client.increment_game_stats("user-1", wins=1, games_played=1)

        assert platform_server.received == [
            ("POST", "/users/user-1/stats", {"wins": 1, "games_played": 1})
        ]

    @pytest.mark.asyncio
    async def test_notify_with_empty_response(self, client, platform_server):
        result = await client.notify("user-1", "Title", "Body")

        assert result == {}
        assert platform_server.received == [
            (
                "POST",
                "/notifications",
                {"user_id": "user-1", "title": "Title", "message": "Body", "data": {}},
            )
        ]

    @pytest.mark.asyncio
    async def test_error_status_raises(self, client):
        with pytest.raises(PlatformAPIError) as exc:
            await client.award_clan_xp(7, 1000, "Member won tournament")
        assert exc.value.status == 500

    @pytest.mark.asyncio
    async def test_bad_key_rejected(self, platform_server):
        c = PlatformClient(str(platform_server.make_url("/")), "wrong")
        try:
            with pytest.raises(PlatformAPIError) as exc:
                await c.award_xp("user-1", 1, "r")
            assert exc.value.status == 401
        finally:
            await c.close()

    @pytest.mark.asyncio
    async def test_network_error_maps_to_503(self):
        c = PlatformClient("http://127.0.0.1:1", API_KEY)
        try:
            with pytest.raises(PlatformAPIError) as exc:
                await c.award_xp("user-1", 1, "r")
            assert exc.value.status == 503
        finally:
            await c.close()

    @pytest.mark.asyncio
    async def test_serves_as_dispatcher_backend(self, client, platform_server):
        dispatcher = SideEffectDispatcher(
            progression=client, clans=client, notifier=client, attempts=1, retry_delay=0
        )

        delivered = await dispatcher.dispatch(
            [
                fx.award_xp("user-1", 500, "Won a tournament"),
                fx.clan_xp(7, 1000, "Member won tournament"),
            ]
        )

        # The clan endpoint fails; the XP award still lands
        assert delivered == 1
        assert platform_server.received[0][1] == "/users/user-1/xp"
