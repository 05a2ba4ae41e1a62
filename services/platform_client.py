"""
services/platform_client.py — Async HTTP Client for the Platform API

Talks to the platform services the tournament engine does not own:
user progression (XP, game stats), clan progression and notification
delivery. One client implements all three collaborator roles expected
by SideEffectDispatcher.
"""

import logging
from typing import Any, Optional

import aiohttp

log = logging.getLogger(__name__)


class PlatformAPIError(Exception):
    """Raised when the platform API returns an error status.

    Attributes:
        status: HTTP status code
        message: Error message from the API
    """

    def __init__(self, status: int, message: str):
        self.status = status
        self.message = message
        super().__init__(f"Platform API Error [{status}]: {message}")


class PlatformClient:
    """Async HTTP client for the platform API.

    All requests include the X-Platform-API-Key header for authentication.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the platform client.

        Args:
            base_url: Base URL of the platform API (e.g., "http://localhost:8000")
            api_key: Shared secret for authentication
            session: Optional shared aiohttp session (created if not provided)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the HTTP session."""
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we own it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
            log.info("[PLATFORM-CLIENT] Session closed")

    def _headers(self) -> dict[str, str]:
        return {
            "X-Platform-API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to the platform API.

        Raises:
            PlatformAPIError: If the API returns an error status or the
                network call fails
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"

        try:
            async with session.request(
                method,
                url,
                json=json,
                headers=self._headers(),
            ) as resp:
                body = await resp.text()

                if resp.status >= 400:
                    log.warning(
                        f"[PLATFORM-CLIENT] {method} {endpoint} -> {resp.status}: {body}"
                    )
                    raise PlatformAPIError(resp.status, body)

                if resp.status == 204 or not body:
                    return {}

                return await resp.json()

        except aiohttp.ClientError as e:
            log.error(f"[PLATFORM-CLIENT] Network error: {e}")
            raise PlatformAPIError(503, f"Network error: {e}")

    # -------------------------------------------------------------------------
    # User progression
    # -------------------------------------------------------------------------

    async def award_xp(self, user_id: str, amount: int, reason: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/users/{user_id}/xp",
            json={"amount": amount, "reason": reason},
        )

    async def increment_game_stats(
        self,
        user_id: str,
        *,
        wins: int = 0,
        games_played: int = 0,
    ) -> dict[str, Any]:
        """Increment a user's win / games-played counters."""
        return await self._request(
            "POST",
            f"/users/{user_id}/stats",
            json={"wins": wins, "games_played": games_played},
        )

    # -------------------------------------------------------------------------
    # Clan progression
    # -------------------------------------------------------------------------

    async def award_clan_xp(
        self, clan_id: int, amount: int, reason: str
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/clans/{clan_id}/xp",
            json={"amount": amount, "reason": reason},
        )

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Queue a notification for a user (delivery is the platform's job)."""
        body = {
            "user_id": user_id,
            "title": title,
            "message": message,
            "data": data or {},
        }
        return await self._request("POST", "/notifications", json=body)
