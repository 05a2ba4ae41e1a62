"""
services/side_effects.py — Post-commit Side Effects
===================================================
XP awards, stat increments and notifications are requested by the
services while a transaction is open, but only delivered after it has
committed. Delivery is best-effort: each call is retried a few times and
a final failure is logged, never raised, so a flaky collaborator can not
undo a committed state transition.

Collaborators are plain async objects:

- progression: award_xp(user_id, amount, reason),
  increment_game_stats(user_id, wins=0, games_played=0)
- clans: award_clan_xp(clan_id, amount, reason)
- notifier: notify(user_id, title, message, data=None)

Any of them may be None, in which case effects for it are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from config import REWARD_RETRY_ATTEMPTS, REWARD_RETRY_DELAY

log = logging.getLogger(__name__)


AWARD_XP = "award_xp"
GAME_STATS = "game_stats"
CLAN_XP = "clan_xp"
NOTIFY = "notify"


@dataclass
class SideEffect:
    """One pending collaborator call."""

    kind: str
    target_id: Any  # user id or clan id
    payload: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        return f"{self.kind}({self.target_id})"


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------


def award_xp(user_id: str, amount: int, reason: str) -> SideEffect:
    return SideEffect(AWARD_XP, user_id, {"amount": amount, "reason": reason})


def game_stats(user_id: str, *, wins: int = 0, games_played: int = 0) -> SideEffect:
    return SideEffect(
        GAME_STATS, user_id, {"wins": wins, "games_played": games_played}
    )


def clan_xp(clan_id: int, amount: int, reason: str) -> SideEffect:
    return SideEffect(CLAN_XP, clan_id, {"amount": amount, "reason": reason})


def notify(
    user_id: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> SideEffect:
    return SideEffect(
        NOTIFY, user_id, {"title": title, "message": message, "data": data or {}}
    )


def notify_all(
    user_ids: Iterable[Optional[str]],
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> List[SideEffect]:
    """One notification per distinct, non-empty user id (order preserved)."""
    seen = set()
    effects = []
    for user_id in user_ids:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        effects.append(notify(user_id, title, message, data))
    return effects


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


class SideEffectDispatcher:
    """Delivers side effects to the external collaborators."""

    def __init__(
        self,
        progression=None,
        clans=None,
        notifier=None,
        attempts: int = REWARD_RETRY_ATTEMPTS,
        retry_delay: float = REWARD_RETRY_DELAY,
    ):
        self.progression = progression
        self.clans = clans
        self.notifier = notifier
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay

    def _resolve(self, effect: SideEffect):
        """Return a zero-arg coroutine factory for the effect, or None."""
        payload = effect.payload
        if effect.kind == AWARD_XP and self.progression is not None:
            return lambda: self.progression.award_xp(
                effect.target_id, payload["amount"], payload["reason"]
            )
        if effect.kind == GAME_STATS and self.progression is not None:
            return lambda: self.progression.increment_game_stats(
                effect.target_id,
                wins=payload["wins"],
                games_played=payload["games_played"],
            )
        if effect.kind == CLAN_XP and self.clans is not None:
            return lambda: self.clans.award_clan_xp(
                effect.target_id, payload["amount"], payload["reason"]
            )
        if effect.kind == NOTIFY and self.notifier is not None:
            return lambda: self.notifier.notify(
                effect.target_id,
                payload["title"],
                payload["message"],
                payload["data"],
            )
        return None

    async def deliver(self, effect: SideEffect) -> bool:
        """Deliver one effect with retries. Returns True on success."""
        call = self._resolve(effect)
        if call is None:
            log.debug(f"[SIDE-EFFECTS] No collaborator for {effect.describe()}")
            return False

        for attempt in range(1, self.attempts + 1):
            try:
                await call()
                return True
            except Exception as e:
                if attempt >= self.attempts:
                    log.error(
                        f"[SIDE-EFFECTS] {effect.describe()} failed after "
                        f"{attempt} attempts: {e}"
                    )
                    return False
                log.warning(
                    f"[SIDE-EFFECTS] {effect.describe()} attempt {attempt} failed: {e}"
                )
                await asyncio.sleep(self.retry_delay * attempt)
        return False

    async def dispatch(self, effects: Iterable[SideEffect]) -> int:
        """Deliver effects in order. Returns how many succeeded."""
        delivered = 0
        for effect in effects:
            if await self.deliver(effect):
                delivered += 1
        return delivered
