"""
config.py — Tournament Engine Configuration
-------------------------------------------
Central place for environment-driven settings.

Values are read once at import time from the process environment
(a local .env file is loaded first when present).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


# =============================================================================
# STORAGE
# =============================================================================
DB_NAME: str = os.getenv("TOURNAMENT_DB", "tournaments.db")


# =============================================================================
# LOGGING
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s: %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the engine's log format to the root logger."""
    level_name = (level or LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
    )


# =============================================================================
# PLATFORM COLLABORATORS
# =============================================================================
# Base URL + shared secret of the platform API that owns user progression,
# clans and notification delivery. Empty URL = collaborators disabled.
PLATFORM_API_URL: str = os.getenv("PLATFORM_API_URL", "").strip()
PLATFORM_API_KEY: str = os.getenv("PLATFORM_API_KEY", "").strip()

# Best-effort side effects (XP, stats, notifications) are retried this many
# times after the owning transaction has committed.
REWARD_RETRY_ATTEMPTS: int = int(os.getenv("REWARD_RETRY_ATTEMPTS", "3"))
REWARD_RETRY_DELAY: float = float(os.getenv("REWARD_RETRY_DELAY", "0.5"))


# =============================================================================
# REWARD POLICY
# =============================================================================
@dataclass(frozen=True)
class RewardPolicy:
    """XP figures handed to the progression collaborators."""

    create_xp: int = 200
    join_xp: int = 50
    win_xp: int = 500
    clan_win_xp: int = 1000

    @classmethod
    def from_env(cls) -> "RewardPolicy":
        return cls(
            create_xp=int(os.getenv("TOURNAMENT_CREATE_XP", "200")),
            join_xp=int(os.getenv("TOURNAMENT_JOIN_XP", "50")),
            win_xp=int(os.getenv("TOURNAMENT_WIN_XP", "500")),
            clan_win_xp=int(os.getenv("TOURNAMENT_CLAN_WIN_XP", "1000")),
        )
