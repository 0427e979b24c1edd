"""
Experience and level progression for players.
"""
import logging
import math

from .models import GameMode, LevelResult, UserProfile
from .storage import Storage

logger = logging.getLogger(__name__)

XP_PER_ROUND = {
    GameMode.EASY: 5,
    GameMode.NORMAL: 10,
    GameMode.HARD: 15,
}

MATCH_WIN_MULTIPLIER = 2
XP_PER_LEVEL_STEP = 50


def level_for_xp(xp: int) -> int:
    """Level reached with the given amount of experience."""
    return int(math.floor(math.sqrt(max(xp, 0) / XP_PER_LEVEL_STEP))) + 1


class LevelingService:
    """Turns round outcomes into experience and level changes."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def apply_round_result(self, user_id: int, mode: GameMode, match_win: bool = False) -> LevelResult:
        """
        Grant experience for a won round (or a won match) and recompute the level.

        Args:
            user_id: Player to reward
            mode: Mode of the match, decides the amount of experience
            match_win: True when rewarding the match winner

        Returns:
            LevelResult with the level before and after the reward
        """
        profile = await self.storage.get_user(user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id)

        xp_gained = XP_PER_ROUND[mode]
        if match_win:
            xp_gained *= MATCH_WIN_MULTIPLIER

        previous_level = profile.level
        profile.xp += xp_gained
        profile.level = level_for_xp(profile.xp)
        await self.storage.save_user(profile)

        if profile.level != previous_level:
            logger.info(f"User {user_id} leveled up from {previous_level} to {profile.level}")

        return LevelResult(
            user_id=user_id,
            previous_level=previous_level,
            level=profile.level,
            xp_gained=xp_gained,
            xp=profile.xp,
        )
