"""
Per-guild scores for the running session and match winner rules.
"""
import logging
import math
from typing import List, Optional

from .models import LeaderboardEntry
from .storage import Storage

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3)."""
    return math.floor(value + 0.5)


class ScoreLedger:
    """Reads and writes the leaderboard entries of a guild."""

    def __init__(self, storage: Storage):
        self.storage = storage

    async def bump(self, guild_id: int, user_id: int) -> LeaderboardEntry:
        """
        Add one point to a user, creating the entry at 1 if it is missing.

        Args:
            guild_id: Guild of the session
            user_id: Player who scored

        Returns:
            The saved leaderboard entry
        """
        entry = await self.storage.get_entry(guild_id, user_id)
        if entry is None:
            entry = await self.storage.create_entry(LeaderboardEntry(guild_id, user_id, score=1))
        else:
            entry.score += 1
            entry = await self.storage.update_entry(entry)

        logger.debug(f"Score for user {user_id} in guild {guild_id} is now {entry.score}")
        return entry

    async def entries(self, guild_id: int) -> List[LeaderboardEntry]:
        return await self.storage.find_entries(guild_id)

    async def winner(self, guild_id: int, is_single_player: bool, rounds: int) -> Optional[LeaderboardEntry]:
        """
        Determine the match winner from the current leaderboard.

        In single-player games ``score - 1`` counts as the rounds won, and
        the player only wins after taking at least half of the rounds. With several players the first entry holding the
        highest score wins; which one that is among tied players depends on
        storage order.

        Returns:
            The winning entry, or None if nobody won
        """
        entries = await self.storage.find_entries(guild_id)
        if not entries:
            return None

        highest_score = max(entry.score for entry in entries)

        if is_single_player:
            won_rounds = highest_score - 1
            if round_half_up(rounds / 2) > won_rounds:
                return None

        return next(entry for entry in entries if entry.score == highest_score)

    async def clear(self, guild_id: int) -> int:
        """Delete every entry of a guild. Safe to call repeatedly."""
        return await self.storage.delete_entries(guild_id)
