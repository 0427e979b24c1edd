"""
Theme selection with per-session de-duplication.
"""
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from .errors import ThemeSourceError, ThemeUnavailable
from .models import GameMode, Theme

logger = logging.getLogger(__name__)


class ThemeCache:
    """
    Time-bounded record of the themes already played in one session.

    Entries expire after ``ttl`` seconds; an expired or missing entry only
    means the theme is eligible again.
    """

    def __init__(self, ttl: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[int, float]] = {}

    def add(self, link: str, guild_id: int) -> None:
        self._entries[link] = (guild_id, self._clock() + self.ttl)

    def get(self, link: str) -> Optional[int]:
        entry = self._entries.get(link)
        if entry is None:
            return None
        guild_id, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[link]
            return None
        return guild_id

    def __contains__(self, link: str) -> bool:
        return self.get(link) is not None

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def _purge(self) -> None:
        now = self._clock()
        expired = [link for link, (_, expires_at) in self._entries.items() if now >= expires_at]
        for link in expired:
            del self._entries[link]


class ThemeSelector:
    """Picks themes from a source, never repeating one held in the cache."""

    DEFAULT_MAX_ATTEMPTS = 10

    def __init__(self, source, cache: ThemeCache, guild_id: int, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """
        Initialize the selector.

        Args:
            source: Theme provider exposing ``random_theme(mode)``
            cache: De-duplication cache owned by the session
            guild_id: Guild the session belongs to
            max_attempts: Number of candidates to try before giving up
        """
        self.source = source
        self.cache = cache
        self.guild_id = guild_id
        self.max_attempts = max_attempts

    async def choose_theme(self, mode: GameMode) -> Theme:
        """
        Return a theme that was not played yet in this session.

        Raises:
            ThemeUnavailable: If every attempt failed or returned a repeat
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                candidate = await self.source.random_theme(mode)
            except ThemeSourceError as e:
                logger.warning(f"Theme lookup failed for guild {self.guild_id} (attempt {attempt}): {e}")
                continue

            if candidate is None:
                continue

            if candidate.link in self.cache:
                logger.debug(f"Skipping repeated theme {candidate.link} for guild {self.guild_id}")
                continue

            self.cache.add(candidate.link, self.guild_id)
            logger.info(
                f"Selected theme '{candidate.name}' for guild {self.guild_id}",
                extra={
                    'event_type': 'theme_selected',
                    'guild_id': self.guild_id,
                    'theme_link': candidate.link,
                    'attempt': attempt,
                    'timestamp': time.time()
                }
            )
            return candidate

        raise ThemeUnavailable(
            f"No unused theme found for guild {self.guild_id} after {self.max_attempts} attempts"
        )
