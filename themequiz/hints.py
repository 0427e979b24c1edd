"""
Hints revealed on request during a round.
"""
import re
from typing import Callable, List, Optional

from .models import AnimeMetadata


def mask_title(title: str) -> str:
    """Hide every letter and digit except the first of each word."""
    return " ".join(
        word[0] + re.sub(r"\w", "_", word[1:]) if word else word
        for word in title.split(" ")
    )


class HintsHandler:
    """Hands out the hints of one round in order, each at most once."""

    def __init__(self, metadata: Optional[AnimeMetadata], translate: Callable[..., str]):
        self.metadata = metadata
        self.t = translate
        self._hints = self._build_hints() if metadata else []
        self._given = 0

    def _build_hints(self) -> List[str]:
        metadata = self.metadata
        hints = []

        if metadata.format and metadata.episodes:
            hints.append(self.t("hints.format", format=metadata.format, episodes=metadata.episodes))
        elif metadata.format:
            hints.append(self.t("hints.format_only", format=metadata.format))

        if metadata.season and metadata.season_year:
            hints.append(self.t("hints.season", season=metadata.season.title(), year=metadata.season_year))

        if metadata.genres:
            hints.append(self.t("hints.genres", genres=", ".join(metadata.genres[:3])))

        if metadata.studios:
            hints.append(self.t("hints.studio", studio=metadata.studios[0]))

        if metadata.title_romaji:
            hints.append(self.t("hints.title", masked=mask_title(metadata.title_romaji)))

        return hints

    @property
    def remaining(self) -> int:
        return len(self._hints) - self._given

    def next_hint(self) -> Optional[str]:
        if self._given >= len(self._hints):
            return None
        hint = self._hints[self._given]
        self._given += 1
        return hint
