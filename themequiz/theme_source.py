"""
Audio and metadata lookups for themes.

Themes come from the local catalog, streams are checked over HTTP and anime
metadata is fetched from the AniList GraphQL API.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from .errors import ThemeSourceError
from .models import AnimeMetadata, GameMode, Theme
from .theme_catalog import ThemeCatalog

logger = logging.getLogger(__name__)

ANILIST_URL = "https://graphql.anilist.co"

ANIME_QUERY = """
query ($malId: Int, $search: String) {
  Media(idMal: $malId, search: $search, type: ANIME) {
    title { romaji english }
    synonyms
    format
    season
    seasonYear
    episodes
    genres
    studios(isMain: true) { nodes { name } }
    coverImage { large }
    siteUrl
  }
}
"""


class ThemeSource(ABC):
    """Fallible provider of themes, streams and metadata."""

    @abstractmethod
    async def random_theme(self, mode: GameMode) -> Optional[Theme]: ...

    @abstractmethod
    async def resolve_stream(self, theme: Theme) -> str: ...

    @abstractmethod
    async def lookup_metadata(self, name: str, external_id: Optional[int] = None) -> AnimeMetadata: ...

    async def close(self) -> None:
        pass


def parse_media(media: Dict[str, Any]) -> AnimeMetadata:
    """Convert an AniList ``Media`` object into AnimeMetadata."""
    title = media.get("title") or {}
    studios = (media.get("studios") or {}).get("nodes") or []
    cover = media.get("coverImage") or {}
    return AnimeMetadata(
        title_romaji=title.get("romaji") or title.get("english") or "",
        title_english=title.get("english"),
        synonyms=[synonym for synonym in media.get("synonyms") or [] if synonym],
        format=media.get("format"),
        season=media.get("season"),
        season_year=media.get("seasonYear"),
        episodes=media.get("episodes"),
        genres=list(media.get("genres") or []),
        studios=[studio["name"] for studio in studios if studio.get("name")],
        cover_image=cover.get("large"),
        site_url=media.get("siteUrl"),
    )


class CatalogThemeSource(ThemeSource):
    """ThemeSource backed by a ThemeCatalog and aiohttp."""

    def __init__(
        self,
        catalog: ThemeCatalog,
        anilist_url: str = ANILIST_URL,
        request_timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.catalog = catalog
        self.anilist_url = anilist_url
        self.request_timeout = request_timeout
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
        return self._session

    async def random_theme(self, mode: GameMode) -> Optional[Theme]:
        return self.catalog.random_theme(mode)

    async def resolve_stream(self, theme: Theme) -> str:
        """
        Make sure the theme's audio can be fetched.

        Returns:
            URL to hand to the voice player

        Raises:
            ThemeSourceError: If the link cannot be reached
        """
        session = await self._get_session()
        try:
            async with session.head(theme.link, allow_redirects=True) as resp:
                if resp.status >= 400:
                    raise ThemeSourceError(f"Stream {theme.link} answered with HTTP {resp.status}")
                return str(resp.url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ThemeSourceError(f"Unable to reach stream {theme.link}: {e}") from e

    async def lookup_metadata(self, name: str, external_id: Optional[int] = None) -> AnimeMetadata:
        """
        Fetch anime details from AniList, by MyAnimeList id when known.

        Raises:
            ThemeSourceError: If the request fails or nothing is found
        """
        variables = {"malId": external_id} if external_id else {"search": name}
        session = await self._get_session()
        try:
            async with session.post(
                self.anilist_url,
                json={"query": ANIME_QUERY, "variables": variables}
            ) as resp:
                resp.raise_for_status()
                payload = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ThemeSourceError(f"AniList lookup failed for '{name}': {e}") from e

        media = (payload.get("data") or {}).get("Media")
        if not media:
            raise ThemeSourceError(f"AniList has no entry for '{name}'")
        return parse_media(media)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
