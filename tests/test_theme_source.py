"""
Unit tests for the catalog-backed theme source.
"""
import unittest
from unittest.mock import Mock

import aiohttp

from themequiz.errors import ThemeSourceError
from themequiz.models import GameMode
from themequiz.theme_source import CatalogThemeSource, parse_media
from tests.test_fixtures import TestFixtures

MEDIA = {
    "title": {"romaji": "Shingeki no Kyojin", "english": "Attack on Titan"},
    "synonyms": ["AoT", "", None],
    "format": "TV",
    "season": "SPRING",
    "seasonYear": 2013,
    "episodes": 25,
    "genres": ["Action", "Drama"],
    "studios": {"nodes": [{"name": "Wit Studio"}]},
    "coverImage": {"large": "https://img.test/aot.jpg"},
    "siteUrl": "https://anilist.co/anime/16498",
}


class FakeResponse:

    def __init__(self, status=200, url="https://themes.test/final.webm", payload=None):
        self.status = status
        self.url = url
        self.payload = payload or {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(Mock(), (), status=self.status)

    async def json(self):
        return self.payload


class FakeSession:

    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.closed = False
        self.posted = []

    def head(self, url, allow_redirects=True):
        if self.error:
            raise self.error
        return self.response

    def post(self, url, json=None):
        if self.error:
            raise self.error
        self.posted.append(json)
        return self.response

    async def close(self):
        self.closed = True


class TestParseMedia(unittest.TestCase):

    def test_fields_are_mapped(self):
        metadata = parse_media(MEDIA)

        self.assertEqual(metadata.title_romaji, "Shingeki no Kyojin")
        self.assertEqual(metadata.synonyms, ["AoT"])
        self.assertEqual(metadata.studios, ["Wit Studio"])
        self.assertEqual(metadata.season_year, 2013)
        self.assertEqual(metadata.titles, ["Shingeki no Kyojin", "Attack on Titan", "AoT"])

    def test_sparse_media(self):
        metadata = parse_media({"title": {"english": "Mushishi"}})
        self.assertEqual(metadata.title_romaji, "Mushishi")
        self.assertEqual(metadata.genres, [])


class TestCatalogThemeSource(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.theme = TestFixtures.create_sample_themes()[0]
        self.catalog = Mock()

    async def test_random_theme_comes_from_catalog(self):
        self.catalog.random_theme.return_value = self.theme
        source = CatalogThemeSource(self.catalog, session=FakeSession())

        self.assertEqual(await source.random_theme(GameMode.EASY), self.theme)
        self.catalog.random_theme.assert_called_once_with(GameMode.EASY)

    async def test_resolve_stream_returns_final_url(self):
        source = CatalogThemeSource(self.catalog, session=FakeSession())
        self.assertEqual(await source.resolve_stream(self.theme), "https://themes.test/final.webm")

    async def test_resolve_stream_http_error(self):
        source = CatalogThemeSource(self.catalog, session=FakeSession(FakeResponse(status=404)))
        with self.assertRaises(ThemeSourceError):
            await source.resolve_stream(self.theme)

    async def test_resolve_stream_connection_error(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("refused"))
        source = CatalogThemeSource(self.catalog, session=session)
        with self.assertRaises(ThemeSourceError):
            await source.resolve_stream(self.theme)

    async def test_lookup_by_mal_id(self):
        session = FakeSession(FakeResponse(payload={"data": {"Media": MEDIA}}))
        source = CatalogThemeSource(self.catalog, session=session)

        metadata = await source.lookup_metadata("Shingeki no Kyojin", 16498)

        self.assertEqual(metadata.title_english, "Attack on Titan")
        self.assertEqual(session.posted[0]["variables"], {"malId": 16498})

    async def test_lookup_by_name_without_id(self):
        session = FakeSession(FakeResponse(payload={"data": {"Media": MEDIA}}))
        source = CatalogThemeSource(self.catalog, session=session)

        await source.lookup_metadata("Shingeki no Kyojin")

        self.assertEqual(session.posted[0]["variables"], {"search": "Shingeki no Kyojin"})

    async def test_lookup_without_result_fails(self):
        session = FakeSession(FakeResponse(payload={"data": {"Media": None}}))
        source = CatalogThemeSource(self.catalog, session=session)

        with self.assertRaises(ThemeSourceError):
            await source.lookup_metadata("Unknown")

    async def test_close_closes_session(self):
        session = FakeSession()
        source = CatalogThemeSource(self.catalog, session=session)
        await source.close()
        self.assertTrue(session.closed)


if __name__ == '__main__':
    unittest.main()
