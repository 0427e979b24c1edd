"""
Integration tests for complete theme quiz matches.
Runs the controller, session, catalog and JSON storage together.
"""
import json
import logging
import random
import tempfile
import unittest
from pathlib import Path

from themequiz.config_manager import ConfigManager
from themequiz.errors import ThemeSourceError
from themequiz.game_controller import GameController
from themequiz.i18n import I18n
from themequiz.storage import JsonStorage
from themequiz.theme_catalog import ThemeCatalog
from themequiz.theme_source import CatalogThemeSource
from tests.test_fixtures import (
    GUILD_ID, OTHER_PLAYER_ID, PLAYER_ID, TEXT_CHANNEL_ID,
    AsyncTestHelpers, FakeTransport, TestFixtures,
)


class OfflineThemeSource(CatalogThemeSource):
    """Catalog source that never touches the network."""

    async def resolve_stream(self, theme):
        return theme.link

    async def lookup_metadata(self, name, external_id=None):
        raise ThemeSourceError("offline")


class QuickConfigManager(ConfigManager):

    def build_settings(self, rounds=None, duration=None, mode=None):
        result = super().build_settings(rounds, None, mode)
        if result['success']:
            result['settings'].round_duration = 0.2
        return result


class TestCompleteMatchFlow(unittest.IsolatedAsyncioTestCase):
    """Test complete matches from start to finish."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.temp_dir = tempfile.TemporaryDirectory()
        theme_dir = Path(self.temp_dir.name) / "themes"
        theme_dir.mkdir()
        data = TestFixtures.create_valid_theme_json()
        for theme in data['themes']:
            # Untagged themes are played in every mode
            theme.pop('difficulty', None)
        with open(theme_dir / "openings.json", 'w', encoding='utf-8') as f:
            json.dump(data, f)

        catalog = ThemeCatalog(str(theme_dir), rng=random.Random(3))
        catalog.load_theme_files()

        self.t = I18n()
        self.storage_path = Path(self.temp_dir.name) / "data" / "themequiz.json"
        self.storage = JsonStorage(str(self.storage_path))
        self.transport = FakeTransport(members=[PLAYER_ID, OTHER_PLAYER_ID])
        self.controller = GameController(
            self.storage,
            self.transport,
            OfflineThemeSource(catalog),
            QuickConfigManager(),
            translate=self.t
        )

    def tearDown(self):
        self.temp_dir.cleanup()
        logging.disable(logging.NOTSET)

    async def asyncTearDown(self):
        await self.controller.shutdown()

    async def answer_current_round(self, game, previous=None):
        await AsyncTestHelpers.wait_until(
            lambda: game.collector is not None and game.collector is not previous and game.collector.is_open
        )
        collector = game.collector
        self.transport.dispatch(TestFixtures.create_message(collector.accepted_answers[0].lower()))
        return collector

    async def test_multiplayer_match_persists_experience(self):
        result = await self.controller.start_game(GUILD_ID, TEXT_CHANNEL_ID, PLAYER_ID, rounds=2)
        self.assertTrue(result['success'])
        game = self.controller.get_game(GUILD_ID)

        first = await self.answer_current_round(game)
        await self.answer_current_round(game, previous=first)

        await AsyncTestHelpers.wait_until(lambda: not self.controller.has_active_game(GUILD_ID))

        self.assertFalse(game.single_player)
        self.assertEqual([outcome.answerers for outcome in game.outcomes], [[PLAYER_ID], [PLAYER_ID]])
        self.assertIn(self.t("game.match_winner", user=PLAYER_ID, xp=20), self.transport.contents())
        self.assertEqual(self.transport.contents()[-1], self.t("game.round_ended"))

        # Reload from disk: two rounds plus the match win
        reloaded = JsonStorage(str(self.storage_path))
        profile = await reloaded.get_user(PLAYER_ID)
        self.assertEqual(profile.xp, 40)
        self.assertEqual(profile.level, 1)
        self.assertIsNone(await reloaded.get_session(GUILD_ID))
        self.assertEqual(await reloaded.find_entries(GUILD_ID), [])
        self.assertIsNone(await reloaded.get_user(OTHER_PLAYER_ID))

    async def test_stop_command_during_round(self):
        await self.controller.set_prefix(GUILD_ID, "?")
        await self.controller.start_game(GUILD_ID, TEXT_CHANNEL_ID, PLAYER_ID, rounds=5)
        game = self.controller.get_game(GUILD_ID)

        await AsyncTestHelpers.send_when_round_open(
            game, self.transport, TestFixtures.create_message("?stop", author_id=OTHER_PLAYER_ID)
        )
        await AsyncTestHelpers.wait_until(lambda: not self.controller.has_active_game(GUILD_ID))

        self.assertEqual(len(game.outcomes), 1)
        contents = self.transport.contents()
        self.assertIn(self.t("game.stop_requested"), contents)
        self.assertEqual(contents[-1], self.t("game.match_stopped"))
        self.assertNotIn(self.t("game.answer_is"), contents)

    async def test_restart_recovers_leftover_session(self):
        await self.controller.start_game(GUILD_ID, TEXT_CHANNEL_ID, PLAYER_ID, rounds=5)
        game = self.controller.get_game(GUILD_ID)
        await AsyncTestHelpers.wait_until(lambda: game.collector is not None and game.collector.is_open)

        # A new process sees the rolling record left on disk
        restarted = GameController(
            JsonStorage(str(self.storage_path)),
            FakeTransport(),
            OfflineThemeSource(ThemeCatalog(self.temp_dir.name)),
            QuickConfigManager(),
            translate=self.t
        )
        self.assertEqual(await restarted.recover_orphaned_sessions(), 1)
        self.assertFalse(await restarted.storage.session_exists(GUILD_ID))


if __name__ == '__main__':
    unittest.main()
