"""
Unit tests for experience and levels.
"""
import logging
import unittest

from themequiz.leveling import LevelingService, level_for_xp
from themequiz.models import GameMode, UserProfile
from themequiz.storage import MemoryStorage


class TestLevelForXp(unittest.TestCase):

    def test_level_thresholds(self):
        self.assertEqual(level_for_xp(0), 1)
        self.assertEqual(level_for_xp(49), 1)
        self.assertEqual(level_for_xp(50), 2)
        self.assertEqual(level_for_xp(199), 2)
        self.assertEqual(level_for_xp(200), 3)


class TestLevelingService(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.storage = MemoryStorage()
        self.leveling = LevelingService(self.storage)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    async def test_round_xp_depends_on_mode(self):
        easy = await self.leveling.apply_round_result(1, GameMode.EASY)
        hard = await self.leveling.apply_round_result(2, GameMode.HARD)

        self.assertEqual(easy.xp_gained, 5)
        self.assertEqual(hard.xp_gained, 15)

    async def test_match_win_doubles_xp(self):
        result = await self.leveling.apply_round_result(1, GameMode.NORMAL, match_win=True)
        self.assertEqual(result.xp_gained, 20)

    async def test_level_up_is_reported_and_saved(self):
        await self.storage.save_user(UserProfile(1, xp=45, level=1))

        result = await self.leveling.apply_round_result(1, GameMode.NORMAL)

        self.assertTrue(result.leveled_up)
        self.assertEqual(result.previous_level, 1)
        self.assertEqual(result.level, 2)
        self.assertEqual((await self.storage.get_user(1)).xp, 55)

    async def test_no_level_up_below_threshold(self):
        result = await self.leveling.apply_round_result(1, GameMode.EASY)
        self.assertFalse(result.leveled_up)
        self.assertEqual(result.xp, 5)


if __name__ == '__main__':
    unittest.main()
