"""
Unit tests for ScoreLedger and the match winner rules.
"""
import unittest

from themequiz.models import LeaderboardEntry
from themequiz.score_ledger import ScoreLedger, round_half_up
from themequiz.storage import MemoryStorage

GUILD_ID = 1000


class TestRoundHalfUp(unittest.TestCase):

    def test_halves_round_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(5.0), 5)
        self.assertEqual(round_half_up(4.4), 4)


class TestScoreLedger(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.storage = MemoryStorage()
        self.ledger = ScoreLedger(self.storage)

    async def set_score(self, user_id, score):
        await self.storage.create_entry(LeaderboardEntry(GUILD_ID, user_id, score=score))

    async def test_bump_creates_then_increments(self):
        for _ in range(4):
            entry = await self.ledger.bump(GUILD_ID, 7)

        self.assertEqual(entry.score, 4)
        self.assertEqual((await self.storage.get_entry(GUILD_ID, 7)).score, 4)

    async def test_no_entries_means_no_winner(self):
        self.assertIsNone(await self.ledger.winner(GUILD_ID, is_single_player=False, rounds=10))
        self.assertIsNone(await self.ledger.winner(GUILD_ID, is_single_player=True, rounds=10))

    async def test_single_player_needs_half_the_rounds(self):
        await self.set_score(7, 6)
        winner = await self.ledger.winner(GUILD_ID, is_single_player=True, rounds=10)
        self.assertEqual(winner.user_id, 7)

    async def test_single_player_below_half_does_not_win(self):
        await self.set_score(7, 5)
        self.assertIsNone(await self.ledger.winner(GUILD_ID, is_single_player=True, rounds=10))

    async def test_single_player_odd_rounds_round_up(self):
        # 5 rounds -> 3 rounds needed, score 4 means 3 won
        await self.set_score(7, 4)
        self.assertIsNotNone(await self.ledger.winner(GUILD_ID, is_single_player=True, rounds=5))

        await self.storage.delete_entries(GUILD_ID)
        await self.set_score(7, 3)
        self.assertIsNone(await self.ledger.winner(GUILD_ID, is_single_player=True, rounds=5))

    async def test_multiplayer_highest_score_wins(self):
        await self.set_score(1, 4)
        await self.set_score(2, 7)

        winner = await self.ledger.winner(GUILD_ID, is_single_player=False, rounds=10)
        self.assertEqual(winner.user_id, 2)
        self.assertEqual(winner.score, 7)

    async def test_multiplayer_tie_goes_to_first_stored_entry(self):
        await self.set_score(1, 3)
        await self.set_score(2, 3)

        winner = await self.ledger.winner(GUILD_ID, is_single_player=False, rounds=10)
        self.assertEqual(winner.user_id, 1)

    async def test_clear_removes_only_the_guild(self):
        await self.ledger.bump(GUILD_ID, 1)
        await self.ledger.bump(GUILD_ID + 1, 1)

        self.assertEqual(await self.ledger.clear(GUILD_ID), 1)
        self.assertEqual(await self.ledger.clear(GUILD_ID), 0)
        self.assertEqual(await self.ledger.entries(GUILD_ID), [])
        self.assertEqual(len(await self.ledger.entries(GUILD_ID + 1)), 1)


if __name__ == '__main__':
    unittest.main()
