"""
Unit tests for ThemeCatalog.
"""
import json
import logging
import random
import tempfile
import unittest
from pathlib import Path

from themequiz.models import GameMode
from themequiz.theme_catalog import ThemeCatalog
from tests.test_fixtures import TestFixtures


class TestThemeCatalog(unittest.TestCase):
    """Test cases for theme file loading and selection."""

    def setUp(self):
        logging.disable(logging.CRITICAL)
        self.temp_dir = tempfile.TemporaryDirectory()
        self.catalog = ThemeCatalog(self.temp_dir.name, rng=random.Random(7))

    def tearDown(self):
        self.temp_dir.cleanup()
        logging.disable(logging.NOTSET)

    def write_json(self, name, data):
        path = Path(self.temp_dir.name) / name
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        return path

    def test_validate_valid_structure(self):
        self.assertTrue(self.catalog.validate_theme_structure(TestFixtures.create_valid_theme_json()))

    def test_validate_invalid_structures(self):
        for structure in TestFixtures.create_invalid_theme_json_structures():
            with self.subTest(structure=structure):
                self.assertFalse(self.catalog.validate_theme_structure(structure))

    def test_load_reports_bad_files_and_keeps_good_ones(self):
        TestFixtures.create_temp_theme_files(self.temp_dir.name)

        loaded = self.catalog.load_theme_files()

        self.assertEqual(list(loaded.keys()), ["valid_themes"])
        self.assertEqual(self.catalog.get_theme_count(), 3)
        self.assertTrue(self.catalog.has_load_errors())
        self.assertEqual(len(self.catalog.get_load_errors()), 2)

        summary = self.catalog.get_loading_summary()
        self.assertEqual(summary['total_themes'], 3)
        self.assertEqual(summary['error_count'], 2)

    def test_parsed_theme_fields(self):
        self.write_json("themes.json", TestFixtures.create_valid_theme_json())
        self.catalog.load_theme_files()

        bebop = self.catalog.all_themes()[0]
        self.assertEqual(bebop.name, "Cowboy Bebop")
        self.assertEqual(bebop.external_id, 1)
        self.assertEqual(bebop.kind, "OP1")
        self.assertEqual(bebop.difficulty, "easy")

        steins = self.catalog.all_themes()[1]
        self.assertEqual(steins.accepted_answers, ["Steins;Gate", "Steins Gate"])

    def test_missing_directory(self):
        catalog = ThemeCatalog(str(Path(self.temp_dir.name) / "missing"))
        self.assertEqual(catalog.load_theme_files(), {})
        self.assertTrue(catalog.has_load_errors())
        self.assertIsNone(catalog.random_theme(GameMode.NORMAL))

    def test_random_theme_respects_mode(self):
        self.write_json("themes.json", TestFixtures.create_valid_theme_json())
        self.catalog.load_theme_files()

        for _ in range(10):
            self.assertEqual(self.catalog.random_theme(GameMode.EASY).name, "Cowboy Bebop")

    def test_mode_without_themes_falls_back_to_all(self):
        self.write_json("themes.json", TestFixtures.create_valid_theme_json())
        self.catalog.load_theme_files()

        self.assertEqual(len(self.catalog.themes_for_mode(GameMode.HARD)), 3)


if __name__ == '__main__':
    unittest.main()
