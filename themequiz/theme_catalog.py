"""
Theme catalog loaded from JSON files.
"""
import json
import logging
import os
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import GameMode, Theme


class ThemeCatalog:
    """Loads, validates and serves anime themes stored as JSON files."""

    MAX_FILE_SIZE = 10 * 1024 * 1024

    def __init__(self, theme_directory: str = "./themes/", rng: Optional[random.Random] = None):
        """
        Initialize the catalog with its theme directory.

        Args:
            theme_directory: Path to directory containing JSON theme files
            rng: Random generator used to pick themes
        """
        self.theme_directory = Path(theme_directory)
        self.loaded_themes: Dict[str, List[Theme]] = {}
        self.logger = logging.getLogger(__name__)
        self.load_errors: List[str] = []
        self._rng = rng or random.Random()

    def load_theme_files(self) -> Dict[str, List[Theme]]:
        """
        Load every JSON file of the theme directory.

        Files that fail validation are skipped and reported through
        ``get_load_errors``.

        Returns:
            Dictionary mapping file names to their themes
        """
        self.loaded_themes.clear()
        self.load_errors.clear()

        if not self.theme_directory.exists():
            self.logger.warning(f"Theme directory {self.theme_directory} does not exist")
            self.load_errors.append(f"Theme directory not found: {self.theme_directory}")
            return self.loaded_themes

        try:
            json_files = sorted(self.theme_directory.glob("*.json"))
        except OSError as e:
            self.load_errors.append(f"System error scanning {self.theme_directory}: {e}")
            return self.loaded_themes

        if not json_files:
            self.logger.warning(f"No JSON files found in {self.theme_directory}")
            self.load_errors.append(f"No theme files found in {self.theme_directory}")
            return self.loaded_themes

        for json_file in json_files:
            load_result = self._load_theme_file_safely(json_file)
            if not load_result['success']:
                self.load_errors.append(f"{json_file.name}: {load_result['error']}")

        self.logger.info(
            f"Loaded {self.get_theme_count()} themes from {len(self.loaded_themes)} files"
        )
        if self.load_errors:
            self.logger.warning(f"Encountered {len(self.load_errors)} loading errors")

        return self.loaded_themes

    def _load_theme_file_safely(self, json_file: Path) -> Dict[str, Any]:
        try:
            if not os.access(json_file, os.R_OK):
                return {'success': False, 'error': "Permission denied: Cannot read file"}

            file_size = json_file.stat().st_size
            if file_size > self.MAX_FILE_SIZE:
                return {
                    'success': False,
                    'error': f"File too large ({file_size / 1024 / 1024:.1f}MB)"
                }

            with open(json_file, 'r', encoding='utf-8') as f:
                data = json.load(f)

            if not self.validate_theme_structure(data):
                return {'success': False, 'error': "Invalid theme structure"}

            themes = self._parse_themes(data)
            self.loaded_themes[json_file.stem] = themes
            self.logger.info(f"Loaded theme file '{json_file.stem}' with {len(themes)} themes")
            return {'success': True}

        except json.JSONDecodeError as e:
            return {'success': False, 'error': f"Invalid JSON: {e}"}
        except OSError as e:
            return {'success': False, 'error': f"System error: {e}"}

    def validate_theme_structure(self, data: Any) -> bool:
        """
        Validate that JSON data has the theme file structure.

        Expected structure:
        {
            "themes": [
                {
                    "name": str,
                    "link": str,
                    "mal_id": int,        # Optional
                    "aliases": [str],     # Optional
                    "type": str,          # Optional, e.g. "OP1"
                    "difficulty": str     # Optional, easy/normal/hard
                }
            ]
        }
        """
        if not isinstance(data, dict):
            self.logger.error("Theme data must be a JSON object")
            return False

        themes = data.get("themes")
        if not isinstance(themes, list) or not themes:
            self.logger.error("Theme data must contain a non-empty 'themes' array")
            return False

        valid_modes = {mode.value for mode in GameMode}
        for i, item in enumerate(themes):
            if not isinstance(item, dict):
                self.logger.error(f"Theme {i} must be an object")
                return False

            for key in ("name", "link"):
                if not isinstance(item.get(key), str) or not item[key].strip():
                    self.logger.error(f"Theme {i} '{key}' field must be a non-empty string")
                    return False

            if "mal_id" in item and not isinstance(item["mal_id"], int):
                self.logger.error(f"Theme {i} 'mal_id' field must be an integer")
                return False

            aliases = item.get("aliases", [])
            if not isinstance(aliases, list) or not all(isinstance(alias, str) for alias in aliases):
                self.logger.error(f"Theme {i} 'aliases' field must be an array of strings")
                return False

            if "difficulty" in item and item["difficulty"] not in valid_modes:
                self.logger.error(f"Theme {i} has unknown difficulty {item['difficulty']!r}")
                return False

        return True

    def _parse_themes(self, data: dict) -> List[Theme]:
        return [
            Theme(
                link=item["link"].strip(),
                name=item["name"].strip(),
                external_id=item.get("mal_id"),
                aliases=list(item.get("aliases", [])),
                kind=item.get("type", ""),
                difficulty=item.get("difficulty"),
            )
            for item in data["themes"]
        ]

    def all_themes(self) -> List[Theme]:
        return [theme for themes in self.loaded_themes.values() for theme in themes]

    def themes_for_mode(self, mode: GameMode) -> List[Theme]:
        """Themes tagged with the mode, or the whole catalog if none are."""
        themes = self.all_themes()
        matching = [theme for theme in themes if theme.difficulty == mode.value]
        return matching or themes

    def random_theme(self, mode: GameMode) -> Optional[Theme]:
        themes = self.themes_for_mode(mode)
        if not themes:
            return None
        return self._rng.choice(themes)

    def get_theme_count(self) -> int:
        return sum(len(themes) for themes in self.loaded_themes.values())

    def get_load_errors(self) -> List[str]:
        return self.load_errors.copy()

    def has_load_errors(self) -> bool:
        return len(self.load_errors) > 0

    def get_loading_summary(self) -> Dict[str, Any]:
        """
        Get a summary of the last loading operation.

        Returns:
            Dictionary with loading statistics and status
        """
        return {
            'total_themes': self.get_theme_count(),
            'theme_files': list(self.loaded_themes.keys()),
            'has_errors': self.has_load_errors(),
            'error_count': len(self.load_errors),
            'errors': self.get_load_errors(),
            'theme_directory': str(self.theme_directory)
        }
