"""
Configuration manager for theme quiz match settings.
"""
import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

from .models import GameMode, GameSettings


class ConfigManager:
    """Manages bot configuration defaults and match parameters."""

    # Default configuration values
    DEFAULT_ROUNDS = 10
    DEFAULT_ROUND_DURATION = 30
    DEFAULT_MODE = GameMode.NORMAL
    DEFAULT_PREFIX = "!"
    DEFAULT_THEME_DIRECTORY = "./themes/"
    DEFAULT_MAX_THEME_ATTEMPTS = 10
    DEFAULT_THEME_CACHE_TTL = 3600

    # Validation limits
    MIN_ROUNDS = 1
    MAX_ROUNDS = 30
    MIN_ROUND_DURATION = 10
    MAX_ROUND_DURATION = 120
    MAX_PREFIX_LENGTH = 5

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize ConfigManager with default settings.

        Args:
            config: Parsed config.json, its ``game`` and ``bot`` sections override defaults
        """
        self.logger = logging.getLogger(__name__)
        self.reset_to_defaults()
        if config:
            self.load_from_config(config)

    def load_from_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the ``game`` and ``bot`` sections of a config file.

        Invalid values are logged and the defaults kept.

        Returns:
            List of error messages for the rejected values
        """
        game = config.get('game', {})
        errors = []

        results = []
        if 'default_rounds' in game:
            results.append(self.set_rounds(game['default_rounds']))
        if 'default_round_duration' in game:
            results.append(self.set_round_duration(game['default_round_duration']))
        if 'default_mode' in game:
            results.append(self.set_mode(game['default_mode']))
        if 'theme_directory' in game:
            results.append(self.set_theme_directory(game['theme_directory']))

        prefix = config.get('bot', {}).get('command_prefix')
        if prefix is not None:
            result = self.validate_prefix(prefix)
            if result['success']:
                self._default_prefix = prefix
            results.append(result)

        self.max_theme_attempts = int(game.get('max_theme_attempts', self.DEFAULT_MAX_THEME_ATTEMPTS))
        self.theme_cache_ttl = float(game.get('theme_cache_ttl', self.DEFAULT_THEME_CACHE_TTL))

        for result in results:
            if not result['success']:
                errors.append(result['error'])
                self.logger.warning(f"Ignoring invalid configuration value: {result['error']}")

        return errors

    def get_game_settings(self) -> GameSettings:
        """
        Get the current default match settings.

        Returns:
            GameSettings copy with current configuration
        """
        return GameSettings(
            rounds=self._global_settings.rounds,
            round_duration=self._global_settings.round_duration,
            mode=self._global_settings.mode
        )

    def _check_int(self, value: Any, label: str, minimum: int, maximum: int, unit: str = "") -> Optional[Dict[str, Any]]:
        """Return a failure result if ``value`` is not an int within limits."""
        if isinstance(value, bool) or not isinstance(value, int):
            error_msg = f"{label} must be an integer, got {type(value).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
            }

        if value < minimum:
            error_msg = f"{label} must be at least {minimum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too low: Minimum is {minimum}{unit}"
            }

        if value > maximum:
            error_msg = f"{label} cannot exceed {maximum}{unit}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Too high: Maximum is {maximum}{unit}"
            }

        return None

    def set_rounds(self, rounds: int) -> Dict[str, any]:
        """
        Set the default number of rounds per match.

        Args:
            rounds: Number of rounds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_int(rounds, "Round count", self.MIN_ROUNDS, self.MAX_ROUNDS)
        if failure:
            return failure

        self._global_settings.rounds = rounds
        self.logger.info(f"Round count set to {rounds}")
        return {
            'success': True,
            'message': f"Round count set to {rounds}",
            'user_message': f"✅ Matches will have {rounds} rounds"
        }

    def get_rounds(self) -> int:
        return self._global_settings.rounds

    def set_round_duration(self, duration: int) -> Dict[str, any]:
        """
        Set how long each round accepts answers.

        Args:
            duration: Round duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        failure = self._check_int(
            duration, "Round duration", self.MIN_ROUND_DURATION, self.MAX_ROUND_DURATION, " seconds"
        )
        if failure:
            return failure

        self._global_settings.round_duration = duration
        self.logger.info(f"Round duration set to {duration} seconds")
        return {
            'success': True,
            'message': f"Round duration set to {duration} seconds",
            'user_message': f"✅ Rounds will last {duration} seconds"
        }

    def get_round_duration(self) -> int:
        return self._global_settings.round_duration

    def parse_mode(self, mode: Any) -> Optional[GameMode]:
        if isinstance(mode, GameMode):
            return mode
        try:
            return GameMode(str(mode).strip().lower())
        except ValueError:
            return None

    def set_mode(self, mode: Any) -> Dict[str, any]:
        """
        Set the default difficulty mode.

        Args:
            mode: GameMode or its name (easy, normal, hard)

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        parsed = self.parse_mode(mode)
        if parsed is None:
            valid = ", ".join(m.value for m in GameMode)
            error_msg = f"Unknown mode '{mode}', expected one of: {valid}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Unknown mode: choose one of {valid}"
            }

        self._global_settings.mode = parsed
        self.logger.info(f"Mode set to {parsed.value}")
        return {
            'success': True,
            'message': f"Mode set to {parsed.value}",
            'user_message': f"✅ Mode set to {parsed.value}"
        }

    def get_mode(self) -> GameMode:
        return self._global_settings.mode

    def validate_prefix(self, prefix: Any) -> Dict[str, any]:
        """
        Check a guild command prefix.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(prefix, str) or not prefix or len(prefix) > self.MAX_PREFIX_LENGTH:
            error_msg = f"Prefix must be 1 to {self.MAX_PREFIX_LENGTH} characters, got {prefix!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ The prefix must be 1 to {self.MAX_PREFIX_LENGTH} characters long"
            }

        if any(char.isspace() for char in prefix):
            error_msg = f"Prefix cannot contain whitespace, got {prefix!r}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ The prefix cannot contain spaces"
            }

        return {
            'success': True,
            'message': f"Prefix {prefix!r} is valid",
            'user_message': f"✅ Prefix set to `{prefix}`"
        }

    def get_default_prefix(self) -> str:
        return self._default_prefix

    def set_theme_directory(self, directory: str) -> Dict[str, any]:
        """
        Set the directory theme files are loaded from.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(directory, str) or not directory.strip():
            error_msg = "Theme directory path cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Invalid directory: Path cannot be empty"
            }

        path = Path(directory)
        if path.exists() and not path.is_dir():
            error_msg = f"Theme directory path is not a directory: {directory}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid directory: '{directory}' is a file, not a directory"
            }

        if not path.exists():
            self.logger.warning(f"Theme directory does not exist yet: {directory}")

        self._theme_directory = directory
        self.logger.info(f"Theme directory set to {directory}")
        return {
            'success': True,
            'message': f"Theme directory set to {directory}",
            'user_message': f"✅ Theme directory set to {directory}"
        }

    def get_theme_directory(self) -> str:
        return self._theme_directory

    def build_settings(
        self,
        rounds: Optional[int] = None,
        duration: Optional[int] = None,
        mode: Optional[Any] = None
    ) -> Dict[str, any]:
        """
        Build the settings snapshot of a new match.

        Omitted values fall back to the configured defaults.

        Returns:
            Dictionary with success status and ``settings`` on success
        """
        settings = self.get_game_settings()

        if rounds is not None:
            failure = self._check_int(rounds, "Round count", self.MIN_ROUNDS, self.MAX_ROUNDS)
            if failure:
                return failure
            settings.rounds = rounds

        if duration is not None:
            failure = self._check_int(
                duration, "Round duration", self.MIN_ROUND_DURATION, self.MAX_ROUND_DURATION, " seconds"
            )
            if failure:
                return failure
            settings.round_duration = duration

        if mode is not None:
            parsed = self.parse_mode(mode)
            if parsed is None:
                valid = ", ".join(m.value for m in GameMode)
                return {
                    'success': False,
                    'error': f"Unknown mode '{mode}'",
                    'user_message': f"❌ Unknown mode: choose one of {valid}"
                }
            settings.mode = parsed

        return {
            'success': True,
            'message': f"{settings.rounds} rounds of {settings.round_duration}s ({settings.mode.value})",
            'settings': settings
        }

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._global_settings = GameSettings(
            rounds=self.DEFAULT_ROUNDS,
            round_duration=self.DEFAULT_ROUND_DURATION,
            mode=self.DEFAULT_MODE
        )
        self._default_prefix = self.DEFAULT_PREFIX
        self._theme_directory = self.DEFAULT_THEME_DIRECTORY
        self.max_theme_attempts = self.DEFAULT_MAX_THEME_ATTEMPTS
        self.theme_cache_ttl = self.DEFAULT_THEME_CACHE_TTL
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        settings = self._global_settings
        if not self.MIN_ROUNDS <= settings.rounds <= self.MAX_ROUNDS:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid round count: {settings.rounds}")

        if not self.MIN_ROUND_DURATION <= settings.round_duration <= self.MAX_ROUND_DURATION:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid round duration: {settings.round_duration}")

        if not isinstance(settings.mode, GameMode):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid mode: {settings.mode}")

        if self.max_theme_attempts < 1:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid theme attempts: {self.max_theme_attempts}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._global_settings
        return (
            f"Match Settings:\n"
            f"• Rounds: {settings.rounds}\n"
            f"• Round duration: {settings.round_duration} seconds\n"
            f"• Mode: {settings.mode.value}\n"
            f"• Default prefix: {self._default_prefix}\n"
            f"• Theme Directory: {self._theme_directory}"
        )
