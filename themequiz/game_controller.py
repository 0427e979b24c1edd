"""
Game controller for the Theme Quiz Bot.
Keeps track of the match running in each guild and exposes the operations
behind the bot's slash commands.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional, Set

from .config_manager import ConfigManager
from .game_session import GameRequest, GameSession
from .i18n import I18n
from .leveling import LevelingService
from .models import GuildSettings, UserProfile
from .score_ledger import ScoreLedger
from .storage import Storage


class GameController:
    """
    Orchestrates matches across Discord guilds.

    Each guild runs at most one GameSession at a time. Sessions run as
    background tasks; the controller owns those tasks and removes them from
    its registry when they end.
    """

    def __init__(
        self,
        storage: Storage,
        transport,
        source,
        config_manager: ConfigManager,
        translate: Optional[Callable[..., str]] = None
    ):
        """
        Initialize the game controller.

        Args:
            storage: Persistence for sessions, leaderboards, profiles and guilds
            transport: Chat/voice transport shared by every session
            source: Theme provider shared by every session
            config_manager: Instance holding defaults and validation limits
            translate: Callable rendering message keys
        """
        self.logger = logging.getLogger(__name__)
        self.storage = storage
        self.transport = transport
        self.source = source
        self.config_manager = config_manager
        self.t = translate or I18n()
        self.leveling = LevelingService(storage)
        self.ledger = ScoreLedger(storage)

        # Running matches mapped by guild ID
        self._active_games: Dict[int, GameSession] = {}
        self._tasks: Dict[int, asyncio.Task] = {}
        self._notifications: Set[asyncio.Task] = set()

        self.logger.info("GameController initialized")

    def has_active_game(self, guild_id: int) -> bool:
        return guild_id in self._active_games

    def get_game(self, guild_id: int) -> Optional[GameSession]:
        return self._active_games.get(guild_id)

    async def get_prefix(self, guild_id: int) -> str:
        guild = await self.storage.get_guild(guild_id)
        if guild is None:
            return self.config_manager.get_default_prefix()
        return guild.prefix

    async def set_prefix(self, guild_id: int, prefix: str) -> Dict[str, Any]:
        """
        Change the prefix of in-round commands for a guild.

        Returns:
            Dictionary with success status and user-friendly message
        """
        result = self.config_manager.validate_prefix(prefix)
        if not result['success']:
            return result

        guild = await self.storage.get_guild(guild_id) or GuildSettings(guild_id)
        guild.prefix = prefix
        await self.storage.save_guild(guild)
        self.logger.info(f"Prefix for guild {guild_id} set to {prefix!r}")
        return result

    async def start_game(
        self,
        guild_id: int,
        channel_id: int,
        author_id: int,
        rounds: Optional[int] = None,
        duration: Optional[int] = None,
        mode: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Start a match in the background.

        Args:
            guild_id: Discord guild identifier
            channel_id: Text channel the match is played in
            author_id: Member who asked for the match
            rounds: Optional round count, defaults to the configured value
            duration: Optional round duration in seconds
            mode: Optional difficulty mode name

        Returns:
            Dictionary with operation result and session info
        """
        result = {
            'success': False,
            'message': '',
            'session_info': None
        }

        if self.has_active_game(guild_id):
            result['message'] = self.t("game.already_running")
            return result

        built = self.config_manager.build_settings(rounds, duration, mode)
        if not built['success']:
            result['message'] = built['user_message']
            return result
        settings = built['settings']

        game = GameSession(
            GameRequest(guild_id, channel_id, author_id),
            settings,
            self.storage,
            self.transport,
            self.source,
            leveling=self.leveling,
            translate=self.t,
            prefix=await self.get_prefix(guild_id),
            theme_cache_ttl=self.config_manager.theme_cache_ttl,
            max_theme_attempts=self.config_manager.max_theme_attempts
        )
        self._active_games[guild_id] = game

        task = asyncio.create_task(game.run())
        task.add_done_callback(lambda finished: self._on_game_done(game, finished))
        self._tasks[guild_id] = task

        self.logger.info(
            f"Started match for guild {guild_id} in channel {channel_id}",
            extra={
                'event_type': 'game_started',
                'guild_id': guild_id,
                'channel_id': channel_id,
                'rounds': settings.rounds,
                'mode': settings.mode.value,
                'timestamp': time.time()
            }
        )

        result.update({
            'success': True,
            'message': self.t(
                "game.starting",
                rounds=settings.rounds,
                seconds=settings.round_duration,
                mode=settings.mode.value
            ),
            'session_info': {
                'rounds': settings.rounds,
                'round_duration': settings.round_duration,
                'mode': settings.mode.value
            }
        })
        return result

    def _on_game_done(self, game: GameSession, task: asyncio.Task) -> None:
        guild_id = game.guild_id
        if self._active_games.get(guild_id) is game:
            del self._active_games[guild_id]
            self._tasks.pop(guild_id, None)

        if task.cancelled():
            self.logger.info(f"Match task for guild {guild_id} was cancelled")
            return

        error = task.exception()
        if error is None:
            self.logger.info(
                f"Match task for guild {guild_id} ended in state {task.result().value}",
                extra={
                    'event_type': 'game_ended',
                    'guild_id': guild_id,
                    'timestamp': time.time()
                }
            )
            return

        self.logger.error(
            f"Match for guild {guild_id} failed: {error}",
            exc_info=(type(error), error, error.__traceback__),
            extra={
                'event_type': 'game_failed',
                'guild_id': guild_id,
                'timestamp': time.time()
            }
        )
        notification = asyncio.ensure_future(self._notify_failure(game.channel_id))
        self._notifications.add(notification)
        notification.add_done_callback(self._notifications.discard)

    async def _notify_failure(self, channel_id: int) -> None:
        try:
            await self.transport.send_message(channel_id, self.t("errors.unexpected"))
        except Exception as e:
            self.logger.error(f"Failed to notify channel {channel_id} of a failed match: {e}")

    async def stop_game(self, guild_id: int) -> Dict[str, Any]:
        """
        Stop the match of a guild through its forced-stop path.

        Returns:
            Dictionary with operation result
        """
        result = {
            'success': False,
            'message': ''
        }

        game = self._active_games.get(guild_id)
        if game is None:
            if await self.storage.session_exists(guild_id):
                # Leftover record without a running task
                await self._clear_guild_session(guild_id)
                result.update({'success': True, 'message': self.t("game.match_stopped")})
                return result

            result['message'] = self.t("game.not_running")
            return result

        game.stop()
        self.logger.info(f"Stop requested for match in guild {guild_id}")
        result.update({
            'success': True,
            'message': self.t("game.stop_requested")
        })
        return result

    async def get_status(self, guild_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for the match of a guild.

        Returns:
            Dictionary with progress info, None if no match
        """
        session = await self.storage.get_session(guild_id)
        if session is None:
            return None

        game = self._active_games.get(guild_id)
        return {
            'current_round': session.current_round,
            'total_rounds': session.settings.rounds,
            'round_duration': session.settings.round_duration,
            'mode': session.settings.mode.value,
            'rolling': session.rolling,
            'single_player': session.single_player,
            'started_by': session.started_by,
            'state': game.state.value if game else None,
            'scores': await self.ledger.entries(guild_id)
        }

    async def get_profile(self, user_id: int) -> UserProfile:
        return await self.storage.get_user(user_id) or UserProfile(user_id)

    async def handle_guild_removed(self, guild_id: int) -> None:
        """Drop everything stored for a guild the bot was removed from."""
        await self._cancel_game(guild_id)
        await self.storage.delete_guild(guild_id)
        self.logger.info(
            f"Removed all data for guild {guild_id}",
            extra={
                'event_type': 'guild_removed',
                'guild_id': guild_id,
                'timestamp': time.time()
            }
        )

    async def _clear_guild_session(self, guild_id: int) -> None:
        try:
            await self.transport.leave_voice(guild_id)
        except Exception as e:
            self.logger.warning(f"Failed to leave voice in guild {guild_id}: {e}")
        await self.ledger.clear(guild_id)
        await self.storage.delete_session(guild_id)

    async def recover_orphaned_sessions(self) -> int:
        """
        Delete session records that no running match owns.

        Records left behind by a previous process would otherwise keep their
        guild blocked with ``rolling`` set.

        Returns:
            Number of sessions removed
        """
        removed = 0
        for session in await self.storage.list_sessions():
            if session.guild_id in self._active_games:
                continue
            await self.ledger.clear(session.guild_id)
            await self.storage.delete_session(session.guild_id)
            removed += 1

        if removed:
            self.logger.warning(f"Removed {removed} orphaned session(s)")
        return removed

    async def shutdown(self) -> None:
        """Cancel every running match and clear its records."""
        for guild_id in list(self._tasks):
            await self._cancel_game(guild_id)

    async def _cancel_game(self, guild_id: int) -> None:
        """Cancel the match task of a guild and clear its records."""
        task = self._tasks.pop(guild_id, None)
        self._active_games.pop(guild_id, None)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.logger.warning(f"Match task for guild {guild_id} failed while stopping: {e}")
        await self._clear_guild_session(guild_id)
