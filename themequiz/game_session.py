"""
Round state machine of a theme quiz match.

A GameSession plays the rounds of one match in one guild: it picks a theme,
plays it in the requester's voice channel, collects answers and commands
from the text channel, resolves the round and either starts the next one or
finishes the match. The persisted Session record and its leaderboard are
deleted on every way out of the match.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from .embeds import GameEmbedFactory
from .errors import (
    InvalidChannelType, NoVoiceChannel, PerUserSideEffectFailure,
    PreconditionError, StreamUnavailable, ThemeSourceError, ThemeUnavailable,
)
from .hints import HintsHandler
from .i18n import I18n
from .leveling import LevelingService
from .models import AnimeMetadata, ChatMessage, GameSettings, Session, Theme, VoiceChannelInfo
from .round_collector import EndReason, GameCommand, RoundCollector, RoundCollectorResult
from .score_ledger import ScoreLedger
from .storage import Storage
from .theme_selector import ThemeCache, ThemeSelector

logger = logging.getLogger(__name__)

# Playback stops this many seconds before answers close.
PLAYBACK_BUFFER = 2


class SessionState(Enum):
    """Enumeration of the states a game session goes through."""
    IDLE = "idle"
    ROUND_STARTING = "round_starting"
    ROUND_ACTIVE = "round_active"
    ROUND_RESOLVING = "round_resolving"
    FINISHED = "finished"


@dataclass
class GameRequest:
    """Who asked for the match and where."""
    guild_id: int
    channel_id: int
    author_id: int


@dataclass
class RoundOutcome:
    """Result of one resolved round."""
    round_number: int
    end_reason: EndReason
    answerers: List[int] = field(default_factory=list)
    finished: bool = False


class GameSession:
    """Plays every round of one match in one guild."""

    def __init__(
        self,
        request: GameRequest,
        settings: GameSettings,
        storage: Storage,
        transport,
        source,
        leveling: Optional[LevelingService] = None,
        translate: Optional[Callable[..., str]] = None,
        prefix: str = "!",
        theme_cache_ttl: float = 3600,
        max_theme_attempts: int = ThemeSelector.DEFAULT_MAX_ATTEMPTS
    ):
        """
        Initialize the session.

        Args:
            request: Guild, text channel and player that started the match
            settings: Rounds, round duration and mode of the match
            storage: Persistence for the session record and leaderboard
            transport: Chat/voice transport
            source: Theme, stream and metadata provider
            leveling: Experience service, defaults to one on the same storage
            translate: Callable rendering message keys
            prefix: Guild prefix for in-round commands
            theme_cache_ttl: Lifetime of the played-themes cache in seconds
            max_theme_attempts: Candidates tried before giving up on a theme
        """
        self.request = request
        self.settings = settings
        self.storage = storage
        self.transport = transport
        self.source = source
        self.ledger = ScoreLedger(storage)
        self.leveling = leveling or LevelingService(storage)
        self.t = translate or I18n()
        self.prefix = prefix
        self.theme_cache = ThemeCache(ttl=theme_cache_ttl)
        self.selector = ThemeSelector(source, self.theme_cache, request.guild_id, max_theme_attempts)

        self.state = SessionState.IDLE
        self.single_player = False
        self.voice_channel_id: Optional[int] = None
        self.collector: Optional[RoundCollector] = None
        self.hints: Optional[HintsHandler] = None
        self.outcomes: List[RoundOutcome] = []

        self._owns_session = False
        self._stop_requested = False
        self._finishing = False
        self._playback_task: Optional[asyncio.Task] = None

    @property
    def guild_id(self) -> int:
        return self.request.guild_id

    @property
    def channel_id(self) -> int:
        return self.request.channel_id

    def _log_transition(self, state: SessionState, message: str, **fields) -> None:
        self.state = state
        logger.info(
            message,
            extra={
                'event_type': f'session_{state.value}',
                'guild_id': self.guild_id,
                'timestamp': time.time(),
                **fields
            }
        )

    async def _send(self, content: Optional[str] = None, embed=None):
        return await self.transport.send_message(self.channel_id, content=content, embed=embed)

    async def run(self) -> SessionState:
        """
        Play rounds until the match finishes.

        Precondition and availability errors end the match with a message to
        the channel. Any other error is raised after the persisted state has
        been cleared.

        Returns:
            The state the session ended in
        """
        try:
            while True:
                if self._stop_requested and self._owns_session:
                    await self._finish_current(forced=True)
                    break

                outcome = await self.play_round()
                if outcome is None or outcome.finished:
                    break

        except (PreconditionError, ThemeUnavailable, StreamUnavailable) as e:
            logger.warning(f"Round aborted for guild {self.guild_id}: {e}")
            key = e.translation_key
            if isinstance(e, NoVoiceChannel) and self._owns_session:
                key = "errors.no_users_in_voice"
            await self._send(self.t(key))
            if self._owns_session:
                await self.clear_data()
            else:
                self.state = SessionState.IDLE

        except Exception as e:
            logger.error(f"Game session for guild {self.guild_id} failed: {e}", exc_info=True)
            if self._owns_session:
                try:
                    await self.clear_data()
                except Exception as cleanup_error:
                    logger.error(f"Cleanup after failure failed for guild {self.guild_id}: {cleanup_error}")
            raise

        return self.state

    def is_single_player(self, info: Optional[VoiceChannelInfo]) -> bool:
        """
        Decide the mode from the voice channel population.

        Raises:
            InvalidChannelType: If the channel is not a voice channel
        """
        if info is None or not info.is_voice:
            raise InvalidChannelType(f"Channel {info.channel_id if info else None} is not a voice channel")
        return len(info.human_members) == 1

    async def _enter_round(self) -> Optional[Session]:
        """Check the entry guard and get the session record for the next round."""
        voice_channel_id = self.transport.member_voice_channel(self.guild_id, self.request.author_id)
        if voice_channel_id is None:
            raise NoVoiceChannel(f"User {self.request.author_id} is not in a voice channel")

        info = self.transport.voice_channel_info(self.guild_id, voice_channel_id)
        self.single_player = self.is_single_player(info)
        self.voice_channel_id = voice_channel_id

        session = await self.storage.get_session(self.guild_id)
        if session is not None and session.rolling:
            logger.info(f"Round already in progress for guild {self.guild_id}, ignoring start")
            return None

        if not self._owns_session:
            if session is not None:
                logger.warning(f"Discarding leftover session for guild {self.guild_id}")
                await self.ledger.clear(self.guild_id)
                await self.storage.delete_session(self.guild_id)

            session = Session(
                guild_id=self.guild_id,
                channel_id=self.channel_id,
                voice_channel_id=voice_channel_id,
                started_by=self.request.author_id,
                settings=self.settings,
                single_player=self.single_player,
            )
            session = await self.storage.create_session(session)
            self._owns_session = True
            return session

        if session is None:
            logger.info(f"Session for guild {self.guild_id} was removed, ending match")
            await self.clear_data()
            return None

        return session

    async def play_round(self) -> Optional[RoundOutcome]:
        """
        Start a round, collect answers until it ends and resolve it.

        Returns:
            The round outcome, or None if no round was played
        """
        self._log_transition(SessionState.ROUND_STARTING, f"Starting round for guild {self.guild_id}")

        session = await self._enter_round()
        if session is None:
            if not self._owns_session:
                self.state = SessionState.IDLE
            return None

        if self._stop_requested:
            outcome = RoundOutcome(session.current_round, EndReason.FORCED, finished=True)
            await self.finish(session, forced=True)
            self.outcomes.append(outcome)
            return outcome

        embeds = GameEmbedFactory(self.settings, self.single_player, self.t)
        if session.current_round == 1:
            await self._send(embed=embeds.preparing_match())
        else:
            await self._send(embed=embeds.starting_next_round())

        theme = await self.selector.choose_theme(self.settings.mode)

        try:
            stream = await self.source.resolve_stream(theme)
        except ThemeSourceError as e:
            raise StreamUnavailable(f"Unable to load stream for '{theme.name}': {e}") from e

        metadata = await self._lookup_metadata(theme)
        accepted = list(theme.accepted_answers)
        if metadata:
            accepted.extend(title for title in metadata.titles if title not in accepted)
        self.hints = HintsHandler(metadata, self.t)

        # Re-read: the record may have changed while the theme was loading.
        session = await self.storage.get_session(self.guild_id)
        if session is None:
            await self.clear_data()
            return None
        session.answers = accepted
        session.answerers = set()
        session.voice_channel_id = self.voice_channel_id
        session.single_player = self.single_player
        session.rolling = True
        session = await self.storage.update_session(session)
        round_number = session.current_round

        self._log_transition(
            SessionState.ROUND_ACTIVE,
            f"Round {round_number} active for guild {self.guild_id}: '{theme.name}'",
            round=round_number,
            theme_link=theme.link
        )
        await self._send(embed=embeds.round_started(round_number))

        self.collector = RoundCollector(
            self.transport,
            self.channel_id,
            accepted,
            self.prefix,
            self.settings.round_duration
        )
        self._playback_task = asyncio.create_task(self._play_theme(self.voice_channel_id, stream))
        try:
            if self._stop_requested:
                result = RoundCollectorResult(EndReason.FORCED, 0, 0)
            else:
                result = await self.collector.run(self._on_answer, self._on_command)
        finally:
            await self._stop_playback()

        outcome = await self.resolve_round(result, theme, metadata, embeds)
        self.outcomes.append(outcome)
        return outcome

    async def _lookup_metadata(self, theme: Theme) -> Optional[AnimeMetadata]:
        try:
            return await self.source.lookup_metadata(theme.name, theme.external_id)
        except ThemeSourceError as e:
            logger.warning(f"No metadata for '{theme.name}': {e}")
            return None

    async def _on_answer(self, message: ChatMessage) -> None:
        await self.ledger.bump(self.guild_id, message.author_id)

        session = await self.storage.get_session(self.guild_id)
        if session is None:
            return
        if message.author_id not in session.answerers:
            session.answerers.add(message.author_id)
            await self.storage.update_session(session)

        logger.debug(f"User {message.author_id} answered correctly in guild {self.guild_id}")

    async def _on_command(self, command: GameCommand, message: ChatMessage) -> None:
        if command is GameCommand.STOP:
            logger.info(f"Stop requested by user {message.author_id} in guild {self.guild_id}")
            self._stop_requested = True
            if self.collector is not None:
                self.collector.force_stop()
            await self._send(self.t("game.stop_requested"))

        elif command is GameCommand.HINT:
            hint = self.hints.next_hint() if self.hints else None
            if hint is None:
                await self._send(self.t("game.no_hints"))
            else:
                await self._send(self.t("game.hint", hint=hint))

    def stop(self) -> bool:
        """
        Ask the match to end through the forced-stop path.

        Returns:
            True if a running round was cut short by this call
        """
        self._stop_requested = True
        if self.collector is not None and self.collector.is_open:
            return self.collector.force_stop()
        return False

    async def resolve_round(
        self,
        result: RoundCollectorResult,
        theme: Theme,
        metadata: Optional[AnimeMetadata],
        embeds: GameEmbedFactory
    ) -> RoundOutcome:
        """Reveal, score and decide between the next round and the end of the match."""
        self._log_transition(
            SessionState.ROUND_RESOLVING,
            f"Resolving round for guild {self.guild_id}: {result.end_reason.value}",
            end_reason=result.end_reason.value
        )

        session = await self.storage.get_session(self.guild_id)
        if session is None:
            await self.clear_data()
            return RoundOutcome(0, result.end_reason, finished=True)

        session.rolling = False
        session = await self.storage.update_session(session)
        answerers = sorted(session.answerers)
        outcome = RoundOutcome(session.current_round, result.end_reason, answerers)

        # A stop arriving after the deadline still gets the reveal
        if result.forced:
            await self.finish(session, forced=True)
            outcome.finished = True
            return outcome

        mentions = ", ".join(f"<@{user_id}>" for user_id in answerers) or self.t("utils.nobody")
        await self._send(self.t("game.answer_is"))
        await self._send(embed=embeds.answer_embed(theme, metadata))
        await self._send(self.t("game.winners", users=mentions))

        await self._reward_answerers(answerers)

        if self._stop_requested or session.current_round >= session.settings.rounds:
            await self.finish(session, forced=self._stop_requested)
            outcome.finished = True
            return outcome

        session = await self.storage.get_session(self.guild_id)
        if session is None:
            await self.clear_data()
            outcome.finished = True
            return outcome

        session.current_round += 1
        session.answerers = set()
        session.answers = []
        await self.storage.update_session(session)
        return outcome

    async def _reward_answerers(self, answerers: List[int]) -> None:
        """Score and level every answerer, one failure never blocking the others."""
        for user_id in answerers:
            try:
                await self.ledger.bump(self.guild_id, user_id)
            except Exception as e:
                failure = PerUserSideEffectFailure(user_id, "score", e)
                logger.error(str(failure), exc_info=True)

            try:
                result = await self.leveling.apply_round_result(user_id, self.settings.mode)
            except Exception as e:
                failure = PerUserSideEffectFailure(user_id, "leveling", e)
                logger.error(str(failure), exc_info=True)
                continue

            if result.leveled_up:
                await self._send(self.t("game.level_up", user=user_id, level=result.level))

    async def _finish_current(self, forced: bool) -> None:
        session = await self.storage.get_session(self.guild_id)
        if session is None:
            await self.clear_data()
            return
        await self.finish(session, forced=forced)

    async def finish(self, session: Session, forced: bool) -> bool:
        """
        Announce the match winner and clear the match. Runs once per session.

        Returns:
            True if this call finished the match
        """
        if self._finishing:
            return False
        self._finishing = True

        winner = await self.ledger.winner(self.guild_id, session.single_player, session.settings.rounds)
        if winner is not None:
            xp = 0
            try:
                result = await self.leveling.apply_round_result(winner.user_id, self.settings.mode, match_win=True)
                xp = result.xp_gained
            except Exception as e:
                logger.error(str(PerUserSideEffectFailure(winner.user_id, "match reward", e)), exc_info=True)
            await self._send(self.t("game.match_winner", user=winner.user_id, xp=xp))
        else:
            await self._send(self.t("game.no_winner"))

        await self.clear_data()
        await self._send(self.t("game.match_stopped" if forced else "game.round_ended"))

        self._log_transition(
            SessionState.FINISHED,
            f"Match finished for guild {self.guild_id}",
            forced=forced,
            winner=winner.user_id if winner else None
        )
        return True

    async def clear_data(self) -> None:
        """Leave voice and delete the session and its leaderboard. Safe to call repeatedly."""
        await self._stop_playback()
        self.theme_cache.clear()

        try:
            await self.transport.leave_voice(self.guild_id)
        except Exception as e:
            logger.warning(f"Failed to leave voice in guild {self.guild_id}: {e}")

        # Leaderboard first so a failure never leaves entries without a session
        await self.ledger.clear(self.guild_id)
        await self.storage.delete_session(self.guild_id)
        self.state = SessionState.FINISHED

    async def _play_theme(self, voice_channel_id: int, stream: str) -> None:
        try:
            connection = await self.transport.join_voice(voice_channel_id)
        except Exception as e:
            logger.error(f"Failed to connect to voice channel {voice_channel_id}: {e}")
            await self._send(self.t("game.voice_failed"))
            return

        connection.play(stream)
        try:
            await asyncio.sleep(max(0, self.settings.round_duration - PLAYBACK_BUFFER))
        finally:
            connection.stop()

    async def _stop_playback(self) -> None:
        task = self._playback_task
        self._playback_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
