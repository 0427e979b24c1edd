"""
Chat and voice transport used by the game engine, backed by discord.py.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

import discord

from .models import ChatMessage, VoiceChannelInfo
from .round_collector import EndReason, MessageHub, MessageSubscription

logger = logging.getLogger(__name__)

FFMPEG_BEFORE_OPTIONS = "-reconnect 1 -reconnect_streamed 1 -reconnect_delay_max 5"
FFMPEG_OPTIONS = "-vn"


class VoiceConnection(ABC):
    """A joined voice channel able to play one stream at a time."""

    @abstractmethod
    def play(self, stream: str) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class ChatTransport(ABC):
    """
    Messaging, subscriptions and voice for the game engine.

    Subscriptions are served from a ``MessageHub`` that the owner feeds with
    every incoming message.
    """

    def __init__(self, hub: Optional[MessageHub] = None):
        self.hub = hub or MessageHub()

    def subscribe(
        self,
        channel_id: int,
        predicate: Callable[[ChatMessage], bool],
        timeout: float
    ) -> MessageSubscription:
        return self.hub.subscribe(channel_id, predicate, timeout)

    def force_end(self, subscription: MessageSubscription) -> bool:
        return subscription.stop(EndReason.FORCED)

    def dispatch(self, message: ChatMessage) -> int:
        return self.hub.dispatch(message)

    @abstractmethod
    async def send_message(self, channel_id: int, content: Optional[str] = None, embed=None): ...

    @abstractmethod
    def member_voice_channel(self, guild_id: int, user_id: int) -> Optional[int]: ...

    @abstractmethod
    def voice_channel_info(self, guild_id: int, channel_id: int) -> Optional[VoiceChannelInfo]: ...

    @abstractmethod
    async def join_voice(self, channel_id: int) -> VoiceConnection: ...

    @abstractmethod
    async def leave_voice(self, guild_id: int) -> None: ...


class DiscordVoiceConnection(VoiceConnection):
    """Plays remote streams through FFmpeg on a discord.py voice client."""

    def __init__(self, voice_client: discord.VoiceClient):
        self.voice_client = voice_client

    def play(self, stream: str) -> None:
        if self.voice_client.is_playing():
            self.voice_client.stop()
        source = discord.FFmpegPCMAudio(stream, before_options=FFMPEG_BEFORE_OPTIONS, options=FFMPEG_OPTIONS)
        self.voice_client.play(source)

    def stop(self) -> None:
        if self.voice_client.is_connected() and self.voice_client.is_playing():
            self.voice_client.stop()


class DiscordTransport(ChatTransport):
    """ChatTransport implementation for a running discord.py client."""

    def __init__(self, client: discord.Client, hub: Optional[MessageHub] = None):
        super().__init__(hub)
        self.client = client

    async def _resolve_channel(self, channel_id: int):
        channel = self.client.get_channel(channel_id)
        if channel is None:
            channel = await self.client.fetch_channel(channel_id)
        return channel

    async def send_message(self, channel_id: int, content: Optional[str] = None, embed=None):
        """
        Send a message, logging instead of raising on Discord API failures.

        Returns:
            The sent discord.Message, or None if sending failed
        """
        try:
            channel = await self._resolve_channel(channel_id)
            return await channel.send(content=content, embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send message to channel {channel_id}: {e}")
            return None

    def member_voice_channel(self, guild_id: int, user_id: int) -> Optional[int]:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            return None
        member = guild.get_member(user_id)
        if member is None or member.voice is None or member.voice.channel is None:
            return None
        return member.voice.channel.id

    def voice_channel_info(self, guild_id: int, channel_id: int) -> Optional[VoiceChannelInfo]:
        guild = self.client.get_guild(guild_id)
        if guild is None:
            return None
        channel = guild.get_channel(channel_id)
        if channel is None:
            return None

        # Stage channels are rejected along with text channels
        is_voice = isinstance(channel, discord.VoiceChannel)
        members = list(getattr(channel, "members", []))
        return VoiceChannelInfo(
            channel_id=channel_id,
            is_voice=is_voice,
            member_ids=[member.id for member in members],
            bot_ids=[member.id for member in members if member.bot]
        )

    async def join_voice(self, channel_id: int) -> VoiceConnection:
        channel = await self._resolve_channel(channel_id)
        voice_client = channel.guild.voice_client

        if voice_client is not None and voice_client.is_connected():
            if voice_client.channel.id != channel_id:
                await voice_client.move_to(channel)
        else:
            voice_client = await channel.connect()

        logger.debug(f"Joined voice channel {channel_id}")
        return DiscordVoiceConnection(voice_client)

    async def leave_voice(self, guild_id: int) -> None:
        guild = self.client.get_guild(guild_id)
        if guild is None or guild.voice_client is None:
            return
        try:
            await guild.voice_client.disconnect(force=True)
            logger.debug(f"Left voice in guild {guild_id}")
        except discord.HTTPException as e:
            logger.warning(f"Failed to leave voice in guild {guild_id}: {e}")
