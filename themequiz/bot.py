import discord
from discord.ext import commands
import logging
import asyncio
from typing import Optional
import os

from .config_manager import ConfigManager
from .embeds import GameEmbedFactory, COLOR_INFO
from .game_controller import GameController
from .i18n import I18n
from .leveling import XP_PER_LEVEL_STEP
from .models import ChatMessage, GameSettings
from .storage import JsonStorage
from .theme_catalog import ThemeCatalog
from .theme_source import ANILIST_URL, CatalogThemeSource
from .transport import DiscordTransport

logger = logging.getLogger(__name__)


class ThemeQuizBot(commands.Bot):
    """Discord bot running anime theme guessing matches"""

    def __init__(self, config=None):
        # Voice states to find players, message content to read answers
        intents = discord.Intents.none()
        intents.guilds = True
        intents.voice_states = True
        intents.guild_messages = True
        intents.message_content = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # In-round commands are read by the game itself
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.t = I18n(self.app_config.get('bot', {}).get('language', 'en'))

        self.config_manager: Optional[ConfigManager] = None
        self.catalog: Optional[ThemeCatalog] = None
        self.theme_source: Optional[CatalogThemeSource] = None
        self.transport: Optional[DiscordTransport] = None
        self.game_controller: Optional[GameController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager(self.app_config)

            storage_path = self.app_config.get('storage', {}).get('path', './data/themequiz.json')
            storage = JsonStorage(storage_path)

            self.catalog = ThemeCatalog(self.config_manager.get_theme_directory())
            await self.load_theme_data()

            metadata_config = self.app_config.get('metadata', {})
            self.theme_source = CatalogThemeSource(
                self.catalog,
                anilist_url=metadata_config.get('anilist_url', ANILIST_URL),
                request_timeout=float(metadata_config.get('request_timeout', 10))
            )

            self.transport = DiscordTransport(self)
            self.game_controller = GameController(
                storage,
                self.transport,
                self.theme_source,
                self.config_manager,
                translate=self.t
            )
            await self.game_controller.recover_orphaned_sessions()

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        try:
            @self.tree.command(name="help", description="Display available commands and their descriptions")
            async def help_command(interaction: discord.Interaction):
                await self.handle_help(interaction)

            # Match commands
            @self.tree.command(name="start", description="Start a theme guessing match in your voice channel")
            async def start_command(
                interaction: discord.Interaction,
                rounds: Optional[int] = None,
                seconds: Optional[int] = None,
                mode: Optional[str] = None
            ):
                await self.handle_start(interaction, rounds, seconds, mode)

            @self.tree.command(name="stop", description="Stop the current match")
            async def stop_command(interaction: discord.Interaction):
                await self.handle_stop(interaction)

            @self.tree.command(name="status", description="Show the current match status and scores")
            async def status_command(interaction: discord.Interaction):
                await self.handle_status(interaction)

            # Configuration commands
            @self.tree.command(name="settings", description="Show the default match settings")
            async def settings_command(interaction: discord.Interaction):
                await self.handle_settings(interaction)

            @self.tree.command(name="set_rounds", description="Set the default number of rounds (1-30)")
            async def set_rounds_command(interaction: discord.Interaction, number: int):
                await self.handle_config_update(interaction, "set_rounds", number)

            @self.tree.command(name="set_timer", description="Set the default round duration (10-120 seconds)")
            async def set_timer_command(interaction: discord.Interaction, seconds: int):
                await self.handle_config_update(interaction, "set_timer", seconds)

            @self.tree.command(name="set_mode", description="Set the default mode (easy, normal, hard)")
            async def set_mode_command(interaction: discord.Interaction, mode: str):
                await self.handle_config_update(interaction, "set_mode", mode)

            @self.tree.command(name="set_prefix", description="Set the prefix of in-round commands for this server")
            async def set_prefix_command(interaction: discord.Interaction, prefix: str):
                await self.handle_set_prefix(interaction, prefix)

            @self.tree.command(name="profile", description="Show your level and experience")
            async def profile_command(interaction: discord.Interaction, member: Optional[discord.Member] = None):
                await self.handle_profile(interaction, member)

            logger.info("Slash commands registered successfully")

        except Exception as e:
            logger.error(f"Error setting up commands: {e}")
            raise

    async def load_theme_data(self):
        """Load theme files from the themes directory"""
        try:
            loaded = self.catalog.load_theme_files()
            logger.info(f"Loaded {self.catalog.get_theme_count()} themes from {len(loaded)} files")
            for error in self.catalog.get_load_errors():
                logger.warning(f"Theme loading issue: {error}")

        except Exception as e:
            logger.error(f"Error loading theme data: {e}")
            # Don't raise - commands report the empty catalog

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        try:
            logger.info(f"Bot is ready! Logged in as {self.user}")
            logger.info(f"Bot is in {len(self.guilds)} guilds")

            print(f"🤖 {self.user} is Ready and Online!")
            print(f"📊 Connected to {len(self.guilds)} server(s)")

            try:
                synced = await self.tree.sync()
                logger.info(f"Synced {len(synced)} slash commands")
                print(f"⚡ Synced {len(synced)} slash commands")
            except Exception as e:
                logger.error(f"Failed to sync slash commands: {e}")
                print(f"❌ Failed to sync slash commands: {e}")

        except Exception as e:
            logger.error(f"Error in on_ready event: {e}")

    async def on_message(self, message: discord.Message):
        """Feed guild messages to the running rounds"""
        if message.guild is None or self.transport is None:
            return

        self.transport.dispatch(ChatMessage(
            guild_id=message.guild.id,
            channel_id=message.channel.id,
            author_id=message.author.id,
            content=message.content,
            author_is_bot=message.author.bot
        ))

    async def on_guild_remove(self, guild: discord.Guild):
        """Drop the data of a server the bot was removed from"""
        try:
            await self.game_controller.handle_guild_removed(guild.id)
        except Exception as e:
            logger.error(f"Error cleaning up guild {guild.id}: {e}", exc_info=True)

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    async def close(self):
        if self.game_controller is not None:
            await self.game_controller.shutdown()
        if self.theme_source is not None:
            await self.theme_source.close()
        await super().close()

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send error response to user with fallback handling"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=0xff0000
            )
            embed.set_footer(text="If this error persists, try using /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)

        except discord.HTTPException as e:
            logger.error(f"Failed to send error embed: {e}")
            try:
                simple_message = f"{title}: {message}"
                if interaction.response.is_done():
                    await interaction.followup.send(simple_message, ephemeral=True)
                else:
                    await interaction.response.send_message(simple_message, ephemeral=True)
            except discord.HTTPException:
                logger.error("Failed to send fallback error message")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_INFO
            )

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed)
            else:
                await interaction.response.send_message(embed=embed)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")

    async def handle_discord_api_error(self, error: Exception, operation: str, interaction: discord.Interaction = None) -> bool:
        """
        Handle Discord API errors with appropriate retry logic and user feedback.

        Args:
            error: The Discord API error
            operation: Description of the operation that failed
            interaction: Discord interaction object (optional)

        Returns:
            True if error was handled and operation should be retried, False otherwise
        """
        if isinstance(error, discord.HTTPException):
            if error.status == 429:  # Rate limited
                retry_after = getattr(error, 'retry_after', 5)
                logger.warning(f"Rate limited during {operation}, waiting {retry_after}s")
                await asyncio.sleep(retry_after)
                return True

            elif error.status in [500, 502, 503, 504]:
                logger.warning(f"Discord server error during {operation}: {error.status}")
                await asyncio.sleep(2)
                return True

            elif error.status == 403:
                logger.error(f"Permission denied during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Bot doesn't have permission to perform this action. Please check bot permissions.",
                        "❌ Permission Error"
                    )
                return False

            else:
                logger.error(f"Discord API error during {operation}: {error}")
                if interaction:
                    await self.send_error_response(
                        interaction,
                        "Discord API error occurred. Please try again in a moment.",
                        "❌ Discord Error"
                    )
                return False

        elif isinstance(error, asyncio.TimeoutError):
            logger.warning(f"Timeout during {operation}")
            if interaction:
                await self.send_error_response(interaction, "Operation timed out. Please try again.", "❌ Timeout Error")
            return False

        logger.error(f"Unexpected error during {operation}: {error}")
        if interaction:
            await self.send_error_response(interaction, "An unexpected error occurred. Please try again.", "❌ Unexpected Error")
        return False

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            prefix = '!'
            if interaction.guild_id:
                prefix = await self.game_controller.get_prefix(interaction.guild_id)

            help_embed = discord.Embed(
                title="🎵 Theme Quiz Commands",
                description="Join a voice channel, start a match and type the anime name in this channel",
                color=0x00ff00
            )

            help_embed.add_field(
                name="🎮 Match Commands",
                value=(
                    "`/start [rounds] [seconds] [mode]` - Start a match in your voice channel\n"
                    "`/stop` - Stop the current match\n"
                    "`/status` - Show the current round and scores\n"
                    "`/profile [member]` - Show level and experience"
                ),
                inline=False
            )

            help_embed.add_field(
                name="📋 Settings Commands",
                value=(
                    "`/settings` - Show the default match settings\n"
                    "`/set_rounds <number>` - Default number of rounds (1-30)\n"
                    "`/set_timer <seconds>` - Default round duration (10-120 seconds)\n"
                    "`/set_mode <mode>` - Default mode: easy, normal or hard\n"
                    "`/set_prefix <prefix>` - Prefix of in-round commands"
                ),
                inline=False
            )

            help_embed.add_field(
                name="💬 During a Round",
                value=f"`{prefix}hint` - Get a hint\n`{prefix}stop` - Stop the match",
                inline=False
            )

            help_embed.add_field(
                name="📚 Themes",
                value=f"{self.catalog.get_theme_count()} themes loaded",
                inline=False
            )

            await interaction.response.send_message(embed=help_embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_start(
        self,
        interaction: discord.Interaction,
        rounds: Optional[int],
        seconds: Optional[int],
        mode: Optional[str]
    ):
        """Handle /start command"""
        try:
            if interaction.guild_id is None:
                await self.send_error_response(interaction, "Matches can only be played in a server.")
                return

            if self.catalog.get_theme_count() == 0:
                await self.send_error_response(
                    interaction,
                    "No themes are loaded. Add JSON theme files to the themes directory.",
                    "❌ No Themes"
                )
                return

            result = await self.game_controller.start_game(
                interaction.guild_id,
                interaction.channel_id,
                interaction.user.id,
                rounds=rounds,
                duration=seconds,
                mode=mode
            )

            if result['success']:
                await self.send_info_response(interaction, result['message'], "🎵 Match Starting")
            else:
                await self.send_error_response(interaction, result['message'], "❌ Cannot Start Match")

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "start", interaction)

        except Exception as e:
            logger.error(f"Error in start command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start the match", "❌ Start Error")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        try:
            if interaction.guild_id is None:
                await self.send_error_response(interaction, "Matches can only be played in a server.")
                return

            result = await self.game_controller.stop_game(interaction.guild_id)
            if result['success']:
                await self.send_info_response(interaction, result['message'], "⏹️ Stopping")
            else:
                await self.send_error_response(interaction, result['message'], "❌ Nothing to Stop")

        except discord.HTTPException as e:
            await self.handle_discord_api_error(e, "stop", interaction)

        except Exception as e:
            logger.error(f"Error in stop command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to stop the match", "❌ Stop Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            status = None
            if interaction.guild_id is not None:
                status = await self.game_controller.get_status(interaction.guild_id)

            if status is None:
                embed = discord.Embed(
                    title="ℹ️ No Active Match",
                    description=self.t("game.not_running"),
                    color=COLOR_INFO
                )
                embed.add_field(
                    name="🎯 Start a Match",
                    value="Join a voice channel and use `/start`",
                    inline=False
                )
                await interaction.response.send_message(embed=embed, ephemeral=True)
                return

            settings = GameSettings(
                rounds=status['total_rounds'],
                round_duration=status['round_duration'],
                mode=self.config_manager.parse_mode(status['mode'])
            )
            embeds = GameEmbedFactory(settings, status['single_player'], self.t)
            embed = embeds.status(status['current_round'], status['rolling'], status['scores'])
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get match status", "❌ Status Error")

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        try:
            embed = discord.Embed(
                title="⚙️ Match Settings",
                description=f"```\n{self.config_manager.get_settings_summary()}\n```",
                color=COLOR_INFO
            )
            if interaction.guild_id:
                prefix = await self.game_controller.get_prefix(interaction.guild_id)
                embed.add_field(name="Server prefix", value=f"`{prefix}`", inline=True)

            validation = self.config_manager.validate_settings()
            if not validation['valid']:
                embed.add_field(
                    name="⚠️ Configuration Issues",
                    value="\n".join(validation['issues']),
                    inline=False
                )

            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error in settings command: {e}")
            await self.send_error_response(interaction, "Failed to show settings", "❌ Settings Error")

    async def handle_config_update(self, interaction: discord.Interaction, operation: str, value):
        """Handle /set_rounds, /set_timer and /set_mode"""
        setters = {
            'set_rounds': self.config_manager.set_rounds,
            'set_timer': self.config_manager.set_round_duration,
            'set_mode': self.config_manager.set_mode,
        }

        max_retries = 3
        for attempt in range(max_retries):
            try:
                result = setters[operation](value)

                if result['success']:
                    embed = discord.Embed(
                        title="✅ Settings Updated",
                        description=result['user_message'],
                        color=0x00ff00
                    )
                    embed.add_field(
                        name="⚙️ Current Settings",
                        value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                        inline=False
                    )
                    await interaction.response.send_message(embed=embed)
                else:
                    await interaction.response.send_message(
                        result.get('user_message', f"❌ Failed to update settings: {result.get('error', 'Unknown error')}"),
                        ephemeral=True
                    )

                return

            except discord.HTTPException as e:
                if await self.handle_discord_api_error(e, operation, interaction):
                    if attempt < max_retries - 1:
                        continue
                return

            except Exception as e:
                logger.error(f"Error in {operation} command (attempt {attempt + 1}): {e}")
                if attempt == max_retries - 1:
                    await self.send_error_response(interaction, "Failed to update settings", "❌ Configuration Error")
                else:
                    await asyncio.sleep(1)

    async def handle_set_prefix(self, interaction: discord.Interaction, prefix: str):
        """Handle /set_prefix command"""
        try:
            if interaction.guild_id is None:
                await self.send_error_response(interaction, "Prefixes can only be set in a server.")
                return

            result = await self.game_controller.set_prefix(interaction.guild_id, prefix)
            if result['success']:
                await self.send_info_response(interaction, result['user_message'], "✅ Prefix Updated")
            else:
                await self.send_error_response(interaction, result['user_message'], "❌ Invalid Prefix")

        except Exception as e:
            logger.error(f"Error in set_prefix command: {e}")
            await self.send_error_response(interaction, "Failed to set the prefix", "❌ Prefix Error")

    async def handle_profile(self, interaction: discord.Interaction, member: Optional[discord.Member]):
        """Handle /profile command"""
        try:
            user = member or interaction.user
            profile = await self.game_controller.get_profile(user.id)
            next_level_xp = XP_PER_LEVEL_STEP * profile.level ** 2

            embed = discord.Embed(
                title=f"🏅 {user.display_name}",
                color=COLOR_INFO
            )
            embed.add_field(name="Level", value=str(profile.level), inline=True)
            embed.add_field(name="XP", value=f"{profile.xp}/{next_level_xp}", inline=True)
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in profile command: {e}")
            await self.send_error_response(interaction, "Failed to load the profile", "❌ Profile Error")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = ThemeQuizBot(config)

    try:
        logger.info("Starting Theme Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.PrivilegedIntentsRequired as e:
        logger.error(f"Enable the message content intent in the Discord Developer Portal: {e}")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
