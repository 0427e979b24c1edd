"""
Embeds posted in the text channel during a match.
"""
from typing import Callable, Optional

import discord

from .models import AnimeMetadata, GameSettings, Theme

COLOR_INFO = 0x6699ff
COLOR_ROUND = 0xffaa00
COLOR_ANSWER = 0x00ff00


class GameEmbedFactory:
    """Builds the embeds of one game session."""

    def __init__(self, settings: GameSettings, single_player: bool, translate: Callable[..., str]):
        self.settings = settings
        self.single_player = single_player
        self.t = translate

    def _footer(self) -> str:
        players = "Single player" if self.single_player else "Multiplayer"
        return f"{players} • {self.settings.rounds} rounds • {self.settings.mode.value} mode"

    def preparing_match(self) -> discord.Embed:
        embed = discord.Embed(description=self.t("game.preparing_match"), color=COLOR_INFO)
        embed.set_footer(text=self._footer())
        return embed

    def starting_next_round(self) -> discord.Embed:
        return discord.Embed(description=self.t("game.next_round"), color=COLOR_INFO)

    def round_started(self, current_round: int) -> discord.Embed:
        embed = discord.Embed(
            description=self.t(
                "game.round_started",
                round=current_round,
                rounds=self.settings.rounds,
                seconds=self.settings.round_duration
            ),
            color=COLOR_ROUND
        )
        embed.set_footer(text=self._footer())
        return embed

    def answer_embed(self, theme: Theme, metadata: Optional[AnimeMetadata]) -> discord.Embed:
        """Reveal of the round's theme, enriched with metadata when available."""
        title = metadata.title_romaji if metadata and metadata.title_romaji else theme.name
        embed = discord.Embed(
            title=title,
            url=metadata.site_url if metadata else None,
            description=theme.kind or None,
            color=COLOR_ANSWER
        )

        if metadata:
            if metadata.title_english and metadata.title_english != title:
                embed.add_field(name="English", value=metadata.title_english, inline=True)
            if metadata.season and metadata.season_year:
                embed.add_field(
                    name="Season",
                    value=f"{metadata.season.title()} {metadata.season_year}",
                    inline=True
                )
            if metadata.studios:
                embed.add_field(name="Studio", value=", ".join(metadata.studios), inline=True)
            if metadata.cover_image:
                embed.set_thumbnail(url=metadata.cover_image)

        embed.add_field(name="Theme", value=theme.link, inline=False)
        return embed

    def status(self, current_round: int, rolling: bool, scores) -> discord.Embed:
        embed = discord.Embed(
            title="🎮 Match Status",
            description=f"Round **{current_round}/{self.settings.rounds}** • "
                        f"{'playing' if rolling else 'between rounds'}",
            color=COLOR_INFO
        )
        if scores:
            lines = [f"<@{entry.user_id}>: {entry.score}" for entry in sorted(scores, key=lambda e: -e.score)]
            embed.add_field(name="📊 Scores", value="\n".join(lines[:10]), inline=False)
        embed.set_footer(text=self._footer())
        return embed
