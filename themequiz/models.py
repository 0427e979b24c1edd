"""
Core data models for the Theme Quiz Bot.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set


class GameMode(Enum):
    """Difficulty of the themes picked for a match."""
    EASY = "easy"
    NORMAL = "normal"
    HARD = "hard"


@dataclass
class GameSettings:
    """Configuration snapshot for a game session."""
    rounds: int = 10
    round_duration: int = 30
    mode: GameMode = GameMode.NORMAL


@dataclass
class Theme:
    """An anime theme song used for one round."""
    link: str
    name: str
    external_id: Optional[int] = None
    aliases: List[str] = field(default_factory=list)
    kind: str = ""
    difficulty: Optional[str] = None

    @property
    def accepted_answers(self) -> List[str]:
        """Canonical name followed by its aliases, without duplicates."""
        answers = []
        for answer in [self.name] + list(self.aliases):
            if answer and answer not in answers:
                answers.append(answer)
        return answers


@dataclass
class AnimeMetadata:
    """Structured information about the anime a theme belongs to."""
    title_romaji: str
    title_english: Optional[str] = None
    synonyms: List[str] = field(default_factory=list)
    format: Optional[str] = None
    season: Optional[str] = None
    season_year: Optional[int] = None
    episodes: Optional[int] = None
    genres: List[str] = field(default_factory=list)
    studios: List[str] = field(default_factory=list)
    cover_image: Optional[str] = None
    site_url: Optional[str] = None

    @property
    def titles(self) -> List[str]:
        titles = [self.title_romaji]
        if self.title_english:
            titles.append(self.title_english)
        titles.extend(self.synonyms)
        return [title for title in titles if title]


@dataclass
class Session:
    """Persisted state of a multi-round game running in a guild."""
    guild_id: int
    channel_id: int
    voice_channel_id: int
    started_by: int
    settings: GameSettings
    single_player: bool = False
    answers: List[str] = field(default_factory=list)
    current_round: int = 1
    answerers: Set[int] = field(default_factory=set)
    rolling: bool = False
    revision: int = 0


@dataclass
class LeaderboardEntry:
    """Running score of one user within a guild's session."""
    guild_id: int
    user_id: int
    score: int = 1
    revision: int = 0


@dataclass
class UserProfile:
    """Experience and level of a player across matches."""
    user_id: int
    xp: int = 0
    level: int = 1


@dataclass
class GuildSettings:
    """Per-guild preferences."""
    guild_id: int
    prefix: str = "!"


@dataclass
class LevelResult:
    """Outcome of applying a round result to a user profile."""
    user_id: int
    previous_level: int
    level: int
    xp_gained: int
    xp: int

    @property
    def leveled_up(self) -> bool:
        return self.level > self.previous_level


@dataclass
class VoiceChannelInfo:
    """Snapshot of a channel a player is connected to."""
    channel_id: int
    is_voice: bool
    member_ids: List[int] = field(default_factory=list)
    bot_ids: List[int] = field(default_factory=list)

    @property
    def human_members(self) -> List[int]:
        return [member for member in self.member_ids if member not in self.bot_ids]


@dataclass
class ChatMessage:
    """A text message seen by the bot, reduced to what the game needs."""
    guild_id: int
    channel_id: int
    author_id: int
    content: str
    author_is_bot: bool = False


def session_to_dict(session: Session) -> Dict:
    """Serialize a session into JSON-compatible data."""
    return {
        "guild_id": session.guild_id,
        "channel_id": session.channel_id,
        "voice_channel_id": session.voice_channel_id,
        "started_by": session.started_by,
        "settings": {
            "rounds": session.settings.rounds,
            "round_duration": session.settings.round_duration,
            "mode": session.settings.mode.value,
        },
        "single_player": session.single_player,
        "answers": list(session.answers),
        "current_round": session.current_round,
        "answerers": sorted(session.answerers),
        "rolling": session.rolling,
        "revision": session.revision,
    }


def session_from_dict(data: Dict) -> Session:
    """Build a session from data produced by ``session_to_dict``."""
    settings = data.get("settings", {})
    return Session(
        guild_id=int(data["guild_id"]),
        channel_id=int(data["channel_id"]),
        voice_channel_id=int(data["voice_channel_id"]),
        started_by=int(data["started_by"]),
        settings=GameSettings(
            rounds=int(settings.get("rounds", 10)),
            round_duration=int(settings.get("round_duration", 30)),
            mode=GameMode(settings.get("mode", GameMode.NORMAL.value)),
        ),
        single_player=bool(data.get("single_player", False)),
        answers=list(data.get("answers", [])),
        current_round=int(data.get("current_round", 1)),
        answerers=set(int(user_id) for user_id in data.get("answerers", [])),
        rolling=bool(data.get("rolling", False)),
        revision=int(data.get("revision", 0)),
    )
