"""
Persistence for sessions, leaderboards, user profiles and guild settings.

Documents are handed out as copies. Saving a copy whose ``revision`` no longer
matches the stored one raises ``StaleDocumentError``, so callers have to fetch
the latest document before every read-modify-write.
"""
import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import PersistenceFailure, StaleDocumentError
from .models import (
    GuildSettings, LeaderboardEntry, Session, UserProfile,
    session_from_dict, session_to_dict,
)


class Storage(ABC):
    """Durable key-value store keyed by guild and user ids."""

    @abstractmethod
    async def get_session(self, guild_id: int) -> Optional[Session]: ...

    @abstractmethod
    async def list_sessions(self) -> List[Session]: ...

    @abstractmethod
    async def session_exists(self, guild_id: int) -> bool: ...

    @abstractmethod
    async def create_session(self, session: Session) -> Session: ...

    @abstractmethod
    async def update_session(self, session: Session) -> Session: ...

    @abstractmethod
    async def delete_session(self, guild_id: int) -> bool: ...

    @abstractmethod
    async def get_entry(self, guild_id: int, user_id: int) -> Optional[LeaderboardEntry]: ...

    @abstractmethod
    async def create_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry: ...

    @abstractmethod
    async def update_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry: ...

    @abstractmethod
    async def find_entries(self, guild_id: int) -> List[LeaderboardEntry]: ...

    @abstractmethod
    async def delete_entries(self, guild_id: int) -> int: ...

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[UserProfile]: ...

    @abstractmethod
    async def save_user(self, profile: UserProfile) -> UserProfile: ...

    @abstractmethod
    async def get_guild(self, guild_id: int) -> Optional[GuildSettings]: ...

    @abstractmethod
    async def save_guild(self, guild: GuildSettings) -> GuildSettings: ...

    @abstractmethod
    async def delete_guild(self, guild_id: int) -> bool: ...


class MemoryStorage(Storage):
    """Storage kept in process memory."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._sessions: Dict[int, Session] = {}
        self._entries: Dict[Tuple[int, int], LeaderboardEntry] = {}
        self._users: Dict[int, UserProfile] = {}
        self._guilds: Dict[int, GuildSettings] = {}
        self._lock = asyncio.Lock()

    async def _commit(self) -> None:
        """Hook called after every write."""
        pass

    # Sessions

    async def get_session(self, guild_id: int) -> Optional[Session]:
        return copy.deepcopy(self._sessions.get(guild_id))

    async def list_sessions(self) -> List[Session]:
        return [copy.deepcopy(session) for session in self._sessions.values()]

    async def session_exists(self, guild_id: int) -> bool:
        return guild_id in self._sessions

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            if session.guild_id in self._sessions:
                raise PersistenceFailure(f"Session for guild {session.guild_id} already exists")
            session.revision = 0
            self._sessions[session.guild_id] = copy.deepcopy(session)
            await self._commit()
        return session

    async def update_session(self, session: Session) -> Session:
        async with self._lock:
            stored = self._sessions.get(session.guild_id)
            if stored is None:
                raise PersistenceFailure(f"Session for guild {session.guild_id} does not exist")
            if stored.revision != session.revision:
                raise StaleDocumentError(
                    f"Session for guild {session.guild_id} was saved from revision "
                    f"{session.revision}, latest is {stored.revision}"
                )
            session.revision += 1
            self._sessions[session.guild_id] = copy.deepcopy(session)
            await self._commit()
        return session

    async def delete_session(self, guild_id: int) -> bool:
        async with self._lock:
            removed = self._sessions.pop(guild_id, None) is not None
            if removed:
                await self._commit()
        return removed

    # Leaderboard

    async def get_entry(self, guild_id: int, user_id: int) -> Optional[LeaderboardEntry]:
        return copy.deepcopy(self._entries.get((guild_id, user_id)))

    async def create_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        async with self._lock:
            key = (entry.guild_id, entry.user_id)
            if key in self._entries:
                raise PersistenceFailure(f"Leaderboard entry {key} already exists")
            entry.revision = 0
            self._entries[key] = copy.deepcopy(entry)
            await self._commit()
        return entry

    async def update_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        async with self._lock:
            key = (entry.guild_id, entry.user_id)
            stored = self._entries.get(key)
            if stored is None:
                raise PersistenceFailure(f"Leaderboard entry {key} does not exist")
            if stored.revision != entry.revision:
                raise StaleDocumentError(f"Leaderboard entry {key} was saved from a stale revision")
            entry.revision += 1
            self._entries[key] = copy.deepcopy(entry)
            await self._commit()
        return entry

    async def find_entries(self, guild_id: int) -> List[LeaderboardEntry]:
        return [copy.deepcopy(entry) for (guild, _), entry in self._entries.items() if guild == guild_id]

    async def delete_entries(self, guild_id: int) -> int:
        async with self._lock:
            keys = [key for key in self._entries if key[0] == guild_id]
            for key in keys:
                del self._entries[key]
            if keys:
                await self._commit()
        return len(keys)

    # Users

    async def get_user(self, user_id: int) -> Optional[UserProfile]:
        return copy.deepcopy(self._users.get(user_id))

    async def save_user(self, profile: UserProfile) -> UserProfile:
        async with self._lock:
            self._users[profile.user_id] = copy.deepcopy(profile)
            await self._commit()
        return profile

    # Guilds

    async def get_guild(self, guild_id: int) -> Optional[GuildSettings]:
        return copy.deepcopy(self._guilds.get(guild_id))

    async def save_guild(self, guild: GuildSettings) -> GuildSettings:
        async with self._lock:
            self._guilds[guild.guild_id] = copy.deepcopy(guild)
            await self._commit()
        return guild

    async def delete_guild(self, guild_id: int) -> bool:
        async with self._lock:
            removed = self._guilds.pop(guild_id, None) is not None
            if removed:
                await self._commit()
        return removed


class JsonStorage(MemoryStorage):
    """
    Storage persisted to a single JSON file.

    The whole state is rewritten after each change through a temporary file,
    so an interrupted write never leaves a truncated database behind.
    """

    def __init__(self, path: str = "./data/themequiz.json"):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            self.logger.info(f"No storage file at {self.path}, starting empty")
            return

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceFailure(f"Invalid JSON in {self.path}: {e}") from e
        except OSError as e:
            raise PersistenceFailure(f"Failed to read {self.path}: {e}") from e

        for item in data.get("sessions", []):
            session = session_from_dict(item)
            self._sessions[session.guild_id] = session

        for item in data.get("leaderboards", []):
            entry = LeaderboardEntry(
                guild_id=int(item["guild_id"]),
                user_id=int(item["user_id"]),
                score=int(item["score"]),
                revision=int(item.get("revision", 0)),
            )
            self._entries[(entry.guild_id, entry.user_id)] = entry

        for item in data.get("users", []):
            profile = UserProfile(int(item["user_id"]), int(item.get("xp", 0)), int(item.get("level", 1)))
            self._users[profile.user_id] = profile

        for item in data.get("guilds", []):
            guild = GuildSettings(int(item["guild_id"]), item.get("prefix", "!"))
            self._guilds[guild.guild_id] = guild

        self.logger.info(
            f"Loaded storage from {self.path}: {len(self._sessions)} sessions, "
            f"{len(self._users)} users, {len(self._guilds)} guilds"
        )

    def _snapshot(self) -> Dict:
        return {
            "sessions": [session_to_dict(session) for session in self._sessions.values()],
            "leaderboards": [
                {
                    "guild_id": entry.guild_id,
                    "user_id": entry.user_id,
                    "score": entry.score,
                    "revision": entry.revision,
                }
                for entry in self._entries.values()
            ],
            "users": [
                {"user_id": profile.user_id, "xp": profile.xp, "level": profile.level}
                for profile in self._users.values()
            ],
            "guilds": [
                {"guild_id": guild.guild_id, "prefix": guild.prefix}
                for guild in self._guilds.values()
            ],
        }

    async def _commit(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(self._snapshot(), f, indent=2)
            temp_path.replace(self.path)
        except OSError as e:
            self.logger.error(f"Failed to write storage file {self.path}: {e}")
            raise PersistenceFailure(f"Failed to write {self.path}: {e}") from e
