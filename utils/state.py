# Copyright (C) 2026 grodz
#
# This file is part of Encore.
#
# Encore is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Per-guild runtime state."""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from core.queue import TrackQueue

VOLUME_MIN = 10
VOLUME_MAX = 100


@dataclass
class NowPlayingRef:
    """Where the current now-playing message lives."""
    channel_id: int
    message_id: int


@dataclass
class GuildSession:
    """Everything the bot remembers about one guild.

    Nothing here is written to disk. Lifetime:
    - autoplay: created off, flipped by the toggle, survives player teardown
    - queue, volume, now_playing, view: reset whenever the player is destroyed
    - the whole session: dropped on guild leave or process restart

    The view is the live collector for the now-playing message. Exactly one
    may exist per guild; install_view() hands back the one it replaces so the
    caller can retire it. view_generation moves on every time the view is
    taken or reset, so a publish that started earlier can tell it is stale.
    """
    guild_id: int
    default_volume: int = VOLUME_MAX
    autoplay: bool = False
    text_channel_id: int | None = None
    queue: TrackQueue = field(default_factory=TrackQueue)
    volume: int = VOLUME_MAX
    now_playing: NowPlayingRef | None = None
    view: Any = None
    view_generation: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self.volume = self.default_volume

    def toggle_autoplay(self) -> bool:
        """Flip the autoplay flag. Returns the new value."""
        self.autoplay = not self.autoplay
        return self.autoplay

    def install_view(self, view: Any, ref: NowPlayingRef | None) -> Any:
        """Record a new collector and message. Returns the previous view (or None)."""
        old = self.view
        self.view = view
        self.now_playing = ref
        return old

    def take_view(self) -> Any:
        """Detach and return the live collector, clearing the message reference."""
        old = self.view
        self.view = None
        self.now_playing = None
        self.view_generation += 1
        return old

    def reset_playback(self) -> None:
        """Forget queue, volume and now-playing state. Autoplay is kept."""
        self.queue.reset()
        self.volume = self.default_volume
        self.now_playing = None
        self.view = None
        self.view_generation += 1


class SessionStore:
    """Keyed store of GuildSession objects, owned by the bot.

    Usage:
        session = bot.sessions.get(guild_id)    # get or create
        bot.sessions.peek(guild_id)             # None if unknown
        bot.sessions.reset_playback(guild_id)   # bot left voice
        bot.sessions.discard(guild_id)          # guild removed the bot
    """

    def __init__(self, default_volume: int = VOLUME_MAX) -> None:
        self.default_volume = default_volume
        self._sessions: dict[int, GuildSession] = {}

    def __contains__(self, guild_id: int) -> bool:
        return guild_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self):
        return iter(list(self._sessions.values()))

    def get(self, guild_id: int) -> GuildSession:
        if guild_id not in self._sessions:
            self._sessions[guild_id] = GuildSession(
                guild_id=guild_id,
                default_volume=self.default_volume,
            )
        return self._sessions[guild_id]

    def peek(self, guild_id: int) -> GuildSession | None:
        return self._sessions.get(guild_id)

    def reset_playback(self, guild_id: int) -> None:
        if session := self._sessions.get(guild_id):
            session.reset_playback()

    def discard(self, guild_id: int) -> GuildSession | None:
        session = self._sessions.pop(guild_id, None)
        if session:
            logger.debug(f"dropped session for guild {guild_id}")
        return session

    def clear(self) -> None:
        self._sessions.clear()
