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

"""Player controls shared by the now-playing buttons and slash commands.

Every control maps to exactly one player mutation and one confirmation
message key (see DEFAULT_MESSAGES in utils/config.py). dispatch() returns
None for ids it doesn't know, so stray components are ignored.

Button custom ids are namespaced "np:<control>"; slash commands pass the
bare control name.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import mafic
from loguru import logger

from core.queue import LoopMode
from utils.response import escape_markdown, truncate_for_display, QUEUE_TITLE_MAX
from utils.state import GuildSession, VOLUME_MAX, VOLUME_MIN

CUSTOM_ID_PREFIX = "np:"
VOLUME_STEP = 10


class Control(str, Enum):
    LOOP_TOGGLE = "loop_toggle"
    LOOP_DISABLE = "loop_disable"
    SKIP = "skip"
    SHOW_QUEUE = "show_queue"
    CLEAR_QUEUE = "clear_queue"
    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"
    VOLUME_UP = "volume_up"
    VOLUME_DOWN = "volume_down"
    AUTOPLAY = "autoplay"

    @property
    def custom_id(self) -> str:
        return f"{CUSTOM_ID_PREFIX}{self.value}"

    @classmethod
    def parse(cls, raw: str | None) -> "Control | None":
        """Accept "np:skip" or "skip". Unknown ids return None."""
        if not raw:
            return None
        name = raw.removeprefix(CUSTOM_ID_PREFIX)
        try:
            return cls(name)
        except ValueError:
            return None


@dataclass
class ControlResult:
    """Confirmation for a control: a message key plus its format values."""
    key: str
    values: dict[str, Any] = field(default_factory=dict)


def step_volume(current: int, delta: int) -> tuple[int, bool]:
    """Apply a volume step clamped to [VOLUME_MIN, VOLUME_MAX].

    Returns:
        (new_volume, changed). changed is False when the clamp is a no-op,
        i.e. the volume was already sitting on the boundary.
    """
    target = max(VOLUME_MIN, min(VOLUME_MAX, current + delta))
    return target, target != current


def format_queue(session: GuildSession, limit: int) -> str:
    """Render upcoming tracks as a numbered list, at most `limit` lines."""
    upcoming = session.queue.upcoming
    lines = []
    for index, track in enumerate(upcoming[:limit], start=1):
        title = escape_markdown(truncate_for_display(track.title, QUEUE_TITLE_MAX))
        author = escape_markdown(truncate_for_display(track.author or "unknown", QUEUE_TITLE_MAX))
        lines.append(f"`{index}.` **{title}** - {author}")
    if len(upcoming) > limit:
        lines.append(f"...and {len(upcoming) - limit} more")
    return "\n".join(lines)


class PlayerControls:
    """Dispatch control ids to player mutations.

    Args:
        playback: core.playback.Playback, used by stop to tear the player down
        queue_display_size: Max tracks listed by show_queue
    """

    def __init__(self, playback, queue_display_size: int = 10) -> None:
        self.playback = playback
        self.queue_display_size = queue_display_size
        self._handlers = {
            Control.LOOP_TOGGLE: self._loop_toggle,
            Control.LOOP_DISABLE: self._loop_disable,
            Control.SKIP: self._skip,
            Control.SHOW_QUEUE: self._show_queue,
            Control.CLEAR_QUEUE: self._clear_queue,
            Control.STOP: self._stop,
            Control.PAUSE: self._pause,
            Control.RESUME: self._resume,
            Control.VOLUME_UP: self._volume_up,
            Control.VOLUME_DOWN: self._volume_down,
            Control.AUTOPLAY: self._autoplay,
        }

    async def dispatch(
        self,
        raw_id: str | None,
        player: mafic.Player | None,
        session: GuildSession,
    ) -> ControlResult | None:
        """Run the control named by raw_id. Returns None for unknown ids."""
        control = Control.parse(raw_id)
        if control is None:
            logger.debug(f"ignoring unknown control {raw_id!r}")
            return None

        # Autoplay and the queue view work without a connected player
        if player is None and control not in (Control.AUTOPLAY, Control.SHOW_QUEUE):
            return ControlResult("nothing_playing")

        return await self._handlers[control](player, session)

    async def _loop_toggle(self, player, session: GuildSession) -> ControlResult:
        queue = session.queue
        queue.loop = LoopMode.QUEUE if queue.loop is LoopMode.TRACK else LoopMode.TRACK
        return ControlResult("loop_track" if queue.loop is LoopMode.TRACK else "loop_queue")

    async def _loop_disable(self, player, session: GuildSession) -> ControlResult:
        session.queue.loop = LoopMode.NONE
        return ControlResult("loop_disabled")

    async def _skip(self, player, session: GuildSession) -> ControlResult:
        if not player.current:
            return ControlResult("nothing_playing")
        # Ending the track lets on_track_end advance the queue (or autoplay)
        await player.stop()
        return ControlResult("skipped")

    async def _show_queue(self, player, session: GuildSession) -> ControlResult:
        if not session.queue.upcoming:
            return ControlResult("queue_empty")
        return ControlResult("queue_list", {
            "count": len(session.queue),
            "tracks": format_queue(session, self.queue_display_size),
        })

    async def _clear_queue(self, player, session: GuildSession) -> ControlResult:
        removed = session.queue.clear()
        return ControlResult("queue_cleared", {"count": removed})

    async def _stop(self, player, session: GuildSession) -> ControlResult:
        await self.playback.teardown(player, session)
        return ControlResult("stopped")

    async def _pause(self, player, session: GuildSession) -> ControlResult:
        if player.paused:
            return ControlResult("already_paused")
        await player.pause()
        return ControlResult("paused")

    async def _resume(self, player, session: GuildSession) -> ControlResult:
        if not player.paused:
            return ControlResult("not_paused")
        await player.resume()
        return ControlResult("resumed")

    async def _set_volume(self, player, session: GuildSession, delta: int) -> ControlResult:
        volume, changed = step_volume(session.volume, delta)
        if not changed:
            return ControlResult("volume_max" if delta > 0 else "volume_min", {"level": volume})
        await player.set_volume(volume)
        session.volume = volume
        return ControlResult("volume_set", {"level": volume})

    async def _volume_up(self, player, session: GuildSession) -> ControlResult:
        return await self._set_volume(player, session, VOLUME_STEP)

    async def _volume_down(self, player, session: GuildSession) -> ControlResult:
        return await self._set_volume(player, session, -VOLUME_STEP)

    async def _autoplay(self, player, session: GuildSession) -> ControlResult:
        enabled = session.toggle_autoplay()
        logger.info(f"autoplay {'enabled' if enabled else 'disabled'} for guild {session.guild_id}")
        return ControlResult("autoplay_on" if enabled else "autoplay_off")
