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

"""Per-guild track queue."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import mafic
from loguru import logger


class LoopMode(str, Enum):
    """Repeat behaviour applied when the current track ends."""

    NONE = "none"
    TRACK = "track"
    QUEUE = "queue"


@dataclass
class TrackQueue:
    """Queue state for one guild.

    mafic has no queue of its own, so upcoming tracks live here. The node only
    ever knows about the track it is playing right now.

    - tracks: upcoming tracks in play order (current track not included)
    - current: track the node is playing (None between tracks)
    - previous: last track that finished, seeds autoplay after queue-end
    - loop: repeat mode, see advance()
    """
    tracks: list[mafic.Track] = field(default_factory=list)
    current: mafic.Track | None = None
    previous: mafic.Track | None = None
    loop: LoopMode = LoopMode.NONE

    def __len__(self) -> int:
        return len(self.tracks)

    def __bool__(self) -> bool:
        # An empty queue with a current track is still "active"
        return bool(self.tracks) or self.current is not None

    @property
    def upcoming(self) -> list[mafic.Track]:
        """Copy of the upcoming tracks (safe to iterate while playing)."""
        return self.tracks.copy()

    def add(self, track: mafic.Track) -> None:
        self.tracks.append(track)

    def extend(self, tracks: Iterable[mafic.Track]) -> int:
        """Append several tracks. Returns how many were added."""
        before = len(self.tracks)
        self.tracks.extend(tracks)
        return len(self.tracks) - before

    def clear(self) -> int:
        """Drop upcoming tracks. Current and previous are left alone.

        Returns:
            Number of tracks removed
        """
        removed = len(self.tracks)
        self.tracks.clear()
        return removed

    def start(self, track: mafic.Track) -> None:
        """Mark a track as current without touching history."""
        self.current = track

    def advance(self) -> mafic.Track | None:
        """Move past the current track and return the next one to play.

        Track loop replays the current track. Queue loop recycles the finished
        track onto the end of the queue. Returns None when nothing is left
        (queue-end); previous still points at the last finished track.
        """
        if self.loop is LoopMode.TRACK and self.current is not None:
            return self.current

        if self.current is not None:
            self.previous = self.current
            if self.loop is LoopMode.QUEUE:
                self.tracks.append(self.current)

        if not self.tracks:
            self.current = None
            return None

        self.current = self.tracks.pop(0)
        return self.current

    def reset(self) -> None:
        """Forget everything, including history and loop mode."""
        if self.tracks or self.current:
            logger.debug(f"queue reset, dropped {len(self.tracks)} upcoming")
        self.tracks.clear()
        self.current = None
        self.previous = None
        self.loop = LoopMode.NONE
