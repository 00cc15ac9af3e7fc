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

"""Autoplay: decide what happens when the queue runs dry.

The resolver is pure decision logic. It never touches the player; callers
(core.playback.Playback) apply the decision:

    DISABLED   - autoplay off: stop, release voice, notify
    PLAY       - related track found: enqueue and play it
    NO_RESULT  - search came back empty or failed: release voice, notify
    NO_HISTORY - autoplay on but nothing has played yet: notify, release voice

Related tracks come from the seed track's platform identifier. YouTube
tracks use the radio mix for that video id, which Lavalink resolves as a
playlist. Everything else falls back to a text search of "author title" on
the configured search platform (mafic adds the platform prefix to anything
that isn't a URL).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Sequence

import mafic
from loguru import logger

YOUTUBE_SOURCES = frozenset({"youtube", "youtubemusic"})
RADIO_MIX_URL = "https://www.youtube.com/watch?v={identifier}&list=RD{identifier}"

SearchFunc = Callable[[str], Awaitable[Sequence[mafic.Track]]]


class AutoplayAction(str, Enum):
    DISABLED = "disabled"
    PLAY = "play"
    NO_RESULT = "no_result"
    NO_HISTORY = "no_history"


@dataclass(frozen=True)
class AutoplayDecision:
    """Outcome of resolve_autoplay().

    Attributes:
        action: What the caller should do next
        track: Track to enqueue (only set for PLAY)
        query: Search query that was tried (None if no search ran)
    """
    action: AutoplayAction
    track: mafic.Track | None = None
    query: str | None = None

    @property
    def releases_voice(self) -> bool:
        """True when the caller must destroy the player."""
        return self.action is not AutoplayAction.PLAY


def is_youtube_track(track: mafic.Track) -> bool:
    source = (getattr(track, "source", "") or "").lower()
    if source in YOUTUBE_SOURCES:
        return True
    uri = getattr(track, "uri", None) or ""
    return "youtube.com/" in uri or "youtu.be/" in uri


def build_autoplay_query(track: mafic.Track) -> str:
    """Derive a related-tracks query from a track's platform identifier.

    Returns a URL Lavalink can load directly, or plain search terms for the
    configured search platform.
    """
    if is_youtube_track(track) and track.identifier:
        return RADIO_MIX_URL.format(identifier=track.identifier)

    author = (track.author or "").strip()
    return f"{author} {track.title}".strip() if author else track.title


def pick_related(seed: mafic.Track, results: Sequence[mafic.Track]) -> mafic.Track | None:
    """Return the first result that isn't the seed track itself.

    Radio mixes list the seed video first; replaying it would loop forever.
    """
    for track in results:
        if track.identifier != seed.identifier:
            return track
    return None


async def resolve_autoplay(
    enabled: bool,
    previous: mafic.Track | None,
    search: SearchFunc,
) -> AutoplayDecision:
    """Decide the next action after queue-end.

    Search failures are logged and treated as "no result", never raised.

    Args:
        enabled: Guild's autoplay flag
        previous: Last finished track (None if nothing has played)
        search: Coroutine taking a query and returning tracks

    Returns:
        AutoplayDecision for the caller to apply
    """
    if not enabled:
        return AutoplayDecision(AutoplayAction.DISABLED)

    if previous is None:
        return AutoplayDecision(AutoplayAction.NO_HISTORY)

    query = build_autoplay_query(previous)
    try:
        results = await search(query)
    except Exception:
        logger.opt(exception=True).warning(f"autoplay search failed for {previous.title!r}")
        return AutoplayDecision(AutoplayAction.NO_RESULT, query=query)

    track = pick_related(previous, results or [])
    if track is None:
        logger.info(f"autoplay found nothing related to {previous.title!r}")
        return AutoplayDecision(AutoplayAction.NO_RESULT, query=query)

    logger.info(f"autoplay picked {track.title!r} after {previous.title!r}")
    return AutoplayDecision(AutoplayAction.PLAY, track=track, query=query)
