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

"""Playback orchestration: searching, starting, advancing, tearing down.

Callers (the music cog and PlayerControls) hold the guild's session lock
around anything that changes the current track.
"""

import discord
import mafic
from loguru import logger

from core.autoplay import AutoplayAction, resolve_autoplay
from utils.response import escape_markdown, send_notice, truncate_for_display, EMBED_TITLE_MAX
from utils.state import GuildSession

# Track-end reasons that don't mean "this track finished, move on"
IGNORED_END_REASONS = frozenset({mafic.EndReason.REPLACED, mafic.EndReason.CLEANUP})

# Queue-end notice per autoplay outcome
QUEUE_END_NOTICES = {
    AutoplayAction.DISABLED: "queue_end",
    AutoplayAction.NO_RESULT: "autoplay_no_result",
    AutoplayAction.NO_HISTORY: "autoplay_no_history",
    AutoplayAction.PLAY: "autoplay_playing",
}


class Playback:
    """Queue-driven playback on top of a mafic player.

    Args:
        config_manager: ConfigManager (search platform, embed colour, messages)
        publisher: ui.now_playing.NowPlayingPublisher, retired on teardown
    """

    def __init__(self, config_manager, publisher) -> None:
        self.config_manager = config_manager
        self.publisher = publisher

    async def search(self, player: mafic.Player, query: str) -> list[mafic.Track]:
        """Resolve a query or URL into tracks.

        Plain text is searched on the configured platform. Playlists are
        flattened. Raises whatever mafic raises on node errors.
        """
        result = await player.fetch_tracks(query, search_type=self.config_manager.search_type)
        if result is None:
            return []
        if isinstance(result, mafic.Playlist):
            return list(result.tracks)
        return list(result)

    async def load(self, player: mafic.Player, query: str) -> tuple[list[mafic.Track], str | None]:
        """Resolve a user request into tracks to enqueue.

        Search results keep only the best match. Playlists keep every track.

        Returns:
            (tracks, playlist_name). playlist_name is None for single tracks.
        """
        result = await player.fetch_tracks(query, search_type=self.config_manager.search_type)
        if isinstance(result, mafic.Playlist):
            return list(result.tracks), result.name
        if not result:
            return [], None
        return [result[0]], None

    async def start(self, player: mafic.Player, session: GuildSession, tracks: list[mafic.Track]) -> int:
        """Enqueue tracks and start playing if the player is idle.

        Returns:
            Number of tracks added to the queue
        """
        added = session.queue.extend(tracks)
        if added and not player.current:
            await self.play_next(player, session)
        return added

    async def play_next(self, player: mafic.Player, session: GuildSession) -> bool:
        """Advance the queue and play. Returns False when nothing could play.

        A track the node refuses is logged and dropped, then the next one is
        tried.
        """
        queue = session.queue
        while (track := queue.advance()) is not None:
            try:
                await player.play(track)
            except Exception:
                logger.opt(exception=True).error(f"playback failed for {track.title!r}, skipping")
                # Clear current so track loop can't pick the broken track again
                queue.current = None
                continue
            logger.debug(f"playing {track.title!r} in guild {session.guild_id}")
            return True

        logger.debug("queue is empty, nothing to play")
        return False

    async def handle_track_end(
        self,
        player: mafic.Player,
        session: GuildSession,
        reason: mafic.EndReason,
        channel: discord.abc.Messageable | None,
    ) -> None:
        """React to a finished track: play the next one or run queue-end."""
        if reason in IGNORED_END_REASONS:
            return

        # Player may be disconnecting (stop or external disconnect)
        if not player.connected:
            return

        # Something already started playing, nothing to advance
        if player.current:
            return

        if reason is mafic.EndReason.LOAD_FAILED:
            logger.warning(f"track failed to load in guild {session.guild_id}, skipping")
            # Same as a failed play(): track loop must not pick it again
            session.queue.current = None

        if await self.play_next(player, session):
            return

        logger.info(f"queue finished in guild {session.guild_id}")
        await self.handle_queue_end(player, session, channel)

    async def handle_queue_end(
        self,
        player: mafic.Player,
        session: GuildSession,
        channel: discord.abc.Messageable | None,
    ) -> None:
        """Apply the autoplay decision for an exhausted queue.

        Posts exactly one notice. Either one related track is enqueued and
        played, or the player is torn down once.
        """
        async def search(query: str) -> list[mafic.Track]:
            return await self.search(player, query)

        decision = await resolve_autoplay(session.autoplay, session.queue.previous, search)
        color = self.config_manager.embed_color

        if decision.action is AutoplayAction.PLAY:
            session.queue.add(decision.track)
            if await self.play_next(player, session):
                title = escape_markdown(truncate_for_display(decision.track.title, EMBED_TITLE_MAX))
                await send_notice(channel, self.config_manager.msg("autoplay_playing", title=title), color)
                return
            # The related track failed to play, fall through to teardown
            notice = "autoplay_no_result"
        else:
            notice = QUEUE_END_NOTICES[decision.action]

        await send_notice(channel, self.config_manager.msg(notice), color)
        await self.teardown(player, session)

    async def teardown(self, player: mafic.Player | None, session: GuildSession) -> None:
        """Destroy the player and reset the guild's playback state.

        Retires the now-playing controls first so no click lands on a dead
        player. Autoplay survives the reset.
        """
        await self.publisher.retire(session)
        session.reset_playback()

        if player is None:
            return
        try:
            await player.disconnect(force=True)
            logger.info(f"left voice in guild {session.guild_id}")
        except Exception:
            logger.opt(exception=True).warning(f"disconnect failed in guild {session.guild_id}")
