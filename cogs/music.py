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

"""Music playback commands and Lavalink event handling for Encore."""

import discord
import mafic
from discord import app_commands
from discord.ext import commands
from loguru import logger

from core.controls import Control, PlayerControls
from core.playback import IGNORED_END_REASONS, Playback
from ui.now_playing import NowPlayingPublisher
from utils.response import ResponseMixin, escape_markdown, truncate_for_display, EMBED_TITLE_MAX
from utils.state import GuildSession


class Music(ResponseMixin, commands.Cog):
    """Core music playback functionality.

    Per-guild state lives in bot.sessions. Each session's lock serialises
    track-end handling with skip/stop and every other control.
    """

    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self.publisher = NowPlayingPublisher(bot.config_manager, bot.http_session)
        self.playback = Playback(bot.config_manager, self.publisher)
        self.controls = PlayerControls(
            self.playback,
            queue_display_size=bot.config_manager.get("queue_display_size", 10),
        )

    async def cog_unload(self) -> None:
        """Stop live now-playing views so they don't outlive the cog."""
        for session in self.bot.sessions:
            if session.view is not None:
                session.take_view().stop()

    # --- Helpers ---

    def get_player(self, interaction: discord.Interaction) -> mafic.Player | None:
        """Safely get the Mafic player."""
        vc = interaction.guild.voice_client if interaction.guild else None
        if vc and isinstance(vc, mafic.Player):
            return vc
        return None

    def _text_channel(self, session: GuildSession) -> discord.abc.Messageable | None:
        if session.text_channel_id is None:
            return None
        return self.bot.get_channel(session.text_channel_id)

    async def ensure_voice(self, interaction: discord.Interaction, session: GuildSession) -> mafic.Player | None:
        """Ensure bot is in voice channel with user. Returns player or None."""
        if not interaction.user.voice:
            await self.respond(interaction, "not_in_vc")
            return None

        user_channel = interaction.user.voice.channel

        if interaction.guild.voice_client:
            player = self.get_player(interaction)
            if not player:
                await self.respond(interaction, "voice_error")
                return None

            if player.channel != user_channel:
                await self.respond(interaction, "wrong_vc", channel=player.channel.mention)
                return None

            return player

        permissions = user_channel.permissions_for(interaction.guild.me)
        if not permissions.connect or not permissions.speak:
            await self.respond(interaction, "need_vc_permissions")
            return None

        try:
            player = await user_channel.connect(cls=mafic.Player, self_deaf=True)
            await player.set_volume(session.volume)
            logger.info(f"summoned by {interaction.user.display_name} to #{user_channel.name}")
            return player
        except Exception as e:
            logger.error(f"voice connection failed: {e}")
            await self.respond(interaction, "failed_join_vc")
            return None

    async def handle_control(self, interaction: discord.Interaction, raw_id: str) -> None:
        """Run a control for a button click or slash command and confirm it."""
        session = self.bot.sessions.get(interaction.guild_id)
        player = self.get_player(interaction)

        async with session.lock:
            result = await self.controls.dispatch(raw_id, player, session)

        if result is None:
            # Stray component, acknowledge without a message
            if not interaction.response.is_done():
                await interaction.response.defer(ephemeral=True)
            return

        logger.debug(f"{interaction.user.display_name} used {raw_id} -> {result.key}")
        await self.respond(interaction, result.key, **result.values)

    async def _run_control(self, interaction: discord.Interaction, control: Control) -> None:
        """Slash-command entry to the control dispatcher (same VC required)."""
        player = self.get_player(interaction)
        if player and not await self._check_same_vc(interaction, player):
            return
        await self.handle_control(interaction, control.value)

    # --- Commands ---

    @app_commands.command(name="play", description="play a song or playlist")
    @app_commands.guild_only()
    @app_commands.describe(query="song name or url")
    async def play(self, interaction: discord.Interaction, query: str) -> None:
        """Join the caller's channel, search, enqueue and start if idle."""
        if not self.bot.pool.nodes:
            await self.respond(interaction, "music_unavailable")
            return

        session = self.bot.sessions.get(interaction.guild_id)
        player = await self.ensure_voice(interaction, session)
        if not player:
            return

        await interaction.response.defer(ephemeral=True)
        session.text_channel_id = interaction.channel_id

        try:
            tracks, playlist_name = await self.playback.load(player, query)
        except Exception:
            logger.opt(exception=True).warning(f"search failed for {query!r}")
            tracks, playlist_name = [], None

        if not tracks:
            shown = escape_markdown(truncate_for_display(query, EMBED_TITLE_MAX))
            await self.respond(interaction, "song_not_found", query=shown)
            return

        async with session.lock:
            added = await self.playback.start(player, session, tracks)

        if playlist_name is not None:
            logger.info(f"{interaction.user.display_name} queued {added} tracks from {playlist_name!r}")
            name = escape_markdown(truncate_for_display(playlist_name, EMBED_TITLE_MAX))
            await self.respond(interaction, "playlist_queued", count=added, name=name)
        else:
            track = tracks[0]
            logger.info(f"{interaction.user.display_name} queued {track.title!r}")
            title = escape_markdown(truncate_for_display(track.title, EMBED_TITLE_MAX))
            await self.respond(interaction, "track_queued", title=title)

    @app_commands.command(name="autoplay", description="toggle autoplay when the queue runs out")
    @app_commands.guild_only()
    async def autoplay(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.AUTOPLAY)

    @app_commands.command(name="queue", description="show upcoming tracks")
    @app_commands.guild_only()
    async def queue(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.SHOW_QUEUE)

    @app_commands.command(name="skip", description="skip to the next track")
    @app_commands.guild_only()
    async def skip(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.SKIP)

    @app_commands.command(name="pause", description="pause playback")
    @app_commands.guild_only()
    async def pause(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.PAUSE)

    @app_commands.command(name="resume", description="resume playback")
    @app_commands.guild_only()
    async def resume(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.RESUME)

    @app_commands.command(name="stop", description="stop playback and disconnect")
    @app_commands.guild_only()
    async def stop(self, interaction: discord.Interaction) -> None:
        await self._run_control(interaction, Control.STOP)

    async def cog_app_command_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        command = interaction.command.name if interaction.command else "unknown"
        logger.opt(exception=error).error(f"/{command} failed")
        try:
            await self.respond(interaction, "error_generic")
        except discord.HTTPException:
            pass  # Interaction expired

    # --- Lavalink events ---

    @commands.Cog.listener()
    async def on_node_ready(self, node: mafic.Node) -> None:
        logger.log("NOTICE", f"lavalink node {node.label} ready")

    @commands.Cog.listener()
    async def on_track_start(self, event: mafic.TrackStartEvent) -> None:
        """Publish the now-playing card for the new track."""
        session = self.bot.sessions.get(event.player.guild.id)
        if session.queue.current is None:
            # Started outside the queue (node resumed a track), adopt it
            session.queue.start(event.track)
        channel = self._text_channel(session)
        await self.publisher.publish(channel, session, event.track, self.handle_control)

    @commands.Cog.listener()
    async def on_track_end(self, event: mafic.TrackEndEvent) -> None:
        # event.player is the correct player for this event, don't re-fetch
        player = event.player
        session = self.bot.sessions.get(player.guild.id)

        async with session.lock:
            if event.reason not in IGNORED_END_REASONS:
                await self.publisher.retire(session)
            await self.playback.handle_track_end(player, session, event.reason, self._text_channel(session))

    @commands.Cog.listener()
    async def on_track_exception(self, event: mafic.TrackExceptionEvent) -> None:
        """Log track playback errors. on_track_end moves the queue on."""
        logger.warning(f"track exception for {event.track.title!r}: {event.exception}")

    @commands.Cog.listener()
    async def on_track_stuck(self, event: mafic.TrackStuckEvent) -> None:
        logger.warning(f"track stuck for {event.track.title!r} (threshold: {event.threshold_ms}ms)")

    @commands.Cog.listener()
    async def on_websocket_closed(self, event: mafic.WebSocketClosedEvent) -> None:
        """Diagnostic: log when voice WebSocket closes."""
        logger.debug(
            f"voice websocket closed: code={event.code}, "
            f"reason={event.reason!r}, by_discord={event.by_discord}"
        )

    # --- Discord events ---

    @commands.Cog.listener()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState
    ) -> None:
        """Reset playback when the bot is disconnected from voice by someone else."""
        if member.id != self.bot.user.id:
            return
        if not before.channel or after.channel:
            return

        session = self.bot.sessions.peek(member.guild.id)
        if session is None:
            return

        logger.info(f"disconnected from voice in guild {member.guild.id}")
        await self.publisher.retire(session)
        self.bot.sessions.reset_playback(member.guild.id)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        logger.info(f"removed from guild {guild.id}")
        if session := self.bot.sessions.discard(guild.id):
            if view := session.take_view():
                view.stop()


async def setup(bot: commands.Bot) -> None:
    """Load the Music cog."""
    await bot.add_cog(Music(bot))
