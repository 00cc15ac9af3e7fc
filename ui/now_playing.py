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

"""Now-playing message with its control buttons.

NowPlayingView:
    The collector. Eleven buttons on one message, live for controls_timeout
    seconds. Clicks are forwarded to an on_control coroutine with the raw
    custom id; the cog dispatches them through PlayerControls.

NowPlayingPublisher:
    Sends the card + buttons on track start and retires the previous
    message's buttons. A guild never has more than one live view.

Lifecycle:
    publish() -> view live -> (timeout | next publish | teardown) -> retire()
    retire() stops the view and edits the message with disabled buttons.
"""

import io
from typing import Awaitable, Callable

import discord
import mafic
from loguru import logger

from core.controls import Control
from ui.card import build_card
from utils.response import escape_markdown, truncate_for_display, EMBED_TITLE_MAX
from utils.state import GuildSession, NowPlayingRef

ControlCallback = Callable[[discord.Interaction, str], Awaitable[None]]

CARD_FILENAME = "musicard.png"

# (control, emoji, label, row). Two rows of five, autoplay on its own row.
BUTTON_LAYOUT = [
    (Control.LOOP_TOGGLE, "🔁", "Loop", 0),
    (Control.LOOP_DISABLE, "❌", "Disable", 0),
    (Control.SKIP, "⏭️", "Skip", 0),
    (Control.SHOW_QUEUE, "📜", "Queue", 0),
    (Control.CLEAR_QUEUE, "🗑️", "Clear", 0),
    (Control.STOP, "⏹️", "Stop", 1),
    (Control.PAUSE, "⏸️", "Pause", 1),
    (Control.RESUME, "▶️", "Resume", 1),
    (Control.VOLUME_UP, "🔊", "Vol +", 1),
    (Control.VOLUME_DOWN, "🔉", "Vol -", 1),
    (Control.AUTOPLAY, "🎲", "Autoplay", 2),
]


class NowPlayingView(discord.ui.View):
    """Time-bounded control buttons for one now-playing message.

    Only members sharing the bot's voice channel may click. Others get an
    ephemeral not_in_vc / wrong_vc reply.

    Args:
        guild_id: Guild this view belongs to
        on_control: Coroutine(interaction, custom_id) run for each click
        config_manager: For denial messages and auto-delete timing
        timeout: Seconds until buttons are disabled
    """

    def __init__(
        self,
        guild_id: int,
        on_control: ControlCallback,
        config_manager,
        timeout: float = 600,
    ) -> None:
        super().__init__(timeout=timeout)
        self.guild_id = guild_id
        self.on_control = on_control
        self.config_manager = config_manager
        self.message: discord.Message | None = None
        self.retired = False

        for control, emoji, label, row in BUTTON_LAYOUT:
            style = discord.ButtonStyle.danger if control is Control.STOP else discord.ButtonStyle.secondary
            button = discord.ui.Button(
                emoji=emoji,
                label=label,
                style=style,
                custom_id=control.custom_id,
                row=row,
            )
            button.callback = self._on_click
            self.add_item(button)

    async def _on_click(self, interaction: discord.Interaction) -> None:
        custom_id = (interaction.data or {}).get("custom_id", "")
        await self.on_control(interaction, custom_id)

    def _user_in_bot_vc(self, interaction: discord.Interaction) -> bool:
        """Check if user is in same VC as bot. True if bot not in VC."""
        if not interaction.guild:
            return False
        vc = interaction.guild.voice_client
        if not vc:
            return True  # Dispatcher answers nothing_playing
        if not interaction.user.voice:
            return False
        return interaction.user.voice.channel == vc.channel

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if self._user_in_bot_vc(interaction):
            return True

        if not interaction.user.voice:
            key, values = "not_in_vc", {}
        else:
            key, values = "wrong_vc", {"channel": interaction.guild.voice_client.channel.mention}

        if self.config_manager.is_enabled(key):
            timeout = self.config_manager.get("ui", {}).get("brief_auto_delete", 10)
            await interaction.response.send_message(
                self.config_manager.msg(key, **values),
                ephemeral=True,
                delete_after=timeout if timeout > 0 else None,
            )
        else:
            await interaction.response.defer(ephemeral=True)
        return False

    async def disable(self) -> None:
        """Grey out every button on the message. Edit failures are logged."""
        for item in self.children:
            item.disabled = True
        if self.message is None:
            return
        try:
            await self.message.edit(view=self)
        except discord.HTTPException as e:
            logger.warning(f"failed to disable now playing controls: {e}")

    async def retire(self) -> None:
        """Stop listening and disable the buttons. Safe to call twice."""
        if self.retired:
            return
        self.retired = True
        self.stop()
        await self.disable()

    async def on_timeout(self) -> None:
        logger.debug(f"now playing controls timed out in guild {self.guild_id}")
        self.retired = True
        await self.disable()


class NowPlayingPublisher:
    """Posts the now-playing card and keeps one live view per guild.

    Args:
        config_manager: ConfigManager (card theme, embed, messages, timeout)
        http: aiohttp session used to download cover art
    """

    def __init__(self, config_manager, http) -> None:
        self.config_manager = config_manager
        self.http = http

    def _build_embed(self, track: mafic.Track, fallback: bool) -> discord.Embed:
        cfg = self.config_manager
        embed_config = cfg.get("embed", {})
        description = cfg.msg("controls_help")
        if fallback:
            title = escape_markdown(truncate_for_display(track.title, EMBED_TITLE_MAX))
            author = escape_markdown(truncate_for_display(track.author or "unknown", EMBED_TITLE_MAX))
            description = f"{cfg.msg('now_playing_fallback', title=title, author=author)}\n\n{description}"

        embed = discord.Embed(color=cfg.embed_color, description=description)
        embed.set_author(name=cfg.msg("now_playing_header"), icon_url=embed_config.get("icon_url"))
        if not fallback:
            embed.set_image(url=f"attachment://{CARD_FILENAME}")
        return embed

    async def _render(self, track: mafic.Track) -> discord.File | None:
        """Music card as an attachment, or None when disabled or failed."""
        card_config = self.config_manager.get("card", {})
        if not card_config.get("enabled", True):
            return None
        try:
            data = await build_card(
                self.http,
                track,
                self.config_manager.card_theme(),
                card_config.get("fallback_thumbnail"),
            )
        except Exception:
            logger.opt(exception=True).warning(f"music card failed for {track.title!r}")
            return None
        return discord.File(io.BytesIO(data), filename=CARD_FILENAME)

    async def publish(
        self,
        channel: discord.abc.Messageable | None,
        session: GuildSession,
        track: mafic.Track,
        on_control: ControlCallback,
    ) -> discord.Message | None:
        """Replace the guild's now-playing message with one for track.

        The previous view is retired before anything else so its buttons
        can't act on the new track. If the view is taken again while the
        card renders (a newer publish, track end or teardown), this publish
        is stale and its own view is retired instead of installed.
        """
        await self.retire(session)
        generation = session.view_generation
        if channel is None:
            logger.debug(f"no text channel for now playing in guild {session.guild_id}")
            return None

        card = await self._render(track)
        if session.view_generation != generation:
            logger.debug(f"dropping stale now playing for {track.title!r} in guild {session.guild_id}")
            return None

        embed = self._build_embed(track, fallback=card is None)
        view = NowPlayingView(
            session.guild_id,
            on_control,
            self.config_manager,
            timeout=self.config_manager.get("controls_timeout", 600),
        )

        try:
            if card is not None:
                message = await channel.send(embed=embed, file=card, view=view)
            else:
                message = await channel.send(embed=embed, view=view)
        except discord.HTTPException as e:
            logger.warning(f"failed to send now playing message: {e}")
            view.stop()
            return None

        view.message = message
        if session.view_generation != generation:
            # Superseded during send, the message stays but its buttons go dead
            await view.retire()
            return None

        session.install_view(view, NowPlayingRef(message.channel.id, message.id))
        return message

    async def retire(self, session: GuildSession) -> None:
        """Retire the guild's live view, if any."""
        if view := session.take_view():
            await view.retire()
