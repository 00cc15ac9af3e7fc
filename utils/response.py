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

"""Response utilities for Discord interactions and channel notices.

ResponseMixin gives cogs respond() for ephemeral replies. send_notice()
posts the public embed used for queue-end and autoplay announcements.
"""

import asyncio

import discord
from loguru import logger

# Track fire-and-forget cleanup tasks to prevent GC warnings
_cleanup_tasks: set[asyncio.Task] = set()


def escape_markdown(text: str) -> str:
    """Escape underscores and asterisks for Discord message display.

    Track titles routinely carry both (remix names, "feat_" tags). Do NOT
    use for plain-text surfaces like select labels or autocomplete choices.
    """
    return text.replace("_", "\\_").replace("*", "\\*")


# =============================================================================
# DISPLAY TRUNCATION
# =============================================================================
# Always truncate BEFORE escape_markdown (escaping can add characters).

QUEUE_TITLE_MAX = 60       # per-line limit in /queue listings
EMBED_TITLE_MAX = 240      # embed title (limit 256)
EMBED_DESCRIPTION_MAX = 4000  # embed description (limit 4096)


def truncate_for_display(text: str, max_length: int) -> str:
    """Truncate text with ellipsis for Discord display.

    Args:
        text: Text to truncate (must not be None)
        max_length: Maximum length including "..." suffix

    Returns:
        Original text if within limit, else truncated with "..."
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."


def build_notice(text: str, color: int) -> discord.Embed:
    """Single-line embed used for channel notices."""
    return discord.Embed(color=color, description=truncate_for_display(text, EMBED_DESCRIPTION_MAX))


async def send_notice(channel: discord.abc.Messageable | None, text: str, color: int) -> discord.Message | None:
    """Post a notice embed to a text channel.

    Notices are informational. A missing channel or a failed send is logged
    and swallowed so callers can keep tearing down or playing.
    """
    if channel is None:
        logger.debug(f"no channel for notice: {text!r}")
        return None
    try:
        return await channel.send(embed=build_notice(text, color))
    except discord.HTTPException as e:
        logger.warning(f"failed to send notice: {e}")
        return None


class ResponseMixin:
    """Mixin providing standardized interaction responses for cogs.

    Provides respond() which handles:
    - Per-message enable/disable from messages.yaml
    - Auto-deletion after configurable timeout
    - Both response and followup paths

    Requirements:
        self.bot must have a config_manager with:
        - msg(key, **kwargs) -> str
        - is_enabled(key) -> bool
        - get(key, default) -> value
    """

    def msg(self, key: str, **kwargs) -> str:
        """Get formatted message text from config."""
        return self.bot.config_manager.msg(key, **kwargs)

    async def _delete_followup(self, message: discord.Message, delay: float) -> None:
        """Delete a followup message after delay.

        For component interactions, delete_original_response() would delete
        the message holding the buttons, so the followup is deleted directly.
        """
        try:
            await asyncio.sleep(delay)
            await message.delete()
        except asyncio.CancelledError:
            pass  # Shutdown during wait
        except discord.HTTPException:
            pass  # Already gone

    async def respond(self, interaction: discord.Interaction, key: str, **kwargs) -> None:
        """Send ephemeral message if enabled, otherwise acknowledge silently.

        Args:
            interaction: Discord interaction to respond to
            key: Message key from messages.yaml
            **kwargs: Format variables for the message template

        Config:
            messages.yaml - Per-message `enabled` flag
            settings.yaml - `ui.brief_auto_delete` (default 10s, 0 to disable)
        """
        if not self.bot.config_manager.is_enabled(key):
            # Silent acknowledgment, never delete_original_response() here
            if not interaction.response.is_done():
                await interaction.response.defer(ephemeral=True)
            return

        text = self.msg(key, **kwargs)

        ui_config = self.bot.config_manager.get("ui", {})
        timeout = ui_config.get("brief_auto_delete", 10)
        delete_after = timeout if timeout > 0 else None

        if not interaction.response.is_done():
            await interaction.response.send_message(text, ephemeral=True, delete_after=delete_after)
        else:
            message = await interaction.followup.send(text, ephemeral=True, wait=True)
            if delete_after:
                task = asyncio.create_task(self._delete_followup(message, delete_after))
                _cleanup_tasks.add(task)
                task.add_done_callback(_cleanup_tasks.discard)

    async def _check_same_vc(self, interaction: discord.Interaction, player) -> bool:
        """Check user is in same VC as bot. Returns True if allowed, False if denied.

        Sends not_in_vc or wrong_vc via respond() on denial.
        """
        if not interaction.user.voice:
            await self.respond(interaction, "not_in_vc")
            return False
        if interaction.user.voice.channel != player.channel:
            await self.respond(interaction, "wrong_vc", channel=player.channel.mention)
            return False
        return True
