from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from utils.response import ResponseMixin, escape_markdown, send_notice, truncate_for_display


def test_escape_and_truncate():
    assert escape_markdown("a_b*c") == "a\\_b\\*c"
    assert truncate_for_display("short", 10) == "short"
    assert truncate_for_display("x" * 20, 10) == "xxxxxxx..."


async def test_send_notice_posts_embed():
    channel = SimpleNamespace(send=AsyncMock(return_value="msg"))

    assert await send_notice(channel, "bye", 0xFF7A00) == "msg"
    embed = channel.send.await_args.kwargs["embed"]
    assert embed.description == "bye"
    assert embed.color.value == 0xFF7A00


async def test_send_notice_swallows_failures():
    error = discord.HTTPException(MagicMock(status=403, reason="Forbidden"), "missing access")
    channel = SimpleNamespace(send=AsyncMock(side_effect=error))

    assert await send_notice(channel, "bye", 0) is None
    assert await send_notice(None, "bye", 0) is None


class _Cog(ResponseMixin):
    def __init__(self, config_manager):
        self.bot = SimpleNamespace(config_manager=config_manager)


def _interaction(done=False):
    return SimpleNamespace(
        response=SimpleNamespace(
            is_done=MagicMock(return_value=done),
            send_message=AsyncMock(),
            defer=AsyncMock(),
        ),
        followup=SimpleNamespace(send=AsyncMock(return_value=SimpleNamespace(delete=AsyncMock()))),
    )


async def test_respond_sends_ephemeral(config_manager):
    interaction = _interaction()
    await _Cog(config_manager).respond(interaction, "volume_set", level=70)

    args, kwargs = interaction.response.send_message.await_args
    assert "70" in args[0]
    assert kwargs["ephemeral"] is True
    assert kwargs["delete_after"] == 10


async def test_respond_uses_followup_after_defer(config_manager):
    config_manager.settings["ui"]["brief_auto_delete"] = 0
    interaction = _interaction(done=True)

    await _Cog(config_manager).respond(interaction, "paused")

    interaction.followup.send.assert_awaited_once()
    assert interaction.followup.send.await_args.kwargs["ephemeral"] is True


async def test_disabled_message_acknowledges_silently(config_manager):
    config_manager.messages = {"paused": {"text": "p", "enabled": False}}
    interaction = _interaction()

    await _Cog(config_manager).respond(interaction, "paused")

    interaction.response.defer.assert_awaited_once_with(ephemeral=True)
    interaction.response.send_message.assert_not_awaited()
