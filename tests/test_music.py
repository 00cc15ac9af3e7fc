from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import mafic
import pytest
from conftest import make_player, make_track

from cogs.music import Music
from utils.state import NowPlayingRef, SessionStore


@pytest.fixture
def bot(config_manager):
    return SimpleNamespace(
        config_manager=config_manager,
        http_session=MagicMock(),
        sessions=SessionStore(),
        user=SimpleNamespace(id=999),
        pool=SimpleNamespace(nodes=[]),
        get_channel=MagicMock(return_value=None),
    )


@pytest.fixture
def cog(bot):
    return Music(bot)


def _interaction(guild_id=1):
    return SimpleNamespace(
        guild_id=guild_id,
        guild=SimpleNamespace(voice_client=None),
        user=SimpleNamespace(display_name="tester", voice=None),
        response=SimpleNamespace(
            is_done=MagicMock(return_value=False),
            send_message=AsyncMock(),
            defer=AsyncMock(),
        ),
    )


async def test_autoplay_control_toggles_without_player(cog, bot):
    interaction = _interaction()

    await cog.handle_control(interaction, "np:autoplay")

    assert bot.sessions.get(1).autoplay is True
    assert "enabled" in interaction.response.send_message.await_args.args[0]


async def test_unknown_control_is_acknowledged_silently(cog):
    interaction = _interaction()

    await cog.handle_control(interaction, "np:self_destruct")

    interaction.response.defer.assert_awaited_once()
    interaction.response.send_message.assert_not_awaited()


async def test_play_without_nodes_reports_unavailable(cog):
    interaction = _interaction()

    await Music.play.callback(cog, interaction, "song")

    assert "no audio node" in interaction.response.send_message.await_args.args[0]


async def test_external_disconnect_resets_session(cog, bot):
    session = bot.sessions.get(1)
    session.autoplay = True
    session.queue.add(make_track())
    view = MagicMock(retire=AsyncMock())
    session.install_view(view, NowPlayingRef(1, 2))

    member = SimpleNamespace(id=999, guild=SimpleNamespace(id=1))
    await cog.on_voice_state_update(member, SimpleNamespace(channel=object()), SimpleNamespace(channel=None))

    view.retire.assert_awaited_once()
    assert len(session.queue) == 0
    assert session.autoplay is True


async def test_guild_remove_discards_session(cog, bot):
    bot.sessions.get(7)

    await cog.on_guild_remove(SimpleNamespace(id=7))

    assert 7 not in bot.sessions


async def test_replaced_track_end_keeps_controls(cog, bot):
    session = bot.sessions.get(1)
    view = MagicMock(retire=AsyncMock())
    session.install_view(view, NowPlayingRef(1, 2))
    event = SimpleNamespace(player=make_player(), reason=mafic.EndReason.REPLACED)

    await cog.on_track_end(event)

    view.retire.assert_not_awaited()
    assert session.view is view


async def test_finished_track_end_retires_controls_and_plays_next(cog, bot):
    session = bot.sessions.get(1)
    view = MagicMock(retire=AsyncMock())
    session.install_view(view, NowPlayingRef(1, 2))
    nxt = make_track(title="Next")
    session.queue.add(nxt)
    player = make_player()

    await cog.on_track_end(SimpleNamespace(player=player, reason=mafic.EndReason.FINISHED))

    view.retire.assert_awaited_once()
    player.play.assert_awaited_once_with(nxt)


async def test_track_start_publishes_and_adopts_track(cog, bot, monkeypatch):
    publish = AsyncMock()
    monkeypatch.setattr(cog.publisher, "publish", publish)
    track = make_track(title="Adopted")

    await cog.on_track_start(SimpleNamespace(player=make_player(), track=track))

    session = bot.sessions.get(1)
    assert session.queue.current is track
    publish.assert_awaited_once_with(None, session, track, cog.handle_control)
