from unittest.mock import MagicMock

import mafic
import pytest
from conftest import make_track

from core.playback import Playback
from core.queue import LoopMode


@pytest.fixture
def playback(config_manager, publisher):
    return Playback(config_manager, publisher)


def _finished(session, title="Last", identifier="last"):
    """Session whose only track just ended: queue empty, track in history."""
    track = make_track(title=title, identifier=identifier)
    session.queue.add(track)
    session.queue.advance()
    session.queue.advance()
    return track


async def test_queue_end_autoplay_off_destroys_once(playback, player, session, channel):
    _finished(session)

    await playback.handle_track_end(player, session, mafic.EndReason.FINISHED, channel)

    player.disconnect.assert_awaited_once()
    player.play.assert_not_awaited()
    player.fetch_tracks.assert_not_awaited()
    assert channel.send.await_count == 1
    embed = channel.send.await_args.kwargs["embed"]
    assert "Queue ended" in embed.description
    assert session.queue.previous is None  # session reset


async def test_queue_end_autoplay_plays_exactly_one_track(playback, player, session, channel):
    seed = _finished(session)
    related = make_track(title="Related", identifier="rel")
    player.fetch_tracks.return_value = [seed, related, make_track(identifier="x")]
    session.autoplay = True

    await playback.handle_queue_end(player, session, channel)

    player.play.assert_awaited_once_with(related)
    player.disconnect.assert_not_awaited()
    assert session.queue.current is related
    assert len(session.queue) == 0
    assert channel.send.await_count == 1
    assert "Related" in channel.send.await_args.kwargs["embed"].description


async def test_queue_end_search_error_destroys_with_one_notice(playback, player, session, channel):
    _finished(session)
    player.fetch_tracks.side_effect = RuntimeError("node down")
    session.autoplay = True

    await playback.handle_queue_end(player, session, channel)

    player.disconnect.assert_awaited_once()
    player.play.assert_not_awaited()
    assert channel.send.await_count == 1
    assert "couldn't find" in channel.send.await_args.kwargs["embed"].description


async def test_queue_end_without_history_disconnects(playback, player, session, channel):
    session.autoplay = True

    await playback.handle_queue_end(player, session, channel)

    player.disconnect.assert_awaited_once()
    player.fetch_tracks.assert_not_awaited()
    assert channel.send.await_count == 1


async def test_teardown_keeps_autoplay_flag(playback, player, session, publisher):
    session.autoplay = True
    session.volume = 30

    await playback.teardown(player, session)

    publisher.retire.assert_awaited_once_with(session)
    assert session.autoplay is True
    assert session.volume == session.default_volume


async def test_notice_without_channel_still_tears_down(playback, player, session):
    _finished(session)

    await playback.handle_queue_end(player, session, None)

    player.disconnect.assert_awaited_once()


@pytest.mark.parametrize("reason", [mafic.EndReason.REPLACED, mafic.EndReason.CLEANUP])
async def test_replaced_and_cleanup_are_ignored(playback, player, session, channel, reason):
    _finished(session)

    await playback.handle_track_end(player, session, reason, channel)

    player.play.assert_not_awaited()
    player.disconnect.assert_not_awaited()
    channel.send.assert_not_awaited()


async def test_track_end_on_disconnected_player_is_ignored(playback, player, session, channel):
    player.connected = False
    _finished(session)

    await playback.handle_track_end(player, session, mafic.EndReason.FINISHED, channel)

    player.disconnect.assert_not_awaited()
    channel.send.assert_not_awaited()


async def test_track_end_plays_next_in_queue(playback, player, session, channel):
    _finished(session)
    nxt = make_track(title="Next", identifier="next")
    session.queue.add(nxt)

    await playback.handle_track_end(player, session, mafic.EndReason.FINISHED, channel)

    player.play.assert_awaited_once_with(nxt)
    channel.send.assert_not_awaited()


async def test_failed_play_moves_on(playback, player, session):
    broken = make_track(title="Broken", identifier="broken")
    good = make_track(title="Good", identifier="good")
    player.play.side_effect = [RuntimeError("load failed"), None]

    added = await playback.start(player, session, [broken, good])

    assert added == 2
    assert player.play.await_count == 2
    assert session.queue.current is good


async def test_load_failed_track_is_not_looped(playback, player, session, channel):
    broken = make_track(title="Broken", identifier="broken")
    good = make_track(title="Good", identifier="good")
    session.queue.extend([broken, good])
    session.queue.advance()
    session.queue.loop = LoopMode.TRACK

    await playback.handle_track_end(player, session, mafic.EndReason.LOAD_FAILED, channel)

    player.play.assert_awaited_once_with(good)
    assert session.queue.current is good

    player.play.reset_mock()
    await playback.handle_track_end(player, session, mafic.EndReason.FINISHED, channel)

    # track loop still works for a track that loaded
    player.play.assert_awaited_once_with(good)


async def test_start_while_playing_only_enqueues(playback, player, session, track):
    player.current = make_track(identifier="playing")

    await playback.start(player, session, [track])

    player.play.assert_not_awaited()
    assert session.queue.upcoming == [track]


async def test_load_keeps_best_search_match(playback, player):
    first, second = make_track(identifier="1"), make_track(identifier="2")
    player.fetch_tracks.return_value = [first, second]

    tracks, name = await playback.load(player, "some song")

    assert tracks == [first]
    assert name is None
    player.fetch_tracks.assert_awaited_once_with("some song", search_type=mafic.SearchType("ytmsearch"))


async def test_load_keeps_whole_playlist(playback, player):
    playlist = MagicMock(spec=mafic.Playlist)
    playlist.name = "Mix"
    playlist.tracks = [make_track(identifier="1"), make_track(identifier="2")]
    player.fetch_tracks.return_value = playlist

    tracks, name = await playback.load(player, "https://example.com/list")

    assert len(tracks) == 2
    assert name == "Mix"


async def test_load_nothing_found(playback, player):
    player.fetch_tracks.return_value = None
    assert await playback.load(player, "nope") == ([], None)
