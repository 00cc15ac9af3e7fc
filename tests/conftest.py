"""Shared fakes for players, channels and tracks."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from utils.config import ConfigManager
from utils.state import GuildSession


def make_track(
    title: str = "Song",
    author: str = "Artist",
    identifier: str = "abc123",
    source: str = "youtube",
    uri: str | None = None,
    artwork_url: str | None = None,
):
    """Stand-in for mafic.Track with the fields the bot reads."""
    if uri is None and source == "youtube":
        uri = f"https://www.youtube.com/watch?v={identifier}"
    return SimpleNamespace(
        title=title,
        author=author,
        identifier=identifier,
        source=source,
        uri=uri,
        artwork_url=artwork_url,
    )


def make_player(**overrides):
    """Stand-in for mafic.Player. Every coroutine method is an AsyncMock."""
    player = SimpleNamespace(
        current=None,
        paused=False,
        connected=True,
        guild=SimpleNamespace(id=1),
        channel=SimpleNamespace(mention="#music"),
        play=AsyncMock(),
        stop=AsyncMock(),
        pause=AsyncMock(),
        resume=AsyncMock(),
        set_volume=AsyncMock(),
        disconnect=AsyncMock(),
        fetch_tracks=AsyncMock(return_value=[]),
    )
    for key, value in overrides.items():
        setattr(player, key, value)
    return player


def make_message(message_id: int = 100, channel_id: int = 10):
    return SimpleNamespace(
        id=message_id,
        channel=SimpleNamespace(id=channel_id),
        edit=AsyncMock(),
    )


def make_channel(channel_id: int = 10):
    """Text channel whose send() returns a fresh fake message each call."""
    counter = iter(range(100, 10_000))
    channel = SimpleNamespace(id=channel_id)
    channel.send = AsyncMock(side_effect=lambda *a, **kw: make_message(next(counter), channel_id))
    return channel


@pytest.fixture
def track():
    return make_track()


@pytest.fixture
def player():
    return make_player()


@pytest.fixture
def channel():
    return make_channel()


@pytest.fixture
def session():
    return GuildSession(guild_id=1)


@pytest.fixture
def config_manager(tmp_path):
    """ConfigManager holding built-in defaults, no files loaded."""
    return ConfigManager(tmp_path)


@pytest.fixture
def publisher():
    """Publisher stub: retire() just detaches the session's view."""
    stub = MagicMock()

    async def retire(session):
        session.take_view()

    stub.retire = AsyncMock(side_effect=retire)
    return stub
