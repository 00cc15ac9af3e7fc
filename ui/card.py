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

"""Music card image for the now-playing message.

Layout (1200x400):
    +----------------------------------------+----------+
    | TITLE (name colour)                    |          |
    | author (author colour)                 |  cover   |
    | [=====-------------------------------] |          |
    +----------------------------------------+----------+

Rendering is CPU-bound Pillow work, so build_card() runs it in a worker
thread. Nothing here touches Discord.
"""

import asyncio
import io
from dataclasses import dataclass

import aiohttp
import mafic
from loguru import logger
from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from core.autoplay import is_youtube_track

CARD_WIDTH = 1200
CARD_HEIGHT = 400
COVER_SIZE = 320
MARGIN = 40
TITLE_SIZE = 64
AUTHOR_SIZE = 40
BAR_HEIGHT = 18
THUMBNAIL_TIMEOUT = 10  # seconds

YOUTUBE_THUMBNAIL_URL = "https://img.youtube.com/vi/{identifier}/hqdefault.jpg"


@dataclass(frozen=True)
class CardTheme:
    """Card colours as hex strings, plus an optional TrueType font."""
    background: str = "#070707"
    progress: str = "#FF7A00"
    progress_bar: str = "#5F2D00"
    name: str = "#FF7A00"
    author: str = "#696969"
    font_path: str | None = None


def _load_font(path: str | None, size: int) -> ImageFont.ImageFont:
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            logger.warning(f"card font {path!r} unreadable, using built-in font")
    return ImageFont.load_default(size=size)


def _fit_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> str:
    """Trim text with an ellipsis until it fits max_width pixels."""
    if draw.textlength(text, font=font) <= max_width:
        return text
    while text and draw.textlength(text + "...", font=font) > max_width:
        text = text[:-1]
    return text.rstrip() + "..."


def _cover_tile(thumbnail: bytes | None, theme: CardTheme) -> Image.Image:
    """Square cover image, or a flat placeholder when missing or undecodable."""
    if thumbnail:
        try:
            with Image.open(io.BytesIO(thumbnail)) as img:
                cover = img.convert("RGBA")
            # Center-crop to square before scaling
            side = min(cover.size)
            left = (cover.width - side) // 2
            top = (cover.height - side) // 2
            cover = cover.crop((left, top, left + side, top + side))
            return cover.resize((COVER_SIZE, COVER_SIZE), Image.Resampling.LANCZOS)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.debug(f"thumbnail undecodable, using placeholder: {e}")
    return Image.new("RGBA", (COVER_SIZE, COVER_SIZE), theme.progress_bar)


def render_card(
    title: str,
    author: str,
    thumbnail: bytes | None,
    theme: CardTheme,
    progress: int = 10,
) -> bytes:
    """Render the music card.

    Args:
        title: Track title
        author: Track author / artist
        thumbnail: Raw image bytes for the cover (None = placeholder)
        theme: Colours and font
        progress: Filled share of the progress bar, 0-100

    Returns:
        PNG image bytes
    """
    canvas = Image.new("RGBA", (CARD_WIDTH, CARD_HEIGHT), theme.background)
    draw = ImageDraw.Draw(canvas)

    cover = _cover_tile(thumbnail, theme)
    mask = Image.new("L", (COVER_SIZE, COVER_SIZE), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, COVER_SIZE, COVER_SIZE), radius=30, fill=255)
    cover_x = CARD_WIDTH - COVER_SIZE - MARGIN
    cover_y = (CARD_HEIGHT - COVER_SIZE) // 2
    canvas.paste(cover, (cover_x, cover_y), mask)

    text_width = cover_x - 2 * MARGIN
    title_font = _load_font(theme.font_path, TITLE_SIZE)
    author_font = _load_font(theme.font_path, AUTHOR_SIZE)

    draw.text((MARGIN, 90), _fit_text(draw, title, title_font, text_width), font=title_font, fill=theme.name)
    draw.text((MARGIN, 180), _fit_text(draw, author, author_font, text_width), font=author_font, fill=theme.author)

    bar_top = 280
    draw.rounded_rectangle(
        (MARGIN, bar_top, MARGIN + text_width, bar_top + BAR_HEIGHT),
        radius=BAR_HEIGHT // 2,
        fill=theme.progress_bar,
    )
    filled = int(text_width * max(0, min(100, progress)) / 100)
    if filled > 0:
        draw.rounded_rectangle(
            (MARGIN, bar_top, MARGIN + max(filled, BAR_HEIGHT), bar_top + BAR_HEIGHT),
            radius=BAR_HEIGHT // 2,
            fill=theme.progress,
        )

    buffer = io.BytesIO()
    canvas.convert("RGB").save(buffer, format="PNG")
    return buffer.getvalue()


async def fetch_thumbnail(http: aiohttp.ClientSession, url: str) -> bytes | None:
    """Download cover art. Returns None on any network or HTTP failure."""
    try:
        async with http.get(url, timeout=aiohttp.ClientTimeout(total=THUMBNAIL_TIMEOUT)) as resp:
            if resp.status != 200:
                logger.debug(f"thumbnail fetch got {resp.status} for {url}")
                return None
            return await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.debug(f"thumbnail fetch failed for {url}: {e}")
        return None


def track_thumbnail(track: mafic.Track, fallback: str | None = None) -> str | None:
    """Best cover URL for a track: artwork, YouTube thumbnail, then fallback."""
    if artwork := getattr(track, "artwork_url", None):
        return artwork
    if is_youtube_track(track) and track.identifier:
        return YOUTUBE_THUMBNAIL_URL.format(identifier=track.identifier)
    return fallback


async def build_card(
    http: aiohttp.ClientSession,
    track: mafic.Track,
    theme: CardTheme,
    fallback_thumbnail: str | None = None,
) -> bytes:
    """Fetch cover art and render the card for a track."""
    thumbnail = None
    if url := track_thumbnail(track, fallback_thumbnail):
        thumbnail = await fetch_thumbnail(http, url)
    return await asyncio.to_thread(
        render_card, track.title, track.author or "unknown", thumbnail, theme
    )
