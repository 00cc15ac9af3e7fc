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

"""
Encore Music Bot
========================================================

A Discord music bot streaming through Lavalink (via mafic), with a
now-playing card, button controls and autoplay.

Run with: python bot.py
"""

import asyncio
import os
import signal
from pathlib import Path

import aiohttp
import discord
import mafic
from discord.ext import commands
from dotenv import load_dotenv
from loguru import logger

from utils.config import ConfigManager, validate_configuration
from utils.log import setup_logging
from utils.state import SessionStore

DEFAULT_CONFIG_DIR = Path(__file__).parent / "config"

EXTENSIONS = ("cogs.music",)


class Encore(commands.Bot):
    """Bot with Lavalink node pool, per-guild sessions and shared HTTP session.

    Attributes:
        config_manager: Loaded ConfigManager
        sessions: Per-guild runtime state (in memory only)
        pool: mafic node pool
        http_session: aiohttp session for cover art downloads
    """

    def __init__(self, config_manager: ConfigManager) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.voice_states = True
        super().__init__(command_prefix=commands.when_mentioned, intents=intents, help_command=None)

        self.config_manager = config_manager
        self.sessions = SessionStore(default_volume=config_manager.get("default_volume", 100))
        self.pool = mafic.NodePool(self)
        self.http_session: aiohttp.ClientSession | None = None
        self._closing = False

    async def setup_hook(self) -> None:
        """Connect Lavalink nodes, load cogs and sync slash commands."""
        self.http_session = aiohttp.ClientSession()

        await self._connect_nodes()

        for extension in EXTENSIONS:
            await self.load_extension(extension)
            logger.debug(f"loaded {extension}")

        guild_id = os.getenv("GUILD_ID")
        if guild_id:
            guild = discord.Object(id=int(guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info(f"synced {len(synced)} commands to guild {guild_id}")
        else:
            synced = await self.tree.sync()
            logger.info(f"synced {len(synced)} global commands")

    async def _connect_nodes(self) -> None:
        """Connect every configured node. Failures are logged, not fatal."""
        for node in self.config_manager.nodes:
            try:
                await self.pool.create_node(
                    host=node["host"],
                    port=node["port"],
                    label=node["label"],
                    password=node["password"],
                    secure=node["secure"],
                )
            except Exception:
                logger.opt(exception=True).error(f"failed to connect lavalink node {node['label']}")

        if not self.pool.nodes:
            logger.warning("no lavalink node connected, /play will be unavailable")

    async def on_ready(self) -> None:
        logger.log("NOTICE", f"logged in as {self.user} ({len(self.guilds)} guilds)")

    async def close(self) -> None:
        """Leave voice, close HTTP, then close the gateway connection."""
        if self._closing:
            return
        self._closing = True
        logger.info("shutting down...")

        for vc in list(self.voice_clients):
            try:
                await vc.disconnect(force=True)
            except Exception as e:
                logger.warning(f"disconnect failed during shutdown: {e}")
        self.sessions.clear()

        if self.http_session and not self.http_session.closed:
            await self.http_session.close()

        await super().close()
        logger.info("shutdown complete")


def custom_exception_handler(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Suppress cosmetic aiohttp shutdown warnings, pass everything else on."""
    message = context.get("message", "")
    if message in ("Unclosed client session", "Unclosed connector"):
        return
    loop.default_exception_handler(context)


async def main() -> None:
    load_dotenv()
    setup_logging(os.getenv("LOG_LEVEL", "verbose"))

    # CONFIG_PATH may come from .env, so resolve after load_dotenv()
    config_manager = ConfigManager(Path(os.getenv("CONFIG_PATH", DEFAULT_CONFIG_DIR)))
    await config_manager.load()
    setup_logging(config_manager.get("logging", {}).get("level"))

    await validate_configuration(config_manager)

    bot = Encore(config_manager)

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(custom_exception_handler)

    # SIGINT = Ctrl+C, SIGTERM = systemd / docker stop
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(bot, s))
        except NotImplementedError:
            pass  # Windows: Ctrl+C still raises KeyboardInterrupt

    logger.info("starting bot...")
    async with bot:
        await bot.start(os.environ["DISCORD_TOKEN"].strip())


_shutdown_tasks: set[asyncio.Task] = set()


def _on_signal(bot: Encore, sig: signal.Signals) -> None:
    logger.info(f"received {sig.name}, shutting down...")
    task = asyncio.create_task(bot.close())
    _shutdown_tasks.add(task)
    task.add_done_callback(_shutdown_tasks.discard)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("bot stopped by user (Ctrl+C)")
