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

"""Configuration management for Encore."""

import asyncio
import copy
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Callable

import mafic
import yaml
from loguru import logger

from ui.card import CardTheme


# =============================================================================
# DEFAULT SETTINGS SCHEMA
# =============================================================================
# These defaults are used when settings.yaml is missing or incomplete.
# Environment variables can override any setting (see _apply_env_overrides).
#
# Lavalink:
#   nodes                  - List of nodes: label, host, port, password, secure
#   search_platform        - Lavalink search prefix for plain queries
#                            (ytmsearch, ytsearch, scsearch, ...)
#
# Playback:
#   default_volume         - Volume when joining voice (10-100)
#   controls_timeout       - Seconds the now-playing buttons stay live (30+)
#   queue_display_size     - Tracks listed by the queue button / command (1-25)
#
# Card Settings (card.*):
#   enabled                - Render the music card image
#   background_color       - Card background (hex string)
#   progress_color         - Filled part of the progress bar
#   progress_bar_color     - Empty part of the progress bar
#   name_color             - Track title colour
#   author_color           - Artist colour
#   font_path              - TrueType font file (None = Pillow's built-in font)
#   fallback_thumbnail     - Image URL used when a track has no artwork
#
# Embed Settings (embed.*):
#   color                  - Accent colour for embeds as hex integer
#   icon_url               - Icon next to the "now playing" header (None = none)
#
# UI Settings (ui.*):
#   brief_auto_delete      - Seconds before auto-deleting ephemeral replies (0 = never)
#
# Logging Settings (logging.*):
#   level                  - Log verbosity: "minimal", "verbose", or "debug"
# =============================================================================

DEFAULT_SETTINGS = {
    "nodes": [
        {
            "label": "main",
            "host": "127.0.0.1",
            "port": 2333,
            "password": "youshallnotpass",
            "secure": False,
        },
    ],
    "search_platform": "ytmsearch",
    "default_volume": 100,
    "controls_timeout": 600,
    "queue_display_size": 10,
    "card": {
        "enabled": True,
        "background_color": "#070707",
        "progress_color": "#FF7A00",
        "progress_bar_color": "#5F2D00",
        "name_color": "#FF7A00",
        "author_color": "#696969",
        "font_path": None,
        "fallback_thumbnail": None,
    },
    "embed": {
        "color": 0xFF7A00,
        "icon_url": None,
    },
    "ui": {
        "brief_auto_delete": 10,  # seconds, 0 to disable
    },
    # LOG_LEVEL env var overrides this
    "logging": {
        "level": "verbose",  # minimal, verbose, debug
    },
}

# =============================================================================
# DEFAULT MESSAGES SCHEMA
# =============================================================================
# Bot responses with per-message enable/disable control.
#   text    - The message template (supports {variables} for formatting)
#   enabled - Whether to show this message (True) or acknowledge silently (False)
#
# "enabled" only gates ephemeral replies. Channel notices (queue end,
# autoplay) are always posted.
# =============================================================================

DEFAULT_MESSAGES = {
    # Voice
    "not_in_vc": {"text": "join a voice channel first", "enabled": True},
    "wrong_vc": {"text": "i'm playing in {channel}, join me there", "enabled": True},
    "voice_error": {"text": "voice connection is in a weird state, try again", "enabled": True},
    "need_vc_permissions": {"text": "i can't connect or speak in that channel", "enabled": True},
    "failed_join_vc": {"text": "couldn't join your voice channel", "enabled": True},
    "music_unavailable": {"text": "no audio node is connected right now", "enabled": True},

    # Search
    "song_not_found": {"text": "nothing found for **{query}**", "enabled": True},
    "track_queued": {"text": "queued **{title}**", "enabled": True},
    "playlist_queued": {"text": "queued {count} tracks from **{name}**", "enabled": True},

    # Controls
    "nothing_playing": {"text": "nothing is playing", "enabled": True},
    "loop_track": {"text": "🔁 track loop is on", "enabled": True},
    "loop_queue": {"text": "🔁 queue loop is on", "enabled": True},
    "loop_disabled": {"text": "❌ loop is off", "enabled": True},
    "skipped": {"text": "⏭️ skipped", "enabled": True},
    "queue_list": {"text": "📜 **up next** ({count})\n{tracks}", "enabled": True},
    "queue_empty": {"text": "the queue is empty", "enabled": True},
    "queue_cleared": {"text": "🗑️ cleared {count} tracks from the queue", "enabled": True},
    "stopped": {"text": "⏹️ stopped and left the channel", "enabled": True},
    "paused": {"text": "⏸️ paused", "enabled": True},
    "already_paused": {"text": "already paused", "enabled": True},
    "resumed": {"text": "▶️ resumed", "enabled": True},
    "not_paused": {"text": "already playing", "enabled": True},
    "volume_set": {"text": "🔊 volume {level}%", "enabled": True},
    "volume_max": {"text": "volume is already at maximum ({level}%)", "enabled": True},
    "volume_min": {"text": "volume is already at minimum ({level}%)", "enabled": True},
    "autoplay_on": {"text": "🎶 autoplay is now enabled", "enabled": True},
    "autoplay_off": {"text": "autoplay is now disabled", "enabled": True},

    # Channel notices
    "now_playing_header": {"text": "Now Playing", "enabled": True},
    "now_playing_fallback": {"text": "🎶 now playing **{title}** by {author}", "enabled": True},
    "controls_help": {
        "text": (
            "🎶 **Controls:**\n"
            " 🔁 `Loop`, ❌ `Disable`, ⏭️ `Skip`, 📜 `Queue`, 🗑️ `Clear`\n"
            " ⏹️ `Stop`, ⏸️ `Pause`, ▶️ `Resume`, 🔊 `Vol +`, 🔉 `Vol -`\n"
            " 🎲 `Autoplay`"
        ),
        "enabled": True,
    },
    "queue_end": {"text": "**Queue ended!** Leaving the channel since autoplay is off.", "enabled": True},
    "autoplay_playing": {"text": "⏭️ **Autoplay is on!** Playing **{title}** next.", "enabled": True},
    "autoplay_no_result": {"text": "⚠️ **Autoplay couldn't find anything to play.** Leaving the channel.", "enabled": True},
    "autoplay_no_history": {"text": "⚠️ **Autoplay is on, but the queue is empty.** Leaving the channel.", "enabled": True},

    # Errors
    "error_generic": {"text": "something broke, try again", "enabled": True},
}


def deep_merge(user: dict, defaults: dict) -> dict:
    """Merge user config with defaults, preserving nested structure.

    User values override defaults. For nested dicts, merges recursively.
    Unknown keys (not in defaults) are logged as warnings and ignored.

    Args:
        user: User-provided config from YAML file
        defaults: Default values to use for missing keys

    Returns:
        Merged config dict with all default keys present
    """
    result = copy.deepcopy(defaults)
    for key, value in user.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(value, result[key])
        elif key in defaults:
            result[key] = value
        else:
            logger.warning(f"unknown config key: {key}")
    return result


def load_yaml(path: Path, defaults: dict) -> dict:
    """Load YAML file with defaults and error handling.

    If file doesn't exist or is invalid, returns defaults without error.
    Invalid YAML syntax is logged and defaults are used.
    """
    if not path.exists():
        return copy.deepcopy(defaults)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            user = yaml.safe_load(f) or {}

        if not isinstance(user, dict):
            logger.warning(f"{path.name} invalid, using defaults")
            return copy.deepcopy(defaults)

        return deep_merge(user, defaults)

    except yaml.YAMLError:
        logger.opt(exception=True).error(f"failed to parse {path.name}")
        return copy.deepcopy(defaults)


def save_yaml(path: Path, data: dict, header: str = "") -> None:
    """Save YAML atomically with optional header comment.

    Uses temp-file-then-rename so a crash mid-write never leaves a truncated
    file. Creates parent directories if they don't exist.
    """
    temp_path = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, suffix='.tmp')
        try:
            f = os.fdopen(temp_fd, 'w', encoding='utf-8')
        except Exception:
            os.close(temp_fd)
            raise
        with f:
            if header:
                f.write(header)
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        Path(temp_path).replace(path)
    except Exception:
        if temp_path:
            Path(temp_path).unlink(missing_ok=True)
        raise


def _parse_hex(value: Any) -> int:
    """Parse "FF7A00", "#FF7A00", "0xFF7A00" or an int into an int colour."""
    if isinstance(value, int):
        return value
    text = str(value).strip().lstrip("#").removeprefix("0x").removeprefix("0X")
    return int(text, 16)


def _parse_bool(value: str) -> bool:
    return value.lower() == "true"


class ConfigManager:
    """Manages bot configuration from settings.yaml and messages.yaml.

    Loads configuration at startup with this priority (highest wins):
    1. DEFAULT_SETTINGS / DEFAULT_MESSAGES (built-in defaults)
    2. settings.yaml / messages.yaml (user customization)
    3. Environment variables (Docker/deployment override)

    Access patterns:
        config_manager.get("key")           # Get setting value
        config_manager.get("key", default)  # Get with fallback
        config_manager.msg("key", **vars)   # Get formatted message
        config_manager.is_enabled("key")    # Check if message should show

    Settings are validated after loading - invalid values are clamped or
    reset to defaults with a warning logged.

    Attributes:
        config_path: Directory containing settings.yaml and messages.yaml
        settings: Loaded settings dict (after validation)
        messages: Loaded messages dict
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self.settings: dict = copy.deepcopy(DEFAULT_SETTINGS)
        self.messages: dict = {}

    async def load(self) -> None:
        """Load settings and messages from YAML, apply env overrides, validate.

        Generates missing config files with default values and header comments.
        A config directory that can't be written is logged; defaults still load.
        """
        settings_path = self.config_path / "settings.yaml"
        self.settings = await asyncio.to_thread(
            load_yaml, settings_path, DEFAULT_SETTINGS
        )

        if not settings_path.exists():
            header = "# Encore Settings\n# Edit these values to customize behavior\n\n"
            await self._generate(settings_path, DEFAULT_SETTINGS, header)

        messages_path = self.config_path / "messages.yaml"
        self.messages = await asyncio.to_thread(
            load_yaml, messages_path, DEFAULT_MESSAGES
        )

        if not messages_path.exists():
            header = "# Encore Responses\n# Reword anything the bot says here\n\n"
            await self._generate(messages_path, DEFAULT_MESSAGES, header)

        self._apply_env_overrides()
        self._validate_settings()

        logger.debug("config loaded")

    async def _generate(self, path: Path, data: dict, header: str) -> None:
        try:
            await asyncio.to_thread(save_yaml, path, data, header)
            logger.debug(f"generated {path.name}")
        except OSError as e:
            logger.warning(f"could not write {path}: {e}")

    def _validate_settings(self) -> None:
        """Validate and clamp settings after loading from all sources.

        Validation steps:
        1. Null-restore: YAML "key:" with no value becomes None. Restores
           defaults for null top-level keys and null keys in nested sections.
        2. Nodes: drops entries without a host, fills missing fields from the
           default node, restores the default list if nothing is left.
        3. Bounded integers: clamps default_volume, controls_timeout and
           queue_display_size.
        4. Search platform: must be a mafic.SearchType value.
        5. Embed colour: coerces hex strings to int.

        Logs warnings for any values that needed correction.
        """
        for key in list(self.settings):
            if self.settings[key] is None and key in DEFAULT_SETTINGS:
                self.settings[key] = copy.deepcopy(DEFAULT_SETTINGS[key])
        for section in ("card", "embed", "ui", "logging"):
            sect = self.settings.get(section)
            defaults = DEFAULT_SETTINGS[section]
            if not isinstance(sect, dict):
                logger.warning(f"{section} section invalid, using defaults")
                self.settings[section] = copy.deepcopy(defaults)
                continue
            for key in list(sect):
                if sect[key] is None and defaults.get(key) is not None:
                    sect[key] = defaults[key]

        self._validate_nodes()

        validations = {
            "default_volume": (10, 100),
            "controls_timeout": (30, None),
            "queue_display_size": (1, 25),
        }
        for key, (min_val, max_val) in validations.items():
            value = self.settings.get(key)
            try:
                v = int(value)
                if max_val is not None:
                    clamped = max(min_val, min(max_val, v))
                    range_str = f"{min_val}-{max_val}"
                else:
                    clamped = max(min_val, v)
                    range_str = f"{min_val}+"
                if clamped != v:
                    logger.warning(f"{key}={v} out of range, clamped to {clamped} (valid: {range_str})")
                self.settings[key] = clamped
            except (ValueError, TypeError):
                logger.warning(f"{key}={value!r} invalid, using default")
                self.settings[key] = DEFAULT_SETTINGS[key]

        platform = self.settings.get("search_platform")
        try:
            mafic.SearchType(platform)
        except ValueError:
            logger.warning(f"search_platform={platform!r} unknown, using default")
            self.settings["search_platform"] = DEFAULT_SETTINGS["search_platform"]

        embed = self.settings["embed"]
        try:
            embed["color"] = _parse_hex(embed.get("color"))
        except (ValueError, TypeError):
            logger.warning(f"embed.color={embed.get('color')!r} invalid, using default")
            embed["color"] = DEFAULT_SETTINGS["embed"]["color"]

    def _validate_nodes(self) -> None:
        """Keep well-formed node entries, filling gaps from the default node."""
        template = DEFAULT_SETTINGS["nodes"][0]
        nodes = self.settings.get("nodes")
        if not isinstance(nodes, list):
            logger.warning("nodes must be a list, using default node")
            self.settings["nodes"] = copy.deepcopy(DEFAULT_SETTINGS["nodes"])
            return

        valid = []
        for index, node in enumerate(nodes):
            if not isinstance(node, dict) or not node.get("host"):
                logger.warning(f"nodes[{index}] has no host, skipping")
                continue
            merged = {**template, **{k: v for k, v in node.items() if v is not None}}
            merged.setdefault("label", f"node-{index}")
            try:
                merged["port"] = int(merged["port"])
            except (ValueError, TypeError):
                logger.warning(f"nodes[{index}].port={merged['port']!r} invalid, using {template['port']}")
                merged["port"] = template["port"]
            merged["secure"] = bool(merged["secure"])
            merged["password"] = str(merged["password"])
            valid.append(merged)

        if not valid:
            logger.warning("no usable nodes configured, using default node")
            valid = copy.deepcopy(DEFAULT_SETTINGS["nodes"])
        self.settings["nodes"] = valid

    def _apply_env_overrides(self) -> None:
        """Override settings with environment variables.

        The env_map dict maps ENV_VAR_NAME -> (setting_key, converter):
        - setting_key: Dot notation for nested keys (e.g., "embed.color").
          "nodes.0.host" addresses the first node.
        - converter: Function to transform string value

        Invalid env var values are logged as warnings and ignored.
        """
        def non_negative(env_key: str) -> Callable[[str], int]:
            def validate(x: str) -> int:
                v = int(x)
                if v < 0:
                    logger.warning(f"{env_key}={v} out of range, clamped to 0 (valid: 0+)")
                    return 0
                return v
            return validate

        env_map = {
            # Lavalink (first node)
            "LAVALINK_HOST": ("nodes.0.host", str),
            "LAVALINK_PORT": ("nodes.0.port", int),
            "LAVALINK_PASSWORD": ("nodes.0.password", str),
            "LAVALINK_SECURE": ("nodes.0.secure", _parse_bool),
            "SEARCH_PLATFORM": ("search_platform", str),
            # Playback (range validation handled by _validate_settings)
            "DEFAULT_VOLUME": ("default_volume", int),
            "CONTROLS_TIMEOUT": ("controls_timeout", int),
            "QUEUE_DISPLAY_SIZE": ("queue_display_size", int),
            # Appearance
            "CARD_ENABLED": ("card.enabled", _parse_bool),
            "EMBED_COLOR": ("embed.color", _parse_hex),
            "BRIEF_AUTO_DELETE": ("ui.brief_auto_delete", non_negative("BRIEF_AUTO_DELETE")),
            "LOG_LEVEL": ("logging.level", str),
        }

        for env_key, (setting_key, converter) in env_map.items():
            if value := os.getenv(env_key):
                try:
                    converted = converter(value)
                    self._set_path(setting_key, converted)
                    logger.debug(f"{env_key} overrides {setting_key}")
                except (ValueError, TypeError) as e:
                    logger.warning(f"invalid env var {env_key}: {e}")

    def _set_path(self, setting_key: str, value: Any) -> None:
        """Assign a dotted setting key; numeric parts index into lists."""
        parts = setting_key.split(".")
        target: Any = self.settings
        for part in parts[:-1]:
            if isinstance(target, list):
                index = int(part)
                if index >= len(target):
                    target.append(copy.deepcopy(DEFAULT_SETTINGS["nodes"][0]))
                    index = len(target) - 1
                target = target[index]
            else:
                target = target.setdefault(part, {})
            if not isinstance(target, (dict, list)):
                # Corrupted YAML: expected a section but got a scalar
                logger.warning(f"invalid config structure for {setting_key}")
                return
        target[parts[-1]] = value

    def get(self, key: str, default=None) -> Any:
        """Get a setting value from settings.yaml."""
        return self.settings.get(key, default)

    def msg(self, key: str, **kwargs) -> str:
        """Get formatted message text from messages.yaml.

        Returns the key itself if the message is unknown, and the raw
        template if a placeholder is missing from kwargs.
        """
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        template = entry.get("text", key) if isinstance(entry, dict) else entry
        try:
            return template.format(**kwargs)
        except (KeyError, IndexError):
            return template

    def is_enabled(self, key: str) -> bool:
        """Check if an ephemeral reply should be shown to the user."""
        entry = self.messages.get(key, DEFAULT_MESSAGES.get(key, {}))
        return entry.get("enabled", True) if isinstance(entry, dict) else True

    @property
    def embed_color(self) -> int:
        return self.get("embed", {}).get("color", DEFAULT_SETTINGS["embed"]["color"])

    @property
    def search_type(self) -> mafic.SearchType:
        return mafic.SearchType(self.get("search_platform", DEFAULT_SETTINGS["search_platform"]))

    @property
    def nodes(self) -> list[dict]:
        return self.get("nodes", DEFAULT_SETTINGS["nodes"])

    def card_theme(self) -> CardTheme:
        """Build the music card theme from card.* settings."""
        card = self.get("card", {})
        defaults = DEFAULT_SETTINGS["card"]
        return CardTheme(
            background=card.get("background_color") or defaults["background_color"],
            progress=card.get("progress_color") or defaults["progress_color"],
            progress_bar=card.get("progress_bar_color") or defaults["progress_bar_color"],
            name=card.get("name_color") or defaults["name_color"],
            author=card.get("author_color") or defaults["author_color"],
            font_path=card.get("font_path"),
        )


async def validate_configuration(config_manager: ConfigManager) -> None:
    """Validate configuration before bot starts, exit on failure.

    Called in main() before bot.start(). Catches common configuration errors
    before the bot tries to connect.

    Checks performed:
    - DISCORD_TOKEN is set and has valid format (3 dot-separated sections)
    - Config directory exists or can be created
    - At least one configured Lavalink node answers GET /version

    Unreachable nodes beyond the first working one are warnings: mafic keeps
    retrying them in the background. On failure, logs all errors and exits.
    """
    import aiohttp

    errors = []

    token = os.getenv("DISCORD_TOKEN")
    if not token:
        errors.append("DISCORD_TOKEN not set - add it to .env or the environment")
    else:
        parts = token.strip().split(".")
        if len(parts) != 3 or any(not part for part in parts):
            errors.append(
                "DISCORD_TOKEN format appears invalid.\n"
                "Get a fresh token from: https://discord.com/developers/applications"
            )

    if not os.getenv("GUILD_ID"):
        logger.warning("GUILD_ID not set - commands may take up to 1 hour to show up")

    try:
        config_manager.config_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        errors.append(f"config directory {config_manager.config_path} is not writable: {e}")

    reachable = 0
    async with aiohttp.ClientSession() as session:
        for node in config_manager.nodes:
            scheme = "https" if node["secure"] else "http"
            url = f"{scheme}://{node['host']}:{node['port']}/version"
            try:
                async with session.get(
                    url,
                    headers={"Authorization": node["password"]},
                    timeout=aiohttp.ClientTimeout(total=30),
                ) as resp:
                    if resp.status != 200:
                        logger.warning(f"lavalink node {node['label']} answered {resp.status} at {url}")
                        continue
                    version = await resp.text()
                    logger.log("NOTICE", f"lavalink node {node['label']} version: {version}")
                    reachable += 1
            except Exception as e:
                logger.warning(f"cannot reach lavalink node {node['label']} at {url}: {e}")

    if not reachable:
        errors.append("no lavalink node is reachable - check nodes in settings.yaml")

    if errors:
        for error in errors:
            logger.error(error)
        sys.exit(1)
