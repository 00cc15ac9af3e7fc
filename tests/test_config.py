import mafic
import pytest
import yaml

from ui.card import CardTheme
from utils.config import DEFAULT_MESSAGES, DEFAULT_SETTINGS, ConfigManager, deep_merge

ENV_KEYS = (
    "LAVALINK_HOST", "LAVALINK_PORT", "LAVALINK_PASSWORD", "LAVALINK_SECURE",
    "SEARCH_PLATFORM", "DEFAULT_VOLUME", "CONTROLS_TIMEOUT", "QUEUE_DISPLAY_SIZE",
    "CARD_ENABLED", "EMBED_COLOR", "BRIEF_AUTO_DELETE", "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write_settings(path, data):
    (path / "settings.yaml").write_text(yaml.safe_dump(data), encoding="utf-8")


async def test_missing_files_are_generated(tmp_path):
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert (tmp_path / "settings.yaml").exists()
    assert (tmp_path / "messages.yaml").exists()
    assert manager.get("default_volume") == DEFAULT_SETTINGS["default_volume"]
    assert manager.get("controls_timeout") == 600
    assert manager.search_type == mafic.SearchType("ytmsearch")


async def test_out_of_range_values_are_clamped(tmp_path):
    _write_settings(tmp_path, {
        "default_volume": 500,
        "controls_timeout": 5,
        "queue_display_size": "lots",
    })
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.get("default_volume") == 100
    assert manager.get("controls_timeout") == 30
    assert manager.get("queue_display_size") == DEFAULT_SETTINGS["queue_display_size"]


async def test_unknown_search_platform_resets(tmp_path):
    _write_settings(tmp_path, {"search_platform": "bogus"})
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.get("search_platform") == "ytmsearch"


async def test_nodes_are_normalised(tmp_path):
    _write_settings(tmp_path, {"nodes": [
        {"host": "lava.local", "port": "2444"},
        {"port": 1},
    ]})
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert len(manager.nodes) == 1
    node = manager.nodes[0]
    assert node["host"] == "lava.local"
    assert node["port"] == 2444
    assert node["password"] == "youshallnotpass"
    assert node["secure"] is False


async def test_env_overrides_yaml(tmp_path, monkeypatch):
    _write_settings(tmp_path, {"default_volume": 40})
    monkeypatch.setenv("DEFAULT_VOLUME", "70")
    monkeypatch.setenv("LAVALINK_HOST", "lavalink")
    monkeypatch.setenv("LAVALINK_SECURE", "true")
    monkeypatch.setenv("EMBED_COLOR", "#00FF00")
    monkeypatch.setenv("BRIEF_AUTO_DELETE", "-5")

    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.get("default_volume") == 70
    assert manager.nodes[0]["host"] == "lavalink"
    assert manager.nodes[0]["secure"] is True
    assert manager.embed_color == 0x00FF00
    assert manager.get("ui")["brief_auto_delete"] == 0


async def test_invalid_env_value_is_ignored(tmp_path, monkeypatch):
    monkeypatch.setenv("LAVALINK_PORT", "not-a-port")
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.nodes[0]["port"] == 2333


async def test_embed_colour_accepts_hex_string(tmp_path):
    _write_settings(tmp_path, {"embed": {"color": "FF7A00"}})
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.embed_color == 0xFF7A00


async def test_messages_can_be_disabled_and_reworded(tmp_path):
    (tmp_path / "messages.yaml").write_text(yaml.safe_dump({
        "skipped": {"text": "next!", "enabled": False},
    }), encoding="utf-8")
    manager = ConfigManager(tmp_path)
    await manager.load()

    assert manager.msg("skipped") == "next!"
    assert not manager.is_enabled("skipped")
    assert manager.is_enabled("paused")


def test_msg_formatting(config_manager):
    assert config_manager.msg("volume_set", level=60) == DEFAULT_MESSAGES["volume_set"]["text"].format(level=60)
    # Missing placeholders return the raw template
    assert config_manager.msg("volume_set") == DEFAULT_MESSAGES["volume_set"]["text"]
    assert config_manager.msg("no_such_key") == "no_such_key"


def test_card_theme_from_settings(config_manager):
    config_manager.settings["card"]["name_color"] = "#123456"
    theme = config_manager.card_theme()

    assert isinstance(theme, CardTheme)
    assert theme.name == "#123456"
    assert theme.background == "#070707"


def test_deep_merge_ignores_unknown_keys():
    merged = deep_merge({"ui": {"brief_auto_delete": 3}, "bogus": 1}, DEFAULT_SETTINGS)

    assert merged["ui"]["brief_auto_delete"] == 3
    assert "bogus" not in merged
    assert merged["card"] == DEFAULT_SETTINGS["card"]
