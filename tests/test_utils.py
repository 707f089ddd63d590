"""
Tests for color parsing, key combos, configuration and socket paths.
"""

import pytest

from guibridge.config import AgentConfig, BridgeConfig
from guibridge.errors import InvalidArgument
from guibridge.protocol.paths import default_socket_path
from guibridge.utils.colors import parse_hex_color
from guibridge.utils.key_mapping import parse_key_combo


@pytest.mark.parametrize("color,expected", [
    ("#ff0000", (255, 0, 0, 200)),
    ("#00FF0080", (0, 255, 0, 128)),
    ("0000ff", (0, 0, 255, 200)),
])
def test_parse_hex_color(color, expected):
    assert parse_hex_color(color) == expected


@pytest.mark.parametrize("color", ["", "#fff", "#gg0000", "red"])
def test_parse_hex_color_rejects_bad_input(color):
    with pytest.raises(InvalidArgument) as excinfo:
        parse_hex_color(color)
    assert excinfo.value.code == "invalid_color"


@pytest.mark.parametrize("combo,expected", [
    ("a", ([], "a")),
    ("Enter", ([], "enter")),
    ("Ctrl+Shift+a", (["ctrl", "shift"], "a")),
    ("Cmd+Page Up", (["cmd"], "page_up")),
    ("Ctrl++", (["ctrl"], "+")),
    ("Option+F5", (["alt"], "f5")),
])
def test_parse_key_combo(combo, expected):
    assert parse_key_combo(combo) == expected


@pytest.mark.parametrize("combo", ["", "Hyper+a", "Ctrl+NotAKey"])
def test_parse_key_combo_rejects_bad_input(combo):
    with pytest.raises(InvalidArgument):
        parse_key_combo(combo)


def test_socket_path_precedence():
    assert default_socket_path({"GUIBRIDGE_SOCKET": "/x/agent.sock", "XDG_RUNTIME_DIR": "/run/user/1"}) \
        == "/x/agent.sock"
    assert default_socket_path({"XDG_RUNTIME_DIR": "/run/user/1"}) == "/run/user/1/guibridge.sock"
    assert default_socket_path({}).endswith("guibridge.sock")


def test_bridge_config_from_env():
    config = BridgeConfig.from_env({
        "GUIBRIDGE_APP_NAME": "Editor",
        "GUIBRIDGE_SOCKET": "/tmp/editor.sock",
        "GUIBRIDGE_SOURCE": "atspi",
        "GUIBRIDGE_LOG_LEVEL": "debug",
        "GUIBRIDGE_MAX_MESSAGE_SIZE": "1024",
        "GUIBRIDGE_BUS_TIMEOUT": "2.5",
    })
    assert config.app_name == "Editor"
    assert config.socket_path == "/tmp/editor.sock"
    assert config.source == "atspi"
    assert config.log_level == "DEBUG"
    assert config.max_message_size == 1024
    assert config.bus_call_timeout == 2.5


def test_bridge_config_rejects_bad_numbers():
    with pytest.raises(InvalidArgument):
        BridgeConfig.from_env({"GUIBRIDGE_MAX_MESSAGE_SIZE": "big"})


def test_overrides_skip_none():
    config = BridgeConfig(app_name="A").with_overrides(app_name=None, source="macos")
    assert config.app_name == "A"
    assert config.source == "macos"


def test_agent_config_defaults():
    config = AgentConfig(socket_path="/tmp/a.sock")
    assert config.frame_buffer_capacity == 120
    assert config.log_buffer_capacity == 1000
    assert config.screenshot_wait == 5.0
