"""Tests for settings loading."""
import pytest

from dbc_alert.api.bitquery import DBC_METHOD, DBC_PROGRAM_ADDRESS, WS_URL
from dbc_alert.config import load_settings, load_teams
from dbc_alert.detection.matcher import DEFAULT_SUFFIXES
from dbc_alert.errors import ConfigError
from dbc_alert.storage.database import DB_PATH


@pytest.fixture
def env(tmp_path) -> dict:
    return {
        "BITQUERY_KEY": "bq",
        "TG_TOKEN": "tg",
        "CHAT_ID": "-100123",
        "CONFIG_FILE": str(tmp_path / "missing.yaml"),
        "TEAMS_FILE": str(tmp_path / "missing.txt"),
    }


def test_defaults(env):
    settings = load_settings(env)
    assert settings.bitquery_key == "bq"
    assert settings.chat_id == "-100123"
    assert settings.db_path == DB_PATH
    assert settings.suffixes == DEFAULT_SUFFIXES
    assert settings.teams == ()


@pytest.mark.parametrize("name", ["BITQUERY_KEY", "TG_TOKEN", "CHAT_ID"])
def test_missing_required_is_config_error(env, name):
    env[name] = ""
    with pytest.raises(ConfigError, match=name):
        load_settings(env)


def test_reports_all_missing():
    with pytest.raises(ConfigError) as excinfo:
        load_settings({})
    message = str(excinfo.value)
    assert "BITQUERY_KEY" in message
    assert "TG_TOKEN" in message
    assert "CHAT_ID" in message


def test_yaml_overrides(env, tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "stream:\n"
        "  url: wss://example.test/graphql\n"
        "matching:\n"
        "  suffixes: [pump, ' bonk ']\n"
        "telegram:\n"
        "  timeout_seconds: 3\n",
        encoding="utf-8",
    )
    env["CONFIG_FILE"] = str(config)
    env["DB_PATH"] = str(tmp_path / "events.db")

    settings = load_settings(env)

    assert settings.stream_url == "wss://example.test/graphql"
    assert settings.suffixes == ("pump", "bonk")
    assert settings.telegram_timeout == 3.0
    assert settings.db_path == str(tmp_path / "events.db")


@pytest.mark.parametrize("body", [
    "- just\n- a list\n",
    "matching:\n  suffixes: draft\n",
    "matching:\n  suffixes: [draft, '']\n",
    "telegram:\n  timeout_seconds: soon\n",
    "stream: [1, 2]\n",
    "matching: {suffixes: [unclosed\n",
])
def test_invalid_yaml_is_config_error(env, tmp_path, body):
    config = tmp_path / "config.yaml"
    config.write_text(body, encoding="utf-8")
    env["CONFIG_FILE"] = str(config)

    with pytest.raises(ConfigError):
        load_settings(env)


def test_load_teams_trims_and_skips_blanks(tmp_path):
    teams_file = tmp_path / "teams.txt"
    teams_file.write_text("  navi \n\n\r\nfaze\r\n   \nvitality", encoding="utf-8")

    assert load_teams(str(teams_file)) == ("navi", "faze", "vitality")


def test_missing_teams_file_is_not_an_error(tmp_path):
    assert load_teams(str(tmp_path / "nope.txt")) == ()


def test_teams_file_not_utf8_is_config_error(tmp_path):
    teams_file = tmp_path / "teams.txt"
    teams_file.write_bytes(b"navi\n\xff\xfe\xfa\n")

    with pytest.raises(ConfigError):
        load_teams(str(teams_file))


def test_null_yaml_values_fall_back_to_defaults(env, tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "stream:\n"
        "  url: null\n"
        "  program_address: ~\n"
        "  method:\n"
        "matching:\n"
        "  suffixes: null\n"
        "telegram:\n"
        "  timeout_seconds: null\n",
        encoding="utf-8",
    )
    env["CONFIG_FILE"] = str(config)

    settings = load_settings(env)

    assert settings.stream_url == WS_URL
    assert settings.program_address == DBC_PROGRAM_ADDRESS
    assert settings.method == DBC_METHOD
    assert settings.suffixes == DEFAULT_SUFFIXES
    assert settings.telegram_timeout == 10.0
