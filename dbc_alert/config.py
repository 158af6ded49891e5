"""Settings loaded from the environment and an optional YAML file."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import structlog
import yaml

from dbc_alert.api.bitquery import DBC_METHOD, DBC_PROGRAM_ADDRESS, WS_URL
from dbc_alert.detection.matcher import DEFAULT_SUFFIXES
from dbc_alert.errors import ConfigError
from dbc_alert.storage.database import DB_PATH

logger = structlog.get_logger()

REQUIRED_ENV = ("BITQUERY_KEY", "TG_TOKEN", "CHAT_ID")

TEAMS_FILE = "./teams.txt"
CONFIG_FILE = "./config.yaml"


@dataclass(frozen=True)
class Settings:
    bitquery_key: str
    tg_token: str
    chat_id: str
    db_path: str = DB_PATH
    teams_file: str = TEAMS_FILE
    stream_url: str = WS_URL
    program_address: str = DBC_PROGRAM_ADDRESS
    method: str = DBC_METHOD
    suffixes: tuple[str, ...] = DEFAULT_SUFFIXES
    telegram_timeout: float = 10.0
    # Loaded and logged only; matching does not consult it yet.
    teams: tuple[str, ...] = ()


def load_yaml_config(path: str) -> dict:
    """Load the optional YAML config. A missing file yields an empty dict."""
    config_path = Path(path)

    if not config_path.exists():
        logger.info("config_file_not_found", path=str(config_path))
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    logger.info("config_loaded", path=str(config_path))
    return config


def load_teams(path: str) -> tuple[str, ...]:
    """Read the team list: one entry per line, trimmed, blanks skipped."""
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError:
        logger.info("teams_file_not_found", path=path)
        return ()
    except UnicodeDecodeError as e:
        raise ConfigError(f"Team list {path} is not valid UTF-8: {e}") from e

    teams = tuple(line.strip() for line in lines if line.strip())
    logger.info("teams_loaded", count=len(teams))
    return teams


def _section(config: dict, name: str) -> dict:
    value = config.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return value


def _parse_suffixes(raw) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        raise ConfigError("matching.suffixes must be a list of strings")
    suffixes = []
    for item in raw:
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"Invalid suffix in matching.suffixes: {item!r}")
        suffixes.append(item.strip())
    return tuple(suffixes)


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings, raising ConfigError if anything required is missing."""
    env = os.environ if env is None else env

    missing = [name for name in REQUIRED_ENV if not env.get(name)]
    if missing:
        raise ConfigError(f"Set {', '.join(missing)} in env")

    config = load_yaml_config(env.get("CONFIG_FILE") or CONFIG_FILE)
    stream = _section(config, "stream")
    matching = _section(config, "matching")
    telegram = _section(config, "telegram")

    raw_suffixes = matching.get("suffixes")
    suffixes = DEFAULT_SUFFIXES if raw_suffixes is None else _parse_suffixes(raw_suffixes)

    timeout = telegram.get("timeout_seconds")
    try:
        telegram_timeout = float(10.0 if timeout is None else timeout)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"telegram.timeout_seconds must be a number: {e}") from e

    teams_file = env.get("TEAMS_FILE") or TEAMS_FILE

    return Settings(
        bitquery_key=env["BITQUERY_KEY"],
        tg_token=env["TG_TOKEN"],
        chat_id=env["CHAT_ID"],
        db_path=env.get("DB_PATH") or DB_PATH,
        teams_file=teams_file,
        stream_url=stream.get("url") or WS_URL,
        program_address=stream.get("program_address") or DBC_PROGRAM_ADDRESS,
        method=stream.get("method") or DBC_METHOD,
        suffixes=suffixes,
        telegram_timeout=telegram_timeout,
        teams=load_teams(teams_file),
    )
