import os
import tomllib
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger
from pydantic import ValidationError

from imbue.predicate_waiter.data_types import WaiterConfig
from imbue.predicate_waiter.errors import ConfigParseError

# Path to a TOML file holding a [predicate_waiter] table
CONFIG_PATH_ENV_VAR: Final[str] = "PREDICATE_WAITER_CONFIG"

CONFIG_TABLE_NAME: Final[str] = "predicate_waiter"

# Maps environment variables to the WaiterConfig field they override
_ENV_OVERRIDES: Final[dict[str, str]] = {
    "PREDICATE_WAITER_DEFAULT_TIMEOUT": "default_timeout",
    "PREDICATE_WAITER_DEFAULT_POLL_INTERVAL": "default_poll_interval",
}


def load_waiter_config(config_path: Path | None = None) -> WaiterConfig:
    """Load and merge waiter configuration from all sources.

    Precedence (lowest to highest):
    1. Built-in defaults
    2. TOML file (config_path, or the path in PREDICATE_WAITER_CONFIG)
    3. Environment variables (PREDICATE_WAITER_DEFAULT_TIMEOUT, PREDICATE_WAITER_DEFAULT_POLL_INTERVAL)
    """
    config_dict: dict[str, Any] = {}

    if config_path is None:
        env_config_path = os.environ.get(CONFIG_PATH_ENV_VAR)
        if env_config_path:
            config_path = Path(env_config_path).expanduser()

    if config_path is not None:
        config_dict.update(_load_config_table(config_path))

    for env_var, field_name in _ENV_OVERRIDES.items():
        raw_value = os.environ.get(env_var)
        if raw_value is None:
            continue
        try:
            config_dict[field_name] = float(raw_value)
        except ValueError as e:
            raise ConfigParseError(f"{env_var} must be a number of seconds, got {raw_value!r}") from e

    try:
        config = WaiterConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid predicate waiter config: {e}") from e

    logger.debug(
        "Loaded waiter config: timeout={}s poll_interval={}s",
        config.default_timeout,
        config.default_poll_interval,
    )
    return config


def _load_config_table(path: Path) -> dict[str, Any]:
    """Read the [predicate_waiter] table from a TOML file."""
    if not path.exists():
        raise ConfigParseError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e

    table = raw.get(CONFIG_TABLE_NAME, {})
    if not isinstance(table, dict):
        raise ConfigParseError(f"[{CONFIG_TABLE_NAME}] in {path} must be a table")
    return table
