"""Configuration loading.

Sources, highest precedence first:
1. CYNICALCLAW_* environment variables
2. ``.env`` files (read by pydantic-settings)
3. ``~/.cynicalclaw/config.json`` (camelCase or snake_case keys)
4. field defaults
"""

import json
from pathlib import Path
from typing import Any, Sequence

from loguru import logger
from pydantic.alias_generators import to_snake

from cynicalclaw.config.schema import Config

# Later files win; missing files are skipped.
DEFAULT_ENV_FILES: tuple[Path, ...] = (
    Path.home() / ".cynicalclaw" / ".env",
    Path(".env"),
)


def get_config_path() -> Path:
    """Default JSON config location."""
    return Path.home() / ".cynicalclaw" / "config.json"


def _snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {
        to_snake(key): _snake_keys(value) if isinstance(value, dict) else value
        for key, value in data.items()
    }


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def read_config_file(path: Path) -> dict[str, Any]:
    """Config file values with snake_case keys; empty when missing or unreadable."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: expected a JSON object")
        return {}
    return _snake_keys(data)


def load_config(
    config_path: Path | None = None,
    env_files: Sequence[Path | str] | Path | str | None = DEFAULT_ENV_FILES,
) -> Config:
    """Build the Config, layering the JSON file beneath environment settings."""
    file_values = read_config_file(config_path or get_config_path())

    # Only values the environment actually set may shadow the file
    from_env = Config(_env_file=env_files).model_dump(exclude_unset=True)
    if file_values:
        logger.debug(f"Config file supplied sections: {', '.join(sorted(file_values))}")

    return Config(_env_file=env_files, **_merge(file_values, from_env))
