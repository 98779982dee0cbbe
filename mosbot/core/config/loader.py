"""Resolve and read the YAML config file, then let pydantic-settings layer env on top."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from mosbot.core.config.schema import Config

CONFIG_ENV_VAR = "MOSBOT_CONFIG"
DEFAULT_CONFIG_FILE = "config.yaml"


def load_config(config_path: str | Path | None = None) -> Config:
    """Build the root Config.

    The YAML file is the first of: ``config_path``, ``$MOSBOT_CONFIG``,
    ``./config.yaml``. An explicitly named file (argument or env var) must
    exist; the implicit ``./config.yaml`` is optional. ``MOSBOT_*`` env vars
    still override whatever the file sets.
    """
    path = find_config_file(config_path)
    if path is None:
        logger.debug("No config file found, using env and defaults")
        return Config()
    logger.debug(f"Loading config from {path}")
    return Config(**read_yaml_mapping(path))


def find_config_file(config_path: str | Path | None = None) -> Path | None:
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit)
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {path}")
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def read_yaml_mapping(path: Path) -> dict[str, Any]:
    """Top-level YAML must be a mapping; an empty file counts as ``{}``."""
    with path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    return data
