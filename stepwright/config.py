from __future__ import annotations

import logging
import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_CONFIG_FILE


class StepwrightConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    definitions_path: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> StepwrightConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPWRIGHT_CONFIG env
            variable or 'stepwright.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPWRIGHT_CONFIG", DEFAULT_CONFIG_FILE)
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepwrightConfig(**data)
    else:
        config = StepwrightConfig()

    env_db_url = os.getenv("STEPWRIGHT_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config


def configure_logging(level: str | int = "INFO") -> None:
    """Apply ``level`` to the root logger. Called by the CLI, never on import."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
