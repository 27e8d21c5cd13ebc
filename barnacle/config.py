"""Planner configuration, read from ``BARNACLE_*`` environment variables."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_PLANNER_HOME = Path.home() / ".openclaw" / "planner"


class BarnacleSettings(BaseSettings):
    """Environment-driven settings for the planner auditor."""

    projects_dir: Path = _PLANNER_HOME / "projects"
    state_dir: Path = _PLANNER_HOME / "state"
    audit_interval_minutes: int = Field(default=30, gt=0)

    # Evidence check timeouts
    url_timeout_seconds: float = Field(default=5.0, gt=0)
    command_timeout_seconds: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="BARNACLE_", env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> BarnacleSettings:
    settings = BarnacleSettings()
    logger.debug(
        "Planner config: projects_dir=%s, state_dir=%s, interval=%dm",
        settings.projects_dir, settings.state_dir, settings.audit_interval_minutes,
    )
    return settings
