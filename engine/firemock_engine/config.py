"""
Configuration for the firemock engine.

Uses pydantic-settings for environment variable loading. Every setting has
a default suited to unit tests, so nothing needs to be configured to start.

Environment variables:
    FIREMOCK_DEFAULT_APP_NAME  Name given to apps created without one
    FIREMOCK_RULES_FILE        JSON/YAML rules used when an app gets no rules
    FIREMOCK_DATA_FILE         JSON/YAML seed data used when an app gets no data
    FIREMOCK_LOG_LEVEL         Level applied by configure_logging()

Invariants:
    - Library code never installs logging handlers on its own
    - Explicit constructor arguments always win over settings
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from .rules.loader import load_document, load_rules
from .rules.ruleset import Ruleset

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Engine configuration loaded from environment."""

    default_app_name: str = Field(default="[DEFAULT]", description="Name of the default app")
    rules_file: Optional[Path] = Field(default=None, description="Default rules document")
    data_file: Optional[Path] = Field(default=None, description="Default seed data document")
    log_level: str = Field(default="WARNING", description="Level for configure_logging()")

    model_config = {"env_prefix": "FIREMOCK_"}

    def default_rules(self) -> Optional[Ruleset]:
        """Rules from ``rules_file``, or None to use fully open rules."""
        if self.rules_file is None:
            return None
        logger.info(f"Loading default rules from {self.rules_file}")
        return load_rules(self.rules_file)

    def default_data(self) -> Any:
        """Seed data from ``data_file``, or None for an empty tree."""
        if self.data_file is None:
            return None
        logger.info(f"Loading seed data from {self.data_file}")
        return load_document(self.data_file)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings (read once from the environment)."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply ``log_level`` to the engine loggers and attach a stream handler."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.getLogger(__name__.rsplit(".", 1)[0]).setLevel(level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
