"""Runtime configuration and logging setup.

Values come from the environment (prefix ``PRIVACY_POOL_``) or a ``.env``
file in the working directory, e.g. ``PRIVACY_POOL_TREE_DEPTH=16``.
"""

import logging
import sys
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    """Settings shared by the pool factory, storage and HTTP service."""

    model_config = SettingsConfigDict(env_prefix="PRIVACY_POOL_", env_file=".env", extra="ignore")

    tree_depth: int = Field(default=20, ge=1, le=32)
    commitment_tree_seed: str = "empty"
    subset_tree_seed: str = ""
    database_url: str = "sqlite:///privacy_pool.db"
    log_level: str = "INFO"
    verification_key_path: Optional[str] = None
    max_power: int = Field(default=77, ge=0, le=77)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings, read once."""
    return Settings()


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    get_settings.cache_clear()


def configure_logging(level: Optional[str] = None) -> None:
    """
    Send ``privacy_pool`` logs to stderr.

    Args:
        level: Level name, defaults to the configured ``log_level``
    """
    level = (level or get_settings().log_level).upper()
    root = logging.getLogger("privacy_pool")
    root.setLevel(level)
    if not any(getattr(handler, "_privacy_pool", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._privacy_pool = True
        root.addHandler(handler)
