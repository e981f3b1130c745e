"""
BTForge Configuration

Settings are read from environment variables prefixed with BTFORGE_ and an
optional .env file in the working directory.

Key settings:
- BTFORGE_FUNCTION_PREFIX: Module prefix prepended to node functions in
  generated Lua ("ai.actions" turns func "attack" into require "ai.actions.attack")
- BTFORGE_CONNECTION_STYLE: "curved" or "polyline" (renderer hint only)
- BTFORGE_HISTORY_CAPACITY: Undo snapshots kept per session (default 50)
- BTFORGE_HISTORY_DEBOUNCE_SECONDS: Quiet period before an attribute edit
  becomes an undo step (default 1.0)
- BTFORGE_DATABASE_PATH: SQLite file holding named document slots
- BTFORGE_INDENT: Indentation unit for generated Lua
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = Path.home() / ".btforge" / "slots.db"


class EditorSettings(BaseSettings):
    """Editor configuration."""

    function_prefix: str = ""
    connection_style: Literal["curved", "polyline"] = "curved"
    history_capacity: int = Field(50, ge=1, le=1000)
    history_debounce_seconds: float = Field(1.0, ge=0.0)
    database_path: Path = DEFAULT_DATABASE_PATH
    indent: str = "    "

    model_config = SettingsConfigDict(
        env_prefix="BTFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("function_prefix")
    @classmethod
    def strip_prefix(cls, value: str) -> str:
        return value.strip()

    @field_validator("database_path")
    @classmethod
    def expand_path(cls, value: Path) -> Path:
        return value.expanduser()


@lru_cache(maxsize=1)
def get_settings() -> EditorSettings:
    """Load and cache editor settings."""
    settings = EditorSettings()
    logger.debug(f"Loaded settings (prefix='{settings.function_prefix}')")
    return settings


def reload_settings() -> EditorSettings:
    """Clear cached settings (useful for tests) and reload."""
    get_settings.cache_clear()
    return get_settings()


__all__ = ["EditorSettings", "get_settings", "reload_settings", "DEFAULT_DATABASE_PATH"]
