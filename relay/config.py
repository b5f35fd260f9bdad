"""Application configuration loaded from environment variables."""

from __future__ import annotations

import functools

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Presence relay settings.

    Every field has a default; override via environment variables (or a
    ``.env`` file), e.g. ``PORT=8080`` or ``HISTORY_SIZE=50``.
    """

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: str = "*"
    log_level: str = "INFO"

    # Message history kept for broadcast replay
    history_size: int = 100
    history_replay_size: int = 20

    # Upper bound for usernames, display names and chat text
    max_field_length: int = 100

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@functools.lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance (singleton)."""
    return Settings()
