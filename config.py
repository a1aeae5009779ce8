# config.py

"""Application configuration utilities.

Values are primarily loaded from ``config.json`` and may be overridden by
environment variables. The :func:`get_settings` helper merges the two sources
and caches the result.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings merged from JSON and environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite+aiosqlite:///./gharse.db"
    redis_url: str
    restaurant_name: str = "Bantu's Kitchen"
    tax_rate: float = 0.05
    delivery_fee: float = 49
    minimum_order: float = 49
    preparation_minutes: int = 40
    preparation_buffer_minutes: int = 10
    grace_initial_secs: int = 180
    grace_extension_secs: int = 120
    grace_max_secs: int = 300
    max_modifications: int = 10
    finalize_buffer_secs: int = 5
    set_grace_on_create: bool = True
    notification_channels: list[str] = ["email", "sms"]
    sweep_interval_secs: int = 30
    outbox_max_attempts: int = 5
    log_level: str = "INFO"


# Cached singleton to avoid repeated file reads
@lru_cache
def get_settings() -> Settings:
    """Return merged settings with environment variable precedence.

    The configuration is read from ``config.json`` located alongside this file
    and fed into :class:`Settings`. Environment variables override any values
    from the JSON file. The result is cached to prevent repeated disk reads.
    """

    config_path = Path(__file__).with_name("config.json")
    data = json.loads(config_path.read_text())
    env_override = {
        k.lower(): v
        for k, v in os.environ.items()
        if k.lower() in Settings.model_fields
    }
    merged = {**data, **env_override}
    # Environment variables override values from the JSON file.
    return Settings(**merged)
