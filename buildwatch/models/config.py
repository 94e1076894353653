"""Configuration models for the build watcher."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = "buildwatch.json"


def _resolve_env(value: Optional[str]) -> Optional[str]:
    if isinstance(value, str) and value.startswith("env:"):
        env_var = value[4:]
        resolved = os.environ.get(env_var)
        if resolved is None:
            raise ValueError(f"Environment variable '{env_var}' not set")
        return resolved
    return value


class NotificationConfig(BaseModel):
    webhook_url: Optional[str] = None
    global_env_role_id: Optional[str] = None
    strings_role_id: Optional[str] = None
    experiments_role_id: Optional[str] = None
    css_role_id: Optional[str] = None

    # Discord caps a single message at 10 embeds and a field value at 1024 chars
    embeds_per_message: int = Field(default=10, ge=1, le=10)
    max_field_length: int = Field(default=1024, ge=64, le=1024)

    @field_validator(
        "webhook_url",
        "global_env_role_id",
        "strings_role_id",
        "experiments_role_id",
        "css_role_id",
        mode="before",
    )
    @classmethod
    def resolve_env_reference(cls, v: Optional[str]) -> Optional[str]:
        return _resolve_env(v)


class WatcherConfig(BaseModel):
    # Endpoints
    builds_api_url: str = "https://builds.discord.sale/api/builds"
    assets_url: str = "https://canary.discord.com/assets"
    release_channel: str = "Canary"

    # Polling
    poll_interval_seconds: float = Field(default=5.0, gt=0)
    request_timeout_ms: int = 30000
    sandbox_timeout_ms: int = 15000
    user_agent: Optional[str] = None

    # String table extraction
    strings_script_index: int = Field(default=3, ge=0)
    strings_marker_key: str = "INTERACTION_REQUIRED_TITLE"
    strings_module_skip: int = Field(default=1000, ge=0)

    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @field_validator("builds_api_url", "assets_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def load(cls, path: str | Path) -> "WatcherConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file.

        Values are written as held. env: references resolved while loading
        are not restored.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
