"""
Configuration loading and validation.

Loads client configuration from a YAML file. The password is resolved from an
environment variable and is never stored in the config file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    url: str = "http://localhost:8000"
    verify_tls: bool = True
    request_timeout_seconds: int = 30


class AccountConfig(BaseModel):
    email: str
    password_env: str = "TEAMBOARD_PASSWORD"

    @property
    def password(self) -> str | None:
        return os.environ.get(self.password_env)


class LoggingConfig(BaseModel):
    level: str = "info"
    format: Literal["json", "text"] = "json"


class FeedConfig(BaseModel):
    limit: int = Field(default=50, gt=0)


class TeamboardConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    account: AccountConfig | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)


def load_config(path: str | Path) -> TeamboardConfig:
    """Load and validate client configuration from a YAML file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return TeamboardConfig.model_validate(raw)
