"""Configuration system for chat-loyalty.

Settings come from an optional YAML file (with ``${VAR}`` / ``${VAR:-default}``
expansion) overlaid with the bot's environment variables. The three bot
credentials have no defaults: the bot refuses to start without them.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, ValidationError

from .outgoing import DEFAULT_INTERVAL, MIN_PENDING

# Environment variable → bot config field
ENV_VARS: dict[str, str] = {
    "USER_OAUTH_TOKEN": "oauth_token",
    "USER_NAME": "username",
    "USER_CHANNEL": "channel",
}


class ConfigurationError(Exception):
    """Required settings are missing or invalid."""


class BotConfig(BaseModel):
    username: str = ""
    oauth_token: str = ""
    channel: str = ""


class TwitchConfig(BaseModel):
    login_timeout_seconds: float = Field(default=10.0, gt=0)


class KrytenTransportConfig(BaseModel):
    nats_servers: list[str] = Field(default_factory=lambda: ["nats://localhost:4222"])
    domain: str = "cytu.be"


class DatabaseConfig(BaseModel):
    backend: Literal["sqlite", "memory"] = "sqlite"
    path: str = "loyalty.db"


class OutgoingConfig(BaseModel):
    interval_seconds: float = Field(default=DEFAULT_INTERVAL, gt=0)
    max_pending: int = Field(default=MIN_PENDING, ge=MIN_PENDING)


class LoyaltyConfig(BaseModel):
    """Full bot config."""

    transport: Literal["twitch", "kryten"] = "twitch"
    bot: BotConfig = Field(default_factory=BotConfig)
    twitch: TwitchConfig = Field(default_factory=TwitchConfig)
    kryten: KrytenTransportConfig = Field(default_factory=KrytenTransportConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    outgoing: OutgoingConfig = Field(default_factory=OutgoingConfig)
    ignored_users: list[str] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════
#  Config Loading
# ═══════════════════════════════════════════════════════════════

def _expand_env_vars(obj: Any, environ: Mapping[str, str]) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, str):
        return re.sub(
            r"\$\{([^}:]+)(?::-(.*?))?\}",
            lambda m: environ.get(m.group(1), m.group(2) or ""),
            obj,
        )
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v, environ) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v, environ) for v in obj]
    return obj


def _read_yaml(config_path: str) -> dict:
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError("Config file must contain a YAML mapping at the top level.")
    return raw


def load_config(
    config_path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LoyaltyConfig:
    """Build LoyaltyConfig from an optional YAML file plus the environment.

    Environment variables win over the file for the bot credentials. Raises
    ConfigurationError naming the first missing credential.
    """
    env = os.environ if environ is None else environ
    raw: dict = _expand_env_vars(_read_yaml(config_path), env) if config_path else {}

    bot = dict(raw.get("bot") or {})
    for var, field_name in ENV_VARS.items():
        if env.get(var):
            bot[field_name] = env[var]
    raw["bot"] = bot

    try:
        config = LoyaltyConfig(**raw)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    for var, field_name in ENV_VARS.items():
        if not getattr(config.bot, field_name):
            raise ConfigurationError(f"error, {var} variable empty")
    return config
