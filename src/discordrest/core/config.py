"""Configuration loading utilities."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

CONFIG_DIR = Path(os.environ.get("DISCORDREST_CONFIG_DIR", Path.home() / ".config" / "discordrest"))
CONFIG_FILE = CONFIG_DIR / "config.json"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class DiscordCredentials:
    """Holds the API token and whether it belongs to a bot account."""

    token: str = ""
    is_bot: bool = True

    def authorization(self) -> str:
        """Value for the Authorization header."""

        if self.is_bot:
            return f"Bot {self.token}"
        return self.token


@dataclass(slots=True)
class AppConfig:
    """Top-level client configuration."""

    creds: DiscordCredentials = field(default_factory=DiscordCredentials)
    api_base_url: str = "https://discord.com/api/v10"
    user_agent: str = "DiscordBot (https://github.com/discordrest/discordrest, 0.1.0)"
    request_timeout: float = 10.0
    max_rate_limit_retries: int = 1
    default_retry_after: float = 1.0
    log_level: str = "INFO"

    @classmethod
    def load(cls, override: Optional[Dict[str, Any]] = None) -> "AppConfig":
        """Load config from disk/.env, applying overrides."""

        _inject_dotenv()

        data: Dict[str, Any] = {}
        if CONFIG_FILE.exists():
            with CONFIG_FILE.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        if override:
            data.update(override)

        defaults = _config_defaults()

        creds_data = data.get("creds", {})
        env_creds = _credentials_from_environment()
        creds_payload = {**creds_data, **env_creds}
        return cls(
            creds=DiscordCredentials(**creds_payload) if creds_payload else DiscordCredentials(),
            api_base_url=data.get("api_base_url", defaults["api_base_url"]).rstrip("/"),
            user_agent=data.get("user_agent", defaults["user_agent"]),
            request_timeout=float(data.get("request_timeout", defaults["request_timeout"])),
            max_rate_limit_retries=int(data.get("max_rate_limit_retries", defaults["max_rate_limit_retries"])),
            default_retry_after=float(data.get("default_retry_after", defaults["default_retry_after"])),
            log_level=str(data.get("log_level", defaults["log_level"])).upper(),
        )

    def save(self) -> None:
        """Persist configuration to disk."""

        CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        payload = {
            "creds": _filter_empty(_asdict(self.creds)),
            "api_base_url": self.api_base_url,
            "user_agent": self.user_agent,
            "request_timeout": self.request_timeout,
            "max_rate_limit_retries": self.max_rate_limit_retries,
            "default_retry_after": self.default_retry_after,
            "log_level": self.log_level,
        }
        with CONFIG_FILE.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)


def _config_defaults() -> Dict[str, Any]:
    template = AppConfig()
    return _asdict(template)


def _dotenv_path() -> Path:
    return Path(os.environ.get("DISCORDREST_ENV_FILE", Path.cwd() / ".env"))


def _asdict(instance: Any) -> Dict[str, Any]:
    return {field.name: getattr(instance, field.name) for field in fields(instance)}


def _credentials_from_environment() -> Dict[str, Any]:
    env = os.environ
    payload: Dict[str, Any] = {}
    token = env.get("DISCORDREST_TOKEN") or env.get("DISCORD_TOKEN", "")
    if token:
        payload["token"] = token
    is_bot = env.get("DISCORD_IS_BOT")
    if is_bot:
        payload["is_bot"] = is_bot.strip().lower() in _TRUTHY
    return payload


def _filter_empty(mapping: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in mapping.items() if value or value is False}


def _inject_dotenv() -> None:
    dotenv_file = _dotenv_path()
    if not dotenv_file.exists():
        return
    with dotenv_file.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            if "=" not in stripped:
                continue
            key, _, raw_value = stripped.partition("=")
            key = key.strip()
            value = raw_value.strip()
            if (value.startswith("\"") and value.endswith("\"")) or (value.startswith("'") and value.endswith("'")):
                value = value[1:-1]
            os.environ.setdefault(key, value.strip())


def load_from_env() -> DiscordCredentials:
    """Create credentials from environment variables or .env file."""

    _inject_dotenv()
    payload = _credentials_from_environment()
    return DiscordCredentials(**payload)
