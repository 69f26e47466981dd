"""Configuration management for the adoption service."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

_DURATION = re.compile(r"^\s*(?P<amount>\d+)\s*(?P<unit>[smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}

DEFAULT_TOKEN_TTL = timedelta(hours=1)


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the HTTP layer and the CLI."""

    database_path: Path
    token_secret: str
    token_ttl: timedelta = DEFAULT_TOKEN_TTL
    secure_cookies: bool = True
    store_timeout: Optional[float] = None


def parse_duration(value: Any) -> timedelta:
    """Parse ``3600``, ``30m``, ``1h`` or ``7d`` style durations."""

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        match = _DURATION.match(str(value).lower())
        if not match:
            raise ValueError(f"Invalid duration '{value}'")
        seconds = int(match.group("amount")) * _UNIT_SECONDS[match.group("unit")]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive, got '{value}'")
    return timedelta(seconds=seconds)


def _env_flag(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value '{value}'")


def _load_file(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def load_settings(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from an optional YAML file and the environment.

    Environment variables win over values read from the file.
    """

    env = os.environ if env is None else env
    if config_path is None and env.get("ADOPTME_CONFIG"):
        config_path = Path(env["ADOPTME_CONFIG"]).expanduser()

    raw: Dict[str, Any] = _load_file(config_path) if config_path is not None else {}

    secret = env.get("ADOPTME_JWT_SECRET") or raw.get("jwt_secret")
    if not secret:
        raise RuntimeError("ADOPTME_JWT_SECRET must be set to sign session tokens")

    database_url = env.get("ADOPTME_DATABASE_URL") or raw.get("database_url")
    ttl_value = env.get("ADOPTME_JWT_EXPIRES_IN") or raw.get("jwt_expires_in")
    secure_value = env.get("ADOPTME_SECURE_COOKIES", raw.get("secure_cookies"))
    timeout_value = env.get("ADOPTME_STORE_TIMEOUT") or raw.get("store_timeout")

    store_timeout: Optional[float] = None
    if timeout_value is not None and timeout_value != "":
        store_timeout = float(timeout_value)
        if store_timeout <= 0:
            raise ValueError("ADOPTME_STORE_TIMEOUT must be positive")

    return Settings(
        database_path=resolve_database_path(str(database_url) if database_url else None),
        token_secret=str(secret),
        token_ttl=parse_duration(ttl_value) if ttl_value is not None else DEFAULT_TOKEN_TTL,
        secure_cookies=_env_flag(secure_value, True),
        store_timeout=store_timeout,
    )


__all__ = ["DEFAULT_TOKEN_TTL", "Settings", "load_settings", "parse_duration"]
