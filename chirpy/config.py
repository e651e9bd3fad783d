"""Process-wide configuration for the Chirpy service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .passwords import DEFAULT_MIN_ENTROPY
from .store import resolve_database_path

DEFAULT_ISSUER = "chirpy"
DEFAULT_ACCESS_TOKEN_TTL = timedelta(hours=1)
DEFAULT_REFRESH_TOKEN_TTL = timedelta(days=60)


@dataclass(frozen=True)
class AppConfig:
    """Settings loaded once at startup and shared by reference afterwards."""

    jwt_secret: str
    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    polka_key: Optional[str] = None
    platform: str = "prod"
    issuer: str = DEFAULT_ISSUER
    access_token_ttl: timedelta = DEFAULT_ACCESS_TOKEN_TTL
    refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL
    min_password_entropy: float = DEFAULT_MIN_ENTROPY

    def __post_init__(self) -> None:
        if not self.jwt_secret:
            raise ValueError("A JWT signing secret must be configured (CHIRPY_JWT_SECRET)")
        if self.access_token_ttl <= timedelta(0) or self.refresh_token_ttl <= timedelta(0):
            raise ValueError("Token lifetimes must be positive")

    @property
    def is_dev(self) -> bool:
        return self.platform.strip().lower() == "dev"

    def __repr__(self) -> str:
        return (
            f"AppConfig(database_path={str(self.database_path)!r}, platform={self.platform!r}, "
            f"issuer={self.issuer!r}, jwt_secret='***', polka_key={'***' if self.polka_key else None})"
        )

    @staticmethod
    def from_dict(data: Mapping[str, Any], base_path: Path | None = None) -> "AppConfig":
        """Create an :class:`AppConfig` from raw dictionary data."""

        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        polka_key = data.get("polka_key")
        return AppConfig(
            jwt_secret=str(data.get("jwt_secret") or ""),
            database_path=database_path,
            polka_key=str(polka_key) if polka_key else None,
            platform=str(data.get("platform", "prod")),
            issuer=str(data.get("issuer", DEFAULT_ISSUER)),
            access_token_ttl=timedelta(
                seconds=int(data.get("access_token_ttl_seconds", DEFAULT_ACCESS_TOKEN_TTL.total_seconds()))
            ),
            refresh_token_ttl=timedelta(
                seconds=int(data.get("refresh_token_ttl_seconds", DEFAULT_REFRESH_TOKEN_TTL.total_seconds()))
            ),
            min_password_entropy=float(data.get("min_password_entropy", DEFAULT_MIN_ENTROPY)),
        )


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


_ENV_KEYS = {
    "CHIRPY_DB_PATH": "database_path",
    "CHIRPY_JWT_SECRET": "jwt_secret",
    "CHIRPY_POLKA_KEY": "polka_key",
    "CHIRPY_PLATFORM": "platform",
    "CHIRPY_MIN_PASSWORD_ENTROPY": "min_password_entropy",
}


def load_config(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    """Build the configuration from an optional YAML file and the environment.

    Environment variables take precedence over values from the file.
    """

    env = os.environ if environ is None else environ
    if config_path is None and env.get("CHIRPY_CONFIG"):
        config_path = Path(env["CHIRPY_CONFIG"])

    data: Dict[str, Any] = {}
    base_path: Path | None = None
    if config_path is not None:
        config_path = config_path.expanduser().resolve(strict=False)
        data.update(_read_config_file(config_path))
        base_path = config_path.parent

    for env_key, field_name in _ENV_KEYS.items():
        value = env.get(env_key)
        if not value:
            continue
        if field_name == "database_path":
            value = str(resolve_database_path(value))
        data[field_name] = value

    return AppConfig.from_dict(data, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
