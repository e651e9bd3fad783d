"""Wiring of the store, repositories and session manager."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .config import AppConfig, load_config
from .passwords import PasswordHasher
from .repositories import CredentialRepository, PostRepository, RefreshTokenRepository, UserRepository
from .sessions import SessionManager
from .store import RecordStore


@dataclass(frozen=True)
class Services:
    """Everything a request handler needs, built once per process."""

    config: AppConfig
    store: RecordStore
    users: UserRepository
    posts: PostRepository
    credentials: CredentialRepository
    refresh_tokens: RefreshTokenRepository
    hasher: PasswordHasher
    sessions: SessionManager


def build_services(
    config: AppConfig,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> Services:
    store = RecordStore(config.database_path)
    store.initialize()

    users = UserRepository(store, clock=clock)
    posts = PostRepository(store, clock=clock)
    credentials = CredentialRepository(store, clock=clock)
    refresh_tokens = RefreshTokenRepository(store, clock=clock)
    hasher = PasswordHasher(min_entropy=config.min_password_entropy)
    sessions = SessionManager(
        config,
        users=users,
        credentials=credentials,
        refresh_tokens=refresh_tokens,
        hasher=hasher,
        clock=clock,
    )
    return Services(
        config=config,
        store=store,
        users=users,
        posts=posts,
        credentials=credentials,
        refresh_tokens=refresh_tokens,
        hasher=hasher,
        sessions=sessions,
    )


def create_application(*, config_path: Optional[Path] = None):
    """Load configuration from the environment and build the ASGI app."""

    from .api import create_app

    config = load_config(config_path)
    return create_app(build_services(config))


__all__ = ["Services", "build_services", "create_application"]
