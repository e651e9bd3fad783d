"""Core package for the Chirpy post service."""

from __future__ import annotations

from typing import Any

from .store import RecordStore, resolve_database_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function that loads configuration and builds the HTTP application."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "RecordStore",
    "resolve_database_path",
    "create_app",
    "create_application",
]
