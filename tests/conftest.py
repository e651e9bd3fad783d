from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chirpy.application import Services, build_services
from chirpy.config import AppConfig
from chirpy.store import RecordStore

JWT_SECRET = "tests-secret-key-which-is-long-enough-for-hs256"
POLKA_KEY = "f271c81ff7084ee5b99a5091b42d486e"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture()
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        jwt_secret=JWT_SECRET,
        database_path=tmp_path / "chirpy.json",
        polka_key=POLKA_KEY,
    )


@pytest.fixture()
def store(config: AppConfig) -> RecordStore:
    record_store = RecordStore(config.database_path)
    record_store.initialize()
    return record_store


@pytest.fixture()
def services(config: AppConfig, clock: FakeClock) -> Services:
    return build_services(config, clock=clock)
