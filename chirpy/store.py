"""JSON file persistence for the Chirpy collections."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .errors import CorruptStoreError
from .models import Credential, Post, RefreshToken, User

logger = logging.getLogger("chirpy.store")

COLLECTIONS = ("posts", "users", "credentials", "refresh_tokens")


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the record store."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "chirpy.json").resolve(strict=False)


class ReadWriteLock:
    """Many readers or one writer. Waiting writers block new readers.

    The lock is not reentrant: acquiring either side while already holding
    the write side deadlocks.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


_locks: Dict[Path, ReadWriteLock] = {}
_locks_guard = threading.Lock()


def lock_for(path: Path) -> ReadWriteLock:
    """Return the process-wide lock for ``path``, creating it on first use."""

    with _locks_guard:
        lock = _locks.get(path)
        if lock is None:
            lock = ReadWriteLock()
            _locks[path] = lock
        return lock


@dataclass
class CollectionSet:
    """In-memory copy of every collection held by the store."""

    posts: Dict[int, Post] = field(default_factory=dict)
    users: Dict[int, User] = field(default_factory=dict)
    credentials: Dict[int, Credential] = field(default_factory=dict)
    refresh_tokens: Dict[str, RefreshToken] = field(default_factory=dict)
    sequences: Dict[str, int] = field(default_factory=dict)

    def next_id(self, collection: str) -> int:
        """Hand out the next identifier for an integer-keyed collection."""

        value = self.sequences.get(collection, 0) + 1
        self.sequences[collection] = value
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "posts": {str(key): post.to_dict() for key, post in self.posts.items()},
            "users": {str(key): user.to_dict() for key, user in self.users.items()},
            "credentials": {str(key): cred.to_dict() for key, cred in self.credentials.items()},
            "refresh_tokens": {key: token.to_dict() for key, token in self.refresh_tokens.items()},
            "sequences": dict(self.sequences),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CollectionSet":
        posts = {int(key): Post.from_dict(value) for key, value in raw["posts"].items()}
        users = {int(key): User.from_dict(value) for key, value in raw["users"].items()}
        credentials = {
            int(key): Credential.from_dict(value) for key, value in raw["credentials"].items()
        }
        refresh_tokens = {
            str(key): RefreshToken.from_dict(value) for key, value in raw["refresh_tokens"].items()
        }
        stored_sequences = raw.get("sequences") or {}
        # A sequence never trails the highest identifier already in use.
        sequences = {
            "posts": max(int(stored_sequences.get("posts", 0)), max(posts, default=0)),
            "users": max(int(stored_sequences.get("users", 0)), max(users, default=0)),
        }
        return cls(
            posts=posts,
            users=users,
            credentials=credentials,
            refresh_tokens=refresh_tokens,
            sequences=sequences,
        )


class RecordStore:
    """All-or-nothing load and replace of the collection set in one JSON file.

    The store performs no locking of its own. Callers serialise their
    load/mutate/replace sequences through :attr:`lock`, which is shared by
    every store instance opened on the same path in this process.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser().resolve(strict=False)
        self._lock = lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock(self) -> ReadWriteLock:
        return self._lock

    def initialize(self) -> None:
        """Create the backing file with empty collections if it does not exist."""

        if self._path.exists():
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._write_temp(CollectionSet())
        try:
            # link() refuses to clobber, so a concurrent initialise never
            # overwrites a file that another caller already populated.
            os.link(temp_path, self._path)
            logger.info("Created record store at %s", self._path)
        except FileExistsError:
            pass
        finally:
            temp_path.unlink(missing_ok=True)

    def load(self) -> CollectionSet:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as exc:
            logger.error("Record store %s is not valid UTF-8 (byte %s)", self._path, exc.start)
            raise CorruptStoreError() from exc
        except json.JSONDecodeError as exc:
            logger.error(
                "Record store %s is not valid JSON (line %s, column %s)",
                self._path,
                exc.lineno,
                exc.colno,
            )
            raise CorruptStoreError() from exc

        if not isinstance(raw, dict) or any(not isinstance(raw.get(name), dict) for name in COLLECTIONS):
            logger.error("Record store %s is missing one or more collections", self._path)
            raise CorruptStoreError()

        try:
            return CollectionSet.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.error("Record store %s contains a malformed record: %r", self._path, exc)
            raise CorruptStoreError() from exc

    def replace(self, collections: CollectionSet) -> None:
        """Atomically overwrite the backing file with ``collections``."""

        self._path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._write_temp(collections)
        try:
            os.replace(temp_path, self._path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise

    def _write_temp(self, collections: CollectionSet) -> Path:
        payload = json.dumps(collections.to_dict(), indent=2, sort_keys=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            delete=False,
        )
        temp_path = Path(handle.name)
        try:
            with handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d bytes to %s", len(payload), temp_path)
        return temp_path


__all__ = [
    "COLLECTIONS",
    "CollectionSet",
    "ReadWriteLock",
    "RecordStore",
    "lock_for",
    "resolve_database_path",
]
