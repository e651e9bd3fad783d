"""Typed CRUD repositories built on :class:`~chirpy.store.RecordStore`.

Every mutating method holds the store's write lock for the full
load/mutate/replace span. Reads hold the shared side only while loading.
An exception raised while mutating aborts before anything is persisted.
"""
from __future__ import annotations

import enum
import secrets
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from .errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Credential, Post, RefreshToken, User
from .store import CollectionSet, RecordStore

T = TypeVar("T")

Clock = Callable[[], datetime]


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class SortOrder(enum.Enum):
    ASCENDING = "asc"
    DESCENDING = "desc"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        if value is None or not value.strip():
            return cls.ASCENDING
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ValidationError("Sort order must be 'asc' or 'desc'") from exc


class _Repository:
    def __init__(self, store: RecordStore, *, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock: Clock = clock or _current_timestamp

    def _read(self, reader: Callable[[CollectionSet], T]) -> T:
        with self._store.lock.read():
            self._store.initialize()
            data = self._store.load()
        return reader(data)

    def _mutate(self, mutator: Callable[[CollectionSet], T]) -> T:
        with self._store.lock.write():
            self._store.initialize()
            data = self._store.load()
            result = mutator(data)
            self._store.replace(data)
        return result

    def _now(self) -> datetime:
        return self._clock()


def _require_text(value: Optional[str], field_name: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value


def _require_user(data: CollectionSet, user_id: int) -> User:
    user = data.users.get(user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


def _email_taken(data: CollectionSet, email: str, *, exclude: Optional[int] = None) -> bool:
    return any(user.email == email and user.id != exclude for user in data.users.values())


def _ordered(items: List[T], key: Callable[[T], object], order: SortOrder) -> List[T]:
    return sorted(items, key=key, reverse=order is SortOrder.DESCENDING)


class PostRepository(_Repository):
    def create(self, user_id: int, body: str) -> Post:
        _require_text(body, "Body")

        def mutate(data: CollectionSet) -> Post:
            _require_user(data, user_id)
            now = self._now()
            post = Post(
                id=data.next_id("posts"),
                body=body,
                user_id=user_id,
                created_at=now,
                updated_at=now,
            )
            data.posts[post.id] = post
            return post

        return self._mutate(mutate)

    def get(self, post_id: int) -> Post:
        def read(data: CollectionSet) -> Post:
            post = data.posts.get(post_id)
            if post is None:
                raise NotFoundError("post", post_id)
            return post

        return self._read(read)

    def list(
        self,
        user_id: Optional[int] = None,
        order: SortOrder = SortOrder.ASCENDING,
    ) -> List[Post]:
        def read(data: CollectionSet) -> List[Post]:
            posts = [post for post in data.posts.values() if user_id is None or post.user_id == user_id]
            return _ordered(posts, lambda post: post.id, order)

        return self._read(read)

    def update(self, post_id: int, body: str) -> Post:
        _require_text(body, "Body")

        def mutate(data: CollectionSet) -> Post:
            post = data.posts.get(post_id)
            if post is None:
                raise NotFoundError("post", post_id)
            updated = replace(post, body=body, updated_at=self._now())
            data.posts[post_id] = updated
            return updated

        return self._mutate(mutate)

    def delete(self, post_id: int, owner_id: Optional[int] = None) -> None:
        """Delete a post; with ``owner_id`` only its author may do so."""

        def mutate(data: CollectionSet) -> None:
            post = data.posts.get(post_id)
            if post is None:
                raise NotFoundError("post", post_id)
            if owner_id is not None and post.user_id != owner_id:
                raise ForbiddenError("You can only delete your own posts")
            del data.posts[post_id]

        self._mutate(mutate)


class UserRepository(_Repository):
    def create(self, email: str, password_hash: str) -> User:
        """Create a user together with its credential in one critical section."""

        normalized = normalize_email(_require_text(email, "Email"))
        _require_text(password_hash, "Password hash")

        def mutate(data: CollectionSet) -> User:
            if _email_taken(data, normalized):
                raise ConflictError("A user with that email already exists")
            now = self._now()
            user = User(id=data.next_id("users"), email=normalized, created_at=now, updated_at=now)
            data.users[user.id] = user
            data.credentials[user.id] = Credential(user_id=user.id, password_hash=password_hash)
            return user

        return self._mutate(mutate)

    def get(self, user_id: int) -> User:
        return self._read(lambda data: _require_user(data, user_id))

    def get_by_email(self, email: str) -> User:
        normalized = normalize_email(email)

        def read(data: CollectionSet) -> User:
            for user in data.users.values():
                if user.email == normalized:
                    return user
            raise NotFoundError("user")

        return self._read(read)

    def list(self, order: SortOrder = SortOrder.ASCENDING) -> List[User]:
        return self._read(lambda data: _ordered(list(data.users.values()), lambda user: user.id, order))

    def update(
        self,
        user_id: int,
        *,
        email: Optional[str] = None,
        password_hash: Optional[str] = None,
        is_chirpy_red: Optional[bool] = None,
    ) -> User:
        normalized = normalize_email(_require_text(email, "Email")) if email is not None else None
        if password_hash is not None:
            _require_text(password_hash, "Password hash")

        def mutate(data: CollectionSet) -> User:
            user = _require_user(data, user_id)
            changes = {}
            if normalized is not None and normalized != user.email:
                if _email_taken(data, normalized, exclude=user_id):
                    raise ConflictError("A user with that email already exists")
                changes["email"] = normalized
            if is_chirpy_red is not None:
                changes["is_chirpy_red"] = bool(is_chirpy_red)
            if password_hash is not None:
                data.credentials[user_id] = Credential(user_id=user_id, password_hash=password_hash)
            updated = replace(user, updated_at=self._now(), **changes)
            data.users[user_id] = updated
            return updated

        return self._mutate(mutate)

    def upgrade(self, user_id: int) -> User:
        """Grant the Chirpy Red promotion flag."""

        return self.update(user_id, is_chirpy_red=True)

    def delete(self, user_id: int) -> None:
        """Remove a user with its credential and posts; its refresh tokens are revoked."""

        def mutate(data: CollectionSet) -> None:
            _require_user(data, user_id)
            now = self._now()
            del data.users[user_id]
            data.credentials.pop(user_id, None)
            for post_id in [post.id for post in data.posts.values() if post.user_id == user_id]:
                del data.posts[post_id]
            for key, token in data.refresh_tokens.items():
                if token.user_id == user_id and token.revoked_at is None:
                    data.refresh_tokens[key] = replace(token, revoked_at=now)

        self._mutate(mutate)


class CredentialRepository(_Repository):
    """Password hashes keyed by user id. Hashes are opaque to this layer."""

    def get(self, user_id: int) -> Credential:
        def read(data: CollectionSet) -> Credential:
            credential = data.credentials.get(user_id)
            if credential is None:
                raise NotFoundError("credential", user_id)
            return credential

        return self._read(read)

    def create(self, user_id: int, password_hash: str) -> Credential:
        _require_text(password_hash, "Password hash")

        def mutate(data: CollectionSet) -> Credential:
            _require_user(data, user_id)
            if user_id in data.credentials:
                raise ConflictError("Credential already exists for this user")
            credential = Credential(user_id=user_id, password_hash=password_hash)
            data.credentials[user_id] = credential
            return credential

        return self._mutate(mutate)

    def update(self, user_id: int, password_hash: str) -> Credential:
        _require_text(password_hash, "Password hash")

        def mutate(data: CollectionSet) -> Credential:
            if user_id not in data.credentials:
                raise NotFoundError("credential", user_id)
            credential = Credential(user_id=user_id, password_hash=password_hash)
            data.credentials[user_id] = credential
            return credential

        return self._mutate(mutate)

    def delete(self, user_id: int) -> None:
        def mutate(data: CollectionSet) -> None:
            if data.credentials.pop(user_id, None) is None:
                raise NotFoundError("credential", user_id)

        self._mutate(mutate)


def _generate_refresh_token() -> str:
    return secrets.token_hex(32)


class RefreshTokenRepository(_Repository):
    """Refresh token records. Tokens are revoked, never deleted."""

    def create(self, user_id: int, expires_at: datetime) -> RefreshToken:
        def mutate(data: CollectionSet) -> RefreshToken:
            _require_user(data, user_id)
            token = _generate_refresh_token()
            while token in data.refresh_tokens:
                token = _generate_refresh_token()
            record = RefreshToken(
                token=token,
                user_id=user_id,
                created_at=self._now(),
                expires_at=expires_at,
            )
            data.refresh_tokens[token] = record
            return record

        return self._mutate(mutate)

    def get(self, token: str) -> RefreshToken:
        def read(data: CollectionSet) -> RefreshToken:
            record = data.refresh_tokens.get(token)
            if record is None:
                raise NotFoundError("refresh token")
            return record

        return self._read(read)

    def list(
        self,
        user_id: Optional[int] = None,
        order: SortOrder = SortOrder.ASCENDING,
    ) -> List[RefreshToken]:
        def read(data: CollectionSet) -> List[RefreshToken]:
            tokens = [
                token for token in data.refresh_tokens.values() if user_id is None or token.user_id == user_id
            ]
            return _ordered(tokens, lambda token: token.token, order)

        return self._read(read)

    def revoke(self, token: str) -> RefreshToken:
        """Mark ``token`` revoked. An earlier revocation timestamp is kept."""

        def mutate(data: CollectionSet) -> RefreshToken:
            record = data.refresh_tokens.get(token)
            if record is None:
                raise NotFoundError("refresh token")
            if record.revoked_at is None:
                record = replace(record, revoked_at=self._now())
                data.refresh_tokens[token] = record
            return record

        return self._mutate(mutate)


__all__ = [
    "CredentialRepository",
    "PostRepository",
    "RefreshTokenRepository",
    "SortOrder",
    "UserRepository",
    "normalize_email",
]
