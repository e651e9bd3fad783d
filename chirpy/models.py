"""Domain records persisted in the Chirpy record store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {value!r} has no UTC offset")
    return parsed


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return parse_datetime(value)


@dataclass(frozen=True)
class User:
    """A registered account. The password hash lives in :class:`Credential`."""

    id: int
    email: str
    created_at: datetime
    updated_at: datetime
    is_chirpy_red: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "created_at": serialize_datetime(self.created_at),
            "updated_at": serialize_datetime(self.updated_at),
            "is_chirpy_red": self.is_chirpy_red,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=int(data["id"]),
            email=str(data["email"]),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
            is_chirpy_red=bool(data.get("is_chirpy_red", False)),
        )


@dataclass(frozen=True)
class Credential:
    user_id: int
    password_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "password_hash": self.password_hash}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        return cls(user_id=int(data["user_id"]), password_hash=str(data["password_hash"]))

    def __repr__(self) -> str:
        return f"Credential(user_id={self.user_id!r}, password_hash='***')"


@dataclass(frozen=True)
class Post:
    """A short text post owned by a user."""

    id: int
    body: str
    user_id: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "body": self.body,
            "user_id": self.user_id,
            "created_at": serialize_datetime(self.created_at),
            "updated_at": serialize_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Post":
        return cls(
            id=int(data["id"]),
            body=str(data["body"]),
            user_id=int(data["user_id"]),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
        )


@dataclass(frozen=True)
class RefreshToken:
    """Server-side record of a long-lived refresh token."""

    token: str
    user_id: int
    created_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and now <= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "created_at": serialize_datetime(self.created_at),
            "expires_at": serialize_datetime(self.expires_at),
            "revoked_at": serialize_datetime(self.revoked_at) if self.revoked_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshToken":
        return cls(
            token=str(data["token"]),
            user_id=int(data["user_id"]),
            created_at=parse_datetime(data["created_at"]),
            expires_at=parse_datetime(data["expires_at"]),
            revoked_at=_optional_datetime(data.get("revoked_at")),
        )


__all__ = [
    "Credential",
    "Post",
    "RefreshToken",
    "User",
    "parse_datetime",
    "serialize_datetime",
]
