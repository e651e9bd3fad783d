"""Error types raised by the store, repositories and session layer."""
from __future__ import annotations

from typing import Optional


class ChirpyError(Exception):
    """Base class for every error the service raises deliberately."""

    default_message = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(ChirpyError):
    """The requested record does not exist."""

    def __init__(self, resource: str, identifier: object = None) -> None:
        self.resource = resource
        self.identifier = identifier
        if identifier is None:
            message = f"{resource.capitalize()} not found"
        else:
            message = f"{resource.capitalize()} '{identifier}' not found"
        super().__init__(message)


class ConflictError(ChirpyError):
    """A uniqueness constraint would be violated."""

    default_message = "Record already exists"


class ValidationError(ChirpyError):
    """Input was rejected before it reached the store."""

    default_message = "Invalid input"


class WeakCredentialError(ValidationError):
    """The password does not meet the acceptance policy."""

    default_message = "Password is too weak"


class AuthenticationError(ChirpyError):
    """Base class for 401-class failures; messages stay generic."""

    default_message = "Unauthorized"


class InvalidCredentialsError(AuthenticationError):
    default_message = "Incorrect email or password"


class UnauthorizedError(AuthenticationError):
    default_message = "Unauthorized"


class ForbiddenError(ChirpyError):
    """The caller is authenticated but may not touch the record."""

    default_message = "Forbidden"


class CorruptStoreError(ChirpyError):
    """The backing file exists but cannot be decoded."""

    default_message = "Stored data could not be read"


__all__ = [
    "AuthenticationError",
    "ChirpyError",
    "ConflictError",
    "CorruptStoreError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
    "WeakCredentialError",
]
