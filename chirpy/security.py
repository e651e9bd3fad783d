"""Request authentication for the Chirpy API."""
from __future__ import annotations

import secrets
from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from .errors import NotFoundError, UnauthorizedError
from .models import User
from .repositories import UserRepository
from .sessions import SessionManager

API_KEY_SCHEME = "apikey"


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


class BearerToken:
    """Extract the raw token from ``Authorization: Bearer <token>``."""

    def __init__(self) -> None:
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> str:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise _unauthorized("Missing bearer token")
        return credentials.credentials


class BearerAuth:
    """Resolve the acting user from a signed access token."""

    def __init__(self, sessions: SessionManager, users: UserRepository) -> None:
        self._sessions = sessions
        self._users = users
        self._token = BearerToken()

    async def __call__(self, request: Request) -> User:
        token = await self._token(request)
        try:
            user_id = self._sessions.validate_access_token(token)
        except UnauthorizedError as exc:
            raise _unauthorized("Invalid or expired token") from exc
        try:
            return await run_in_threadpool(self._users.get, user_id)
        except NotFoundError as exc:
            raise _unauthorized("Invalid or expired token") from exc


class APIKeyAuth:
    """Accept requests carrying ``Authorization: ApiKey <key>`` for a configured key."""

    def __init__(self, api_key: Optional[str]) -> None:
        self._api_key = (api_key or "").strip()
        self._header = APIKeyHeader(name="Authorization", auto_error=False)

    async def __call__(self, request: Request) -> None:
        raw = await self._header(request)
        if not raw:
            raise _unauthorized("Missing API key")
        scheme, _, provided = raw.strip().partition(" ")
        if scheme.lower() != API_KEY_SCHEME or not provided.strip():
            raise _unauthorized("Missing API key")
        expected = self._api_key.encode("utf-8")
        if not expected or not secrets.compare_digest(provided.strip().encode("utf-8"), expected):
            raise _unauthorized("Invalid API key")
        return None


__all__ = ["APIKeyAuth", "BearerAuth", "BearerToken"]
