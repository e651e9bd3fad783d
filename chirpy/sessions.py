"""Login sessions: signed access tokens and revocable refresh tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import jwt

from .config import AppConfig
from .errors import InvalidCredentialsError, NotFoundError, UnauthorizedError
from .models import RefreshToken, User
from .passwords import PasswordHasher
from .repositories import CredentialRepository, RefreshTokenRepository, UserRepository

logger = logging.getLogger("chirpy.sessions")

JWT_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["iss", "sub", "iat", "exp"]


@dataclass(frozen=True)
class Session:
    """Result of a successful login."""

    user: User
    access_token: str
    refresh_token: RefreshToken


class SessionManager:
    """Issue, validate, and revoke the tokens that prove a caller's identity."""

    def __init__(
        self,
        config: AppConfig,
        *,
        users: UserRepository,
        credentials: CredentialRepository,
        refresh_tokens: RefreshTokenRepository,
        hasher: PasswordHasher,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config
        self._users = users
        self._credentials = credentials
        self._refresh_tokens = refresh_tokens
        self._hasher = hasher
        self._clock = clock

    @property
    def config(self) -> AppConfig:
        return self._config

    def login(self, email: str, password: str) -> Session:
        """Exchange an email and password for an access and refresh token pair.

        Unknown emails and wrong passwords fail identically.
        """

        try:
            user = self._users.get_by_email(email)
            credential = self._credentials.get(user.id)
        except NotFoundError:
            self._hasher.verify_dummy(password)
            logger.info("Rejected login for unknown account")
            raise InvalidCredentialsError() from None

        if not self._hasher.verify(password, credential.password_hash):
            logger.info("Rejected login for user %s", user.id)
            raise InvalidCredentialsError()

        access_token = self.issue_access_token(user.id)
        refresh_token = self._refresh_tokens.create(
            user.id,
            expires_at=self._now() + self._config.refresh_token_ttl,
        )
        logger.info("User %s logged in", user.id)
        return Session(user=user, access_token=access_token, refresh_token=refresh_token)

    def refresh(self, token: str) -> str:
        """Mint a new access token from an active refresh token."""

        record = self._load_refresh_token(token)
        if record.revoked_at is not None:
            logger.info("Refresh attempted with revoked token for user %s", record.user_id)
            raise UnauthorizedError()
        if not record.is_active(self._now()):
            logger.info("Refresh attempted with expired token for user %s", record.user_id)
            raise UnauthorizedError()
        return self.issue_access_token(record.user_id)

    def revoke(self, token: str) -> None:
        if not token:
            raise UnauthorizedError()
        try:
            record = self._refresh_tokens.revoke(token)
        except NotFoundError:
            raise UnauthorizedError() from None
        logger.info("Revoked refresh token for user %s", record.user_id)

    def issue_access_token(self, user_id: int) -> str:
        now = self._now()
        claims = {
            "iss": self._config.issuer,
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self._config.access_token_ttl).timestamp()),
        }
        return jwt.encode(claims, self._config.jwt_secret, algorithm=JWT_ALGORITHM)

    def validate_access_token(self, token: str) -> int:
        """Return the user id carried by a valid access token."""

        if not token:
            raise UnauthorizedError()
        try:
            claims = jwt.decode(
                token,
                self._config.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                issuer=self._config.issuer,
                # Expiry is compared against the injected clock below.
                options={"require": _REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as exc:
            logger.debug("Access token rejected: %s", exc)
            raise UnauthorizedError() from exc

        expires_at = claims["exp"]
        if not isinstance(expires_at, (int, float)) or self._now().timestamp() >= expires_at:
            raise UnauthorizedError()

        try:
            return int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise UnauthorizedError() from exc

    def _load_refresh_token(self, token: str) -> RefreshToken:
        if not token:
            raise UnauthorizedError()
        try:
            return self._refresh_tokens.get(token)
        except NotFoundError:
            raise UnauthorizedError() from None

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(timezone.utc)


__all__ = ["JWT_ALGORITHM", "Session", "SessionManager"]
