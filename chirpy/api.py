"""FastAPI application exposing users, sessions and posts."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field, field_validator

from .application import Services
from .errors import (
    AuthenticationError,
    ChirpyError,
    ConflictError,
    CorruptStoreError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from .metrics import HitCounter
from .models import Post, User
from .profanity import clean_profanity
from .repositories import SortOrder
from .security import APIKeyAuth, BearerAuth, BearerToken

logger = logging.getLogger("chirpy.api")

MAX_POST_LENGTH = 140
USER_UPGRADED_EVENT = "user.upgraded"


class CredentialsRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=1024)

    @field_validator("email")
    @classmethod
    def _require_email(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Email is required")
        return stripped


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime
    updated_at: datetime
    is_chirpy_red: bool


class LoginResponse(UserResponse):
    token: str
    refresh_token: str


class TokenResponse(BaseModel):
    token: str


class CreatePostRequest(BaseModel):
    body: str

    @field_validator("body")
    @classmethod
    def _validate_body(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Body is required")
        if len(value) > MAX_POST_LENGTH:
            raise ValueError("Post is too long")
        return value


class PostResponse(BaseModel):
    id: int
    body: str
    user_id: int
    created_at: datetime
    updated_at: datetime


class PolkaWebhookData(BaseModel):
    user_id: int


class PolkaWebhookRequest(BaseModel):
    event: str
    data: Optional[PolkaWebhookData] = None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
        is_chirpy_red=user.is_chirpy_red,
    )


def post_to_response(post: Post) -> PostResponse:
    return PostResponse(
        id=post.id,
        body=post.body,
        user_id=post.user_id,
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def _status_for(exc: ChirpyError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(exc, ForbiddenError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _first_validation_message(exc: RequestValidationError) -> str:
    for error in exc.errors():
        message = str(error.get("msg", ""))
        # pydantic prefixes messages raised from validators.
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        if error.get("type") == "missing" and location:
            return f"{location[-1].capitalize()} is required"
        if message:
            return message
    return "Invalid request"


def create_app(services: Services) -> FastAPI:
    """Instantiate the FastAPI application around an already-built service set."""

    config = services.config
    hits = HitCounter()

    app = FastAPI(
        title="Chirpy",
        description="Short posts with token-based authentication",
        version="1.0.0",
    )
    app.state.services = services
    app.state.hits = hits

    current_user = BearerAuth(services.sessions, services.users)
    bearer_token = BearerToken()
    polka_auth = APIKeyAuth(config.polka_key)

    @app.middleware("http")
    async def count_app_hits(request: Request, call_next):
        if request.url.path.startswith("/app"):
            hits.increment()
        return await call_next(request)

    @app.exception_handler(ChirpyError)
    async def handle_chirpy_error(_request: Request, exc: ChirpyError) -> JSONResponse:
        status_code = _status_for(exc)
        if isinstance(exc, CorruptStoreError) or status_code >= 500:
            logger.error("Request failed: %s", exc.message)
            return JSONResponse({"error": "Internal server error"}, status_code=status_code)
        return JSONResponse({"error": exc.message}, status_code=status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": _first_validation_message(exc)},
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.get("/app", response_class=HTMLResponse)
    async def landing_page() -> str:
        return "<html><body><h1>Welcome to Chirpy</h1></body></html>"

    @app.get("/api/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/admin/metrics", response_class=HTMLResponse)
    async def admin_metrics() -> str:
        return (
            "<html><body><h1>Welcome, Chirpy Admin</h1>"
            f"<p>Chirpy has been visited {hits.hits} times!</p></body></html>"
        )

    @app.post("/admin/reset")
    async def admin_reset() -> Dict[str, int]:
        if not config.is_dev:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Reset is only allowed in dev")
        hits.reset()
        return {"hits": hits.hits}

    @app.post("/api/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(payload: CredentialsRequest) -> UserResponse:
        password_hash = services.hasher.hash_new_password(payload.password)
        user = services.users.create(payload.email, password_hash)
        logger.info("Created user %s", user.id)
        return user_to_response(user)

    @app.put("/api/users", response_model=UserResponse)
    def update_user(payload: CredentialsRequest, user: User = Depends(current_user)) -> UserResponse:
        password_hash = services.hasher.hash_new_password(payload.password)
        updated = services.users.update(user.id, email=payload.email, password_hash=password_hash)
        return user_to_response(updated)

    @app.post("/api/login", response_model=LoginResponse)
    def login(payload: CredentialsRequest) -> LoginResponse:
        session = services.sessions.login(payload.email, payload.password)
        return LoginResponse(
            **user_to_response(session.user).model_dump(),
            token=session.access_token,
            refresh_token=session.refresh_token.token,
        )

    @app.post("/api/refresh", response_model=TokenResponse)
    def refresh(token: str = Depends(bearer_token)) -> TokenResponse:
        return TokenResponse(token=services.sessions.refresh(token))

    @app.post("/api/revoke", status_code=status.HTTP_204_NO_CONTENT)
    def revoke(token: str = Depends(bearer_token)) -> Response:
        services.sessions.revoke(token)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/posts", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
    def create_post(payload: CreatePostRequest, user: User = Depends(current_user)) -> PostResponse:
        post = services.posts.create(user.id, clean_profanity(payload.body))
        return post_to_response(post)

    @app.get("/api/posts", response_model=List[PostResponse])
    def list_posts(author_id: Optional[int] = None, sort: Optional[str] = None) -> List[PostResponse]:
        order = SortOrder.parse(sort)
        return [post_to_response(post) for post in services.posts.list(user_id=author_id, order=order)]

    @app.get("/api/posts/{post_id}", response_model=PostResponse)
    def read_post(post_id: int) -> PostResponse:
        return post_to_response(services.posts.get(post_id))

    @app.delete("/api/posts/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_post(post_id: int, user: User = Depends(current_user)) -> Response:
        services.posts.delete(post_id, owner_id=user.id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post(
        "/api/polka/webhooks",
        status_code=status.HTTP_204_NO_CONTENT,
        dependencies=[Depends(polka_auth)],
    )
    def polka_webhook(payload: PolkaWebhookRequest) -> Response:
        if payload.event != USER_UPGRADED_EVENT:
            return Response(status_code=status.HTTP_204_NO_CONTENT)
        if payload.data is None:
            raise ValidationError("Webhook data is required")
        services.users.upgrade(payload.data.user_id)
        logger.info("Upgraded user %s to Chirpy Red", payload.data.user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["create_app", "post_to_response", "user_to_response"]
