"""HTTP API for registering, listing and deleting HabitFlow accounts."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from .backends import open_user_store
from .config import Settings, load_settings
from .errors import RegistryError
from .events import LiveUpdateChannel
from .models import User
from .registry import Identity, RegistryService
from .sessions import SessionManager
from .store import UserStore

logger = logging.getLogger("habitflow.service")


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    password: Optional[str] = None
    createdAt: str


class RegisterRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)


class LoginRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=320)
    password: Optional[str] = Field(default=None, max_length=1024)


class CurrentUser(BaseModel):
    id: str
    name: str
    email: str


class SessionResponse(BaseModel):
    isAuthenticated: bool
    isAdmin: bool = False
    currentUser: Optional[CurrentUser] = None


class LoginResponse(SessionResponse):
    token: str


class OkResponse(BaseModel):
    ok: bool = True


class HealthResponse(BaseModel):
    status: str
    backend: str
    subscribers: int


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(**user.to_document())


def _identity_to_session(identity: Identity | None) -> SessionResponse:
    if identity is None:
        return SessionResponse(isAuthenticated=False)
    user = identity.current_user
    return SessionResponse(
        isAuthenticated=True,
        isAdmin=identity.is_admin,
        currentUser=CurrentUser(id=user.id, name=user.name, email=user.email),
    )


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Translate failures into ``{"error": ...}`` JSON bodies."""

    @app.exception_handler(RegistryError)
    async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        message = "Invalid request body"
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ()) if part != "body")
            detail = errors[0].get("msg", "")
            message = f"{location}: {detail}" if location else detail or message
        return _error_response(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_api_routes(
    app: FastAPI,
    registry: RegistryService,
    *,
    session_manager: SessionManager,
    keepalive_seconds: float,
) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    bearer_security = HTTPBearer(auto_error=False)

    @app.get("/healthz", response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="ok",
            backend=registry.store.describe(),
            subscribers=registry.channel.subscriber_count,
        )

    @app.get("/users", response_model=List[UserResponse])
    async def list_users() -> List[UserResponse]:
        users = await registry.list_users()
        return [_user_to_response(user) for user in users]

    @app.post("/users", status_code=status.HTTP_201_CREATED, response_model=UserResponse)
    async def register_user(request: RegisterRequest) -> UserResponse:
        user = await registry.register(request.name, request.email, request.password)
        return _user_to_response(user)

    @app.delete("/users/{user_id}", response_model=OkResponse)
    async def delete_user(user_id: str) -> OkResponse:
        await registry.remove_user(user_id)
        session_manager.forget_user(user_id)
        return OkResponse(ok=True)

    @app.get("/events")
    async def live_events() -> StreamingResponse:
        frames: AsyncIterator[str] = registry.channel.stream(keepalive=keepalive_seconds)
        return StreamingResponse(
            frames,
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/login", response_model=LoginResponse)
    async def login(request: LoginRequest) -> LoginResponse:
        identity = await registry.authenticate(request.email, request.password)
        token = session_manager.create(identity)
        logger.info(
            "User %s logged in%s",
            identity.current_user.id,
            " as administrator" if identity.is_admin else "",
        )
        session = _identity_to_session(identity)
        return LoginResponse(token=token, **session.model_dump())

    @app.get("/session", response_model=SessionResponse)
    async def current_session(
        bearer: HTTPAuthorizationCredentials | None = Depends(bearer_security),
    ) -> SessionResponse:
        if bearer is None:
            return _identity_to_session(None)
        return _identity_to_session(session_manager.resolve(bearer.credentials))

    @app.post("/logout", response_model=OkResponse)
    async def logout(
        bearer: HTTPAuthorizationCredentials | None = Depends(bearer_security),
    ) -> OkResponse:
        if bearer is not None:
            session_manager.destroy(bearer.credentials)
        return OkResponse(ok=True)


def create_app(
    *,
    settings: Settings | None = None,
    store: UserStore | None = None,
    channel: LiveUpdateChannel | None = None,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user registry."""

    app_settings = settings or load_settings()
    user_store = store or open_user_store(app_settings)
    live_channel = channel or LiveUpdateChannel()
    sessions = session_manager or SessionManager(ttl=timedelta(hours=8))
    registry = RegistryService(user_store, live_channel, admin_email=app_settings.admin_email)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("User registry ready (storage=%s)", user_store.describe())
        try:
            yield
        finally:
            live_channel.close()
            sessions.clear()
            await user_store.close()
            logger.info("User registry stopped")

    app = FastAPI(
        title="HabitFlow User Registry",
        version="0.1.0",
        description="Account registry with live registration updates for administrators.",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(app_settings.cors_origins),
        allow_credentials="*" not in app_settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = app_settings
    app.state.registry = registry
    app.state.channel = live_channel
    app.state.session_manager = sessions

    register_exception_handlers(app)
    register_api_routes(
        app,
        registry,
        session_manager=sessions,
        keepalive_seconds=app_settings.keepalive_seconds,
    )
    return app


__all__ = ["create_app", "register_api_routes", "register_exception_handlers"]
