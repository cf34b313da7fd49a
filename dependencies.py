"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain functions used with
FastAPI's Depends() system. Long-lived objects (settings, database, Redis,
token codec, email provider, rate limiter, clock) are created once in
create_app() and read from app.state; repositories and services are cheap
and built per request on top of them.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from config import AppSettings
from infrastructure.email.protocol import EmailProvider
from infrastructure.rate_limiter import ROUTE_LIMITS, RateLimiter
from repositories.account_repository import AccountRepository
from repositories.notification_repository import NotificationRepository
from schemas.models.account import AccountDoc
from services.action_token_service import ActionTokenService
from services.auth_service import AuthService
from services.cooldown import SessionCooldown
from services.credential_service import CredentialService
from services.oauth_service import OAuthService
from services.session_service import SessionService
from services.token_codec import TokenCodec
from services.user_service import UserService
from shared.datetime_utils import Clock
from shared.ip_utils import get_client_ip

SESSION_COOKIE = "authToken"
REFRESH_COOKIE = "jwt"


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


async def get_redis(request: Request):
    """Return the async Redis client from app.state (may be None if not configured)."""
    return request.app.state.redis


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_token_codec(request: Request) -> TokenCodec:
    return request.app.state.token_codec


def get_email_provider(request: Request) -> EmailProvider:
    return request.app.state.email_provider


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# ── Repositories ─────────────────────────────────────────────────────────────


def get_account_repository(
    db=Depends(get_db), clock: Clock = Depends(get_clock)
) -> AccountRepository:
    return AccountRepository(db, clock)


def get_notification_repository(
    db=Depends(get_db), clock: Clock = Depends(get_clock)
) -> NotificationRepository:
    return NotificationRepository(db, clock)


# ── Services ─────────────────────────────────────────────────────────────────


def get_credential_service(
    accounts: AccountRepository = Depends(get_account_repository),
    settings: AppSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> CredentialService:
    return CredentialService(accounts, settings.security, clock)


def get_action_token_service(
    accounts: AccountRepository = Depends(get_account_repository),
    codec: TokenCodec = Depends(get_token_codec),
    email_provider: EmailProvider = Depends(get_email_provider),
    settings: AppSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ActionTokenService:
    return ActionTokenService(
        accounts,
        codec,
        email_provider,
        settings.jwt,
        settings.security,
        settings.frontend_url,
        clock,
    )


def get_session_service(
    accounts: AccountRepository = Depends(get_account_repository),
    codec: TokenCodec = Depends(get_token_codec),
    settings: AppSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> SessionService:
    return SessionService(accounts, codec, settings.jwt, clock)


def get_auth_service(
    accounts: AccountRepository = Depends(get_account_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
    credentials: CredentialService = Depends(get_credential_service),
    action_tokens: ActionTokenService = Depends(get_action_token_service),
    sessions: SessionService = Depends(get_session_service),
    codec: TokenCodec = Depends(get_token_codec),
    clock: Clock = Depends(get_clock),
) -> AuthService:
    return AuthService(
        accounts, notifications, credentials, action_tokens, sessions, codec, clock
    )


def get_oauth_service(
    accounts: AccountRepository = Depends(get_account_repository),
    sessions: SessionService = Depends(get_session_service),
    settings: AppSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> OAuthService:
    return OAuthService(accounts, sessions, settings.jwt, clock)


def get_user_service(
    accounts: AccountRepository = Depends(get_account_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
    settings: AppSettings = Depends(get_settings),
) -> UserService:
    return UserService(accounts, notifications, settings.security)


# ── Request-scoped state ─────────────────────────────────────────────────────


def get_cooldown(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> SessionCooldown:
    """Cooldown record kept in the signed browser-session cookie."""
    return SessionCooldown(
        request.session, settings.security.action_cooldown_seconds, clock
    )


def _bearer_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        token = auth_header.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(REFRESH_COOKIE)


async def get_current_account(
    request: Request,
    sessions: SessionService = Depends(get_session_service),
) -> AccountDoc:
    """Signed-in account from the bearer header, falling back to the refresh cookie."""
    return await sessions.authenticate_bearer(_bearer_token(request))


def rate_limit(scope: str):
    """Dependency factory: count the request against *scope*'s per-IP limit."""
    if scope not in ROUTE_LIMITS:
        raise KeyError(f"No rate limit configured for {scope!r}")

    async def _check(
        request: Request, limiter: RateLimiter = Depends(get_rate_limiter)
    ) -> None:
        await limiter.hit(scope, get_client_ip(request) or "unknown")

    return _check
