"""
FastAPI application factory.
create_app() is the single entry point for building the app.

Collaborators that tests need to replace (database, email provider, Redis,
rate-limit storage, clock) can be passed in; anything not passed is built from settings in the
lifespan handler.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from limits.aio.storage import Storage
from pymongo.asynchronous.mongo_client import AsyncMongoClient
from starlette.middleware.sessions import SessionMiddleware

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.protocol import EmailProvider
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.oauth_clients import init_oauth
from infrastructure.rate_limiter import (
    RateLimiter,
    create_rate_limit_storage,
    create_redis_client,
)
from repositories.account_repository import AccountRepository
from repositories.notification_repository import NotificationRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.user_routes import router as user_router
from services.token_codec import TokenCodec
from shared.datetime_utils import Clock, utc_now
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)

# Signed browser-session cookie carrying the action-token cooldown record
BROWSER_SESSION_COOKIE = "session"


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    database: Optional[Any] = None,
    email_provider: Optional[EmailProvider] = None,
    redis_client: Optional[Any] = None,
    rate_limit_storage: Optional[Storage] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    if not settings.secret_key:
        raise RuntimeError("SECRET_KEY (or SESSION_SECRET) must be set")

    setup_logging(
        settings.logging.log_level,
        settings.logging.log_format,
        env=settings.env,
        sentry_enabled=bool(settings.sentry.sentry_dsn),
    )

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            environment=settings.env,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    token_codec = TokenCodec(settings.jwt, clock)
    oauth, oauth_providers = init_oauth(settings.oauth)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: Optional[AsyncMongoClient] = None
        db = database
        if db is None:
            mongo_client = AsyncMongoClient(
                settings.db.mongodb_uri,
                tz_aware=True,
                serverSelectionTimeoutMS=settings.db.mongo_timeout_ms,
                timeoutMS=settings.db.mongo_timeout_ms,
            )
            db = mongo_client[settings.db.db_name]

        # Redis is optional; without it the request limiter is a no-op
        redis = redis_client
        owns_redis = False
        if redis is None and settings.redis.redis_uri:
            redis = await create_redis_client(settings.redis.redis_uri)
            owns_redis = redis is not None

        http_client: Optional[HttpClient] = None
        provider = email_provider
        if provider is None:
            http_client = HttpClient(timeout=settings.email.email_timeout_seconds)
            provider = ZeptoMailProvider(
                settings.email,
                http_client,
                app_name=settings.app_name,
                link_ttl_minutes=max(1, settings.jwt.action_token_ttl_seconds // 60),
            )

        app.state.settings = settings
        app.state.mongo_client = mongo_client
        app.state.db = db
        app.state.redis = redis
        app.state.clock = clock
        app.state.token_codec = token_codec
        app.state.email_provider = provider
        limiter_storage = rate_limit_storage
        if limiter_storage is None and redis is not None and settings.redis.redis_uri:
            limiter_storage = create_rate_limit_storage(settings.redis.redis_uri)
        app.state.rate_limiter = RateLimiter(limiter_storage)
        app.state.oauth = oauth
        app.state.oauth_providers = oauth_providers

        await AccountRepository(db, clock).ensure_indexes()
        await NotificationRepository(db, clock).ensure_indexes()
        log.info(
            "app_started",
            env=settings.env,
            db_name=settings.db.db_name,
            rate_limiting=app.state.rate_limiter.enabled,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        if http_client is not None:
            await http_client.aclose()
        if owns_redis:
            await redis.aclose()
        if mongo_client is not None:
            await mongo_client.close()
        log.info("app_stopped")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=BROWSER_SESSION_COOKIE,
        max_age=None,
        same_site="lax",
        https_only=settings.is_production,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app, is_production=settings.is_production)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)

    return app
