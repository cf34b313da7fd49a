"""
Shared fixtures for unit and integration tests.

The database is an in-memory mongomock-motor client, the clock is a FakeClock
every service shares, and email goes to FakeEmailProvider, which records each
message and can be told to fail.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from mongomock_motor import AsyncMongoMockClient

from config import (
    AppSettings,
    DatabaseSettings,
    EmailSettings,
    JWTSettings,
    LoggingSettings,
    OAuthProviderSettings,
    RedisSettings,
    SecuritySettings,
    SentrySettings,
)
from repositories.account_repository import AccountRepository
from repositories.notification_repository import NotificationRepository
from schemas.models.account import ROLE_USER, AccountDoc
from services.action_token_service import ActionTokenService
from services.auth_service import AuthService
from services.cooldown import SessionCooldown
from services.credential_service import CredentialService
from services.oauth_service import OAuthService
from services.session_service import SessionService
from services.token_codec import TokenCodec
from services.user_service import UserService
from shared.crypto import hash_password
from shared.generators import generate_account_id

FRONTEND_URL = "http://frontend.test"
PASSWORD = "pw123456"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class FakeEmailProvider:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    async def _record(self, kind, email, user_name, link) -> bool:
        if self.fail:
            return False
        self.sent.append(
            {"kind": kind, "email": email, "user_name": user_name, "link": link}
        )
        return True

    async def send_verification_email(self, email, user_name, link) -> bool:
        return await self._record("verification", email, user_name, link)

    async def send_password_reset_email(self, email, user_name, link) -> bool:
        return await self._record("reset", email, user_name, link)

    @property
    def last_token(self) -> str:
        return self.sent[-1]["link"].rsplit("/", 1)[-1]


def make_settings(**overrides) -> AppSettings:
    values = dict(
        secret_key="test-session-secret",
        env="development",
        frontend_url=FRONTEND_URL,
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017/", db_name="auth-test"),
        redis=RedisSettings(redis_uri=None),
        jwt=JWTSettings(jwt_secret="test-jwt-secret", jwt_private_key="", jwt_public_key=""),
        security=SecuritySettings(),
        oauth=OAuthProviderSettings(
            google_oauth_client_id="", facebook_oauth_client_id=""
        ),
        email=EmailSettings(zepto_api_token=""),
        logging=LoggingSettings(log_level="WARNING", log_format="console"),
        sentry=SentrySettings(sentry_dsn=""),
    )
    values.update(overrides)
    return AppSettings(**values)


async def notifications_for(db, recipient_id: str) -> list[dict]:
    """Raw notification documents addressed to *recipient_id*."""
    return await db["notifications"].find({"recipient_id": recipient_id}).to_list(length=None)


# ── Core fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def db():
    return AsyncMongoMockClient()["auth-test"]


@pytest.fixture
def email_provider():
    return FakeEmailProvider()


@pytest.fixture
async def accounts(db, clock):
    repo = AccountRepository(db, clock)
    await repo.ensure_indexes()
    return repo


@pytest.fixture
def notifications(db, clock):
    return NotificationRepository(db, clock)


@pytest.fixture
def codec(settings, clock):
    return TokenCodec(settings.jwt, clock)


@pytest.fixture
def session_store():
    """Stand-in for request.session."""
    return {}


@pytest.fixture
def cooldown(session_store, settings, clock):
    return SessionCooldown(session_store, settings.security.action_cooldown_seconds, clock)


# ── Services ─────────────────────────────────────────────────────────────────


@pytest.fixture
def credential_service(accounts, settings, clock):
    return CredentialService(accounts, settings.security, clock)


@pytest.fixture
def action_token_service(accounts, codec, email_provider, settings, clock):
    return ActionTokenService(
        accounts,
        codec,
        email_provider,
        settings.jwt,
        settings.security,
        settings.frontend_url,
        clock,
    )


@pytest.fixture
def session_service(accounts, codec, settings, clock):
    return SessionService(accounts, codec, settings.jwt, clock)


@pytest.fixture
def auth_service(
    accounts,
    notifications,
    credential_service,
    action_token_service,
    session_service,
    codec,
    clock,
):
    return AuthService(
        accounts,
        notifications,
        credential_service,
        action_token_service,
        session_service,
        codec,
        clock,
    )


@pytest.fixture
def oauth_service(accounts, session_service, settings, clock):
    return OAuthService(accounts, session_service, settings.jwt, clock)


@pytest.fixture
def user_service(accounts, notifications, settings):
    return UserService(accounts, notifications, settings.security)


# ── Account factory ──────────────────────────────────────────────────────────


@pytest.fixture
def create_account(accounts):
    """Insert an account directly; returns the stored AccountDoc."""

    async def _create(
        email: str = "alice@example.com",
        password: str = PASSWORD,
        *,
        verified: bool = True,
        role: str = ROLE_USER,
        first_name: str = "Alice",
        last_name: str = "Martin",
        **fields,
    ) -> AccountDoc:
        doc = AccountDoc(
            account_id=generate_account_id(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            password_hash=hash_password(password),
            is_verified=verified,
            account_status="active" if verified else "pending",
            role=role,
            **fields,
        )
        await accounts.insert(doc)
        return await accounts.find_by_account_id(doc.account_id)

    return _create
