"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AppSettings,
    DatabaseSettings,
    JWTSettings,
    RedisSettings,
    SecuritySettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_mongo(monkeypatch):
    """Set the required MONGODB_URI so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return monkeypatch


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_loads_mongodb_uri(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_default_db_name(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        monkeypatch.delenv("DB_NAME", raising=False)
        assert DatabaseSettings().db_name == "auth-backend"

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


# ---------------------------------------------------------------------------
# RedisSettings
# ---------------------------------------------------------------------------


class TestRedisSettings:
    def test_redis_uri_optional(self, monkeypatch):
        monkeypatch.delenv("REDIS_URI", raising=False)
        assert RedisSettings().redis_uri is None

    def test_redis_uri_loaded(self, monkeypatch):
        monkeypatch.setenv("REDIS_URI", "redis://localhost:6379")
        assert RedisSettings().redis_uri == "redis://localhost:6379"


# ---------------------------------------------------------------------------
# JWTSettings
# ---------------------------------------------------------------------------


class TestJWTSettings:
    def test_token_lifetimes(self, monkeypatch):
        for var in (
            "ACCESS_TOKEN_TTL_SECONDS",
            "REFRESH_TOKEN_TTL_SECONDS",
            "ROTATED_REFRESH_TOKEN_TTL_SECONDS",
            "ACTION_TOKEN_TTL_SECONDS",
            "SESSION_TOKEN_TTL_SECONDS",
        ):
            monkeypatch.delenv(var, raising=False)
        s = JWTSettings()
        assert s.access_token_ttl_seconds == 3600
        assert s.refresh_token_ttl_seconds == 7 * 24 * 3600
        assert s.rotated_refresh_token_ttl_seconds == 24 * 3600
        assert s.action_token_ttl_seconds == 600
        assert s.session_token_ttl_seconds == 1800

    def test_ttl_from_env(self, monkeypatch):
        monkeypatch.setenv("ACTION_TOKEN_TTL_SECONDS", "120")
        assert JWTSettings().action_token_ttl_seconds == 120


@pytest.mark.parametrize(
    "private_key, public_key, expected",
    [
        ("private", "public", True),
        (None, None, False),
    ],
    ids=["keys_present", "keys_absent"],
)
def test_jwt_use_rs256(monkeypatch, private_key, public_key, expected):
    if private_key:
        monkeypatch.setenv("JWT_PRIVATE_KEY", private_key)
        monkeypatch.setenv("JWT_PUBLIC_KEY", public_key)
    else:
        monkeypatch.delenv("JWT_PRIVATE_KEY", raising=False)
        monkeypatch.delenv("JWT_PUBLIC_KEY", raising=False)
    assert JWTSettings().use_rs256 is expected


# ---------------------------------------------------------------------------
# SecuritySettings
# ---------------------------------------------------------------------------


class TestSecuritySettings:
    def test_lockout_defaults(self, monkeypatch):
        for var in (
            "MAX_LOGIN_ATTEMPTS",
            "LOCK_DURATION_SECONDS",
            "UNLOCK_BUFFER_SECONDS",
            "ACTION_COOLDOWN_SECONDS",
        ):
            monkeypatch.delenv(var, raising=False)
        s = SecuritySettings()
        assert s.max_login_attempts == 5
        assert s.lock_duration_seconds == 600
        assert s.unlock_buffer_seconds == 5
        assert s.action_cooldown_seconds == 60


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(with_mongo, env, expected):
    with_mongo.setenv("ENV", env)
    s = AppSettings()
    assert s.is_production is expected
    assert s.cookie_secure is expected


@pytest.mark.parametrize(
    "secret_key, session_secret, expected",
    [
        (None, "old-secret", "old-secret"),  # falls back to SESSION_SECRET
        ("new-secret", "old-secret", "new-secret"),  # SECRET_KEY takes precedence
    ],
    ids=["session_secret_fallback", "secret_key_wins"],
)
def test_secret_key_resolution(with_mongo, secret_key, session_secret, expected):
    if secret_key:
        with_mongo.setenv("SECRET_KEY", secret_key)
    else:
        with_mongo.delenv("SECRET_KEY", raising=False)
    with_mongo.setenv("SESSION_SECRET", session_secret)
    assert AppSettings().secret_key == expected


class TestAppSettings:
    def test_sub_configs_populated(self, with_mongo):
        s = AppSettings()
        for attr in (
            "db",
            "redis",
            "jwt",
            "security",
            "oauth",
            "email",
            "logging",
            "sentry",
        ):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_frontend_url_from_env(self, with_mongo):
        with_mongo.setenv("FRONTEND_URL", "https://app.example.com")
        assert AppSettings().frontend_url == "https://app.example.com"
