"""Unit tests for AuthService: signup, signin, forgot and resend flows."""

import pytest
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import (
    AuthenticationError,
    CooldownError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from repositories.account_repository import ACTION_RESET, ACTION_VERIFICATION
from schemas.dto.requests.auth import SignupRequest
from services.token_codec import PURPOSE_SESSION
from shared.crypto import verify_password
from tests.conftest import PASSWORD, notifications_for


def _signup_body(**overrides):
    data = {
        "firstName": "Alice",
        "lastName": "Martin",
        "email": "Alice@Example.com",
        "password": PASSWORD,
    }
    data.update(overrides)
    return SignupRequest(**data)


# ---------------------------------------------------------------------------
# signup
# ---------------------------------------------------------------------------


class TestSignup:
    async def test_creates_pending_account(
        self, auth_service, accounts, email_provider, codec
    ):
        result = await auth_service.signup(_signup_body())

        stored = await accounts.find_by_email("alice@example.com")
        assert stored.account_id == result.account.account_id
        assert stored.is_verified is False
        assert stored.account_status == "pending"
        assert stored.role == "user"
        assert verify_password(PASSWORD, stored.password_hash)
        assert stored.verification_token is not None

        assert result.email_sent is True
        assert email_provider.sent[-1]["kind"] == "verification"
        assert email_provider.sent[-1]["user_name"] == "Alice Martin"
        claims = codec.verify(result.session_token, (PURPOSE_SESSION,))
        assert claims.subject == stored.account_id

    async def test_duplicate_email(self, auth_service, create_account):
        await create_account()
        with pytest.raises(ValidationError) as info:
            await auth_service.signup(_signup_body())
        assert info.value.errors == {"email": "This email is already in use."}

    async def test_concurrent_duplicate(self, auth_service, mocker):
        mocker.patch.object(
            auth_service._accounts,
            "insert",
            mocker.AsyncMock(side_effect=DuplicateKeyError("dup")),
        )
        with pytest.raises(ValidationError) as info:
            await auth_service.signup(_signup_body())
        assert "email" in info.value.errors

    async def test_email_failure_does_not_fail_signup(
        self, auth_service, email_provider, accounts
    ):
        email_provider.fail = True
        result = await auth_service.signup(_signup_body())
        assert result.email_sent is False
        assert await accounts.find_by_account_id(result.account.account_id) is not None

    async def test_notifies_first_admin(self, auth_service, create_account, db):
        admin = await create_account("admin@example.com", role="admin")
        result = await auth_service.signup(_signup_body())
        items = await notifications_for(db, admin.account_id)
        assert len(items) == 1
        assert items[0]["related_id"] == result.account.account_id
        assert "Alice Martin" in items[0]["message"]

    async def test_admin_notification_failure_swallowed(self, auth_service, mocker):
        mocker.patch.object(
            auth_service._accounts,
            "find_first_admin",
            mocker.AsyncMock(side_effect=PyMongoError("down")),
        )
        result = await auth_service.signup(_signup_body())
        assert result.account.email == "alice@example.com"


# ---------------------------------------------------------------------------
# signin
# ---------------------------------------------------------------------------


class TestSignin:
    async def test_verified_gets_tokens(self, auth_service, create_account, accounts):
        account = await create_account()
        result = await auth_service.signin(
            "alice@example.com", PASSWORD, client_ip="198.51.100.1"
        )
        assert result.verification_required is False
        stored = await accounts.find_by_account_id(account.account_id)
        assert stored.refresh_token == result.tokens.refresh_token
        assert stored.last_login_ip == "198.51.100.1"

    async def test_unverified_reuses_live_link(
        self, auth_service, email_provider, cooldown
    ):
        signup = await auth_service.signup(_signup_body())
        token = email_provider.last_token
        result = await auth_service.signin("alice@example.com", PASSWORD, cooldown=cooldown)

        assert result.verification_required is True
        assert result.tokens is None
        assert result.verification.action_token == token
        assert result.account.account_id == signup.account.account_id
        assert len(email_provider.sent) == 1

    async def test_unverified_with_expired_link_gets_new_one(
        self, auth_service, email_provider, cooldown, clock
    ):
        await auth_service.signup(_signup_body())
        clock.advance(minutes=15)
        result = await auth_service.signin("alice@example.com", PASSWORD, cooldown=cooldown)
        assert result.verification.email_sent is True
        assert len(email_provider.sent) == 2
        assert cooldown.seconds_left(result.account.account_id) == 60

    async def test_wrong_password(self, auth_service, create_account):
        await create_account()
        with pytest.raises(InvalidCredentialsError):
            await auth_service.signin("alice@example.com", "nope-nope")


# ---------------------------------------------------------------------------
# forgot
# ---------------------------------------------------------------------------


class TestForgot:
    async def test_sends_reset(self, auth_service, create_account, cooldown, email_provider):
        account = await create_account()
        found, issued = await auth_service.forgot("ALICE@example.com", cooldown)
        assert found.account_id == account.account_id
        assert issued.kind == ACTION_RESET
        assert email_provider.sent[-1]["kind"] == "reset"

    async def test_unknown_email(self, auth_service, cooldown):
        with pytest.raises(NotFoundError):
            await auth_service.forgot("ghost@example.com", cooldown)

    async def test_unverified_gets_verification(
        self, auth_service, create_account, cooldown, email_provider
    ):
        await create_account(verified=False)
        _, issued = await auth_service.forgot("alice@example.com", cooldown)
        assert issued.kind == ACTION_VERIFICATION
        assert email_provider.sent[-1]["kind"] == "verification"

    async def test_cooldown(self, auth_service, create_account, cooldown):
        await create_account()
        await auth_service.forgot("alice@example.com", cooldown)
        with pytest.raises(CooldownError):
            await auth_service.forgot("alice@example.com", cooldown)


# ---------------------------------------------------------------------------
# resend
# ---------------------------------------------------------------------------


class TestResend:
    async def test_resends_verification(
        self, auth_service, cooldown, email_provider, clock
    ):
        signup = await auth_service.signup(_signup_body())
        clock.advance(seconds=5)
        issued = await auth_service.resend(
            signup.account.account_id, signup.session_token, cooldown
        )
        assert issued.kind == ACTION_VERIFICATION
        assert len(email_provider.sent) == 2

    async def test_explicit_kind(self, auth_service, create_account, cooldown, codec):
        account = await create_account()
        session = codec.issue(account.account_id, PURPOSE_SESSION, ttl=60)
        issued = await auth_service.resend(
            account.account_id, session, cooldown, ACTION_RESET
        )
        assert issued.kind == ACTION_RESET

    async def test_requires_session(self, auth_service, cooldown):
        with pytest.raises(AuthenticationError, match="Session not found"):
            await auth_service.resend("acc", None, cooldown)

    async def test_expired_session(self, auth_service, cooldown, clock):
        signup = await auth_service.signup(_signup_body())
        clock.advance(minutes=31)
        with pytest.raises(AuthenticationError, match="Session expired"):
            await auth_service.resend(
                signup.account.account_id, signup.session_token, cooldown
            )

    async def test_wrong_purpose(self, auth_service, create_account, cooldown, codec):
        account = await create_account()
        token = codec.issue(account.account_id, "access", ttl=60)
        with pytest.raises(AuthenticationError, match="Invalid token"):
            await auth_service.resend(account.account_id, token, cooldown)

    async def test_subject_mismatch(self, auth_service, create_account, cooldown):
        signup = await auth_service.signup(_signup_body())
        other = await create_account("bob@example.com")
        with pytest.raises(ForbiddenError):
            await auth_service.resend(other.account_id, signup.session_token, cooldown)

    async def test_account_gone(self, auth_service, accounts, cooldown):
        signup = await auth_service.signup(_signup_body())
        await accounts.delete(signup.account.account_id)
        with pytest.raises(NotFoundError):
            await auth_service.resend(
                signup.account.account_id, signup.session_token, cooldown
            )
