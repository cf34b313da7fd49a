"""Unit tests for SessionService: login, refresh rotation, logout, bearer auth."""

import pytest

from errors import AuthenticationError, ForbiddenError
from services.token_codec import PURPOSE_ACCESS, PURPOSE_REFRESH, PURPOSE_SESSION


class TestLogin:
    async def test_issues_and_stores_refresh(
        self, session_service, create_account, accounts, codec, clock
    ):
        account = await create_account()
        tokens = await session_service.login(account, client_ip="203.0.113.7")

        assert codec.verify(tokens.access_token).purpose == PURPOSE_ACCESS
        assert codec.verify(tokens.refresh_token).purpose == PURPOSE_REFRESH
        assert tokens.refresh_ttl_seconds == 7 * 24 * 3600

        stored = await accounts.find_by_account_id(account.account_id)
        assert stored.refresh_token == tokens.refresh_token
        assert stored.last_login == clock.now
        assert stored.last_login_ip == "203.0.113.7"

    async def test_access_token_carries_role(
        self, session_service, create_account, codec
    ):
        account = await create_account(role="admin")
        tokens = await session_service.login(account)
        assert codec.verify(tokens.access_token).role == "admin"

    async def test_custom_refresh_ttl(self, session_service, create_account, codec):
        account = await create_account()
        tokens = await session_service.login(account, refresh_ttl=3600)
        claims = codec.verify(tokens.refresh_token)
        assert (claims.expires_at - claims.issued_at).total_seconds() == 3600

    async def test_second_login_replaces_refresh(
        self, session_service, create_account, accounts
    ):
        account = await create_account()
        first = await session_service.login(account)
        second = await session_service.login(account)
        stored = await accounts.find_by_account_id(account.account_id)
        assert stored.refresh_token == second.refresh_token != first.refresh_token


class TestRefresh:
    async def test_rotates(self, session_service, create_account, accounts, codec):
        account = await create_account()
        tokens = await session_service.login(account)
        replacement = await session_service.refresh(tokens.refresh_token)

        claims = codec.verify(replacement)
        assert claims.purpose == PURPOSE_ACCESS
        assert (claims.expires_at - claims.issued_at).total_seconds() == 24 * 3600
        stored = await accounts.find_by_account_id(account.account_id)
        assert stored.refresh_token == replacement

    async def test_old_value_dead_after_rotation(
        self, session_service, create_account
    ):
        account = await create_account()
        tokens = await session_service.login(account)
        await session_service.refresh(tokens.refresh_token)
        with pytest.raises(ForbiddenError):
            await session_service.refresh(tokens.refresh_token)

    async def test_replacement_can_rotate_again(self, session_service, create_account):
        account = await create_account()
        tokens = await session_service.login(account)
        replacement = await session_service.refresh(tokens.refresh_token)
        assert await session_service.refresh(replacement) != replacement

    async def test_missing(self, session_service):
        with pytest.raises(AuthenticationError):
            await session_service.refresh(None)

    async def test_unknown_value(self, session_service, create_account, codec):
        account = await create_account()
        token = codec.issue(account.account_id, PURPOSE_REFRESH, ttl=60)
        with pytest.raises(ForbiddenError):
            await session_service.refresh(token)

    async def test_expired_stored_value(
        self, session_service, create_account, clock
    ):
        account = await create_account()
        tokens = await session_service.login(account)
        clock.advance(days=8)
        with pytest.raises(ForbiddenError):
            await session_service.refresh(tokens.refresh_token)

    async def test_lost_race(self, session_service, create_account, mocker):
        account = await create_account()
        tokens = await session_service.login(account)
        mocker.patch.object(
            session_service._accounts,
            "rotate_refresh_token",
            mocker.AsyncMock(return_value=False),
        )
        with pytest.raises(ForbiddenError):
            await session_service.refresh(tokens.refresh_token)


class TestLogout:
    async def test_revokes(self, session_service, create_account, accounts, clock):
        account = await create_account()
        tokens = await session_service.login(account)
        assert await session_service.logout(tokens.refresh_token) == account.account_id

        stored = await accounts.find_by_account_id(account.account_id)
        assert stored.refresh_token is None
        assert stored.last_seen == clock.now
        with pytest.raises(ForbiddenError):
            await session_service.refresh(tokens.refresh_token)

    @pytest.mark.parametrize("token", [None, "", "unknown"], ids=["none", "empty", "unknown"])
    async def test_noop(self, session_service, token):
        assert await session_service.logout(token) is None


class TestAuthenticateBearer:
    async def test_access_token(self, session_service, create_account):
        account = await create_account()
        tokens = await session_service.login(account)
        result = await session_service.authenticate_bearer(tokens.access_token)
        assert result.account_id == account.account_id
        assert result.password_hash is None

    async def test_session_token_rejected(self, session_service, create_account, codec):
        account = await create_account()
        token = codec.issue(account.account_id, PURPOSE_SESSION, ttl=60)
        with pytest.raises(AuthenticationError):
            await session_service.authenticate_bearer(token)

    async def test_expired(self, session_service, create_account, clock):
        account = await create_account()
        tokens = await session_service.login(account)
        clock.advance(hours=1)
        with pytest.raises(AuthenticationError, match="expired"):
            await session_service.authenticate_bearer(tokens.access_token)

    async def test_deleted_account(self, session_service, create_account, accounts):
        account = await create_account()
        tokens = await session_service.login(account)
        await accounts.delete(account.account_id)
        with pytest.raises(AuthenticationError):
            await session_service.authenticate_bearer(tokens.access_token)

    async def test_missing(self, session_service):
        with pytest.raises(AuthenticationError):
            await session_service.authenticate_bearer(None)
