"""
Access and refresh credentials for signed-in accounts.

An account holds a single refresh credential in ``refresh_token``. Login
overwrites it, refresh rotates it with a compare-and-swap on the presented
value, and logout unsets it. A credential that is not the stored value is
rejected even when its signature and expiry are fine, so a rotated-away or
logged-out token is dead immediately.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from config import JWTSettings
from errors import (
    AuthenticationError,
    ForbiddenError,
    TokenExpiredError,
    TokenMalformedError,
)
from repositories.account_repository import AccountRepository
from schemas.models.account import AccountDoc
from services.token_codec import PURPOSE_ACCESS, PURPOSE_REFRESH, TokenCodec
from shared.datetime_utils import Clock, utc_now
from shared.logging import get_logger

log = get_logger(__name__)

# Rotation stores an access-purpose credential in the refresh slot, so both
# purposes are accepted wherever a refresh credential is presented.
_REFRESH_PURPOSES = (PURPOSE_REFRESH, PURPOSE_ACCESS)


@dataclass(frozen=True)
class LoginTokens:
    access_token: str
    refresh_token: str
    refresh_ttl_seconds: int


class SessionService:
    def __init__(
        self,
        accounts: AccountRepository,
        codec: TokenCodec,
        settings: JWTSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._accounts = accounts
        self._codec = codec
        self._settings = settings
        self._clock = clock

    async def login(
        self,
        account: AccountDoc,
        *,
        refresh_ttl: Optional[int] = None,
        client_ip: Optional[str] = None,
    ) -> LoginTokens:
        """Issue access + refresh credentials and persist the refresh value."""
        refresh_ttl = refresh_ttl or self._settings.refresh_token_ttl_seconds
        access_token = self._codec.issue(
            account.account_id,
            PURPOSE_ACCESS,
            ttl=self._settings.access_token_ttl_seconds,
            role=account.role,
        )
        refresh_token = self._codec.issue(
            account.account_id, PURPOSE_REFRESH, ttl=refresh_ttl, role=account.role
        )

        fields = {"refresh_token": refresh_token, "last_login": self._clock()}
        if client_ip:
            fields["last_login_ip"] = client_ip
        await self._accounts.update_fields(account.account_id, fields)

        log.info("login_success", account_id=account.account_id, role=account.role)
        return LoginTokens(access_token, refresh_token, refresh_ttl)

    async def refresh(self, presented: Optional[str]) -> str:
        """Rotate the stored refresh credential and return its replacement.

        The replacement is an access-purpose credential with the rotated TTL;
        it becomes both the bearer token and the new refresh value.
        """
        if not presented:
            raise AuthenticationError("Refresh token is missing.")

        account = await self._accounts.find_by_refresh_token(presented)
        if account is None:
            log.info("refresh_rejected", reason="not_stored")
            raise ForbiddenError("Invalid refresh token.")

        try:
            claims = self._codec.verify(presented, purposes=_REFRESH_PURPOSES)
        except (TokenExpiredError, TokenMalformedError) as exc:
            log.info(
                "refresh_rejected", reason=type(exc).__name__, account_id=account.account_id
            )
            raise ForbiddenError("Invalid refresh token.") from exc

        if claims.subject != account.account_id:
            log.warning("refresh_rejected", reason="subject_mismatch", account_id=account.account_id)
            raise ForbiddenError("Invalid refresh token.")

        replacement = self._codec.issue(
            account.account_id,
            PURPOSE_ACCESS,
            ttl=self._settings.rotated_refresh_token_ttl_seconds,
            role=account.role,
        )
        if not await self._accounts.rotate_refresh_token(
            account.account_id, presented, replacement
        ):
            # Lost the race to a concurrent refresh or logout
            log.info("refresh_rejected", reason="rotated_concurrently", account_id=account.account_id)
            raise ForbiddenError("Invalid refresh token.")

        log.info("refresh_rotated", account_id=account.account_id)
        return replacement

    async def logout(self, presented: Optional[str]) -> Optional[str]:
        """Revoke the refresh credential if it is stored; returns the account id."""
        if not presented:
            return None
        account = await self._accounts.revoke_refresh_token(presented)
        if account is None:
            log.info("logout_noop")
            return None
        log.info("logout", account_id=account.account_id)
        return account.account_id

    async def authenticate_bearer(self, token: Optional[str]) -> AccountDoc:
        """Resolve the signed-in account from an access or refresh credential."""
        if not token:
            raise AuthenticationError("Authentication required.")
        try:
            claims = self._codec.verify(token, purposes=_REFRESH_PURPOSES)
        except TokenExpiredError as exc:
            raise AuthenticationError("Session expired. Please sign in again.") from exc
        except TokenMalformedError as exc:
            raise AuthenticationError("Invalid authentication token.") from exc

        account = await self._accounts.find_by_account_id(claims.subject)
        if account is None:
            raise AuthenticationError("Invalid authentication token.")
        return account.sanitized()
