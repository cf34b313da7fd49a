"""
Federated sign-in: maps a provider profile onto a local account.

One code path serves every provider. The profile has already been fetched
and normalised by the provider strategy (infrastructure/oauth_clients.py);
this service only needs its email, provider user id and display names.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pymongo.errors import DuplicateKeyError

from config import JWTSettings
from errors import AuthenticationError
from repositories.account_repository import AccountRepository
from schemas.models.account import (
    ACCOUNT_STATUS_ACTIVE,
    ROLE_ADMIN,
    AccountDoc,
    AuthProviderEntry,
)
from services.session_service import LoginTokens, SessionService
from shared.crypto import hash_password
from shared.datetime_utils import Clock, utc_now
from shared.generators import generate_account_id, generate_unusable_password
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

ROLE_REDIRECTS = {ROLE_ADMIN: "/admin/dashboard"}
DEFAULT_REDIRECT = "/dashboard"


@dataclass(frozen=True)
class OAuthLoginResult:
    account: AccountDoc
    tokens: LoginTokens
    created: bool

    @property
    def redirect_path(self) -> str:
        return ROLE_REDIRECTS.get(self.account.role, DEFAULT_REDIRECT)


class OAuthService:
    def __init__(
        self,
        accounts: AccountRepository,
        sessions: SessionService,
        settings: JWTSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._accounts = accounts
        self._sessions = sessions
        self._settings = settings
        self._clock = clock

    async def login_with_provider(
        self,
        provider: str,
        profile: dict[str, Any],
        *,
        client_ip: Optional[str] = None,
    ) -> OAuthLoginResult:
        """Find or create the account for *profile* and sign it in.

        New accounts are verified and active with a random password. An
        existing account gets the provider linked if it is not yet.
        """
        email = normalize_email(profile.get("email"))
        if not email:
            log.warning("oauth_profile_without_email", provider=provider)
            raise AuthenticationError(
                f"Your {provider} account did not share an email address."
            )

        entry = AuthProviderEntry(
            provider=provider,
            provider_user_id=str(profile.get("provider_user_id", "")),
            email=email,
            linked_at=self._clock(),
        )

        created = False
        account = await self._accounts.find_by_email(email)
        if account is None:
            try:
                account = await self._accounts.insert(
                    AccountDoc(
                        account_id=generate_account_id(),
                        first_name=profile.get("given_name") or "",
                        last_name=profile.get("family_name") or "",
                        email=email,
                        password_hash=hash_password(generate_unusable_password()),
                        is_verified=True,
                        account_status=ACCOUNT_STATUS_ACTIVE,
                        profile_image=profile.get("picture") or None,
                        auth_providers=[entry],
                    )
                )
                created = True
                log.info("oauth_account_created", provider=provider, account_id=account.account_id)
            except DuplicateKeyError:
                # A concurrent callback created it first
                account = await self._accounts.find_by_email(email)
                if account is None:
                    raise

        if not created and not any(
            p.provider == provider for p in account.auth_providers
        ):
            await self._accounts.add_auth_provider(account.account_id, entry)
            log.info("oauth_provider_linked", provider=provider, account_id=account.account_id)

        tokens = await self._sessions.login(
            account,
            refresh_ttl=self._settings.rotated_refresh_token_ttl_seconds,
            client_ip=client_ip,
        )
        return OAuthLoginResult(account.sanitized(), tokens, created)
