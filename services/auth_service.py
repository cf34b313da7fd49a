"""
Signup, signin, forgot-password and resend flows.

Composes CredentialService, ActionTokenService and SessionService into the
operations the auth routes expose. Cookie handling stays in the routes; the
results here carry every token a route needs to set.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    TokenExpiredError,
    TokenMalformedError,
    ValidationError,
)
from repositories.account_repository import AccountRepository
from repositories.notification_repository import NotificationRepository
from schemas.dto.requests.auth import SignupRequest
from schemas.models.account import AccountDoc
from schemas.models.notification import NotificationDoc
from services.action_token_service import ActionIssued, ActionTokenService
from services.cooldown import SessionCooldown
from services.credential_service import CredentialService
from services.session_service import LoginTokens, SessionService
from services.token_codec import PURPOSE_SESSION, TokenCodec
from shared.crypto import hash_password
from shared.datetime_utils import Clock, utc_now
from shared.generators import generate_account_id
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

EMAIL_IN_USE = "This email is already in use."
DASHBOARD_REDIRECT = "/dashboard"


def notifications_redirect(account_id: str) -> str:
    return f"/auth/notifications/{account_id}"


@dataclass(frozen=True)
class SignupResult:
    account: AccountDoc
    session_token: str
    email_sent: bool


@dataclass(frozen=True)
class SigninResult:
    account: AccountDoc
    tokens: Optional[LoginTokens] = None
    verification: Optional[ActionIssued] = None

    @property
    def verification_required(self) -> bool:
        return self.tokens is None


class AuthService:
    def __init__(
        self,
        accounts: AccountRepository,
        notifications: NotificationRepository,
        credentials: CredentialService,
        action_tokens: ActionTokenService,
        sessions: SessionService,
        codec: TokenCodec,
        clock: Clock = utc_now,
    ) -> None:
        self._accounts = accounts
        self._notifications = notifications
        self._credentials = credentials
        self._action_tokens = action_tokens
        self._sessions = sessions
        self._codec = codec
        self._clock = clock

    async def signup(self, body: SignupRequest) -> SignupResult:
        email = normalize_email(body.email)
        if await self._accounts.find_by_email(email) is not None:
            raise ValidationError("Email already exists", errors={"email": EMAIL_IN_USE})

        account = AccountDoc(
            account_id=generate_account_id(),
            first_name=body.first_name.strip(),
            last_name=body.last_name.strip(),
            email=email,
            password_hash=hash_password(body.password),
        )
        try:
            account = await self._accounts.insert(account)
        except DuplicateKeyError:
            # Lost a race with a concurrent signup for the same email
            raise ValidationError("Email already exists", errors={"email": EMAIL_IN_USE})

        log.info("signup", account_id=account.account_id)
        issued = await self._action_tokens.ensure_verification(account)
        await self._notify_admin(account)
        return SignupResult(account, issued.session_token, issued.email_sent)

    async def _notify_admin(self, account: AccountDoc) -> None:
        """Best effort: a failure here never fails the signup."""
        try:
            admin = await self._accounts.find_first_admin()
            if admin is None:
                return
            await self._notifications.insert(
                NotificationDoc(
                    recipient_id=admin.account_id,
                    related_id=account.account_id,
                    message=f"{account.full_name} created an account.",
                )
            )
        except PyMongoError as e:
            log.warning(
                "admin_notification_failed",
                account_id=account.account_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def signin(
        self,
        email: Optional[str],
        password: Optional[str],
        *,
        cooldown: Optional[SessionCooldown] = None,
        client_ip: Optional[str] = None,
    ) -> SigninResult:
        account = await self._credentials.authenticate(email, password)

        if not account.is_verified:
            # sanitized() dropped the token; re-read to see if it is still live
            stored = await self._accounts.find_by_account_id(account.account_id)
            issued = await self._action_tokens.ensure_verification(
                stored or account, cooldown
            )
            log.info("signin_verification_required", account_id=account.account_id)
            return SigninResult(account=account, verification=issued)

        tokens = await self._sessions.login(account, client_ip=client_ip)
        return SigninResult(account=account, tokens=tokens)

    async def forgot(self, email: str, cooldown: SessionCooldown) -> tuple[AccountDoc, ActionIssued]:
        account = await self._accounts.find_by_email(normalize_email(email))
        if account is None:
            raise NotFoundError("This user is not registered.")
        issued = await self._action_tokens.request_action(account, cooldown)
        return account, issued

    async def resend(
        self,
        account_id: str,
        session_token: Optional[str],
        cooldown: SessionCooldown,
        kind: Optional[str] = None,
    ) -> ActionIssued:
        """Re-send the pending link for the account the session token belongs to."""
        if not session_token:
            raise AuthenticationError("Session not found.")
        try:
            claims = self._codec.verify(session_token, purposes=(PURPOSE_SESSION,))
        except TokenExpiredError as exc:
            raise AuthenticationError("Session expired.") from exc
        except TokenMalformedError as exc:
            raise AuthenticationError("Invalid token.") from exc

        if claims.subject != account_id:
            raise ForbiddenError("Access denied.")

        account = await self._accounts.find_by_account_id(account_id)
        if account is None:
            raise NotFoundError("Account not found.")
        return await self._action_tokens.request_action(account, cooldown, kind)
