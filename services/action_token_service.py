"""
Verification and password-reset action tokens.

An account carries at most one live action token: the verification pair while
it is unverified, the reset pair once verified. Issuing one pair clears the
other in the same update. A token is only honoured while it is the one stored
on the account, so a newer link supersedes an older one and a reset link
works once.

Issuance is throttled per browser session by SessionCooldown. Alongside each
action token the service hands out a short session token that lets the
browser poll the status of the pending process without signing in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from config import JWTSettings, SecuritySettings
from errors import (
    AuthenticationError,
    CooldownError,
    DeliveryFailureError,
    ForbiddenError,
    NotFoundError,
    SessionExpiredError,
    TokenExpiredError,
    TokenMalformedError,
    ValidationError,
)
from infrastructure.email.protocol import EmailProvider
from repositories.account_repository import (
    ACTION_RESET,
    ACTION_VERIFICATION,
    AccountRepository,
)
from schemas.models.account import AccountDoc
from services.cooldown import SessionCooldown
from services.token_codec import (
    PURPOSE_RESET,
    PURPOSE_SESSION,
    PURPOSE_VERIFICATION,
    TokenClaims,
    TokenCodec,
)
from shared.crypto import constant_time_equals, hash_password
from shared.datetime_utils import Clock, ensure_utc, utc_now
from shared.logging import get_logger
from shared.validators import mask_email, validate_new_password

log = get_logger(__name__)

STATUS_VERIFIED = "verified"
STATUS_PENDING = "success"

MODE_SESSION = "session"
MODE_TOKEN = "token"

INVALID_LINK = "Invalid link."


@dataclass(frozen=True)
class ActionIssued:
    kind: str
    action_token: str
    session_token: str
    expires_at: datetime
    email_sent: bool = True


@dataclass(frozen=True)
class VerificationOutcome:
    account_id: str
    already_verified: bool


@dataclass(frozen=True)
class ActionStatus:
    status: str
    message: str
    account_id: str
    email: Optional[str]
    is_verified: bool
    session_type: Optional[str] = None
    expires_at: Optional[datetime] = None
    issued_at: Optional[datetime] = None
    cooldown: int = 0
    session_token: Optional[str] = None


@dataclass(frozen=True)
class VerificationStatus:
    is_verified: bool
    process_type: Optional[str]
    mode: str


@dataclass(frozen=True)
class TokenInfo:
    account_id: str
    email: Optional[str]
    token_type: str
    expires_at: datetime
    is_verified: bool


def _is_live(
    stored: Optional[str], expires_at: Optional[datetime], now: datetime
) -> bool:
    return bool(stored) and expires_at is not None and ensure_utc(expires_at) > now


def _matches_live(
    token: str,
    stored: Optional[str],
    expires_at: Optional[datetime],
    now: datetime,
) -> bool:
    return _is_live(stored, expires_at, now) and constant_time_equals(token, stored)


class ActionTokenService:
    def __init__(
        self,
        accounts: AccountRepository,
        codec: TokenCodec,
        email_provider: EmailProvider,
        jwt_settings: JWTSettings,
        security_settings: SecuritySettings,
        frontend_url: str,
        clock: Clock = utc_now,
    ) -> None:
        self._accounts = accounts
        self._codec = codec
        self._email = email_provider
        self._action_ttl = jwt_settings.action_token_ttl_seconds
        self._session_ttl = jwt_settings.session_token_ttl_seconds
        self._min_password_length = security_settings.min_password_length
        self._frontend_url = frontend_url.rstrip("/")
        self._clock = clock

    # ── Issuance ─────────────────────────────────────────────────────────────

    def issue_session_token(self, account_id: str) -> str:
        return self._codec.issue(account_id, PURPOSE_SESSION, ttl=self._session_ttl)

    def _link_for(self, kind: str, token: str) -> str:
        if kind == ACTION_VERIFICATION:
            return f"{self._frontend_url}/auth/verify-email/{token}"
        return f"{self._frontend_url}/auth/reset-password/{token}"

    async def _dispatch(self, account: AccountDoc, kind: str, token: str) -> bool:
        link = self._link_for(kind, token)
        if kind == ACTION_VERIFICATION:
            return await self._email.send_verification_email(
                account.email, account.full_name or None, link
            )
        return await self._email.send_password_reset_email(
            account.email, account.full_name or None, link
        )

    async def _store_new_token(self, account: AccountDoc, kind: str) -> tuple[str, datetime]:
        purpose = PURPOSE_VERIFICATION if kind == ACTION_VERIFICATION else PURPOSE_RESET
        token = self._codec.issue(account.account_id, purpose, ttl=self._action_ttl)
        expires_at = self._clock() + timedelta(seconds=self._action_ttl)
        await self._accounts.set_action_token(account.account_id, kind, token, expires_at)
        return token, expires_at

    async def request_action(
        self,
        account: AccountDoc,
        cooldown: SessionCooldown,
        kind: Optional[str] = None,
    ) -> ActionIssued:
        """Issue and email a fresh verification or reset link.

        *kind* defaults to what the account state calls for; an explicit kind
        that contradicts the state is rejected.

        Raises:
            ValidationError: explicit kind not valid for this account.
            CooldownError: a link was issued to this session too recently.
            DeliveryFailureError: the email could not be sent. The new token
                is already stored, so a later resend can retry.
        """
        if kind is None:
            kind = ACTION_VERIFICATION if not account.is_verified else ACTION_RESET
        elif kind not in (ACTION_VERIFICATION, ACTION_RESET):
            raise ValidationError(
                "Unknown email type.", errors={"type": "Must be verification or reset."}
            )
        if kind == ACTION_VERIFICATION and account.is_verified:
            raise ValidationError("The account is already verified.")
        if kind == ACTION_RESET and not account.is_verified:
            raise ValidationError(
                "The account must be verified before the password can be reset."
            )

        seconds_left = cooldown.seconds_left(account.account_id)
        if seconds_left > 0:
            log.info(
                "action_token_cooldown",
                account_id=account.account_id,
                seconds_left=seconds_left,
            )
            raise CooldownError(
                f"Please wait {seconds_left} seconds before requesting another email.",
                seconds_left=seconds_left,
            )

        action_token, expires_at = await self._store_new_token(account, kind)
        if not await self._dispatch(account, kind, action_token):
            log.error("action_email_failed", account_id=account.account_id, kind=kind)
            raise DeliveryFailureError("The email could not be sent. Please try again.")

        cooldown.mark(account.account_id)
        log.info("action_token_issued", account_id=account.account_id, kind=kind)
        return ActionIssued(
            kind=kind,
            action_token=action_token,
            session_token=self.issue_session_token(account.account_id),
            expires_at=expires_at,
        )

    async def ensure_verification(
        self, account: AccountDoc, cooldown: Optional[SessionCooldown] = None
    ) -> ActionIssued:
        """Make sure an unverified account has a live verification link.

        Reuses the stored token while it is unexpired; otherwise issues and
        emails a new one. A failed email is logged, not raised, so signin can
        still route the user to the pending-verification page.
        """
        now = self._clock()
        if _is_live(account.verification_token, account.verification_expires_at, now):
            return ActionIssued(
                kind=ACTION_VERIFICATION,
                action_token=account.verification_token,
                session_token=self.issue_session_token(account.account_id),
                expires_at=ensure_utc(account.verification_expires_at),
                email_sent=False,
            )

        token, expires_at = await self._store_new_token(account, ACTION_VERIFICATION)
        sent = await self._dispatch(account, ACTION_VERIFICATION, token)
        if sent:
            if cooldown is not None:
                cooldown.mark(account.account_id)
        else:
            log.error(
                "action_email_failed",
                account_id=account.account_id,
                kind=ACTION_VERIFICATION,
            )
        return ActionIssued(
            kind=ACTION_VERIFICATION,
            action_token=token,
            session_token=self.issue_session_token(account.account_id),
            expires_at=expires_at,
            email_sent=sent,
        )

    # ── Consumption ──────────────────────────────────────────────────────────

    async def consume_verification(self, token: str) -> VerificationOutcome:
        """Mark the account verified. Replaying a used link succeeds without effect."""
        try:
            claims = self._codec.verify(token, purposes=(PURPOSE_VERIFICATION,))
        except TokenExpiredError:
            raise TokenExpiredError("Your verification link has expired.")
        except TokenMalformedError:
            raise TokenMalformedError("Invalid verification link.")

        account = await self._accounts.find_by_account_id(claims.subject)
        if account is None:
            raise NotFoundError("Account not found.")

        if account.is_verified:
            log.info("email_already_verified", account_id=account.account_id)
            return VerificationOutcome(account.account_id, already_verified=True)

        if not account.verification_token or not constant_time_equals(
            token, account.verification_token
        ):
            log.info("verification_token_superseded", account_id=account.account_id)
            raise TokenMalformedError("Invalid verification link.")

        changed = await self._accounts.mark_verified(account.account_id)
        log.info("email_verified", account_id=account.account_id, changed=changed)
        return VerificationOutcome(account.account_id, already_verified=not changed)

    async def consume_reset(
        self,
        token: str,
        password: Optional[str],
        password_confirm: Optional[str],
    ) -> str:
        """Set a new password through a reset link; returns the account id."""
        try:
            claims = self._codec.verify(token, purposes=(PURPOSE_RESET,))
        except TokenExpiredError:
            raise TokenExpiredError("Your reset link has expired.")
        except TokenMalformedError:
            raise TokenMalformedError("Invalid reset link.")

        account = await self._accounts.find_by_account_id(claims.subject)
        if account is None:
            raise ValidationError(INVALID_LINK)

        errors = validate_new_password(
            password, password_confirm, min_length=self._min_password_length
        )
        if errors:
            raise ValidationError("Validation errors in fields", errors=errors)

        if not _matches_live(
            token,
            account.password_reset_token,
            account.password_reset_expires_at,
            self._clock(),
        ):
            log.info("reset_token_not_current", account_id=account.account_id)
            raise ValidationError(INVALID_LINK)

        if not await self._accounts.reset_password(
            account.account_id, token, hash_password(password)
        ):
            # Another request consumed the same link first
            raise ValidationError(INVALID_LINK)

        log.info("password_reset", account_id=account.account_id)
        return account.account_id

    # ── Status queries ───────────────────────────────────────────────────────

    def _try_decode(self, token: Optional[str], purposes) -> tuple[Optional[TokenClaims], bool]:
        """Decode without raising; returns (claims, expired)."""
        if not token:
            return None, False
        try:
            return self._codec.verify(token, purposes=purposes), False
        except TokenExpiredError:
            return None, True
        except TokenMalformedError:
            return None, False

    async def query_status(
        self,
        identifier: str,
        session_token: Optional[str],
        cooldown: SessionCooldown,
    ) -> ActionStatus:
        """Report which action process is pending for an account.

        Lookup modes, tried in order:
        - session: a valid session token whose subject is *identifier*
        - token: *identifier* is itself the live action token from an email
          link; a new session token is returned in the result
        - bare id: fails closed with 401, or 440 when the session token had
          expired
        """
        now = self._clock()
        new_session_token: Optional[str] = None

        session_claims, session_expired = self._try_decode(
            session_token, (PURPOSE_SESSION,)
        )
        if session_claims is not None:
            if session_claims.subject != identifier:
                raise ForbiddenError("Access denied, data mismatch.")
            account = await self._accounts.find_by_account_id(session_claims.subject)
            if account is None:
                raise NotFoundError("Account not found.")
            issued_at = session_claims.issued_at
        else:
            action_claims, _ = self._try_decode(
                identifier, (PURPOSE_VERIFICATION, PURPOSE_RESET)
            )
            if action_claims is not None:
                account = await self._accounts.find_by_account_id(action_claims.subject)
                if account is None:
                    raise NotFoundError("Account not found.")
                if not (
                    _matches_live(
                        identifier,
                        account.verification_token,
                        account.verification_expires_at,
                        now,
                    )
                    or _matches_live(
                        identifier,
                        account.password_reset_token,
                        account.password_reset_expires_at,
                        now,
                    )
                ):
                    raise ValidationError("Token is invalid or expired.")
                new_session_token = self.issue_session_token(account.account_id)
                issued_at = now
            else:
                account = await self._accounts.find_by_account_id(identifier)
                if account is None:
                    raise NotFoundError("Account not found.")
                if session_expired:
                    raise SessionExpiredError("Session expired.")
                raise AuthenticationError(
                    "Authentication required. Please log in or use the "
                    "verification link from your email."
                )

        masked = mask_email(account.email)
        verification_active = not account.is_verified and _is_live(
            account.verification_token, account.verification_expires_at, now
        )
        reset_active = account.is_verified and _is_live(
            account.password_reset_token, account.password_reset_expires_at, now
        )

        if account.is_verified and not reset_active:
            return ActionStatus(
                status=STATUS_VERIFIED,
                message="Your account is already verified.",
                account_id=account.account_id,
                email=masked,
                is_verified=True,
                session_token=new_session_token,
            )

        if verification_active:
            session_type = ACTION_VERIFICATION
            expires_at = account.verification_expires_at
            message = (
                f"A verification email has been sent to {masked}. "
                "Please check your inbox."
            )
        elif reset_active:
            session_type = ACTION_RESET
            expires_at = account.password_reset_expires_at
            message = (
                f"A password reset email has been sent to {masked}. "
                "Please check your inbox."
            )
        else:
            raise ValidationError("No active verification or reset process found.")

        return ActionStatus(
            status=STATUS_PENDING,
            message=message,
            account_id=account.account_id,
            email=masked,
            is_verified=account.is_verified,
            session_type=session_type,
            expires_at=ensure_utc(expires_at),
            issued_at=issued_at,
            cooldown=cooldown.seconds_left(account.account_id),
            session_token=new_session_token,
        )

    async def check_verification_status(self, identifier: str) -> VerificationStatus:
        """Lightweight poll: by account id, falling back to an action token."""
        mode = MODE_SESSION
        account = await self._accounts.find_by_account_id(identifier)
        if account is None:
            claims, _ = self._try_decode(
                identifier, (PURPOSE_VERIFICATION, PURPOSE_RESET)
            )
            if claims is not None:
                account = await self._accounts.find_by_account_id(claims.subject)
                mode = MODE_TOKEN
        if account is None:
            raise NotFoundError("Account not found.")

        now = self._clock()
        process_type = None
        if not account.is_verified and _is_live(
            account.verification_token, account.verification_expires_at, now
        ):
            process_type = ACTION_VERIFICATION
        elif account.is_verified and _is_live(
            account.password_reset_token, account.password_reset_expires_at, now
        ):
            process_type = ACTION_RESET

        return VerificationStatus(
            is_verified=account.is_verified, process_type=process_type, mode=mode
        )

    async def token_info(self, token: str) -> TokenInfo:
        """Describe a live action token; expired or superseded tokens are rejected."""
        claims = self._codec.verify(token, purposes=(PURPOSE_VERIFICATION, PURPOSE_RESET))
        account = await self._accounts.find_by_account_id(claims.subject)
        if account is None:
            raise NotFoundError("Account not found.")

        now = self._clock()
        if _matches_live(
            token, account.verification_token, account.verification_expires_at, now
        ):
            token_type, expires_at = ACTION_VERIFICATION, account.verification_expires_at
        elif _matches_live(
            token, account.password_reset_token, account.password_reset_expires_at, now
        ):
            token_type, expires_at = ACTION_RESET, account.password_reset_expires_at
        else:
            raise ValidationError("Token is invalid or expired.")

        return TokenInfo(
            account_id=account.account_id,
            email=mask_email(account.email),
            token_type=token_type,
            expires_at=ensure_utc(expires_at),
            is_verified=account.is_verified,
        )
