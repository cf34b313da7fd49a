"""
Local email/password authentication and the login-lockout state machine.

    unlocked --(wrong password, attempts < max)--> unlocked, attempts + 1
    unlocked --(wrong password, attempts == max)--> locked until now + duration
    locked   --(now >= lock_until + buffer)-------> unlocked, attempts = 0
    unlocked --(correct password)-----------------> unlocked, attempts = 0

While locked every attempt fails with AccountLockedError, including one with
the correct password. Unknown emails still pay for a full argon2 verification
so response timing does not reveal which emails are registered.
"""

from __future__ import annotations

import math
from datetime import timedelta
from typing import Optional

from config import SecuritySettings
from errors import (
    AccountLockedError,
    InvalidCredentialsError,
    TooManyAttemptsError,
    ValidationError,
)
from repositories.account_repository import AccountRepository
from schemas.models.account import AccountDoc
from shared.crypto import burn_password_check, verify_password
from shared.datetime_utils import Clock, ensure_utc, utc_now
from shared.logging import get_logger, mask_for_log
from shared.validators import normalize_email

log = get_logger(__name__)


class CredentialService:
    def __init__(
        self,
        accounts: AccountRepository,
        settings: SecuritySettings,
        clock: Clock = utc_now,
    ) -> None:
        self._accounts = accounts
        self._settings = settings
        self._clock = clock

    async def authenticate(
        self, email: Optional[str], password: Optional[str]
    ) -> AccountDoc:
        """Return the sanitized account for a correct email/password pair.

        Raises:
            ValidationError: email or password missing.
            AccountLockedError: the account is inside its lock window.
            TooManyAttemptsError: this failure reached the attempt limit.
            InvalidCredentialsError: unknown email or wrong password.
        """
        missing = {}
        if not email:
            missing["email"] = "Email is required."
        if not password:
            missing["password"] = "Password is required."
        if missing:
            raise ValidationError("Email and password are required.", errors=missing)

        email = normalize_email(email)
        account = await self._accounts.find_by_email(email)
        if account is None:
            burn_password_check(password)
            log.info("login_failed", reason="unknown_email", email=mask_for_log(email))
            raise InvalidCredentialsError()

        now = self._clock()
        if account.is_locked:
            lock_until = ensure_utc(account.lock_until)
            unlock_at = (
                lock_until + timedelta(seconds=self._settings.unlock_buffer_seconds)
                if lock_until
                else None
            )
            if unlock_at is not None and now < unlock_at:
                minutes_left = max(
                    1, math.ceil((lock_until - now).total_seconds() / 60)
                )
                log.info(
                    "login_blocked_locked",
                    account_id=account.account_id,
                    minutes_left=minutes_left,
                )
                raise AccountLockedError(
                    f"Account locked. Try again in {minutes_left} minute(s)."
                )
            await self._accounts.clear_lock(account.account_id)
            account = account.model_copy(
                update={"is_locked": False, "login_attempts": 0, "lock_until": None}
            )
            log.info("account_lock_expired", account_id=account.account_id)

        if not account.password_hash:
            burn_password_check(password)
            matched = False
        else:
            matched = verify_password(password, account.password_hash)

        if not matched:
            await self._register_failure(account, now)

        if account.login_attempts > 0 or account.is_locked:
            await self._accounts.clear_lock(account.account_id)

        log.info("login_credentials_ok", account_id=account.account_id)
        return account.sanitized().model_copy(
            update={"is_locked": False, "lock_until": None}
        )

    async def _register_failure(self, account: AccountDoc, now) -> None:
        attempts = await self._accounts.increment_login_attempts(account.account_id)
        max_attempts = self._settings.max_login_attempts

        if attempts >= max_attempts:
            lock_until = now + timedelta(seconds=self._settings.lock_duration_seconds)
            await self._accounts.lock(account.account_id, lock_until)
            minutes = math.ceil(self._settings.lock_duration_seconds / 60)
            log.warning(
                "account_locked",
                account_id=account.account_id,
                attempts=attempts,
                lock_until=lock_until.isoformat(),
            )
            raise TooManyAttemptsError(
                f"Too many failed attempts. Account locked for {minutes} minutes."
            )

        remaining = max_attempts - attempts
        log.info(
            "login_failed",
            reason="wrong_password",
            account_id=account.account_id,
            remaining_attempts=remaining,
        )
        raise InvalidCredentialsError(remaining_attempts=remaining)
