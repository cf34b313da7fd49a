"""
Profile management for signed-in accounts and administrator user CRUD.

Administrator operations only ever see accounts with the ``user`` role.
"""

from __future__ import annotations

from typing import Optional

from pymongo.errors import PyMongoError

from config import SecuritySettings
from errors import ForbiddenError, NotFoundError, ValidationError
from repositories.account_repository import AccountRepository
from repositories.notification_repository import NotificationRepository
from schemas.models.account import ROLE_USER, AccountDoc
from shared.crypto import hash_password, verify_password
from shared.logging import get_logger
from shared.validators import validate_new_password

log = get_logger(__name__)

ADMIN_ONLY = "You are not allowed to perform this operation."


class UserService:
    def __init__(
        self,
        accounts: AccountRepository,
        notifications: NotificationRepository,
        settings: SecuritySettings,
    ) -> None:
        self._accounts = accounts
        self._notifications = notifications
        self._settings = settings

    async def _load(self, account_id: str) -> AccountDoc:
        account = await self._accounts.find_by_account_id(account_id)
        if account is None:
            raise NotFoundError("User not found.")
        return account

    async def update_profile_info(
        self, account_id: str, first_name: str, last_name: str
    ) -> AccountDoc:
        await self._load(account_id)
        await self._accounts.update_fields(
            account_id,
            {"first_name": first_name.strip(), "last_name": last_name.strip()},
        )
        log.info("profile_updated", account_id=account_id)
        return (await self._load(account_id)).sanitized()

    async def update_password(
        self,
        account_id: str,
        current_password: str,
        new_password: Optional[str],
        confirm_new_password: Optional[str],
    ) -> None:
        account = await self._load(account_id)

        if not account.password_hash or not verify_password(
            current_password, account.password_hash
        ):
            raise ForbiddenError("Current password is incorrect.", field="currentPassword")

        errors = validate_new_password(
            new_password,
            confirm_new_password,
            min_length=self._settings.min_password_length,
            password_field="newPassword",
            confirm_field="confirmNewPassword",
        )
        if errors:
            raise ValidationError("Validation errors in fields", errors=errors)

        if verify_password(new_password, account.password_hash):
            raise ValidationError(
                "The new password must differ from the current one.",
                errors={
                    "newPassword": "The new password must differ from the current one.",
                    "currentPassword": "The current password is the same as the new one.",
                },
            )

        await self._accounts.update_fields(
            account_id, {"password_hash": hash_password(new_password)}
        )
        log.info("password_changed", account_id=account_id)

    # ── Administrator operations ─────────────────────────────────────────────

    @staticmethod
    def _require_admin(requester: AccountDoc) -> None:
        if not requester.is_admin:
            log.warning("admin_operation_denied", account_id=requester.account_id)
            raise ForbiddenError(ADMIN_ONLY)

    async def list_users(self, requester: AccountDoc) -> list[AccountDoc]:
        self._require_admin(requester)
        return [a.sanitized() for a in await self._accounts.list_by_role(ROLE_USER)]

    async def get_user(self, requester: AccountDoc, account_id: str) -> AccountDoc:
        self._require_admin(requester)
        account = await self._accounts.find_by_account_id(account_id)
        if account is None or account.role != ROLE_USER:
            raise NotFoundError("User not found.")
        return account.sanitized()

    async def delete_user(self, requester: AccountDoc, account_id: str) -> None:
        self._require_admin(requester)
        account = await self._accounts.find_by_account_id(account_id)
        if account is None or account.role != ROLE_USER:
            raise NotFoundError("User not found.")

        await self._accounts.delete(account_id)
        log.info(
            "user_deleted", account_id=account_id, deleted_by=requester.account_id
        )

        try:
            removed = await self._notifications.delete_for_account(account_id)
            log.info("user_notifications_deleted", account_id=account_id, count=removed)
        except PyMongoError as e:
            log.warning(
                "user_notifications_cleanup_failed",
                account_id=account_id,
                error=str(e),
                error_type=type(e).__name__,
            )
