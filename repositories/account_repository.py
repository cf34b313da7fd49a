"""
Async MongoDB access for the `accounts` collection.

Every method that backs a read-then-write decision in the service layer
(lockout counter, verification, password reset, refresh rotation) is a
single-document atomic update: an `$inc`, or an update whose filter also
matches the value the caller read. Callers learn from the return value
whether they won.

Driver exceptions propagate; the app-level handler maps them to a 500.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument

from schemas.models.account import (
    ACCOUNT_STATUS_ACTIVE,
    ROLE_ADMIN,
    AccountDoc,
    AuthProviderEntry,
)
from shared.datetime_utils import Clock, utc_now

ACTION_VERIFICATION = "verification"
ACTION_RESET = "reset"

_TOKEN_FIELDS = {
    ACTION_VERIFICATION: ("verification_token", "verification_expires_at"),
    ACTION_RESET: ("password_reset_token", "password_reset_expires_at"),
}


class AccountRepository:
    collection_name = "accounts"

    def __init__(self, db: Any, clock: Clock = utc_now) -> None:
        self._col = db[self.collection_name]
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("account_id", ASCENDING)], unique=True)
        await self._col.create_index([("email", ASCENDING)], unique=True)
        await self._col.create_index(
            [("refresh_token", ASCENDING)], unique=True, sparse=True
        )
        await self._col.create_index([("role", ASCENDING), ("created_at", DESCENDING)])
        await self._col.create_index(
            [
                ("auth_providers.provider", ASCENDING),
                ("auth_providers.provider_user_id", ASCENDING),
            ]
        )

    # ── Reads ────────────────────────────────────────────────────────────────

    async def find_by_email(self, email: str) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(await self._col.find_one({"email": email}))

    async def find_by_account_id(self, account_id: str) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(
            await self._col.find_one({"account_id": account_id})
        )

    async def find_by_refresh_token(self, token: str) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(await self._col.find_one({"refresh_token": token}))

    async def find_first_admin(self) -> Optional[AccountDoc]:
        return AccountDoc.from_mongo(await self._col.find_one({"role": ROLE_ADMIN}))

    async def list_by_role(self, role: str) -> list[AccountDoc]:
        cursor = self._col.find({"role": role}, sort=[("created_at", DESCENDING)])
        docs = await cursor.to_list(length=None)
        return [AccountDoc.from_mongo(doc) for doc in docs]

    # ── Writes ───────────────────────────────────────────────────────────────

    async def insert(self, account: AccountDoc) -> AccountDoc:
        """Insert a new account. Raises DuplicateKeyError on a taken email."""
        now = self._clock()
        account = account.model_copy(
            update={"created_at": account.created_at or now, "updated_at": now}
        )
        doc = account.to_mongo()
        # The sparse unique index must not see a null refresh_token
        if doc.get("refresh_token") is None:
            doc.pop("refresh_token", None)
        result = await self._col.insert_one(doc)
        return account.model_copy(update={"id": result.inserted_id})

    async def update_fields(
        self,
        account_id: str,
        set_fields: Optional[dict[str, Any]] = None,
        unset_fields: Iterable[str] = (),
    ) -> bool:
        update: dict[str, Any] = {
            "$set": {**(set_fields or {}), "updated_at": self._clock()}
        }
        unset = {name: "" for name in unset_fields}
        if unset:
            update["$unset"] = unset
        result = await self._col.update_one({"account_id": account_id}, update)
        return result.matched_count > 0

    async def delete(self, account_id: str) -> bool:
        result = await self._col.delete_one({"account_id": account_id})
        return result.deleted_count > 0

    # ── Lockout ──────────────────────────────────────────────────────────────

    async def increment_login_attempts(self, account_id: str) -> int:
        """Atomically add one failed attempt; returns the new count."""
        doc = await self._col.find_one_and_update(
            {"account_id": account_id},
            {"$inc": {"login_attempts": 1}, "$set": {"updated_at": self._clock()}},
            return_document=ReturnDocument.AFTER,
        )
        return int(doc.get("login_attempts", 0)) if doc else 0

    async def lock(self, account_id: str, lock_until: datetime) -> None:
        await self.update_fields(
            account_id, {"is_locked": True, "lock_until": lock_until}
        )

    async def clear_lock(self, account_id: str) -> None:
        await self.update_fields(
            account_id,
            {"is_locked": False, "login_attempts": 0},
            unset_fields=("lock_until",),
        )

    # ── Action tokens ────────────────────────────────────────────────────────

    async def set_action_token(
        self, account_id: str, kind: str, token: str, expires_at: datetime
    ) -> None:
        """Write one action-token pair and clear the other in a single update."""
        token_field, expires_field = _TOKEN_FIELDS[kind]
        other = ACTION_RESET if kind == ACTION_VERIFICATION else ACTION_VERIFICATION
        other_token, other_expires = _TOKEN_FIELDS[other]
        await self.update_fields(
            account_id,
            {
                token_field: token,
                expires_field: expires_at,
                other_token: None,
                other_expires: None,
            },
        )

    async def mark_verified(self, account_id: str) -> bool:
        """Flip an unverified account to verified+active.

        Returns False when the account was already verified (or is gone), so
        a replayed link never re-runs the transition.
        """
        result = await self._col.update_one(
            {"account_id": account_id, "is_verified": False},
            {
                "$set": {
                    "is_verified": True,
                    "account_status": ACCOUNT_STATUS_ACTIVE,
                    "verification_token": None,
                    "verification_expires_at": None,
                    "updated_at": self._clock(),
                }
            },
        )
        return result.modified_count > 0

    async def reset_password(
        self, account_id: str, expected_token: str, password_hash: str
    ) -> bool:
        """Store a new hash only if *expected_token* is still the live reset token."""
        result = await self._col.update_one(
            {"account_id": account_id, "password_reset_token": expected_token},
            {
                "$set": {
                    "password_hash": password_hash,
                    "password_reset_token": None,
                    "password_reset_expires_at": None,
                    "updated_at": self._clock(),
                }
            },
        )
        return result.modified_count > 0

    # ── Refresh credentials ──────────────────────────────────────────────────

    async def rotate_refresh_token(
        self, account_id: str, expected: str, replacement: str
    ) -> bool:
        """Compare-and-swap the stored refresh credential."""
        result = await self._col.update_one(
            {"account_id": account_id, "refresh_token": expected},
            {"$set": {"refresh_token": replacement, "updated_at": self._clock()}},
        )
        return result.modified_count > 0

    async def revoke_refresh_token(self, token: str) -> Optional[AccountDoc]:
        """Unset the refresh credential; returns the account it belonged to."""
        now = self._clock()
        doc = await self._col.find_one_and_update(
            {"refresh_token": token},
            {"$unset": {"refresh_token": ""}, "$set": {"last_seen": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        return AccountDoc.from_mongo(doc)

    # ── OAuth links ──────────────────────────────────────────────────────────

    async def add_auth_provider(self, account_id: str, entry: AuthProviderEntry) -> None:
        await self._col.update_one(
            {"account_id": account_id},
            {
                "$push": {"auth_providers": entry.model_dump()},
                "$set": {"updated_at": self._clock()},
            },
        )
