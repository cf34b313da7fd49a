"""
Account document model.

Maps to the `accounts` MongoDB collection.

Two creation paths produce slightly different shapes:
- Password signup: pending + unverified, verification token pair set
- OAuth signup: active + verified, auth_providers populated

At most one of the verification / password-reset token pairs is set at a
time; the action-token service clears one pair whenever it writes the other.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from schemas.models.base import MongoBaseModel

ACCOUNT_STATUS_PENDING = "pending"
ACCOUNT_STATUS_ACTIVE = "active"
ACCOUNT_STATUS_SUSPENDED = "suspended"
ACCOUNT_STATUS_DEACTIVATED = "deactivated"

ROLE_USER = "user"
ROLE_ADMIN = "admin"

AccountStatus = Literal["pending", "active", "suspended", "deactivated"]
Role = Literal["user", "admin"]

# Fields that never leave the service layer
SENSITIVE_FIELDS = (
    "password_hash",
    "verification_token",
    "password_reset_token",
    "refresh_token",
    "login_attempts",
    "lock_until",
)


class AuthProviderEntry(BaseModel):
    """Single entry in the account's auth_providers array."""

    provider: str
    provider_user_id: str
    email: Optional[str] = None
    linked_at: Optional[datetime] = None


class AccountDoc(MongoBaseModel):
    """Document model for the `accounts` collection."""

    account_id: str
    first_name: str = ""
    last_name: str = ""
    email: str
    password_hash: Optional[str] = None

    is_verified: bool = False
    account_status: AccountStatus = ACCOUNT_STATUS_PENDING
    role: Role = ROLE_USER

    verification_token: Optional[str] = None
    verification_expires_at: Optional[datetime] = None
    password_reset_token: Optional[str] = None
    password_reset_expires_at: Optional[datetime] = None

    refresh_token: Optional[str] = None

    login_attempts: int = Field(default=0, ge=0)
    is_locked: bool = False
    lock_until: Optional[datetime] = None

    last_login: Optional[datetime] = None
    last_login_ip: Optional[str] = None
    last_seen: Optional[datetime] = None

    profile_image: Optional[str] = None
    auth_providers: list[AuthProviderEntry] = []

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def sanitized(self) -> "AccountDoc":
        """Copy with credentials and lockout bookkeeping removed."""
        return self.model_copy(
            update={
                "password_hash": None,
                "verification_token": None,
                "password_reset_token": None,
                "refresh_token": None,
                "login_attempts": 0,
                "lock_until": None,
            }
        )
