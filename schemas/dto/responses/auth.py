"""
Response DTOs for authentication endpoints.

AuthProviderInfo           — auth provider entry in AccountResponse
AccountResponse            — public account shape (no credentials)
SignupResponse             — POST /auth/signup
SigninResponse             — POST /auth/signin (verified account)
VerificationRequiredResponse — POST /auth/signin (unverified account)
ActionEmailResponse        — POST /auth/forgot, POST /auth/resend/{account_id}
VerifyEmailResponse        — GET /auth/verify/{token}
SessionStatusResponse      — GET /auth/session/{identifier}
VerificationStatusResponse — GET /auth/check-session/{identifier}
TokenInfoResponse          — GET /auth/token-info/{token}
RefreshResponse            — GET /auth/refresh
ValidateResponse           — GET /auth/validate

JSON keys are camelCase; datetimes are ISO 8601 strings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from schemas.models.account import AccountDoc

_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class AuthProviderInfo(BaseModel):
    """Linked OAuth provider returned inside AccountResponse."""

    model_config = _CAMEL

    provider: str
    email: Optional[str] = None
    linked_at: Optional[datetime] = None


class AccountResponse(BaseModel):
    """Account as exposed to its owner or an administrator."""

    model_config = _CAMEL

    account_id: str
    first_name: str
    last_name: str
    email: str
    is_verified: bool
    account_status: str
    role: str
    profile_image: Optional[str] = None
    last_login: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    auth_providers: list[AuthProviderInfo] = []

    @classmethod
    def from_doc(cls, doc: AccountDoc) -> "AccountResponse":
        return cls(
            account_id=doc.account_id,
            first_name=doc.first_name,
            last_name=doc.last_name,
            email=doc.email,
            is_verified=doc.is_verified,
            account_status=doc.account_status,
            role=doc.role,
            profile_image=doc.profile_image,
            last_login=doc.last_login,
            last_seen=doc.last_seen,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
            auth_providers=[
                AuthProviderInfo(
                    provider=p.provider, email=p.email, linked_at=p.linked_at
                )
                for p in doc.auth_providers
            ],
        )


class SignupResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    message: str
    redirect_url: str


class SigninResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    message: str = "Login successful."
    access_token: str
    redirect_url: str
    role: str
    account_id: str


class VerificationRequiredResponse(BaseModel):
    model_config = _CAMEL

    status: str = "verification_required"
    message: str
    redirect_url: str


class ActionEmailResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    message: str
    email_type: str
    redirect_url: Optional[str] = None


class VerifyEmailResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    message: str
    action: str = "verify"
    already_verified: bool = False


class SessionStatusResponse(BaseModel):
    """Pending-process status; ``session_type`` is absent once verified."""

    model_config = _CAMEL

    status: str
    message: str
    account_id: str
    email: Optional[str] = None
    is_verified: bool
    session_type: Optional[str] = None
    token_expires: Optional[datetime] = None
    time: Optional[int] = None  # session issuance, epoch milliseconds
    cooldown: int = 0


class VerificationStatusResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    is_verified: bool
    process_type: Optional[str] = None
    mode: str


class TokenInfoResponse(BaseModel):
    model_config = _CAMEL

    status: str = "success"
    account_id: str
    email: Optional[str] = None
    token_type: str
    token_expires: datetime
    is_verified: bool
    is_valid: bool = True


class RefreshResponse(BaseModel):
    model_config = _CAMEL

    access_token: str


class ValidateResponse(BaseModel):
    model_config = _CAMEL

    is_authenticated: bool = True
    user: AccountResponse
