"""
Request DTOs for authentication and profile endpoints.

SignupRequest          — POST /auth/signup
SigninRequest          — POST /auth/signin
ForgotRequest          — POST /auth/forgot
ResetPasswordRequest   — POST /auth/reset-password/{token}
UpdateProfileRequest   — PUT /users/me
UpdatePasswordRequest  — PUT /users/me/password

JSON keys are camelCase on the wire (``firstName``); Python attributes are
snake_case. Both spellings are accepted on input.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

_CAMEL = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup."""

    model_config = _CAMEL

    first_name: str = Field(min_length=3, max_length=255)
    last_name: str = Field(min_length=3, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)


class SigninRequest(BaseModel):
    """Request body for POST /auth/signin.

    Presence only; the credential verifier decides everything else so that
    failures are indistinguishable to the caller.
    """

    model_config = _CAMEL

    email: str
    password: str


class ForgotRequest(BaseModel):
    """Request body for POST /auth/forgot."""

    model_config = _CAMEL

    email: str = Field(min_length=1)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/reset-password/{token}.

    Both fields are optional here; the action-token service reports missing
    or mismatched values per field.
    """

    model_config = _CAMEL

    password: Optional[str] = None
    password_confirm: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    """Request body for PUT /users/me."""

    model_config = _CAMEL

    first_name: str = Field(min_length=3, max_length=255)
    last_name: str = Field(min_length=3, max_length=255)


class UpdatePasswordRequest(BaseModel):
    """Request body for PUT /users/me/password."""

    model_config = _CAMEL

    current_password: str = Field(min_length=3, max_length=255)
    new_password: Optional[str] = None
    confirm_new_password: Optional[str] = None
