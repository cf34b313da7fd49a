"""
Random identifier generators: pure, side-effect-free functions.

All generators use cryptographically secure sources.
"""

from __future__ import annotations

import secrets
import uuid


def generate_account_id() -> str:
    """Generate the stable external identifier for a new account (uuid4)."""
    return str(uuid.uuid4())


def generate_secure_token(length: int = 32) -> str:
    """Generate a URL-safe random token of *length* bytes of entropy."""
    return secrets.token_urlsafe(length)


def generate_unusable_password() -> str:
    """Random password for accounts created through an OAuth provider.

    The value is hashed and then discarded, so the account can only sign in
    through its provider until the user resets the password.
    """
    return secrets.token_urlsafe(48)
