"""
Cryptographic helpers: password hashing and constant-time comparison.

Uses argon2 for passwords (via argon2-cffi). argon2 verification is
constant-time with respect to the stored hash.
"""

from __future__ import annotations

import hmac
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()

# A real argon2 hash of a random secret. Verifying against it costs the same
# as verifying a real account's hash, so unknown emails take as long as
# wrong passwords.
_DUMMY_PASSWORD_HASH = _password_hasher.hash(secrets.token_urlsafe(32))


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a mismatch or an
        unparseable hash.
    """
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def burn_password_check(plain_password: str) -> None:
    """Run a full argon2 verification against a bogus hash and discard it."""
    verify_password(plain_password, _DUMMY_PASSWORD_HASH)


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without leaking the position of the first mismatch."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))
