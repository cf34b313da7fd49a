"""
Input normalisation and validation helpers: framework-agnostic, pure functions.

Field-level validators return a ``{field: message}`` dict (empty when valid)
so callers can raise a single ValidationError listing every problem.
"""

from __future__ import annotations

import re
from typing import Optional

_DOMAIN_EXTENSION = re.compile(r"(\.[a-zA-Z]{2,})$")


def normalize_email(email: Optional[str]) -> str:
    """Lower-case and strip an email address; ``None`` becomes ``""``."""
    return (email or "").strip().lower()


def mask_email(email: Optional[str]) -> Optional[str]:
    """Mask an email for display while keeping it recognisable.

    The local part keeps its first character; the domain keeps only its
    extension, e.g. ``alice@example.com`` → ``a****@........com``.
    Values without an ``@`` are returned unchanged.
    """
    if not email or "@" not in email:
        return email

    local, domain = email.split("@", 1)
    match = _DOMAIN_EXTENSION.search(domain)
    extension = match.group(1) if match else ""

    masked_local = local[:1] + "*" * max(len(local) - 1, 1)
    masked_domain = "." * max(len(domain) - len(extension), 1) + extension
    return f"{masked_local}@{masked_domain}"


def validate_new_password(
    password: Optional[str],
    password_confirm: Optional[str],
    *,
    min_length: int = 6,
    password_field: str = "password",
    confirm_field: str = "passwordConfirm",
) -> dict[str, str]:
    """Check a new password and its confirmation.

    Rules:
    - the password is present and at least *min_length* characters
    - the confirmation equals the password

    Returns:
        ``{field: message}`` for every failing rule; empty when valid.
    """
    errors: dict[str, str] = {}
    if not password:
        errors[password_field] = "Password is required."
    elif len(password) < min_length:
        errors[password_field] = (
            f"Password must be at least {min_length} characters long."
        )

    if password_confirm is None or password_confirm == "":
        errors[confirm_field] = "Password confirmation is required."
    elif password_confirm != password:
        errors[confirm_field] = "Passwords do not match."
    return errors
