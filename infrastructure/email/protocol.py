"""Outbound email used by the action-link flows."""

from typing import Optional, Protocol


class EmailProvider(Protocol):
    """Sends the verification and password-reset links.

    ``link`` is the full frontend URL carrying the action token. Both methods
    return False instead of raising when the message could not be handed off.
    """

    async def send_verification_email(
        self, email: str, user_name: Optional[str], link: str
    ) -> bool: ...

    async def send_password_reset_email(
        self, email: str, user_name: Optional[str], link: str
    ) -> bool: ...
