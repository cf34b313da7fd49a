"""
Per-browser-session cooldown between action-token issuances.

The record is a plain ``{account_id: issued_at_epoch_seconds}`` dict stored
under one key of the signed session cookie (Starlette SessionMiddleware), so
it lives exactly as long as the browser session and needs no shared state.
"""

from __future__ import annotations

import math
from typing import Any, MutableMapping

from shared.datetime_utils import Clock, utc_now

SESSION_KEY = "action_cooldown"


class SessionCooldown:
    def __init__(
        self,
        session: MutableMapping[str, Any],
        window_seconds: int,
        clock: Clock = utc_now,
    ) -> None:
        self._session = session
        self.window_seconds = window_seconds
        self._clock = clock

    def _record(self) -> dict[str, float]:
        record = self._session.get(SESSION_KEY)
        return dict(record) if isinstance(record, dict) else {}

    def seconds_left(self, account_id: str) -> int:
        """Whole seconds until *account_id* may be issued another token (0 = now)."""
        issued_at = self._record().get(account_id)
        if issued_at is None:
            return 0
        remaining = float(issued_at) + self.window_seconds - self._clock().timestamp()
        return max(0, math.ceil(remaining))

    def mark(self, account_id: str) -> None:
        record = self._record()
        record[account_id] = self._clock().timestamp()
        # Reassign so the session middleware notices the change
        self._session[SESSION_KEY] = record

    def clear(self) -> None:
        self._session.pop(SESSION_KEY, None)
