"""
Notification document model.

Maps to the `notifications` MongoDB collection. Currently written when a new
account signs up, addressed to the first administrator account.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel


class NotificationDoc(MongoBaseModel):
    """Document model for the `notifications` collection."""

    recipient_id: str  # account_id of the recipient
    related_id: Optional[str] = None  # account_id the notification is about
    related_model: str = "accounts"
    message: str
    type: str = "account"
    read: bool = False
    created_at: Optional[datetime] = None
