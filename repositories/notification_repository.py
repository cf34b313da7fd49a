"""Async MongoDB access for the `notifications` collection."""

from __future__ import annotations

from typing import Any

from pymongo import ASCENDING, DESCENDING

from schemas.models.notification import NotificationDoc
from shared.datetime_utils import Clock, utc_now


class NotificationRepository:
    collection_name = "notifications"

    def __init__(self, db: Any, clock: Clock = utc_now) -> None:
        self._col = db[self.collection_name]
        self._clock = clock

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [("recipient_id", ASCENDING), ("created_at", DESCENDING)]
        )
        await self._col.create_index([("related_id", ASCENDING)])

    async def insert(self, notification: NotificationDoc) -> NotificationDoc:
        notification = notification.model_copy(
            update={"created_at": notification.created_at or self._clock()}
        )
        result = await self._col.insert_one(notification.to_mongo())
        return notification.model_copy(update={"id": result.inserted_id})

    async def delete_for_account(self, account_id: str) -> int:
        """Remove notifications addressed to or about *account_id*."""
        result = await self._col.delete_many(
            {"$or": [{"recipient_id": account_id}, {"related_id": account_id}]}
        )
        return result.deleted_count
