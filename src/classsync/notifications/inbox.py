# src/classsync/notifications/inbox.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ..core.errors import NotFoundError, ValidationError
from ..core.ports import EntityStore, WriteAction, WriteOp
from .fanout import NOTIFICATIONS_COLLECTION
from .notification_models import Notification

logger = logging.getLogger(__name__)


class NotificationInbox:
    """
    Per-recipient view of notification records.

    Read-state transitions are the only mutations notifications ever get;
    both are idempotent (already-read records are never rewritten).
    """

    def __init__(self, store: EntityStore, *, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def list_for_recipient(self, recipient_id: str, *, limit: int | None = None) -> list[Notification]:
        """Newest first."""
        if not recipient_id:
            return []
        rows = await self._store.query(
            NOTIFICATIONS_COLLECTION,
            {"recipient_id": recipient_id},
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [Notification.from_record(r) for r in rows]

    async def unread_count(self, recipient_id: str) -> int:
        if not recipient_id:
            return 0
        rows = await self._store.query(
            NOTIFICATIONS_COLLECTION,
            {"recipient_id": recipient_id, "is_read": False},
        )
        return len(rows)

    async def mark_as_read(self, notification_id: str) -> bool:
        """
        Set is_read=True on one record.

        Returns True if the record changed, False if it was already read.
        Raises NotFoundError for unknown ids.
        """
        if not notification_id:
            raise ValidationError("notification_id is required")

        record = await self._store.get(NOTIFICATIONS_COLLECTION, notification_id)
        if record is None:
            raise NotFoundError(f"notification {notification_id} does not exist")
        if record.get("is_read"):
            return False

        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    NOTIFICATIONS_COLLECTION,
                    notification_id,
                    {"is_read": True, "updated_at": self._clock()},
                )
            ]
        )
        logger.debug("Notification %s -> read", notification_id)
        return True

    async def mark_all_as_read(self, recipient_id: str) -> int:
        """Flip every unread record of `recipient_id` in one batch. Returns how many changed."""
        if not recipient_id:
            raise ValidationError("recipient_id is required")

        unread = await self._store.query(
            NOTIFICATIONS_COLLECTION,
            {"recipient_id": recipient_id, "is_read": False},
        )
        if not unread:
            return 0

        now = self._clock()
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    NOTIFICATIONS_COLLECTION,
                    str(r["id"]),
                    {"is_read": True, "updated_at": now},
                )
                for r in unread
            ]
        )
        logger.info("Marked %d notifications read recipient=%s", len(unread), recipient_id)
        return len(unread)
