# src/classsync/notifications/fanout.py

from __future__ import annotations

"""
Fan-out notification builder.

One authoring event (new task / announcement / poll) becomes:
- one notification record per roster member,
- one acknowledgement record for the author,
all written in a single atomic batch, followed by one best-effort push dispatch.

Record construction is pure and synchronous; only the batch write and the
push dispatch touch the outside world.
"""

import logging
import time
import uuid
from collections.abc import Callable, Iterable

from ..core.errors import PersistenceError, ValidationError
from ..core.ports import EntityStore, PushDispatcher, PushRequest, WriteAction, WriteOp
from .notification_models import FanoutEvent, FanoutResult, Notification, NotificationKind

logger = logging.getLogger(__name__)

NOTIFICATIONS_COLLECTION = "notifications"

DEFAULT_MESSAGE_BUDGET = 10
ELLIPSIS = "..."
DEFAULT_AUTHOR_NAME = "Class Representative"


def truncate_message(text: str | None, budget: int = DEFAULT_MESSAGE_BUDGET) -> str:
    """
    Shorten `text` to `budget` characters (code points, not bytes).

    Text that fits is returned unchanged. Longer text is cut at the budget,
    trailing whitespace of the cut is stripped, and "..." is appended.
    """
    if not text:
        return ""
    if budget < 1:
        raise ValueError("budget must be >= 1")
    if len(text) <= budget:
        return text
    return text[:budget].strip() + ELLIPSIS


def unique_recipients(roster: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for raw in roster:
        rid = str(raw or "").strip()
        if rid:
            seen.setdefault(rid, None)
    return list(seen)


def _validate_event(event: FanoutEvent) -> NotificationKind:
    if not (event.section_id or "").strip():
        raise ValidationError("section_id is required")
    if not (event.author_id or "").strip():
        raise ValidationError("author_id is required")
    if not (event.title or "").strip():
        raise ValidationError("title is required")
    return NotificationKind.event_kind(event.type)


def build_notification_records(
        event: FanoutEvent,
        roster: Iterable[str],
        *,
        now: float,
        new_id: Callable[[], str],
        budget: int = DEFAULT_MESSAGE_BUDGET,
) -> list[Notification]:
    """
    Build len(roster) + 1 records: recipients in roster order, then the author acknowledgement.

    The message is truncated once and the same string is reused in every record.
    """
    kind = _validate_event(event)
    recipients = unique_recipients(roster)
    short_message = truncate_message(event.message, budget)
    author_name = (event.author_name or "").strip() or DEFAULT_AUTHOR_NAME

    records = [
        Notification(
            id=new_id(),
            section_id=event.section_id,
            author_id=event.author_id,
            author_name=author_name,
            recipient_id=recipient_id,
            title=event.title,
            message=short_message,
            type=kind,
            related_id=event.related_id,
            is_read=False,
            created_at=now,
            updated_at=now,
        )
        for recipient_id in recipients
    ]

    records.append(
        Notification(
            id=new_id(),
            section_id=event.section_id,
            author_id=event.author_id,
            author_name=author_name,
            recipient_id=event.author_id,
            title=f"✅ {event.title} Created",
            message=f"{short_message} - Shared with {len(recipients)} students",
            type=kind.acknowledgement(),
            related_id=event.related_id,
            is_read=False,
            created_at=now,
            updated_at=now,
        )
    )
    return records


def _new_id() -> str:
    return uuid.uuid4().hex


class NotificationFanout:
    """
    Persist a fan-out atomically, then nudge recipients through the push dispatcher.

    Collaborators are injected; nothing here reads global state.
    """

    def __init__(
            self,
            store: EntityStore,
            dispatcher: PushDispatcher,
            *,
            message_budget: int = DEFAULT_MESSAGE_BUDGET,
            clock: Callable[[], float] = time.time,
            id_factory: Callable[[], str] = _new_id,
    ) -> None:
        if message_budget < 1:
            raise ValueError("message_budget must be >= 1")
        self._store = store
        self._dispatcher = dispatcher
        self._budget = int(message_budget)
        self._clock = clock
        self._new_id = id_factory

    async def build_and_dispatch(self, event: FanoutEvent, roster: Iterable[str]) -> FanoutResult:
        """
        Steps:
        1) build records (ValidationError propagates, nothing is written)
        2) write all records in one batch; failure -> FanoutResult(success=False), nothing visible
        3) after commit, one push dispatch with the untruncated message; failure is only logged
        """
        recipients = unique_recipients(roster)
        records = build_notification_records(
            event,
            recipients,
            now=self._clock(),
            new_id=self._new_id,
            budget=self._budget,
        )

        ops = [
            WriteOp(WriteAction.SET, NOTIFICATIONS_COLLECTION, n.id, n.to_record())
            for n in records
        ]
        try:
            await self._store.batch_write(ops)
        except PersistenceError as e:
            logger.exception(
                "Notification batch failed section=%s related=%s records=%d",
                event.section_id,
                event.related_id,
                len(ops),
            )
            return FanoutResult.failed(str(e) or "notification batch write failed")

        logger.info(
            "Notifications created section=%s type=%s count=%d",
            event.section_id,
            records[-1].type.value,
            len(records),
        )

        dispatched = await self._dispatch(event, recipients)

        return FanoutResult(
            success=True,
            persisted=True,
            dispatched=dispatched,
            notifications_created=len(records),
            notifications=records,
        )

    async def _dispatch(self, event: FanoutEvent, recipients: list[str]) -> bool:
        if not recipients:
            logger.debug("Empty roster for section=%s; push skipped", event.section_id)
            return False

        request = PushRequest(
            section_id=event.section_id,
            title=event.title,
            message=event.message,
            recipient_ids=tuple(recipients),
        )
        try:
            result = await self._dispatcher.dispatch(request)
        except Exception:
            logger.exception("Push dispatch failed section=%s recipients=%d", event.section_id, len(recipients))
            return False

        if not result.success:
            logger.warning(
                "Push dispatch rejected section=%s recipients=%d error=%s",
                event.section_id,
                len(recipients),
                result.error,
            )
            return False

        logger.debug("Push dispatched section=%s recipients=%d", event.section_id, len(recipients))
        return True
