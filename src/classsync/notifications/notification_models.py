# src/classsync/notifications/notification_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError


class NotificationKind(StrEnum):
    """
    Type tag of a notification record.

    Recipient records carry the event kind (task/announcement/poll);
    the author-acknowledgement record carries "<kind>_created".
    """

    TASK = "task"
    ANNOUNCEMENT = "announcement"
    POLL = "poll"
    TASK_CREATED = "task_created"
    ANNOUNCEMENT_CREATED = "announcement_created"
    POLL_CREATED = "poll_created"

    @property
    def is_acknowledgement(self) -> bool:
        return self.value.endswith("_created")

    def acknowledgement(self) -> NotificationKind:
        if self.is_acknowledgement:
            return self
        return NotificationKind(f"{self.value}_created")

    @classmethod
    def event_kind(cls, raw: Any) -> NotificationKind:
        """Parse the kind of an authoring event (acknowledgement tags are not events)."""
        try:
            kind = cls(str(raw or "").strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown notification type: {raw!r}") from e
        if kind.is_acknowledgement:
            raise ValidationError(f"{kind.value!r} is reserved for author acknowledgements")
        return kind


@dataclass(slots=True)
class Notification:
    id: str
    section_id: str
    author_id: str
    author_name: str
    recipient_id: str
    title: str
    message: str
    type: NotificationKind
    related_id: str | None
    is_read: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "recipient_id": self.recipient_id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "related_id": self.related_id,
            "is_read": bool(self.is_read),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Notification:
        return cls(
            id=str(record["id"]),
            section_id=str(record.get("section_id") or ""),
            author_id=str(record.get("author_id") or ""),
            author_name=str(record.get("author_name") or ""),
            recipient_id=str(record.get("recipient_id") or ""),
            title=str(record.get("title") or ""),
            message=str(record.get("message") or ""),
            type=NotificationKind(record.get("type") or NotificationKind.TASK.value),
            related_id=record.get("related_id"),
            is_read=bool(record.get("is_read", False)),
            created_at=float(record.get("created_at") or 0.0),
            updated_at=float(record.get("updated_at") or 0.0),
        )


@dataclass(frozen=True, slots=True)
class FanoutEvent:
    """One authoring action to broadcast to a section."""

    section_id: str
    author_id: str
    author_name: str
    title: str
    message: str
    type: NotificationKind | str
    related_id: str | None = None


@dataclass(slots=True)
class FanoutResult:
    """
    Outcome of a fan-out.

    persisted and dispatched fail independently: records can exist while the push
    nudge failed, but a failed batch means nothing was written.
    """

    success: bool
    persisted: bool
    dispatched: bool
    notifications_created: int = 0
    notifications: list[Notification] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> FanoutResult:
        return cls(success=False, persisted=False, dispatched=False, error=error)
