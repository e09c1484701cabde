# src/classsync/announcements/announcement_service.py

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.errors import NotFoundError, PersistenceError, ValidationError
from ..core.ports import AuthContext, EntityStore, RosterProvider, WriteAction, WriteOp
from ..notifications.api import AuthoringResult, notify_section
from ..notifications.fanout import NotificationFanout
from ..notifications.notification_models import FanoutEvent, NotificationKind

logger = logging.getLogger(__name__)

ANNOUNCEMENTS_COLLECTION = "announcements"


class AnnouncementPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def notification_label(self) -> str:
        return "Important" if self is AnnouncementPriority.HIGH else "New"


@dataclass(slots=True)
class Announcement:
    id: str
    section_id: str
    cr_id: str
    cr_name: str
    title: str
    content: str
    priority: AnnouncementPriority = AnnouncementPriority.MEDIUM
    status: str = "active"
    read_by: list[str] = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "cr_id": self.cr_id,
            "cr_name": self.cr_name,
            "title": self.title,
            "content": self.content,
            "priority": self.priority.value,
            "status": self.status,
            "read_by": list(self.read_by),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Announcement:
        try:
            priority = AnnouncementPriority(record.get("priority") or "medium")
        except ValueError:
            priority = AnnouncementPriority.MEDIUM
        return cls(
            id=str(record["id"]),
            section_id=str(record.get("section_id") or ""),
            cr_id=str(record.get("cr_id") or ""),
            cr_name=str(record.get("cr_name") or ""),
            title=str(record.get("title") or ""),
            content=str(record.get("content") or ""),
            priority=priority,
            status=str(record.get("status") or "active"),
            read_by=[str(s) for s in record.get("read_by") or []],
            created_at=float(record.get("created_at") or 0.0),
            updated_at=float(record.get("updated_at") or 0.0),
        )


def _parse_priority(raw: Any) -> AnnouncementPriority:
    try:
        return AnnouncementPriority(str(raw or "medium").strip().lower())
    except ValueError as e:
        raise ValidationError(f"Unknown announcement priority: {raw!r}") from e


class AnnouncementService:
    def __init__(
            self,
            store: EntityStore,
            roster: RosterProvider,
            fanout: NotificationFanout,
            auth: AuthContext,
            *,
            clock: Callable[[], float] = time.time,
            id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._roster = roster
        self._fanout = fanout
        self._auth = auth
        self._clock = clock
        self._new_id = id_factory

    async def create_announcement(
            self,
            *,
            section_id: str,
            title: str,
            content: str,
            priority: Any = AnnouncementPriority.MEDIUM,
    ) -> AuthoringResult:
        actor = self._auth.current_actor()

        clean_title = (title or "").strip()
        clean_content = (content or "").strip()
        if not clean_title:
            raise ValidationError("Announcement title is required")
        if not clean_content:
            raise ValidationError("Announcement content is required")
        if not section_id:
            raise ValidationError("Section ID is required")
        if not actor.user_id:
            raise ValidationError("Author ID is required")
        level = _parse_priority(priority)

        now = self._clock()
        announcement = Announcement(
            id=self._new_id(),
            section_id=section_id,
            cr_id=actor.user_id,
            cr_name=actor.display_name,
            title=clean_title,
            content=clean_content,
            priority=level,
            created_at=now,
            updated_at=now,
        )

        try:
            await self._store.put(ANNOUNCEMENTS_COLLECTION, announcement.id, announcement.to_record())
        except PersistenceError as e:
            logger.exception("Announcement create failed section=%s", section_id)
            return AuthoringResult.failed(str(e) or "Failed to create announcement")

        logger.info("Announcement created id=%s section=%s", announcement.id, section_id)

        event = FanoutEvent(
            section_id=section_id,
            author_id=actor.user_id,
            author_name=actor.display_name,
            title=f"{level.notification_label} Announcement",
            message=clean_title,
            type=NotificationKind.ANNOUNCEMENT,
            related_id=announcement.id,
        )
        notifications = await notify_section(self._fanout, self._roster, event)
        return AuthoringResult.created(announcement, notifications)

    async def list_announcements(self, section_id: str, *, include_archived: bool = False) -> list[Announcement]:
        """Newest first."""
        if not section_id:
            return []
        filters: dict[str, Any] = {"section_id": section_id}
        if not include_archived:
            filters["status"] = "active"
        rows = await self._store.query(
            ANNOUNCEMENTS_COLLECTION, filters, order_by="created_at", descending=True
        )
        return [Announcement.from_record(r) for r in rows]

    async def archive_announcement(self, announcement_id: str) -> None:
        """Raises NotFoundError for unknown ids."""
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    ANNOUNCEMENTS_COLLECTION,
                    announcement_id,
                    {"status": "archived", "updated_at": self._clock()},
                )
            ]
        )

    async def get_announcement(self, announcement_id: str) -> Announcement:
        record = await self._store.get(ANNOUNCEMENTS_COLLECTION, announcement_id) if announcement_id else None
        if record is None:
            raise NotFoundError("Announcement not found")
        return Announcement.from_record(record)

    async def update_announcement(self, announcement_id: str, **updates: Any) -> Announcement:
        unknown = set(updates) - {"title", "content", "priority", "status"}
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        for name in ("title", "content"):
            if name in updates:
                text = str(updates[name] or "").strip()
                if not text:
                    raise ValidationError(f"Announcement {name} is required")
                changes[name] = text
        if "priority" in updates:
            changes["priority"] = _parse_priority(updates["priority"]).value
        if "status" in updates:
            status = str(updates["status"] or "").strip().lower()
            if status not in ("active", "archived"):
                raise ValidationError(f"Unknown announcement status: {updates['status']!r}")
            changes["status"] = status

        current = await self.get_announcement(announcement_id)
        changes["updated_at"] = self._clock()
        await self._store.batch_write(
            [WriteOp(WriteAction.UPDATE, ANNOUNCEMENTS_COLLECTION, announcement_id, changes)]
        )
        record = current.to_record()
        record.update(changes)
        return Announcement.from_record(record)

    async def delete_announcement(self, announcement_id: str) -> bool:
        """False if it did not exist."""
        if await self._store.get(ANNOUNCEMENTS_COLLECTION, announcement_id) is None:
            return False
        await self._store.batch_write([WriteOp(WriteAction.DELETE, ANNOUNCEMENTS_COLLECTION, announcement_id)])
        logger.info("Announcement deleted id=%s", announcement_id)
        return True

    async def mark_as_read(self, announcement_id: str, student_id: str) -> bool:
        """
        Add `student_id` to the announcement's read_by list.

        Returns False (and writes nothing) when the student had already read it.
        """
        if not student_id:
            raise ValidationError("student_id is required")
        current = await self.get_announcement(announcement_id)
        if student_id in current.read_by:
            return False
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    ANNOUNCEMENTS_COLLECTION,
                    announcement_id,
                    {"updated_at": self._clock()},
                    array_union={"read_by": [student_id]},
                )
            ]
        )
        return True
