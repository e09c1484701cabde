# src/classsync/activities/activity_service.py

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..core.errors import NotFoundError, PersistenceError, ValidationError
from ..core.ports import AuthContext, EntityStore, RosterProvider, WriteAction, WriteOp
from ..notifications.api import AuthoringResult, notify_section
from ..notifications.fanout import NotificationFanout
from ..notifications.notification_models import FanoutEvent, NotificationKind
from ..sections.section_service import SECTIONS_COLLECTION
from .activity_models import (
    ACTIVITIES_COLLECTION,
    Activity,
    ActivityStatus,
    ActivityType,
    SubmissionType,
    coerce_points,
    coerce_timestamp,
)
from .priority import days_until_due, next_urgent_task, sort_by_priority

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "type",
        "due_at",
        "points",
        "status",
        "submission_type",
        "submission_link",
        "submission_location",
    }
)


def format_due_date(due_at: float) -> str:
    """'Oct 8, 2026' in local time."""
    dt = datetime.fromtimestamp(due_at)
    return f"{dt:%b} {dt.day}, {dt.year}"


def _required_text(value: Any, what: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"Activity {what} is required")
    return text


def _submission_fields(
        submission_type: Any,
        submission_link: str | None,
        submission_location: str | None,
) -> tuple[SubmissionType, str | None, str | None]:
    try:
        kind = SubmissionType(str(submission_type or "physical").strip().lower())
    except ValueError as e:
        raise ValidationError(f"Unknown submission type: {submission_type!r}") from e

    # Only the field matching the submission type is kept.
    link = ((submission_link or "").strip() or None) if kind == SubmissionType.ONLINE else None
    location = ((submission_location or "").strip() or None) if kind == SubmissionType.PHYSICAL else None
    return kind, link, location


class ActivityService:
    """Task ("activity") authoring, listing and ranking for a section."""

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

    def now(self) -> float:
        """Reference time used for ranking and stats."""
        return self._clock()

    async def create_activity(
            self,
            *,
            section_id: str,
            title: str,
            description: str,
            due_at: Any,
            type: Any = ActivityType.ASSIGNMENT,
            points: Any = None,
            status: Any = ActivityStatus.ACTIVE,
            submission_type: Any = SubmissionType.PHYSICAL,
            submission_link: str | None = None,
            submission_location: str | None = None,
    ) -> AuthoringResult:
        """
        Persist a new activity and, when it is active, notify the section.

        Invalid input raises ValidationError before anything is written.
        """
        actor = self._auth.current_actor()

        clean_title = _required_text(title, "title")
        clean_description = _required_text(description, "description")
        if not section_id:
            raise ValidationError("Section ID is required")
        if not actor.user_id:
            raise ValidationError("Author ID is required")
        due_ts = coerce_timestamp(due_at)
        kind, link, location = _submission_fields(submission_type, submission_link, submission_location)

        now = self._clock()
        activity = Activity(
            id=self._new_id(),
            section_id=section_id,
            cr_id=actor.user_id,
            title=clean_title,
            description=clean_description,
            type=ActivityType.parse(type),
            due_at=due_ts,
            status=ActivityStatus.parse(status),
            points=coerce_points(points),
            submission_type=kind,
            submission_link=link,
            submission_location=location,
            created_at=now,
            updated_at=now,
        )

        try:
            await self._store.batch_write(
                [
                    WriteOp(WriteAction.SET, ACTIVITIES_COLLECTION, activity.id, activity.to_record()),
                    WriteOp(
                        WriteAction.UPDATE,
                        SECTIONS_COLLECTION,
                        section_id,
                        {"updated_at": now},
                        increments={"activity_count": 1},
                    ),
                ]
            )
        except PersistenceError as e:
            logger.exception("Activity create failed section=%s", section_id)
            return AuthoringResult.failed(str(e) or "Failed to create activity")

        logger.info("Activity created id=%s section=%s type=%s", activity.id, section_id, activity.type.value)

        if activity.status != ActivityStatus.ACTIVE:
            return AuthoringResult.created(activity)

        event = FanoutEvent(
            section_id=section_id,
            author_id=actor.user_id,
            author_name=actor.display_name,
            title=f"New {activity.type.label} Assigned",
            message=f"{activity.title} - Due: {format_due_date(activity.due_at)}",
            type=NotificationKind.TASK,
            related_id=activity.id,
        )
        notifications = await notify_section(self._fanout, self._roster, event)
        return AuthoringResult.created(activity, notifications)

    async def get_activity(self, activity_id: str) -> Activity | None:
        record = await self._store.get(ACTIVITIES_COLLECTION, activity_id)
        return Activity.from_record(record) if record else None

    async def update_activity(self, activity_id: str, **updates: Any) -> Activity:
        unknown = set(updates) - _EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        current = await self.get_activity(activity_id)
        if current is None:
            raise NotFoundError(f"activity {activity_id} does not exist")

        changes: dict[str, Any] = {}
        if "title" in updates:
            changes["title"] = _required_text(updates["title"], "title")
        if "description" in updates:
            changes["description"] = _required_text(updates["description"], "description")
        if "type" in updates:
            changes["type"] = ActivityType.parse(updates["type"]).value
        if "due_at" in updates:
            changes["due_at"] = coerce_timestamp(updates["due_at"])
        if "points" in updates:
            changes["points"] = coerce_points(updates["points"])
        if "status" in updates:
            changes["status"] = ActivityStatus.parse(updates["status"]).value
        if {"submission_type", "submission_link", "submission_location"} & set(updates):
            kind, link, location = _submission_fields(
                updates.get("submission_type", current.submission_type),
                updates.get("submission_link", current.submission_link),
                updates.get("submission_location", current.submission_location),
            )
            changes.update(
                submission_type=kind.value,
                submission_link=link,
                submission_location=location,
            )

        changes["updated_at"] = self._clock()
        await self._store.batch_write([WriteOp(WriteAction.UPDATE, ACTIVITIES_COLLECTION, activity_id, changes)])

        record = current.to_record()
        record.update(changes)
        return Activity.from_record(record)

    async def delete_activity(self, activity_id: str) -> bool:
        """Remove an activity and decrement its section's counter. False if it did not exist."""
        current = await self.get_activity(activity_id)
        if current is None:
            return False

        ops = [WriteOp(WriteAction.DELETE, ACTIVITIES_COLLECTION, activity_id)]
        if await self._store.get(SECTIONS_COLLECTION, current.section_id) is not None:
            ops.append(
                WriteOp(
                    WriteAction.UPDATE,
                    SECTIONS_COLLECTION,
                    current.section_id,
                    {"updated_at": self._clock()},
                    increments={"activity_count": -1},
                )
            )
        await self._store.batch_write(ops)
        logger.info("Activity deleted id=%s section=%s", activity_id, current.section_id)
        return True

    async def list_activities(self, section_id: str, *, include_archived: bool = False) -> list[Activity]:
        """Activities of a section ordered by due date."""
        if not section_id:
            return []
        rows = await self._store.query(ACTIVITIES_COLLECTION, {"section_id": section_id}, order_by="due_at")
        activities = [Activity.from_record(r) for r in rows]
        if include_archived:
            return activities
        return [a for a in activities if a.status != ActivityStatus.ARCHIVED]

    async def ranked_activities(self, section_id: str, now: float | None = None) -> list[Activity]:
        return sort_by_priority(await self.list_activities(section_id), self.now() if now is None else now)

    async def next_task(self, section_id: str, now: float | None = None) -> Activity | None:
        return next_urgent_task(await self.list_activities(section_id), self.now() if now is None else now)

    async def activity_stats(self, section_id: str, now: float | None = None) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "total": 0,
            "active": 0,
            "overdue": 0,
            "due_today": 0,
            "due_this_week": 0,
            "by_type": {t.value: 0 for t in ActivityType},
        }
        now_ts = self.now() if now is None else now

        for activity in await self.list_activities(section_id):
            stats["total"] += 1
            stats["by_type"][activity.type.value] += 1
            if activity.status != ActivityStatus.ACTIVE:
                continue

            stats["active"] += 1
            days = days_until_due(activity.due_at, now_ts)
            if days < 0:
                stats["overdue"] += 1
            elif days == 0:
                stats["due_today"] += 1
            elif days <= 7:
                stats["due_this_week"] += 1
        return stats
