# src/classsync/activities/activity_models.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationError


class ActivityType(StrEnum):
    ASSIGNMENT = "assignment"
    QUIZ = "quiz"
    LAB = "lab"
    PRESENTATION = "presentation"

    @property
    def label(self) -> str:
        return _TYPE_LABELS[self]

    @classmethod
    def parse(cls, raw: Any) -> ActivityType:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.ASSIGNMENT
        try:
            return cls(str(raw).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown activity type: {raw!r}") from e


# Labels used in notification titles ("New Lab Report Assigned").
_TYPE_LABELS = {
    ActivityType.ASSIGNMENT: "Assignment",
    ActivityType.QUIZ: "Quiz",
    ActivityType.LAB: "Lab Report",
    ActivityType.PRESENTATION: "Presentation",
}


class ActivityStatus(StrEnum):
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, raw: Any) -> ActivityStatus:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return cls.ACTIVE
        try:
            return cls(str(raw).strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown activity status: {raw!r}") from e


ACTIVITIES_COLLECTION = "activities"


class SubmissionType(StrEnum):
    ONLINE = "online"
    PHYSICAL = "physical"


def coerce_timestamp(value: Any, *, field_name: str = "due_at") -> float:
    """
    Convert a due date into epoch seconds.

    Accepts epoch seconds (int/float), datetime (naive values are treated as local time)
    and ISO-8601 strings. Anything missing or unparseable raises ValidationError;
    there is no default due date.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required")

    if isinstance(value, (int, float)):
        ts = float(value)
    elif isinstance(value, datetime):
        ts = value.timestamp()
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValidationError(f"{field_name} is required")
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
        except ValueError as e:
            raise ValidationError(f"{field_name} is not a valid date: {value!r}") from e
    else:
        raise ValidationError(f"{field_name} has unsupported type {type(value).__name__}")

    if not math.isfinite(ts):
        raise ValidationError(f"{field_name} must be a finite timestamp")
    return ts


def coerce_points(value: Any) -> float | None:
    """Point value as a number; fractional values are kept (50.5 counts as more than 50)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError("points must be a number")
    try:
        points = float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"points must be a number, got {value!r}") from e
    if not math.isfinite(points):
        raise ValidationError("points must be a finite number")
    if points < 0:
        raise ValidationError("points must be non-negative")
    return points


@dataclass(slots=True)
class Activity:
    id: str
    section_id: str
    cr_id: str
    title: str
    description: str
    type: ActivityType
    due_at: float
    status: ActivityStatus = ActivityStatus.ACTIVE
    points: float | None = None

    submission_type: SubmissionType = SubmissionType.PHYSICAL
    submission_link: str | None = None
    submission_location: str | None = None

    created_at: float = 0.0
    updated_at: float = 0.0
    meta: dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "cr_id": self.cr_id,
            "title": self.title,
            "description": self.description,
            "type": self.type.value,
            "due_at": self.due_at,
            "status": self.status.value,
            "points": self.points,
            "submission_type": self.submission_type.value,
            "submission_link": self.submission_link,
            "submission_location": self.submission_location,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "meta": dict(self.meta),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Activity:
        try:
            submission_type = SubmissionType(record.get("submission_type") or "physical")
        except ValueError:
            submission_type = SubmissionType.PHYSICAL

        return cls(
            id=str(record["id"]),
            section_id=str(record.get("section_id") or ""),
            cr_id=str(record.get("cr_id") or ""),
            title=str(record.get("title") or ""),
            description=str(record.get("description") or ""),
            type=ActivityType.parse(record.get("type")),
            due_at=coerce_timestamp(record.get("due_at")),
            status=ActivityStatus.parse(record.get("status")),
            points=coerce_points(record.get("points")),
            submission_type=submission_type,
            submission_link=record.get("submission_link"),
            submission_location=record.get("submission_location"),
            created_at=float(record.get("created_at") or 0.0),
            updated_at=float(record.get("updated_at") or 0.0),
            meta=dict(record.get("meta") or {}),
        )
