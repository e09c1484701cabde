# src/classsync/activities/priority.py

from __future__ import annotations

"""
Priority engine.

Ranks activities by urgency:
- a base priority from content (type, points), independent of time,
- a time-based override on top of it (overdue / today / tomorrow / ...).

Everything here is pure: the result depends only on (activity, now).
"""

import math
import time
from collections.abc import Iterable
from enum import Enum

from .activity_models import Activity, ActivityStatus, ActivityType, coerce_timestamp

SECONDS_PER_DAY = 24 * 60 * 60

HIGH_POINTS_THRESHOLD = 50

_PROMOTED_TYPES = frozenset({ActivityType.QUIZ, ActivityType.PRESENTATION})


class PriorityLevel(Enum):
    CRITICAL = (4, "Critical", "red")
    HIGH = (3, "High", "orange")
    MEDIUM = (2, "Medium", "yellow")
    LOW = (1, "Low", "green")

    def __init__(self, rank: int, label: str, color: str) -> None:
        self.rank = rank
        self.label = label
        self.color = color

    @classmethod
    def from_rank(cls, rank: int) -> PriorityLevel:
        for level in cls:
            if level.rank == rank:
                return level
        raise ValueError(f"No priority level with rank {rank}")


def _now(now: float | None) -> float:
    return time.time() if now is None else float(now)


def days_until_due(due_at: float, now: float | None = None) -> int:
    """Whole days left, rounded up. Negative means overdue."""
    due_ts = coerce_timestamp(due_at)
    return math.ceil((due_ts - _now(now)) / SECONDS_PER_DAY)


def base_priority(activity: Activity) -> PriorityLevel:
    if activity.type in _PROMOTED_TYPES:
        return PriorityLevel.HIGH
    if (activity.points or 0) > HIGH_POINTS_THRESHOLD:
        return PriorityLevel.HIGH
    return PriorityLevel.MEDIUM


def classify(activity: Activity, now: float | None = None) -> PriorityLevel:
    """
    Urgency of one activity at `now`.

    days <  0 -> CRITICAL (overdue)
    days == 0 -> CRITICAL (due today)
    days == 1 -> CRITICAL if base >= HIGH else HIGH
    days 2..3 -> HIGH     if base >= HIGH else MEDIUM
    days 4..7 -> MEDIUM   if base >= HIGH else LOW
    days >  7 -> LOW
    """
    days = days_until_due(activity.due_at, now)
    promoted = base_priority(activity).rank >= PriorityLevel.HIGH.rank

    if days <= 0:
        return PriorityLevel.CRITICAL
    if days == 1:
        return PriorityLevel.CRITICAL if promoted else PriorityLevel.HIGH
    if days <= 3:
        return PriorityLevel.HIGH if promoted else PriorityLevel.MEDIUM
    if days <= 7:
        return PriorityLevel.MEDIUM if promoted else PriorityLevel.LOW
    return PriorityLevel.LOW


def sort_by_priority(activities: Iterable[Activity], now: float | None = None) -> list[Activity]:
    """Most urgent first; equal rank -> earlier due date first. Stable for full ties."""
    now_ts = _now(now)
    return sorted(
        activities,
        key=lambda a: (-classify(a, now_ts).rank, coerce_timestamp(a.due_at)),
    )


def next_urgent_task(activities: Iterable[Activity], now: float | None = None) -> Activity | None:
    active = [a for a in activities if a.status == ActivityStatus.ACTIVE]
    ranked = sort_by_priority(active, now)
    return ranked[0] if ranked else None


def group_by_priority(activities: Iterable[Activity], now: float | None = None) -> dict[int, list[Activity]]:
    """Bucket activities by rank (4..1). Every rank key is present, possibly empty."""
    now_ts = _now(now)
    groups: dict[int, list[Activity]] = {level.rank: [] for level in PriorityLevel}
    for activity in activities:
        groups[classify(activity, now_ts).rank].append(activity)
    return groups


def upcoming_deadlines(
        activities: Iterable[Activity],
        now: float | None = None,
        days: int = 7,
) -> list[Activity]:
    """Activities due between now and now + days, soonest first."""
    now_ts = _now(now)
    horizon = now_ts + max(0, int(days)) * SECONDS_PER_DAY
    due = [a for a in activities if now_ts <= coerce_timestamp(a.due_at) <= horizon]
    return sorted(due, key=lambda a: coerce_timestamp(a.due_at))
