# src/classsync/notifications/api.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..core.errors import PersistenceError
from ..core.ports import RosterProvider
from .fanout import NotificationFanout
from .notification_models import FanoutEvent, FanoutResult

logger = logging.getLogger(__name__)

NOTIFICATION_WARNING = "created, but notifications may not have been sent"


@dataclass(slots=True)
class AuthoringResult:
    """
    Outcome of an authoring action (create task / announcement / poll).

    success reflects the primary entity write only. A failed fan-out after a
    successful write keeps success=True and sets `warning`.
    """

    success: bool
    entity: Any = None
    notifications: FanoutResult | None = None
    error: str | None = None
    warning: str | None = None

    @classmethod
    def failed(cls, error: str) -> AuthoringResult:
        return cls(success=False, error=error)

    @classmethod
    def created(cls, entity: Any, notifications: FanoutResult | None = None) -> AuthoringResult:
        warning = None
        if notifications is not None and not notifications.success:
            warning = NOTIFICATION_WARNING
        return cls(success=True, entity=entity, notifications=notifications, warning=warning)


async def notify_section(
        fanout: NotificationFanout,
        roster: RosterProvider,
        event: FanoutEvent,
) -> FanoutResult:
    """
    Fetch the section roster and fan the event out to it.

    Roster and batch failures come back as a failed FanoutResult (logged here);
    ValidationError still propagates to the caller.
    """
    try:
        members = await roster.get_section_members(event.section_id)
    except PersistenceError as e:
        logger.exception("Roster lookup failed section=%s", event.section_id)
        return FanoutResult.failed(str(e) or "roster lookup failed")

    result = await fanout.build_and_dispatch(event, members)
    if not result.success:
        logger.warning(
            "Fan-out failed section=%s related=%s: %s",
            event.section_id,
            event.related_id,
            result.error,
        )
    return result
