# src/classsync/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..activities.activity_service import ActivityService
from ..announcements.announcement_service import AnnouncementService
from ..notifications.fanout import NotificationFanout
from ..notifications.inbox import NotificationInbox
from ..polls.poll_service import PollService
from ..sections.section_service import SectionService
from ..storage.entity_store import SqliteEntityStore
from .ports import PushDispatcher
from .session import StaticAuthContext


@dataclass
class AppState:
    # Settings kept on the state so connectors/commands can read them.
    settings: Any

    store: SqliteEntityStore
    auth: StaticAuthContext
    dispatcher: PushDispatcher

    sections: SectionService
    fanout: NotificationFanout
    inbox: NotificationInbox
    activities: ActivityService
    announcements: AnnouncementService
    polls: PollService
