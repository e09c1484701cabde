# src/classsync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/roster/push/services).
"""

from __future__ import annotations

import logging

from ..activities.activity_service import ActivityService
from ..announcements.announcement_service import AnnouncementService
from ..config import get_settings
from ..core.ports import Actor, PushDispatcher
from ..core.session import StaticAuthContext
from ..core.state import AppState
from ..notifications.fanout import NotificationFanout
from ..notifications.inbox import NotificationInbox
from ..polls.poll_service import PollService
from ..push.dispatcher import HttpPushDispatcher, OfflinePushDispatcher
from ..sections.section_service import SectionService
from ..storage.entity_store import SqliteEntityStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_dispatcher(settings) -> PushDispatcher:
    if not getattr(settings, "push_url", None):
        logger.info("Push URL not set, using offline push dispatcher.")
        return OfflinePushDispatcher()
    try:
        return HttpPushDispatcher.from_settings(settings)
    except ValueError:
        logger.exception("Invalid push configuration, using offline push dispatcher.")
        return OfflinePushDispatcher()


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = SqliteEntityStore(settings.db_path)
    auth = StaticAuthContext(
        Actor(
            user_id=settings.actor_id,
            display_name=settings.actor_name,
            role=settings.actor_role,
        )
    )
    dispatcher = _build_dispatcher(settings)

    sections = SectionService(store)
    fanout = NotificationFanout(store, dispatcher, message_budget=settings.message_budget)

    state = AppState(
        settings=settings,
        store=store,
        auth=auth,
        dispatcher=dispatcher,
        sections=sections,
        fanout=fanout,
        inbox=NotificationInbox(store),
        activities=ActivityService(store, sections, fanout, auth),
        announcements=AnnouncementService(store, sections, fanout, auth),
        polls=PollService(store, sections, fanout, auth),
    )
    return state
