# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from classsync.activities.activity_service import ActivityService
from classsync.announcements.announcement_service import AnnouncementService
from classsync.core.ports import Actor
from classsync.core.session import StaticAuthContext
from classsync.core.state import AppState
from classsync.notifications.fanout import NotificationFanout
from classsync.notifications.inbox import NotificationInbox
from classsync.polls.poll_service import PollService
from classsync.sections.section_service import SectionService
from classsync.storage.entity_store import SqliteEntityStore

from .fakes import FixedClock, RecordingPushDispatcher, SequentialIds


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="classsync-test",
        log_level="DEBUG",
        # Paths (tmp per test run)
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "classsync.sqlite3",
        # Notifications / push
        message_budget=10,
        push_url=None,
        push_api_key=None,
        push_function="send-push-notification",
        push_connect_timeout=5.0,
        push_read_timeout=15.0,
        # Console / session
        console_enabled=False,
        actor_id="cr-1",
        actor_name="Alice CR",
        actor_role="cr",
    )


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture()
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture()
def store(tmp_path: Path) -> SqliteEntityStore:
    # Real SQLite: atomicity of batch writes is part of what we test.
    return SqliteEntityStore(tmp_path / "store.sqlite3")


@pytest.fixture()
def auth() -> StaticAuthContext:
    return StaticAuthContext(Actor(user_id="cr-1", display_name="Alice CR", role="cr"))


@pytest.fixture()
def dispatcher() -> RecordingPushDispatcher:
    return RecordingPushDispatcher()


@pytest.fixture()
def sections(store, clock, ids) -> SectionService:
    keys = iter(f"KEY{n:05d}" for n in range(1, 1000))
    return SectionService(store, clock=clock, id_factory=ids, key_factory=lambda: next(keys))


@pytest.fixture()
def fanout(store, dispatcher, clock, ids) -> NotificationFanout:
    return NotificationFanout(store, dispatcher, message_budget=10, clock=clock, id_factory=ids)


@pytest.fixture()
def inbox(store, clock) -> NotificationInbox:
    return NotificationInbox(store, clock=clock)


@pytest.fixture()
def activities(store, sections, fanout, auth, clock, ids) -> ActivityService:
    return ActivityService(store, sections, fanout, auth, clock=clock, id_factory=ids)


@pytest.fixture()
def announcements(store, sections, fanout, auth, clock, ids) -> AnnouncementService:
    return AnnouncementService(store, sections, fanout, auth, clock=clock, id_factory=ids)


@pytest.fixture()
def polls(store, sections, fanout, auth, clock, ids) -> PollService:
    return PollService(store, sections, fanout, auth, clock=clock, id_factory=ids)


@pytest.fixture()
def state(settings, store, auth, dispatcher, sections, fanout, inbox, activities, announcements, polls) -> AppState:
    """AppState wired with the same deterministic collaborators as the service fixtures."""
    return AppState(
        settings=settings,
        store=store,
        auth=auth,
        dispatcher=dispatcher,
        sections=sections,
        fanout=fanout,
        inbox=inbox,
        activities=activities,
        announcements=announcements,
        polls=polls,
    )
