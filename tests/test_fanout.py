# tests/test_fanout.py

from __future__ import annotations

import pytest

from classsync.core.errors import ValidationError
from classsync.notifications.fanout import (
    NOTIFICATIONS_COLLECTION,
    NotificationFanout,
    build_notification_records,
    truncate_message,
    unique_recipients,
)
from classsync.notifications.notification_models import FanoutEvent, NotificationKind

from .fakes import FailingBatchStore, FailingPushDispatcher, RecordingPushDispatcher, SequentialIds

LONG_MESSAGE = "Chapter 5 problem set - Due: Oct 12, 2025"


def make_event(**overrides) -> FanoutEvent:
    data = dict(
        section_id="sec-1",
        author_id="cr-1",
        author_name="Alice CR",
        title="New Assignment Assigned",
        message=LONG_MESSAGE,
        type=NotificationKind.TASK,
        related_id="act-1",
    )
    data.update(overrides)
    return FanoutEvent(**data)


def roster_of(n: int) -> list[str]:
    return [f"student-{i}" for i in range(1, n + 1)]


# ---- truncate_message ----


def test_truncate_keeps_short_text() -> None:
    assert truncate_message("Quiz 1") == "Quiz 1"
    assert truncate_message("0123456789") == "0123456789"


def test_truncate_cuts_at_budget_and_appends_ellipsis() -> None:
    assert truncate_message("0123456789X") == "0123456789..."
    assert truncate_message(LONG_MESSAGE) == "Chapter 5..."


def test_truncate_counts_code_points() -> None:
    assert truncate_message("ÄÖÜäöüßéèê!") == "ÄÖÜäöüßéèê..."


def test_truncate_empty_and_custom_budget() -> None:
    assert truncate_message("") == ""
    assert truncate_message(None) == ""
    assert truncate_message("abcdef", budget=3) == "abc..."
    with pytest.raises(ValueError):
        truncate_message("abcdef", budget=0)


def test_unique_recipients_drops_blanks_and_duplicates() -> None:
    assert unique_recipients(["b", "a", "", "b", " ", "c", "a"]) == ["b", "a", "c"]


# ---- record construction ----


def test_build_records_layout() -> None:
    records = build_notification_records(
        make_event(), ["s1", "s2"], now=100.0, new_id=SequentialIds("n")
    )

    assert [r.recipient_id for r in records] == ["s1", "s2", "cr-1"]
    assert [r.id for r in records] == ["n-1", "n-2", "n-3"]

    ack = records[-1]
    assert ack.title == "✅ New Assignment Assigned Created"
    assert ack.message == "Chapter 5... - Shared with 2 students"
    assert ack.type is NotificationKind.TASK_CREATED

    for r in records:
        assert r.is_read is False
        assert r.created_at == r.updated_at == 100.0
        assert r.related_id == "act-1"
        assert r.section_id == "sec-1"
        assert r.author_name == "Alice CR"


@pytest.mark.parametrize(
    "overrides",
    [
        {"section_id": ""},
        {"author_id": "  "},
        {"title": ""},
        {"type": "homework"},
        {"type": "task_created"},
    ],
)
def test_build_records_rejects_bad_events(overrides) -> None:
    with pytest.raises(ValidationError):
        build_notification_records(make_event(**overrides), ["s1"], now=0.0, new_id=SequentialIds())


def test_build_records_defaults_author_name() -> None:
    records = build_notification_records(make_event(author_name=""), [], now=0.0, new_id=SequentialIds())
    assert records[0].author_name == "Class Representative"


# ---- build_and_dispatch ----


@pytest.mark.asyncio
async def test_fanout_to_thirty_students(fanout, store, dispatcher) -> None:
    roster = roster_of(30)

    result = await fanout.build_and_dispatch(make_event(), roster)

    assert result.success and result.persisted and result.dispatched
    assert result.notifications_created == 31

    rows = await store.query(NOTIFICATIONS_COLLECTION, {"related_id": "act-1"})
    assert len(rows) == 31

    recipient_rows = [r for r in rows if r["type"] == "task"]
    ack_rows = [r for r in rows if r["type"] == "task_created"]
    assert sorted(r["recipient_id"] for r in recipient_rows) == sorted(roster)
    assert len(ack_rows) == 1 and ack_rows[0]["recipient_id"] == "cr-1"
    assert ack_rows[0]["message"].endswith("Shared with 30 students")

    for r in recipient_rows:
        assert r["message"] == truncate_message(LONG_MESSAGE)
        assert len(r["message"]) <= 10 + len("...")


@pytest.mark.asyncio
async def test_push_carries_untruncated_message(fanout, dispatcher) -> None:
    await fanout.build_and_dispatch(make_event(), ["s1", "s2"])

    assert len(dispatcher.sent) == 1
    req = dispatcher.sent[0]
    assert req.message == LONG_MESSAGE
    assert req.title == "New Assignment Assigned"
    assert req.section_id == "sec-1"
    assert req.recipient_ids == ("s1", "s2")


@pytest.mark.asyncio
async def test_duplicate_roster_entries_get_one_record(fanout, store) -> None:
    result = await fanout.build_and_dispatch(make_event(), ["s1", "s1", "s2"])

    assert result.notifications_created == 3
    rows = await store.query(NOTIFICATIONS_COLLECTION, {"recipient_id": "s1"})
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_empty_roster_still_acknowledges_author(fanout, store, dispatcher) -> None:
    result = await fanout.build_and_dispatch(make_event(), [])

    assert result.success and result.persisted
    assert result.dispatched is False
    assert result.notifications_created == 1
    assert dispatcher.sent == []

    rows = await store.query(NOTIFICATIONS_COLLECTION)
    assert len(rows) == 1
    assert rows[0]["recipient_id"] == "cr-1"
    assert rows[0]["message"] == "Chapter 5... - Shared with 0 students"


@pytest.mark.asyncio
async def test_validation_error_writes_nothing(fanout, store, dispatcher) -> None:
    with pytest.raises(ValidationError):
        await fanout.build_and_dispatch(make_event(title=""), roster_of(3))

    assert store.count_documents(NOTIFICATIONS_COLLECTION) == 0
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_batch_failure_leaves_no_records(store, dispatcher, clock, ids) -> None:
    failing = FailingBatchStore(store)
    fanout = NotificationFanout(failing, dispatcher, clock=clock, id_factory=ids)

    result = await fanout.build_and_dispatch(make_event(), roster_of(5))

    assert result.success is False
    assert result.persisted is False and result.dispatched is False
    assert result.error
    assert failing.failed_batches == 1
    assert await store.query(NOTIFICATIONS_COLLECTION, {"related_id": "act-1"}) == []
    assert dispatcher.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("raise_error", [True, False])
async def test_push_failure_keeps_records(store, clock, ids, raise_error) -> None:
    dispatcher = FailingPushDispatcher(raise_error=raise_error)
    fanout = NotificationFanout(store, dispatcher, clock=clock, id_factory=ids)

    result = await fanout.build_and_dispatch(make_event(), roster_of(4))

    assert dispatcher.calls == 1
    assert result.success is True
    assert result.persisted is True
    assert result.dispatched is False
    assert store.count_documents(NOTIFICATIONS_COLLECTION) == 5


@pytest.mark.asyncio
async def test_custom_budget(store, clock, ids) -> None:
    fanout = NotificationFanout(store, RecordingPushDispatcher(), message_budget=4, clock=clock, id_factory=ids)
    result = await fanout.build_and_dispatch(make_event(message="abcdefgh"), ["s1"])
    assert result.notifications[0].message == "abcd..."


def test_fanout_rejects_zero_budget(store) -> None:
    with pytest.raises(ValueError):
        NotificationFanout(store, RecordingPushDispatcher(), message_budget=0)
