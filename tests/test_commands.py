# tests/test_commands.py

from __future__ import annotations

import asyncio

from classsync.activities.priority import SECONDS_PER_DAY
from classsync.cli.bootstrap import create_initial_state
from classsync.cli.commands import CommandRegistry, registry
from classsync.push.dispatcher import OfflinePushDispatcher


def test_command_registry_routes_4_and_5_params(state) -> None:
    reg = CommandRegistry()
    called = {"h4": 0, "h5": 0}

    def h4(state, args, user_id, room_id):
        called["h4"] += 1
        return "h4"

    def h5(state, args, user_id, room_id, emit):
        called["h5"] += 1
        if emit is not None:
            emit("note")
        return "h5"

    reg.register("a", h4, "a")
    reg.register("b", h5, "b")

    assert reg.handle(state, "/a x", user_id="u", room_id="r") == "h4"
    assert reg.handle(state, "/b y", user_id="u", room_id="r", emit=lambda _: None) == "h5"
    assert called["h4"] == 1
    assert called["h5"] == 1


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


def seed_section(state):
    async def _seed():
        section = await state.sections.create_section(name="CS 101", cr_id="cr-1", cr_name="Alice CR")
        await state.sections.enroll_student(student_id="student-1", section_key=section.section_key)
        now = state.activities.now()
        await state.activities.create_activity(
            section_id=section.id, title="Quiz 1", description="D", due_at=now + 2 * SECONDS_PER_DAY, type="quiz"
        )
        await state.activities.create_activity(
            section_id=section.id, title="Essay", description="D", due_at=now + 20 * SECONDS_PER_DAY
        )
        return section

    return asyncio.run(_seed())


def test_help_lists_commands(state) -> None:
    out = registry.handle(state, "/help") or ""
    for name in ("tasks", "next", "stats", "inbox", "read", "readall"):
        assert f"/{name}" in out


def test_task_commands(state) -> None:
    section = seed_section(state)

    tasks = registry.handle(state, f"/tasks {section.id}") or ""
    assert tasks.index("Quiz 1") < tasks.index("Essay")
    assert "[High" in tasks

    by_key = registry.handle(state, f"/next {section.section_key}") or ""
    assert "Quiz 1" in by_key

    stats = registry.handle(state, f"/stats {section.id}") or ""
    assert "Total: 2" in stats

    assert "Usage" in (registry.handle(state, "/tasks") or "")
    assert (registry.handle(state, "/tasks nope") or "").startswith("Error:")


def test_inbox_commands(state) -> None:
    seed_section(state)

    inbox = registry.handle(state, "/inbox student-1") or ""
    assert "(2 unread)" in inbox

    readall = registry.handle(state, "/readall student-1") or ""
    assert "Marked 2" in readall
    assert "(0 unread)" in (registry.handle(state, "/inbox student-1") or "")

    # Current actor is the author: two acknowledgements.
    mine = asyncio.run(state.inbox.list_for_recipient("cr-1"))
    assert len(mine) == 2
    assert registry.handle(state, f"/read {mine[0].id}") == "Marked as read."
    assert registry.handle(state, f"/read {mine[0].id}") == "Already read."
    assert (registry.handle(state, "/read missing") or "").startswith("Error:")


def test_sections_and_as(state) -> None:
    seed_section(state)
    assert "CS 101" in (registry.handle(state, "/sections") or "")

    assert "student-1" in (registry.handle(state, "/as student-1 student") or "")
    assert "CS 101" in (registry.handle(state, "/sections") or "")

    registry.handle(state, "/as student-9 student")
    assert "No sections" in (registry.handle(state, "/sections") or "")


def test_status(state) -> None:
    out = registry.handle(state, "/status") or ""
    assert "Alice CR" in out
    assert "offline" in out


def test_bootstrap_wires_offline_state(settings) -> None:
    state = create_initial_state(settings=settings)

    assert settings.db_path.exists()
    assert isinstance(state.dispatcher, OfflinePushDispatcher)
    assert state.auth.current_actor().user_id == "cr-1"
    assert "Status:" in (registry.handle(state, "/status") or "")


def test_authoring_commands_reach_the_fanout(state, dispatcher) -> None:
    created = registry.handle(state, "/section CS 101 - A") or ""
    assert "key=KEY00001" in created

    registry.handle(state, "/as student-1 student")
    assert "1 students" in (registry.handle(state, "/enroll key00001") or "")
    assert (registry.handle(state, "/enroll KEY00001") or "").startswith("Error:")
    assert "student-1" in (registry.handle(state, "/students KEY00001") or "")

    registry.handle(state, "/as cr-1 cr")
    task = registry.handle(state, "/task KEY00001 quiz 2025-10-11 Quiz 1 | Chapters 1-3 | 20") or ""
    assert "Task created" in task
    assert "Notified 1 students (push sent)" in task

    ann = registry.handle(state, "/announce KEY00001 high Exam moved | Now on Friday") or ""
    assert "Announcement created" in ann

    poll = registry.handle(state, "/poll KEY00001 Review day? | Monday | Wednesday") or ""
    assert "Poll created" in poll
    assert "1) Wednesday" in poll

    assert [r.title for r in dispatcher.sent] == ["New Quiz Assigned", "Important Announcement", "New Poll Created"]

    section = asyncio.run(state.sections.find_by_key("KEY00001"))
    poll_id = asyncio.run(state.polls.list_polls(section.id))[0].id
    registry.handle(state, "/as student-1 student")
    assert "must be numbers" in (registry.handle(state, f"/vote {poll_id} first") or "")
    assert "options 1" in (registry.handle(state, f"/vote {poll_id} 1") or "")
    assert (registry.handle(state, f"/vote {poll_id} 0") or "").startswith("Error:")
    assert "Wednesday: 1" in (registry.handle(state, "/polls KEY00001") or "")

    assert "(3 unread)" in (registry.handle(state, "/inbox") or "")


def test_authoring_command_usage_and_errors(state) -> None:
    registry.handle(state, "/section CS 101")

    assert "Usage" in (registry.handle(state, "/task KEY00001 quiz") or "")
    assert "Usage" in (registry.handle(state, "/poll") or "")
    assert (registry.handle(state, "/task KEY00001 essay 2025-10-11 T") or "").startswith("Error:")
    assert (registry.handle(state, "/task KEY00001 quiz someday T") or "").startswith("Error:")
    assert (registry.handle(state, "/poll KEY00001 Only one? | yes") or "").startswith("Error:")
    assert (registry.handle(state, "/vote missing 1") or "").startswith("Error:")
    assert (registry.handle(state, "/enroll NOPE0000") or "").startswith("Error:")
