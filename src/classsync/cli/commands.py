# src/classsync/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any, TypeVar, cast

from ..activities.activity_service import format_due_date
from ..activities.priority import classify, days_until_due
from ..announcements.announcement_service import AnnouncementPriority
from ..core.errors import ClassSyncError, NotFoundError
from ..core.state import AppState
from ..notifications.api import AuthoringResult
from ..sections.section_service import Section

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

T = TypeVar("T")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        room_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 5

        try:
            if nparams >= 5:
                h5 = cast(CommandHandler5, handler)
                return h5(state, args, user_id, room_id, emit)

            h4 = cast(CommandHandler4, handler)
            return h4(state, args, user_id, room_id)
        except ClassSyncError as e:
            logger.debug("Command /%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _run(coro: Coroutine[Any, Any, T]) -> T:
    # Console handlers are synchronous; each command drives its own event loop.
    return asyncio.run(coro)


def _ts_local(ts: float) -> str:
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def _current_user(state: AppState, user_id: str | None) -> str:
    return user_id or state.auth.current_actor().user_id


async def _resolve_section(state: AppState, token: str) -> Section:
    """Accept either a section id or its join key."""
    try:
        return await state.sections.get_section(token)
    except NotFoundError:
        section = await state.sections.find_by_key(token)
        if section is None:
            raise
        return section


def cmd_help(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    return registry.build_help()


def cmd_status(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    actor = state.auth.current_actor()
    push = state.settings.push_url if getattr(state.settings, "push_url", None) else "offline"
    return (
        "Status:\n"
        f"  Actor: {actor.display_name} ({actor.user_id}, role={actor.role})\n"
        f"  Database: {state.settings.db_path} ({state.store.count_documents()} documents)\n"
        f"  Push: {push}\n"
        f"  Message budget: {state.settings.message_budget} chars"
    )


def cmd_as(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /as <user_id> [role]  -> act as another user (console only)
    """
    if not args:
        return "Usage: /as <user_id> [cr|student]"
    role = args[1].lower() if len(args) > 1 else None
    actor = state.auth.switch(args[0], role=role)
    return f"Now acting as {actor.user_id} (role={actor.role})."


def cmd_sections(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    actor = state.auth.current_actor()
    who = _current_user(state, user_id)
    if actor.role == "cr":
        sections = _run(state.sections.sections_for_cr(who))
    else:
        sections = _run(state.sections.sections_for_student(who))

    if not sections:
        return f"No sections for {who}."
    lines = [f"Sections for {who}:"]
    for s in sections:
        lines.append(
            f"  {s.name} [key {s.section_key}] id={s.id} "
            f"students={len(s.enrolled_students)} tasks={s.activity_count}"
        )
    return "\n".join(lines)


def cmd_tasks(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /tasks <section>  -> active tasks, most urgent first
    """
    if not args:
        return "Usage: /tasks <section id or key>"

    async def _load():
        section = await _resolve_section(state, args[0])
        return section, await state.activities.ranked_activities(section.id)

    section, ranked = _run(_load())
    if not ranked:
        return f"No tasks in {section.name}."

    now = state.activities.now()
    lines = [f"Tasks in {section.name} (most urgent first):"]
    for a in ranked:
        level = classify(a, now)
        days = days_until_due(a.due_at, now)
        when = "overdue" if days < 0 else ("today" if days == 0 else f"in {days}d")
        lines.append(
            f"  [{level.label:<8}] {a.title} ({a.type.label}) due {format_due_date(a.due_at)} {when} id={a.id}"
        )
    return "\n".join(lines)


def cmd_next(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /next <section id or key>"

    async def _load():
        section = await _resolve_section(state, args[0])
        return await state.activities.next_task(section.id)

    task = _run(_load())
    if task is None:
        return "Nothing urgent. No active tasks."
    level = classify(task, state.activities.now())
    return f"Next: {task.title} [{level.label}] due {format_due_date(task.due_at)} id={task.id}"


def cmd_stats(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /stats <section id or key>"

    async def _load():
        section = await _resolve_section(state, args[0])
        return section, await state.activities.activity_stats(section.id)

    section, stats = _run(_load())
    by_type = ", ".join(f"{k}={v}" for k, v in stats["by_type"].items())
    return (
        f"Stats for {section.name}:\n"
        f"  Total: {stats['total']}  Active: {stats['active']}\n"
        f"  Overdue: {stats['overdue']}  Due today: {stats['due_today']}  "
        f"Due this week: {stats['due_this_week']}\n"
        f"  By type: {by_type}"
    )


def cmd_inbox(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /inbox         -> notifications of the current actor
    /inbox <user>  -> notifications of another user
    """
    who = args[0] if args else _current_user(state, user_id)

    async def _load():
        items = await state.inbox.list_for_recipient(who, limit=20)
        return items, await state.inbox.unread_count(who)

    items, unread = _run(_load())
    if not items:
        return f"No notifications for {who}."

    lines = [f"Notifications for {who} ({unread} unread):"]
    for n in items:
        mark = " " if n.is_read else "*"
        lines.append(f"  {mark} {_ts_local(n.created_at)} {n.title}: {n.message} id={n.id}")
    return "\n".join(lines)


def cmd_read(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /read <notification id>"
    changed = _run(state.inbox.mark_as_read(args[0]))
    return "Marked as read." if changed else "Already read."


def cmd_readall(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    who = args[0] if args else _current_user(state, user_id)
    count = _run(state.inbox.mark_all_as_read(who))
    return f"Marked {count} notifications as read for {who}."


def _split_text(args: list[str]) -> list[str]:
    """'a b | c | d' -> ['a b', 'c', 'd']"""
    return [part.strip() for part in " ".join(args).split("|")]


def _authoring_reply(what: str, result: AuthoringResult) -> str:
    if not result.success:
        return f"Error: {result.error}"

    entity = result.entity
    lines = [f"{what} created: id={entity.id}"]
    fanout = result.notifications
    if fanout is not None and fanout.success:
        recipients = max(fanout.notifications_created - 1, 0)
        push = "sent" if fanout.dispatched else "not sent"
        lines.append(f"  Notified {recipients} students (push {push}).")
    if result.warning:
        lines.append(f"  Warning: {result.warning}")
    return "\n".join(lines)


def cmd_section(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /section <name>  -> create a section owned by the current actor
    """
    if not args:
        return "Usage: /section <name>"
    actor = state.auth.current_actor()
    section = _run(
        state.sections.create_section(
            name=" ".join(args),
            cr_id=_current_user(state, user_id),
            cr_name=actor.display_name,
        )
    )
    return f"Section created: {section.name} key={section.section_key} id={section.id}"


def cmd_enroll(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /enroll <section key>"
    section = _run(
        state.sections.enroll_student(student_id=_current_user(state, user_id), section_key=args[0])
    )
    return f"Enrolled in {section.name} ({len(section.enrolled_students)} students)."


def cmd_students(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /students <section id or key>"

    async def _load():
        section = await _resolve_section(state, args[0])
        return section, await state.sections.get_section_students(section.id)

    section, students = _run(_load())
    if not students:
        return f"No students in {section.name}."
    lines = [f"Students in {section.name}:"]
    for s in students:
        since = _ts_local(s.enrolled_at) if s.enrolled_at else "unknown"
        lines.append(f"  {s.student_id} (since {since})")
    return "\n".join(lines)


def cmd_task(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /task <section> <type> <due> <title> [| description] [| points]

    due: ISO date or date-time, e.g. 2026-10-20 or 2026-10-20T23:59
    """
    if len(args) < 4:
        return "Usage: /task <section> <assignment|quiz|lab|presentation> <YYYY-MM-DD> <title> [| description] [| points]"

    parts = _split_text(args[3:])
    title = parts[0]
    description = parts[1] if len(parts) > 1 and parts[1] else title
    points = parts[2] if len(parts) > 2 else None

    async def _create():
        section = await _resolve_section(state, args[0])
        return await state.activities.create_activity(
            section_id=section.id,
            title=title,
            description=description,
            due_at=args[2],
            type=args[1],
            points=points,
        )

    return _authoring_reply("Task", _run(_create()))


def cmd_announce(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /announce <section> [low|medium|high] <title> | <content>
    """
    if len(args) < 2:
        return "Usage: /announce <section> [low|medium|high] <title> | <content>"

    rest = args[1:]
    priority = "medium"
    if rest[0].lower() in {p.value for p in AnnouncementPriority}:
        priority, rest = rest[0].lower(), rest[1:]
    parts = _split_text(rest)
    title = parts[0]
    content = " | ".join(parts[1:]) or title

    async def _create():
        section = await _resolve_section(state, args[0])
        return await state.announcements.create_announcement(
            section_id=section.id, title=title, content=content, priority=priority
        )

    return _authoring_reply("Announcement", _run(_create()))


def cmd_poll(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    """
    /poll <section> <question> | <option> | <option> [| ...]
    """
    if len(args) < 2:
        return "Usage: /poll <section> <question> | <option> | <option> [| ...]"

    parts = _split_text(args[1:])

    async def _create():
        section = await _resolve_section(state, args[0])
        return await state.polls.create_poll(section_id=section.id, question=parts[0], options=parts[1:])

    result = _run(_create())
    reply = _authoring_reply("Poll", result)
    if result.success:
        options = "  ".join(f"{o.id}) {o.text}" for o in result.entity.options)
        reply += f"\n  Options: {options}"
    return reply


def cmd_polls(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if not args:
        return "Usage: /polls <section id or key>"

    async def _load():
        section = await _resolve_section(state, args[0])
        return section, await state.polls.list_polls(section.id)

    section, polls = _run(_load())
    if not polls:
        return f"No active polls in {section.name}."
    lines = [f"Polls in {section.name}:"]
    for p in polls:
        votes = ", ".join(f"{o.id}) {o.text}: {o.votes}" for o in p.options)
        lines.append(f"  {p.question} [{votes}] responses={p.total_responses} id={p.id}")
    return "\n".join(lines)


def cmd_vote(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
) -> str:
    if len(args) < 2:
        return "Usage: /vote <poll id> <option id> [option id ...]"
    response = _run(state.polls.submit_response(args[0], args[1:]))
    return f"Vote recorded for options {', '.join(str(o) for o in response.selected_options)}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show actor, database and push settings.")
registry.register("as", cmd_as, help_text="Act as another user: /as <user_id> [cr|student].")
registry.register("sections", cmd_sections, help_text="List sections of the current actor.")
registry.register("tasks", cmd_tasks, help_text="Ranked tasks: /tasks <section>.")
registry.register("next", cmd_next, help_text="Most urgent active task: /next <section>.")
registry.register("stats", cmd_stats, help_text="Task statistics: /stats <section>.")
registry.register("inbox", cmd_inbox, help_text="Notifications: /inbox [user].")
registry.register("read", cmd_read, help_text="Mark one notification read: /read <id>.")
registry.register(
    "readall", cmd_readall, help_text="Mark all notifications read: /readall [user]."
)
registry.register("section", cmd_section, help_text="Create a section: /section <name>.")
registry.register("enroll", cmd_enroll, help_text="Join a section: /enroll <key>.")
registry.register("students", cmd_students, help_text="Enrolled students: /students <section>.")
registry.register(
    "task", cmd_task, help_text="Create a task: /task <section> <type> <due> <title> [| description] [| points]."
)
registry.register(
    "announce", cmd_announce, help_text="Announce: /announce <section> [priority] <title> | <content>."
)
registry.register("poll", cmd_poll, help_text="Open a poll: /poll <section> <question> | <opt> | <opt>.")
registry.register("polls", cmd_polls, help_text="Active polls: /polls <section>.")
registry.register("vote", cmd_vote, help_text="Vote in a poll: /vote <poll id> <option id>...")
