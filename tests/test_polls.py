# tests/test_polls.py

from __future__ import annotations

import asyncio

import pytest

from classsync.core.errors import NotFoundError, ValidationError
from classsync.core.ports import Actor
from classsync.core.session import StaticAuthContext
from classsync.notifications.fanout import NOTIFICATIONS_COLLECTION
from classsync.polls.poll_service import POLLS_COLLECTION, RESPONSES_COLLECTION, PollService, PollStatus


async def make_section(sections, students=("student-1", "student-2", "student-3")):
    section = await sections.create_section(name="CS 101", cr_id="cr-1", cr_name="Alice CR")
    for sid in students:
        await sections.enroll_student(student_id=sid, section_key=section.section_key)
    return section


async def make_poll(polls, section, **kw):
    result = await polls.create_poll(
        section_id=section.id,
        question=kw.pop("question", "Which day works for the review session?"),
        options=kw.pop("options", ["Monday", "Wednesday", "Friday"]),
        **kw,
    )
    assert result.success
    return result.entity


@pytest.mark.asyncio
async def test_create_poll_notifies_section(polls, sections, store, dispatcher) -> None:
    section = await make_section(sections)
    poll = await make_poll(polls, section)

    assert [o.text for o in poll.options] == ["Monday", "Wednesday", "Friday"]
    assert [o.id for o in poll.options] == [0, 1, 2]
    assert poll.status is PollStatus.ACTIVE

    rows = await store.query(NOTIFICATIONS_COLLECTION, {"related_id": poll.id})
    assert len(rows) == 4
    assert {r["title"] for r in rows if r["type"] == "poll"} == {"New Poll Created"}
    assert [r["type"] for r in rows if r["recipient_id"] == "cr-1"] == ["poll_created"]
    assert dispatcher.sent[0].message == "Which day works for the review session?"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("question", "options"),
    [("", ["a", "b"]), ("Q?", ["only one"]), ("Q?", ["a", " "]), ("Q?", [])],
)
async def test_create_poll_validation(polls, sections, store, question, options) -> None:
    section = await make_section(sections, students=())
    with pytest.raises(ValidationError):
        await polls.create_poll(section_id=section.id, question=question, options=options)
    assert store.count_documents(POLLS_COLLECTION) == 0


@pytest.mark.asyncio
async def test_submit_response_counts_votes(polls, sections, store, auth) -> None:
    section = await make_section(sections)
    poll = await make_poll(polls, section)

    auth.switch("student-1", "Bob", role="student")
    await polls.submit_response(poll.id, [2])
    auth.switch("student-2", "Carol", role="student")
    response = await polls.submit_response(poll.id, [2])

    assert response.student_name == "Carol"
    stored = await polls.get_poll(poll.id)
    assert [o.votes for o in stored.options] == [0, 0, 2]
    assert stored.total_responses == 2
    assert stored.responded_users == ["student-1", "student-2"]

    responses = await polls.list_responses(poll.id)
    assert [r["student_id"] for r in responses] == ["student-1", "student-2"]
    assert store.count_documents(RESPONSES_COLLECTION) == 2


@pytest.mark.asyncio
async def test_second_response_is_rejected(polls, sections, auth) -> None:
    section = await make_section(sections)
    poll = await make_poll(polls, section)
    auth.switch("student-1", role="student")
    await polls.submit_response(poll.id, [0])

    with pytest.raises(ValidationError, match="already responded"):
        await polls.submit_response(poll.id, [1])
    assert (await polls.get_poll(poll.id)).total_responses == 1


@pytest.mark.asyncio
async def test_selection_rules(polls, sections, auth) -> None:
    section = await make_section(sections)
    single = await make_poll(polls, section)
    multi = await make_poll(polls, section, question="Topics?", options=["a", "b", "c"], allow_multiple=True)

    auth.switch("student-1", role="student")
    with pytest.raises(ValidationError):
        await polls.submit_response(single.id, [0, 1])
    with pytest.raises(ValidationError):
        await polls.submit_response(single.id, [7])
    with pytest.raises(ValidationError):
        await polls.submit_response(single.id, [])

    await polls.submit_response(multi.id, [0, 2, 2])
    assert [o.votes for o in (await polls.get_poll(multi.id)).options] == [1, 0, 1]


@pytest.mark.asyncio
async def test_closed_poll_and_listing(polls, sections, auth, clock) -> None:
    section = await make_section(sections)
    first = await make_poll(polls, section)
    clock.advance(5)
    second = await make_poll(polls, section, question="Second?", options=["x", "y"])

    assert [p.id for p in await polls.list_polls(section.id)] == [second.id, first.id]

    await polls.set_status(first.id, "closed")
    assert [p.id for p in await polls.list_polls(section.id)] == [second.id]
    assert len(await polls.list_polls(section.id, include_inactive=True)) == 2

    auth.switch("student-1", role="student")
    with pytest.raises(ValidationError, match="no longer active"):
        await polls.submit_response(first.id, [0])
    with pytest.raises(ValidationError):
        await polls.set_status(first.id, "paused")
    with pytest.raises(NotFoundError):
        await polls.submit_response("missing", [0])


@pytest.mark.asyncio
async def test_non_numeric_option_is_a_validation_error(polls, sections, auth) -> None:
    section = await make_section(sections)
    poll = await make_poll(polls, section)
    auth.switch("student-1", role="student")

    with pytest.raises(ValidationError, match="must be numbers"):
        await polls.submit_response(poll.id, ["first"])
    assert (await polls.get_poll(poll.id)).total_responses == 0


@pytest.mark.asyncio
async def test_concurrent_votes_never_lose_counts(store, sections, fanout, clock, ids) -> None:
    section = await make_section(sections)
    voters = []
    for sid in ("student-1", "student-2", "student-3"):
        voter_auth = StaticAuthContext(Actor(user_id=sid, display_name=sid, role="student"))
        voters.append(PollService(store, sections, fanout, voter_auth, clock=clock, id_factory=ids))
    poll = await make_poll(voters[0], section)

    results = await asyncio.gather(*(v.submit_response(poll.id, [1]) for v in voters), return_exceptions=True)

    accepted = [r for r in results if not isinstance(r, Exception)]
    assert all(isinstance(r, ValidationError) for r in results if isinstance(r, Exception))
    stored = await voters[0].get_poll(poll.id)
    assert stored.total_responses == len(accepted) == stored.options[1].votes
    assert sorted(stored.responded_users) == sorted(r.student_id for r in accepted)


@pytest.mark.asyncio
async def test_delete_poll_removes_responses(polls, sections, store, auth) -> None:
    section = await make_section(sections)
    poll = await make_poll(polls, section)
    keep = await make_poll(polls, section, question="Other?", options=["x", "y"])
    auth.switch("student-1", role="student")
    await polls.submit_response(poll.id, [0])
    await polls.submit_response(keep.id, [1])

    assert await polls.delete_poll(poll.id) is True

    assert await store.get(POLLS_COLLECTION, poll.id) is None
    assert [r["poll_id"] for r in await store.query(RESPONSES_COLLECTION)] == [keep.id]
    assert await polls.delete_poll(poll.id) is False
