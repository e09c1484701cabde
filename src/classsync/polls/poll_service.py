# src/classsync/polls/poll_service.py

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..core.errors import NotFoundError, PersistenceError, ValidationError
from ..core.ports import AuthContext, EntityStore, RosterProvider, WriteAction, WriteOp
from ..notifications.api import AuthoringResult, notify_section
from ..notifications.fanout import NotificationFanout
from ..notifications.notification_models import FanoutEvent, NotificationKind

logger = logging.getLogger(__name__)

POLLS_COLLECTION = "polls"
RESPONSES_COLLECTION = "poll_responses"

MIN_OPTIONS = 2


class PollStatus(StrEnum):
    ACTIVE = "active"
    CLOSED = "closed"
    DRAFT = "draft"


@dataclass(slots=True)
class PollOption:
    id: int
    text: str
    votes: int = 0


@dataclass(slots=True)
class Poll:
    id: str
    section_id: str
    cr_id: str
    cr_name: str
    question: str
    options: list[PollOption]
    allow_multiple: bool = False
    status: PollStatus = PollStatus.ACTIVE
    total_responses: int = 0
    responded_users: list[str] = field(default_factory=list)
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "section_id": self.section_id,
            "cr_id": self.cr_id,
            "cr_name": self.cr_name,
            "question": self.question,
            "options": [{"id": o.id, "text": o.text, "votes": o.votes} for o in self.options],
            "allow_multiple": self.allow_multiple,
            "status": self.status.value,
            "total_responses": self.total_responses,
            "responded_users": list(self.responded_users),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Poll:
        return cls(
            id=str(record["id"]),
            section_id=str(record.get("section_id") or ""),
            cr_id=str(record.get("cr_id") or ""),
            cr_name=str(record.get("cr_name") or ""),
            question=str(record.get("question") or ""),
            options=[
                PollOption(id=int(o["id"]), text=str(o.get("text") or ""), votes=int(o.get("votes") or 0))
                for o in record.get("options") or []
            ],
            allow_multiple=bool(record.get("allow_multiple", False)),
            status=PollStatus(record.get("status") or "active"),
            total_responses=int(record.get("total_responses") or 0),
            responded_users=[str(u) for u in record.get("responded_users") or []],
            created_at=float(record.get("created_at") or 0.0),
            updated_at=float(record.get("updated_at") or 0.0),
        )


@dataclass(frozen=True, slots=True)
class PollResponse:
    id: str
    poll_id: str
    student_id: str
    student_name: str
    selected_options: tuple[int, ...]
    responded_at: float

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "poll_id": self.poll_id,
            "student_id": self.student_id,
            "student_name": self.student_name,
            "selected_options": list(self.selected_options),
            "responded_at": self.responded_at,
        }


class PollService:
    def __init__(
            self,
            store: EntityStore,
            roster: RosterProvider,
            fanout: NotificationFanout,
            auth: AuthContext,
            *,
            clock: Callable[[], float] = time.time,
            id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._roster = roster
        self._fanout = fanout
        self._auth = auth
        self._clock = clock
        self._new_id = id_factory

    async def create_poll(
            self,
            *,
            section_id: str,
            question: str,
            options: Sequence[str],
            allow_multiple: bool = False,
    ) -> AuthoringResult:
        actor = self._auth.current_actor()

        clean_question = (question or "").strip()
        clean_options = [str(o or "").strip() for o in options or []]
        if not clean_question:
            raise ValidationError("Poll question is required")
        if len([o for o in clean_options if o]) < MIN_OPTIONS or not all(clean_options):
            raise ValidationError(f"Poll must have at least {MIN_OPTIONS} non-empty options")
        if not section_id or not actor.user_id:
            raise ValidationError("Section ID and author ID are required")

        now = self._clock()
        poll = Poll(
            id=self._new_id(),
            section_id=section_id,
            cr_id=actor.user_id,
            cr_name=actor.display_name,
            question=clean_question,
            options=[PollOption(id=i, text=text) for i, text in enumerate(clean_options)],
            allow_multiple=bool(allow_multiple),
            created_at=now,
            updated_at=now,
        )

        try:
            await self._store.put(POLLS_COLLECTION, poll.id, poll.to_record())
        except PersistenceError as e:
            logger.exception("Poll create failed section=%s", section_id)
            return AuthoringResult.failed(str(e) or "Failed to create poll")

        logger.info("Poll created id=%s section=%s options=%d", poll.id, section_id, len(poll.options))

        event = FanoutEvent(
            section_id=section_id,
            author_id=actor.user_id,
            author_name=actor.display_name,
            title="New Poll Created",
            message=clean_question,
            type=NotificationKind.POLL,
            related_id=poll.id,
        )
        notifications = await notify_section(self._fanout, self._roster, event)
        return AuthoringResult.created(poll, notifications)

    async def get_poll(self, poll_id: str) -> Poll:
        record = await self._store.get(POLLS_COLLECTION, poll_id) if poll_id else None
        if record is None:
            raise NotFoundError("Poll not found")
        return Poll.from_record(record)

    async def submit_response(self, poll_id: str, selected_options: Sequence[int]) -> PollResponse:
        """
        Record the current actor's vote.

        Vote counts, the responder list and the response record are written in one batch.
        """
        actor = self._auth.current_actor()
        if not poll_id or not actor.user_id or not selected_options:
            raise ValidationError("Missing required data for poll response")

        poll = await self.get_poll(poll_id)
        if poll.status != PollStatus.ACTIVE:
            raise ValidationError("This poll is no longer active")
        if actor.user_id in poll.responded_users:
            raise ValidationError("You have already responded to this poll")

        try:
            chosen = list(dict.fromkeys(int(o) for o in selected_options))
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Poll options must be numbers, got {list(selected_options)!r}") from e
        if not poll.allow_multiple and len(chosen) > 1:
            raise ValidationError("This poll allows only one selection")
        by_id = {o.id: o for o in poll.options}
        missing = [o for o in chosen if o not in by_id]
        if missing:
            raise ValidationError(f"Unknown poll options: {missing}")

        seen_options = [{"id": o.id, "text": o.text, "votes": o.votes} for o in poll.options]
        for option_id in chosen:
            by_id[option_id].votes += 1
        now = self._clock()

        def still_open(current: dict[str, Any]) -> None:
            if actor.user_id in (current.get("responded_users") or []):
                raise ValidationError("You have already responded to this poll")
            if current.get("options") != seen_options:
                raise ValidationError("The poll changed while you were voting, please try again")

        response = PollResponse(
            id=self._new_id(),
            poll_id=poll.id,
            student_id=actor.user_id,
            student_name=actor.display_name,
            selected_options=tuple(chosen),
            responded_at=now,
        )
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    POLLS_COLLECTION,
                    poll.id,
                    {
                        "options": [{"id": o.id, "text": o.text, "votes": o.votes} for o in poll.options],
                        "updated_at": now,
                    },
                    increments={"total_responses": 1},
                    array_union={"responded_users": [actor.user_id]},
                    check=still_open,
                ),
                WriteOp(WriteAction.SET, RESPONSES_COLLECTION, response.id, response.to_record()),
            ]
        )
        logger.info("Poll response recorded poll=%s student=%s", poll.id, actor.user_id)
        return response

    async def set_status(self, poll_id: str, status: Any) -> None:
        try:
            new_status = PollStatus(str(status or "").strip().lower())
        except ValueError as e:
            raise ValidationError(f"Unknown poll status: {status!r}") from e
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    POLLS_COLLECTION,
                    poll_id,
                    {"status": new_status.value, "updated_at": self._clock()},
                )
            ]
        )

    async def list_polls(self, section_id: str, *, include_inactive: bool = False) -> list[Poll]:
        """Newest first."""
        if not section_id:
            return []
        filters: dict[str, Any] = {"section_id": section_id}
        if not include_inactive:
            filters["status"] = PollStatus.ACTIVE.value
        rows = await self._store.query(POLLS_COLLECTION, filters, order_by="created_at", descending=True)
        return [Poll.from_record(r) for r in rows]

    async def list_responses(self, poll_id: str) -> list[dict[str, Any]]:
        return await self._store.query(RESPONSES_COLLECTION, {"poll_id": poll_id}, order_by="responded_at")

    async def delete_poll(self, poll_id: str) -> bool:
        """Remove a poll and all of its responses in one batch. False if it did not exist."""
        if not poll_id or await self._store.get(POLLS_COLLECTION, poll_id) is None:
            return False
        responses = await self.list_responses(poll_id)
        ops = [WriteOp(WriteAction.DELETE, RESPONSES_COLLECTION, str(r["id"])) for r in responses]
        ops.append(WriteOp(WriteAction.DELETE, POLLS_COLLECTION, poll_id))
        await self._store.batch_write(ops)
        logger.info("Poll deleted id=%s responses=%d", poll_id, len(responses))
        return True
