# src/classsync/sections/section_service.py

from __future__ import annotations

import logging
import secrets
import string
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..activities.activity_models import ACTIVITIES_COLLECTION
from ..core.errors import AuthorizationError, NotFoundError, ValidationError
from ..core.ports import EntityStore, WriteAction, WriteOp

logger = logging.getLogger(__name__)

SECTIONS_COLLECTION = "sections"
ENROLLMENTS_COLLECTION = "enrollments"

SECTION_KEY_LENGTH = 8
_KEY_ALPHABET = string.ascii_uppercase + string.digits


def generate_section_key(length: int = SECTION_KEY_LENGTH) -> str:
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(length))


@dataclass(slots=True)
class Section:
    id: str
    name: str
    cr_id: str
    cr_name: str
    section_key: str
    enrolled_students: list[str] = field(default_factory=list)
    activity_count: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cr_id": self.cr_id,
            "cr_name": self.cr_name,
            "section_key": self.section_key,
            "enrolled_students": list(self.enrolled_students),
            "activity_count": self.activity_count,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Section:
        return cls(
            id=str(record["id"]),
            name=str(record.get("name") or ""),
            cr_id=str(record.get("cr_id") or ""),
            cr_name=str(record.get("cr_name") or ""),
            section_key=str(record.get("section_key") or ""),
            enrolled_students=[str(s) for s in record.get("enrolled_students") or []],
            activity_count=int(record.get("activity_count") or 0),
            created_at=float(record.get("created_at") or 0.0),
            updated_at=float(record.get("updated_at") or 0.0),
        )


@dataclass(frozen=True, slots=True)
class Enrollment:
    student_id: str
    section_id: str
    enrolled_at: float | None = None

    @staticmethod
    def make_id(student_id: str, section_id: str) -> str:
        return f"{student_id}_{section_id}"

    @property
    def id(self) -> str:
        return self.make_id(self.student_id, self.section_id)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "section_id": self.section_id,
            "enrolled_at": self.enrolled_at,
        }


class SectionService:
    """
    Sections and enrollment.

    Also implements the RosterProvider port: the roster of a section is its
    enrolled_students list at the moment of the call.
    """

    def __init__(
            self,
            store: EntityStore,
            *,
            clock: Callable[[], float] = time.time,
            id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
            key_factory: Callable[[], str] = generate_section_key,
    ) -> None:
        self._store = store
        self._clock = clock
        self._new_id = id_factory
        self._new_key = key_factory

    async def create_section(self, *, name: str, cr_id: str, cr_name: str | None = None) -> Section:
        if not name or not name.strip():
            raise ValidationError("Section name is required")
        if not cr_id:
            raise ValidationError("cr_id is required")

        key = await self._unique_key()
        now = self._clock()
        section = Section(
            id=self._new_id(),
            name=name.strip(),
            cr_id=cr_id,
            cr_name=(cr_name or "").strip() or "Class Representative",
            section_key=key,
            created_at=now,
            updated_at=now,
        )
        await self._store.put(SECTIONS_COLLECTION, section.id, section.to_record())
        logger.info("Section created id=%s key=%s cr=%s", section.id, key, cr_id)
        return section

    async def _unique_key(self, attempts: int = 5) -> str:
        for _ in range(attempts):
            key = self._new_key()
            if await self.find_by_key(key) is None:
                return key
        raise ValidationError("Could not generate a unique section key")

    async def get_section(self, section_id: str) -> Section:
        record = await self._store.get(SECTIONS_COLLECTION, section_id) if section_id else None
        if record is None:
            raise NotFoundError(f"section {section_id} does not exist")
        return Section.from_record(record)

    async def find_by_key(self, section_key: str) -> Section | None:
        key = (section_key or "").strip().upper()
        if not key:
            return None
        rows = await self._store.query(SECTIONS_COLLECTION, {"section_key": key}, limit=1)
        return Section.from_record(rows[0]) if rows else None

    async def sections_for_cr(self, cr_id: str) -> list[Section]:
        rows = await self._store.query(SECTIONS_COLLECTION, {"cr_id": cr_id}, order_by="created_at")
        return [Section.from_record(r) for r in rows]

    async def sections_for_student(self, student_id: str) -> list[Section]:
        rows = await self._store.query(SECTIONS_COLLECTION, order_by="created_at")
        return [
            s for s in (Section.from_record(r) for r in rows)
            if student_id in s.enrolled_students
        ]

    async def enroll_student(self, *, student_id: str, section_key: str) -> Section:
        """
        Add a student to the section roster.

        The duplicate check and the roster append run in the same transaction,
        so concurrent enrollments never overwrite each other.
        """
        if not student_id:
            raise ValidationError("student_id is required")

        section = await self.find_by_key(section_key)
        if section is None:
            raise NotFoundError(f"No section with key {section_key!r}")

        def not_enrolled(current: dict[str, Any]) -> None:
            if student_id in (current.get("enrolled_students") or []):
                raise ValidationError("You are already enrolled in this section")

        now = self._clock()
        enrollment = Enrollment(student_id=student_id, section_id=section.id, enrolled_at=now)
        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    SECTIONS_COLLECTION,
                    section.id,
                    {"updated_at": now},
                    array_union={"enrolled_students": [student_id]},
                    check=not_enrolled,
                ),
                WriteOp(WriteAction.SET, ENROLLMENTS_COLLECTION, enrollment.id, enrollment.to_record()),
            ]
        )
        logger.info("Student %s enrolled in section %s", student_id, section.id)
        return await self.get_section(section.id)

    async def unenroll_student(self, *, section_id: str, student_id: str) -> Section:
        section = await self.get_section(section_id)

        def enrolled(current: dict[str, Any]) -> None:
            if student_id not in (current.get("enrolled_students") or []):
                raise ValidationError("Student is not enrolled in this section")

        await self._store.batch_write(
            [
                WriteOp(
                    WriteAction.UPDATE,
                    SECTIONS_COLLECTION,
                    section.id,
                    {"updated_at": self._clock()},
                    array_remove={"enrolled_students": [student_id]},
                    check=enrolled,
                ),
                WriteOp(WriteAction.DELETE, ENROLLMENTS_COLLECTION, Enrollment.make_id(student_id, section.id)),
            ]
        )
        logger.info("Student %s removed from section %s", student_id, section.id)
        return await self.get_section(section.id)

    async def get_section_students(self, section_id: str) -> list[Enrollment]:
        """Enrolled students in roster order, with their enrollment time when known."""
        section = await self.get_section(section_id)
        if not section.enrolled_students:
            return []

        rows = await self._store.query(ENROLLMENTS_COLLECTION, {"section_id": section.id})
        enrolled_at = {str(r.get("student_id")): float(r.get("enrolled_at") or 0.0) for r in rows}
        return [
            Enrollment(student_id=s, section_id=section.id, enrolled_at=enrolled_at.get(s))
            for s in section.enrolled_students
        ]

    async def delete_section(self, section_id: str, cr_id: str) -> int:
        """
        Delete a section together with its activities and enrollments.

        Only the section's CR may do this. Returns the number of activities removed.
        """
        section = await self.get_section(section_id)
        if section.cr_id != cr_id:
            raise AuthorizationError("Only the CR can delete this section")

        activities = await self._store.query(ACTIVITIES_COLLECTION, {"section_id": section.id})
        enrollments = await self._store.query(ENROLLMENTS_COLLECTION, {"section_id": section.id})

        ops = [WriteOp(WriteAction.DELETE, ACTIVITIES_COLLECTION, str(r["id"])) for r in activities]
        ops += [WriteOp(WriteAction.DELETE, ENROLLMENTS_COLLECTION, str(r["id"])) for r in enrollments]
        ops.append(WriteOp(WriteAction.DELETE, SECTIONS_COLLECTION, section.id))
        await self._store.batch_write(ops)

        logger.info("Section deleted id=%s activities=%d enrollments=%d", section.id, len(activities), len(enrollments))
        return len(activities)

    # ---- RosterProvider port ----

    async def get_section_members(self, section_id: str) -> list[str]:
        section = await self.get_section(section_id)
        return list(section.enrolled_students)
