# src/classsync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps the document store, roster source and push channel swappable
and makes testing easier.
"""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

Record = dict[str, Any]
# A stored document: plain JSON-compatible dict with an "id" field.


class WriteAction(StrEnum):
    SET = "set"  # create or replace the whole document
    UPDATE = "update"  # merge fields into an existing document
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class WriteOp:
    """
    One operation inside an atomic batch.

    UPDATE-only extras, applied inside the batch transaction:
    increments: numeric fields to add to, e.g. {"activity_count": 1}.
    array_union: list fields to append to, skipping items already present.
    array_remove: list fields to drop every occurrence of the given items from.
    check: called with the current document before the update is merged;
        raising from it aborts the whole batch.
    """

    action: WriteAction
    collection: str
    id: str
    data: Record = field(default_factory=dict)
    increments: dict[str, int] = field(default_factory=dict)
    array_union: dict[str, list[Any]] = field(default_factory=dict)
    array_remove: dict[str, list[Any]] = field(default_factory=dict)
    check: Callable[[Record], None] | None = None


@dataclass(frozen=True, slots=True)
class PushRequest:
    section_id: str
    title: str
    message: str
    recipient_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DispatchResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: str
    display_name: str
    role: str = "cr"


class EntityStore(Protocol):
    """
    Document store.

    batch_write is all-or-nothing: either every op is applied or none is.
    Failures raise PersistenceError (NotFoundError for updates/deletes of missing ids).
    """

    async def put(self, collection: str, id: str, record: Record) -> None: ...

    async def get(self, collection: str, id: str) -> Record | None: ...

    async def query(
            self,
            collection: str,
            filters: Mapping[str, Any] | None = None,
            *,
            order_by: str | None = None,
            descending: bool = False,
            limit: int | None = None,
    ) -> list[Record]: ...

    async def batch_write(self, ops: Sequence[WriteOp]) -> None: ...


class RosterProvider(Protocol):
    """Section membership at the moment of authoring."""

    async def get_section_members(self, section_id: str) -> list[str]: ...


class PushDispatcher(Protocol):
    """
    Best-effort external push delivery.

    Implementations either return DispatchResult(success=False, ...) or raise
    DispatchError; callers must treat both the same way.
    """

    async def dispatch(self, request: PushRequest) -> DispatchResult: ...


class AuthContext(Protocol):
    """Identity of the current actor. Trusted: the core does no authorization of its own."""

    def current_actor(self) -> Actor: ...
