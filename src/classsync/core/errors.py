# src/classsync/core/errors.py

from __future__ import annotations


class ClassSyncError(Exception):
    """Base class for all errors raised by the core."""


class ValidationError(ClassSyncError, ValueError):
    """Malformed input. Raised before any side effect happens."""


class PersistenceError(ClassSyncError):
    """The entity store failed to read or write (network, permission, quota, ...)."""


class NotFoundError(PersistenceError):
    """A document that an operation depends on does not exist."""


class DispatchError(ClassSyncError):
    """The push dispatcher failed. Callers log it; it never fails an authoring action."""


class AuthorizationError(ClassSyncError):
    """The current actor may not perform this action (e.g. deleting someone else's section)."""
