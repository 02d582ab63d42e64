"""Error types raised by the Savings Tracker services and stores."""

from __future__ import annotations

from typing import Iterable, List, Optional


class TrackerError(Exception):
    """Base class for every error the tracker raises on purpose."""


class ValidationError(TrackerError):
    """Raised when user input breaks an application or history invariant.

    ``errors`` holds one human-readable message per problem found, so a form
    can show them all at once.
    """

    def __init__(self, errors: Iterable[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid input.")


class NotFoundError(TrackerError):
    """Raised when an entity is missing or owned by somebody else."""

    def __init__(self, kind: str, entity_id: object):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id}")


class ConflictError(TrackerError):
    """Raised when a write would break a uniqueness constraint."""


class StorageError(TrackerError):
    """Raised when the backing store fails. The original error is chained."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        super().__init__(message)
