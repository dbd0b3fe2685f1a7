# src/checklist_engine/core/errors.py

from __future__ import annotations


class ChecklistError(Exception):
    """Base class for engine errors."""


class ValidationError(ChecklistError, ValueError):
    """Caller-fixable input problem (empty weekday set, missing title, ...)."""


class NotFoundError(ChecklistError, LookupError):
    pass


class PermissionDeniedError(ChecklistError, PermissionError):
    pass


class ConflictError(ChecklistError):
    """
    An instance already exists for the same (definition_id, scheduled_date).

    Regeneration paths treat this as a no-op success.
    """

    def __init__(self, definition_id: int, scheduled_date: object) -> None:
        super().__init__(
            f"instance already exists for definition={definition_id} date={scheduled_date}"
        )
        self.definition_id = definition_id
        self.scheduled_date = scheduled_date


class StoreUnavailableError(ChecklistError):
    """The store could not be reached (locked / missing / I/O error)."""
