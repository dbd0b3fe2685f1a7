# src/checklist_engine/core/events.py

"""
Change notification port.

Mutations publish a ChangeEvent after the primary write succeeded; views that
show due sets subscribe explicitly and re-read from the store.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class ChangeKind(StrEnum):
    DEFINITION_CREATED = "definition_created"
    DEFINITION_UPDATED = "definition_updated"
    DEFINITION_DELETED = "definition_deleted"
    INSTANCE_COMPLETED = "instance_completed"
    INSTANCE_REOPENED = "instance_reopened"
    INSTANCE_CREATED = "instance_created"
    INSTANCE_DELETED = "instance_deleted"
    INSTANCE_NOTE = "instance_note"
    INSTANCE_FORWARDED = "instance_forwarded"
    HISTORY_CORRECTED = "history_corrected"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: ChangeKind
    definition_id: int | None = None
    instance_id: int | None = None


ChangeListener = Callable[[ChangeEvent], None]


class ChangeFeed:
    """In-process observer list. Listener failures are logged and ignored."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("change listener failed kind=%s", event.kind.value)


def publish(changes: ChangeFeed | None, event: ChangeEvent) -> None:
    """Publish if a feed was wired in (components accept changes=None)."""
    if changes is not None:
        changes.publish(event)
