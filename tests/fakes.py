# tests/fakes.py

from __future__ import annotations

from dataclasses import dataclass, field

from checklist_engine.checklist.notify import Notification
from checklist_engine.core.events import ChangeEvent, ChangeKind
from checklist_engine.core.ports import Notifier


@dataclass(slots=True)
class FakeNotifier(Notifier):
    """
    Recording Notifier used by engine tests.
    """

    sent: list[Notification] = field(default_factory=list)

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)

    def to(self, recipient_id: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient_id == recipient_id]


class FailingNotifier:
    """Notifier whose transport is always down."""

    def __init__(self) -> None:
        self.attempts = 0

    def notify(self, notification: Notification) -> None:
        self.attempts += 1
        raise ConnectionError("push service unreachable")


@dataclass(slots=True)
class ChangeRecorder:
    events: list[ChangeEvent] = field(default_factory=list)

    def __call__(self, event: ChangeEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> list[ChangeKind]:
        return [e.kind for e in self.events]
