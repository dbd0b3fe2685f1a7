# src/checklist_engine/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the engine.

The engine depends on Protocols instead of concrete implementations.
This keeps the store and the notification transport swappable and makes testing easier.
"""

from collections.abc import Iterable
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..checklist.models import DefinitionDraft, RepeatType, TaskDefinition, TaskInstance
    from ..checklist.notify import Notification


class Notifier(Protocol):
    """
    Delivery-side port: how the engine hands a notification to a transport.

    Delivery is best-effort. Implementations may raise; callers log and move on.
    """

    def notify(self, notification: Notification) -> None: ...


class ChecklistRepo(Protocol):
    # Units of work
    def transaction(self) -> AbstractContextManager[Any]: ...

    # Definitions
    def add_definition(
            self,
            draft: DefinitionDraft,
            *,
            created_by_id: str,
            now: datetime | None = None,
    ) -> TaskDefinition: ...
    def get_definition(self, definition_id: int) -> TaskDefinition | None: ...
    def require_definition(self, definition_id: int) -> TaskDefinition: ...
    def list_definitions(self, *, assignee_id: str | None = None) -> list[TaskDefinition]: ...
    def list_definitions_with_reminders(self) -> list[TaskDefinition]: ...
    def update_definition(
            self,
            definition_id: int,
            draft: DefinitionDraft,
            *,
            now: datetime | None = None,
    ) -> TaskDefinition: ...
    def delete_definition(self, definition_id: int) -> int: ...

    # Instances
    def add_instance(
            self,
            *,
            definition_id: int,
            scheduled_date: date,
            assignee_id: str,
            completed_at: datetime | None = None,
            completed_by_id: str | None = None,
            now: datetime | None = None,
    ) -> TaskInstance: ...
    def add_instance_if_absent(
            self,
            *,
            definition_id: int,
            scheduled_date: date,
            assignee_id: str,
            unless_later_than: date | None = None,
            now: datetime | None = None,
    ) -> TaskInstance | None: ...
    def add_instances(
            self,
            definition_id: int,
            rows: Iterable[tuple[date, str]],
            *,
            now: datetime | None = None,
    ) -> int: ...
    def get_instance(self, instance_id: int) -> TaskInstance | None: ...
    def require_instance(self, instance_id: int) -> TaskInstance: ...
    def find_instance(self, definition_id: int, scheduled_date: date) -> TaskInstance | None: ...
    def update_instance_completion(
            self,
            instance_id: int,
            *,
            completed_at: datetime | None,
            completed_by_id: str | None,
            note: str | None = ...,
    ) -> TaskInstance: ...
    def update_instance_note(self, instance_id: int, note: str | None) -> TaskInstance: ...
    def delete_instance(self, instance_id: int) -> bool: ...
    def count_instances(self) -> int: ...

    # Due-set / history queries
    def list_instances_on(self, assignee_id: str, on: date) -> list[TaskInstance]: ...
    def list_overdue(self, assignee_id: str, before: date) -> list[TaskInstance]: ...
    def list_after(self, assignee_id: str, after: date, *, limit: int = 30) -> list[TaskInstance]: ...
    def list_between(self, assignee_id: str, start: date, end: date) -> list[TaskInstance]: ...
    def list_outstanding(
            self,
            *,
            start: date | None = None,
            end: date | None = None,
            repeat_type: RepeatType | None = None,
    ) -> list[TaskInstance]: ...
    def list_open_for_definition(
            self,
            definition_id: int,
            *,
            assignee_id: str,
            up_to: date,
            only_on: bool = False,
    ) -> list[TaskInstance]: ...

    # Notification log / reminder claims
    def record_notification(
            self,
            *,
            recipient_id: str,
            template_type: str,
            title: str,
            body: str,
            channel: str = "push",
            instance_id: int | None = None,
            now: datetime | None = None,
    ) -> int: ...
    def count_notifications(self, *, recipient_id: str | None = None) -> int: ...
    def try_claim_reminder_slot(self, slot_key: str, *, now: datetime | None = None) -> bool: ...
