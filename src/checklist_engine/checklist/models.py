# src/checklist_engine/checklist/models.py

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import StrEnum

from ..core.calendar import DAY_NAMES
from ..core.errors import ValidationError

DEFAULT_MANAGER_ROLES = frozenset({"dev", "master_technician", "assistant"})
DEFAULT_HISTORY_EDITOR_ROLES = frozenset({"dev", "master_technician"})
DEFAULT_FORWARD_ROLES = frozenset({"dev"})


class RepeatType(StrEnum):
    ONCE = "once"
    WEEKLY_ON_DAYS = "weekly_on_days"
    DAYS_AFTER_COMPLETION = "days_after_completion"

    @classmethod
    def from_db(cls, raw: str | None) -> RepeatType:
        if not raw:
            return cls.ONCE
        # Older rows used "day_of_week" for the weekly rule.
        if raw == "day_of_week":
            return cls.WEEKLY_ON_DAYS
        return cls(raw)


class ReminderScope(StrEnum):
    DUE_DATE_ONLY = "due_date_only"
    DUE_DATE_AND_OVERDUE = "due_date_and_overdue"

    @classmethod
    def from_db(cls, raw: str | None) -> ReminderScope | None:
        if not raw:
            return None
        legacy = {"today_only": cls.DUE_DATE_ONLY, "today_and_overdue": cls.DUE_DATE_AND_OVERDUE}
        if raw in legacy:
            return legacy[raw]
        return cls(raw)


class CellStatus(StrEnum):
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    NOT_DUE = "not_due"


@dataclass(frozen=True, slots=True)
class RepeatRule:
    kind: RepeatType
    days: frozenset[int] = frozenset()
    days_after: int | None = None

    @classmethod
    def once(cls) -> RepeatRule:
        return cls(RepeatType.ONCE)

    @classmethod
    def weekly_on_days(cls, days: Iterable[int]) -> RepeatRule:
        return cls(RepeatType.WEEKLY_ON_DAYS, days=frozenset(int(d) for d in days))

    @classmethod
    def days_after_completion(cls, n: int) -> RepeatRule:
        return cls(RepeatType.DAYS_AFTER_COMPLETION, days_after=int(n))

    def validate(self) -> None:
        if self.kind == RepeatType.WEEKLY_ON_DAYS:
            if not self.days:
                raise ValidationError("Select at least one day of the week.")
            bad = sorted(d for d in self.days if not 0 <= d <= 6)
            if bad:
                raise ValidationError(f"weekday out of range 0..6: {bad}")
        elif self.kind == RepeatType.DAYS_AFTER_COMPLETION:
            if self.days_after is None or self.days_after < 1:
                raise ValidationError("days after completion must be a positive integer")

    def describe(self) -> str:
        if self.kind == RepeatType.WEEKLY_ON_DAYS:
            return "Weekly: " + ", ".join(DAY_NAMES[d][:3] for d in sorted(self.days))
        if self.kind == RepeatType.DAYS_AFTER_COMPLETION:
            return f"{self.days_after} days after completion"
        return "Once"


@dataclass(slots=True)
class TaskDefinition:
    id: int
    title: str
    assignee_id: str
    created_by_id: str
    rule: RepeatRule
    start_date: date
    end_date: date | None = None
    show_until_completed: bool = False

    notify_on_complete_user_id: str | None = None
    notify_creator_on_complete: bool = False

    reminder_time: time | None = None
    reminder_scope: ReminderScope | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class TaskInstance:
    id: int
    definition_id: int
    scheduled_date: date
    assignee_id: str
    created_at: datetime

    completed_at: datetime | None = None
    completed_by_id: str | None = None
    note: str | None = None

    # Joined from the owning definition for display; not persisted on the row.
    title: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


@dataclass(slots=True)
class DefinitionDraft:
    """Input for create/edit before the store assigns an id."""

    title: str
    assignee_id: str
    rule: RepeatRule
    start_date: date
    end_date: date | None = None
    show_until_completed: bool = False
    notify_on_complete_user_id: str | None = None
    notify_creator_on_complete: bool = False
    reminder_time: time | None = None
    reminder_scope: ReminderScope | None = None

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("Title is required.")
        if not self.assignee_id or not str(self.assignee_id).strip():
            raise ValidationError("Select someone to assign to.")
        self.rule.validate()

    def normalized(self) -> DefinitionDraft:
        # A scope without a time never fires; drop it like the form does.
        scope = self.reminder_scope if self.reminder_time is not None else None
        if self.reminder_time is not None and scope is None:
            scope = ReminderScope.DUE_DATE_ONLY
        return DefinitionDraft(
            title=self.title.strip(),
            assignee_id=str(self.assignee_id).strip(),
            rule=self.rule,
            start_date=self.start_date,
            end_date=self.end_date,
            show_until_completed=bool(self.show_until_completed),
            notify_on_complete_user_id=(self.notify_on_complete_user_id or None),
            notify_creator_on_complete=bool(self.notify_creator_on_complete),
            reminder_time=self.reminder_time,
            reminder_scope=scope,
        )


@dataclass(frozen=True, slots=True)
class Operator:
    user_id: str
    role: str | None = None

    def can_manage(self, roles: Iterable[str] = DEFAULT_MANAGER_ROLES) -> bool:
        return self.role is not None and self.role in set(roles)

    def can_edit_history(self, roles: Iterable[str] = DEFAULT_HISTORY_EDITOR_ROLES) -> bool:
        return self.role is not None and self.role in set(roles)

    def can_forward(self, roles: Iterable[str] = DEFAULT_FORWARD_ROLES) -> bool:
        return self.role is not None and self.role in set(roles)


@dataclass(slots=True)
class Occurrence:
    scheduled_date: date
    assignee_id: str


@dataclass(slots=True)
class HistoryRow:
    definition_id: int
    title: str
    cells: dict[date, CellStatus] = field(default_factory=dict)

    def status_on(self, d: date) -> CellStatus:
        return self.cells.get(d, CellStatus.NOT_DUE)
