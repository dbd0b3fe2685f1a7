# tests/test_due.py

from __future__ import annotations

from datetime import UTC, date, datetime

from checklist_engine.checklist.definitions import create_definition
from checklist_engine.checklist.due import (
    OutstandingWindow,
    due_today,
    outstanding_by_person,
    upcoming,
)
from checklist_engine.checklist.models import DefinitionDraft, RepeatRule
from checklist_engine.checklist.store import ChecklistStore

NOW = datetime(2024, 1, 10, 15, 0, tzinfo=UTC)


def _create(store: ChecklistStore, **kw):
    base = dict(title="Task", assignee_id="u1", rule=RepeatRule.once(), start_date=date(2024, 1, 10))
    base.update(kw)
    return create_definition(store, DefinitionDraft(**base), created_by="mgr").definition


def test_once_task_is_due_on_its_date_only(store: ChecklistStore) -> None:
    _create(store, title="Rotate tires")

    due = due_today(store, "u1", date(2024, 1, 10))
    assert [i.title for i in due.today] == ["Rotate tires"]
    assert due.overdue == []

    assert due_today(store, "u1", date(2024, 1, 9)).combined == []
    # Not sticky: gone the day after.
    assert due_today(store, "u1", date(2024, 1, 11)).combined == []


def test_show_until_completed_carries_over_until_done(store: ChecklistStore) -> None:
    _create(store, title="Order parts", show_until_completed=True)

    later = due_today(store, "u1", date(2024, 1, 15))
    assert later.today == []
    assert [i.title for i in later.overdue] == ["Order parts"]

    store.update_instance_completion(later.overdue[0].id, completed_at=NOW, completed_by_id="u1")
    assert due_today(store, "u1", date(2024, 1, 15)).overdue == []


def test_overdue_never_includes_non_sticky_definitions(store: ChecklistStore) -> None:
    _create(store, title="Sweep", rule=RepeatRule.weekly_on_days({1, 3}), start_date=date(2024, 1, 1))
    _create(store, title="Order parts", show_until_completed=True, start_date=date(2024, 1, 2))

    due = due_today(store, "u1", date(2024, 1, 10))
    assert [i.title for i in due.today] == ["Sweep"]
    assert [i.title for i in due.overdue] == ["Order parts"]
    assert [i.title for i in due.combined] == ["Order parts", "Sweep"]


def test_due_set_is_per_assignee(store: ChecklistStore) -> None:
    _create(store, title="Mine")
    _create(store, title="Theirs", assignee_id="u2")

    assert [i.title for i in due_today(store, "u2", date(2024, 1, 10)).today] == ["Theirs"]
    assert due_today(store, "", date(2024, 1, 10)).combined == []


def test_upcoming_is_strictly_after_and_limited(store: ChecklistStore) -> None:
    _create(store, title="Sweep", rule=RepeatRule.weekly_on_days({1}), start_date=date(2024, 1, 1))

    nxt = upcoming(store, "u1", date(2024, 1, 8), limit=3)
    assert [i.scheduled_date for i in nxt] == [date(2024, 1, 15), date(2024, 1, 22), date(2024, 1, 29)]
    assert upcoming(store, "u1", date(2024, 1, 8), limit=0) == []


def test_outstanding_windows(store: ChecklistStore) -> None:
    _create(store, title="Daily", rule=RepeatRule.weekly_on_days(range(7)), start_date=date(2024, 1, 1))
    _create(store, title="One-off", assignee_id="u2", start_date=date(2024, 1, 11))
    _create(store, title="Old one-off", assignee_id="u2", start_date=date(2023, 12, 1))

    as_of = date(2024, 1, 10)

    next_day = outstanding_by_person(store, as_of, OutstandingWindow.NEXT_DAY)
    assert [(g.assignee_id, g.count) for g in next_day] == [("u1", 1), ("u2", 1)]

    next_week = outstanding_by_person(store, as_of, OutstandingWindow.NEXT_WEEK)
    assert [(g.assignee_id, g.count) for g in next_week] == [("u1", 7), ("u2", 1)]

    one_offs = outstanding_by_person(store, as_of, OutstandingWindow.NON_REPEATING)
    assert [(g.assignee_id, g.count) for g in one_offs] == [("u2", 2)]
