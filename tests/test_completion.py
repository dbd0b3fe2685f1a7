# tests/test_completion.py

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from checklist_engine.checklist.completion import save_note, toggle_complete
from checklist_engine.checklist.definitions import create_definition
from checklist_engine.checklist.due import due_today
from checklist_engine.checklist.models import DefinitionDraft, RepeatRule
from checklist_engine.checklist.store import ChecklistStore
from checklist_engine.core.errors import NotFoundError
from checklist_engine.core.events import ChangeKind

from .fakes import FailingNotifier, FakeNotifier

NOW = datetime(2024, 2, 5, 16, 0, tzinfo=UTC)


def _chained(store: ChecklistStore, **kw):
    base = dict(
        title="Check fluids",
        assignee_id="u1",
        rule=RepeatRule.days_after_completion(3),
        start_date=date(2024, 2, 1),
        show_until_completed=True,
    )
    base.update(kw)
    return create_definition(store, DefinitionDraft(**base), created_by="mgr").definition


def test_chained_completion_regenerates_from_completion_day(store: ChecklistStore, changes, recorder) -> None:
    d = _chained(store)
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))

    # Not done on the 1st: still overdue on the 5th.
    assert [i.id for i in due_today(store, "u1", date(2024, 2, 5)).overdue] == [first.id]

    result = toggle_complete(
        store,
        first.id,
        acting_user_id="u1",
        now=NOW,
        completed_on=date(2024, 2, 5),
        changes=changes,
    )

    assert result.completed is True
    assert result.instance.completed_by_id == "u1"
    assert result.next_instance is not None
    assert result.next_instance.scheduled_date == date(2024, 2, 8)
    assert result.next_instance.assignee_id == "u1"
    assert store.find_instance(d.id, date(2024, 2, 8)) is not None
    assert due_today(store, "u1", date(2024, 2, 5)).overdue == []
    assert recorder.kinds == [ChangeKind.INSTANCE_COMPLETED, ChangeKind.INSTANCE_CREATED]


def test_chained_default_base_is_scheduled_date(store: ChecklistStore) -> None:
    _chained(store)
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))

    result = toggle_complete(store, first.id, acting_user_id="u1", now=NOW)
    assert result.next_instance is not None
    assert result.next_instance.scheduled_date == date(2024, 2, 4)


def test_recompleting_does_not_duplicate_next(store: ChecklistStore) -> None:
    d = _chained(store)
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))

    toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5))
    reopened = toggle_complete(store, first.id, acting_user_id="u1", now=NOW)
    assert reopened.completed is False
    assert reopened.instance.completed_at is None

    again = toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5))
    assert again.next_instance is None
    assert len(store.list_between("u1", date(2024, 2, 1), date(2024, 3, 1))) == 2
    assert store.find_instance(d.id, date(2024, 2, 8)) is not None


def test_recompleting_on_a_later_day_does_not_fork_chain(store: ChecklistStore) -> None:
    d = _chained(store)
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))

    toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5))
    toggle_complete(store, first.id, acting_user_id="u1", now=NOW)
    again = toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 6))

    assert again.completed is True
    assert again.next_instance is None
    later = store.list_between("u1", date(2024, 2, 2), date(2024, 3, 1))
    assert [i.scheduled_date for i in later] == [date(2024, 2, 8)]
    assert store.find_instance(d.id, date(2024, 2, 9)) is None


def test_existing_next_instance_is_left_untouched(store: ChecklistStore) -> None:
    d = _chained(store)
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))
    done_at = datetime(2024, 2, 8, 12, 0, tzinfo=UTC)
    existing = store.add_instance(
        definition_id=d.id,
        scheduled_date=date(2024, 2, 8),
        assignee_id="u1",
        completed_at=done_at,
        completed_by_id="u1",
    )
    store.update_instance_note(existing.id, "topped up")

    result = toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5))

    assert result.next_instance is None
    kept = store.find_instance(d.id, date(2024, 2, 8))
    assert kept is not None
    assert kept.id == existing.id
    assert kept.completed_at == done_at
    assert kept.completed_by_id == "u1"
    assert kept.note == "topped up"


def test_chained_regeneration_stops_at_end_date(store: ChecklistStore) -> None:
    _chained(store, end_date=date(2024, 2, 6))
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))

    result = toggle_complete(store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5))
    assert result.completed is True
    assert result.next_instance is None


def test_completion_notifies_configured_recipients(store: ChecklistStore, notifier: FakeNotifier) -> None:
    d = create_definition(
        store,
        DefinitionDraft(
            title="Lock up",
            assignee_id="u1",
            rule=RepeatRule.once(),
            start_date=date(2024, 2, 5),
            notify_on_complete_user_id="boss",
            notify_creator_on_complete=True,
        ),
        created_by="mgr",
    ).definition
    inst = store.find_instance(d.id, date(2024, 2, 5))
    assert inst is not None

    toggle_complete(store, inst.id, acting_user_id="u1", now=NOW, notifier=notifier, actor_name="Alice")

    assert [n.recipient_id for n in notifier.sent] == ["boss", "mgr"]
    (to_boss,) = notifier.to("boss")
    assert to_boss.title == "Checklist completed"
    assert to_boss.body == "Alice completed: Lock up"
    assert to_boss.tag == f"checklist-{inst.id}"
    assert to_boss.url == "/checklist"
    assert store.count_notifications() == 2

    # Reopening sends nothing.
    toggle_complete(store, inst.id, acting_user_id="u1", now=NOW, notifier=notifier)
    assert len(notifier.sent) == 2


def test_creator_is_not_notified_twice(store: ChecklistStore, notifier: FakeNotifier) -> None:
    d = create_definition(
        store,
        DefinitionDraft(
            title="Lock up",
            assignee_id="u1",
            rule=RepeatRule.once(),
            start_date=date(2024, 2, 5),
            notify_on_complete_user_id="mgr",
            notify_creator_on_complete=True,
        ),
        created_by="mgr",
    ).definition
    inst = store.find_instance(d.id, date(2024, 2, 5))
    assert inst is not None

    toggle_complete(store, inst.id, acting_user_id="u1", now=NOW, notifier=notifier)
    assert [n.recipient_id for n in notifier.sent] == ["mgr"]


def test_notifier_failure_does_not_fail_completion(store: ChecklistStore) -> None:
    d = _chained(store, notify_on_complete_user_id="boss")
    (first,) = store.list_between("u1", date(2024, 2, 1), date(2024, 2, 1))
    failing = FailingNotifier()

    result = toggle_complete(
        store, first.id, acting_user_id="u1", now=NOW, completed_on=date(2024, 2, 5), notifier=failing
    )

    assert failing.attempts == 1
    assert result.completed is True
    assert store.require_instance(first.id).is_completed
    assert store.find_instance(d.id, date(2024, 2, 8)) is not None
    assert store.count_notifications() == 0


def test_note_is_saved_on_completion_and_kept_on_reopen(store: ChecklistStore) -> None:
    d = create_definition(
        store,
        DefinitionDraft(title="Inspect lift", assignee_id="u1", rule=RepeatRule.once(), start_date=date(2024, 2, 5)),
        created_by="mgr",
    ).definition
    inst = store.find_instance(d.id, date(2024, 2, 5))
    assert inst is not None

    done = toggle_complete(store, inst.id, acting_user_id="u1", now=NOW, note="  cable frayed ")
    assert done.instance.note == "cable frayed"

    reopened = toggle_complete(store, inst.id, acting_user_id="u1", now=NOW)
    assert reopened.instance.note == "cable frayed"

    assert save_note(store, inst.id, "   ").note is None


def test_unknown_instance_raises(store: ChecklistStore) -> None:
    with pytest.raises(NotFoundError):
        toggle_complete(store, 12345, acting_user_id="u1", now=NOW)
