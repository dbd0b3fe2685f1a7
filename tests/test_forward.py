# tests/test_forward.py

from __future__ import annotations

from datetime import UTC, date, datetime, time

import pytest

from checklist_engine.checklist.definitions import create_definition
from checklist_engine.checklist.due import due_today
from checklist_engine.checklist.forward import forward
from checklist_engine.checklist.models import DefinitionDraft, ReminderScope, RepeatRule, RepeatType
from checklist_engine.checklist.store import ChecklistStore
from checklist_engine.core.errors import ValidationError
from checklist_engine.core.events import ChangeKind

from .fakes import FailingNotifier, FakeNotifier

DAY = date(2024, 3, 4)


class BrokenDeleteRepo:
    """Delegates to a real store but fails on delete_instance."""

    def __init__(self, store: ChecklistStore) -> None:
        self._store = store

    def __getattr__(self, name):
        return getattr(self._store, name)

    def delete_instance(self, instance_id: int) -> bool:
        raise RuntimeError("disk full")


def _source(store: ChecklistStore, **kw):
    base = dict(
        title="Clean bay 2",
        assignee_id="u1",
        rule=RepeatRule.weekly_on_days({1}),
        start_date=DAY,
        end_date=DAY,
        show_until_completed=False,
        notify_on_complete_user_id="boss",
        reminder_time=time(8, 0),
        reminder_scope=ReminderScope.DUE_DATE_AND_OVERDUE,
    )
    base.update(kw)
    definition = create_definition(store, DefinitionDraft(**base), created_by="mgr").definition
    instance = store.find_instance(definition.id, DAY)
    assert instance is not None
    return definition, instance


def test_forward_moves_instance_to_new_assignee(
    store: ChecklistStore,
    notifier: FakeNotifier,
    changes,
    recorder,
) -> None:
    source, original = _source(store)

    result = forward(
        store,
        original.id,
        new_title="Clean bay 2 (Bob)",
        new_assignee_id="u2",
        acting_user_id="u1",
        notifier=notifier,
        changes=changes,
    )

    assert result.removed_instance_id == original.id
    assert store.get_instance(original.id) is None
    assert due_today(store, "u1", DAY).combined == []

    bob = due_today(store, "u2", DAY).today
    assert [(i.id, i.title, i.scheduled_date) for i in bob] == [
        (result.instance.id, "Clean bay 2 (Bob)", DAY)
    ]

    d = result.definition
    assert d.rule.kind == RepeatType.ONCE
    assert d.start_date == DAY
    assert d.created_by_id == "u1"
    assert d.notify_on_complete_user_id == "boss"
    assert d.reminder_time == time(8, 0)
    assert d.reminder_scope == ReminderScope.DUE_DATE_AND_OVERDUE
    assert d.show_until_completed is False
    # The source definition itself is untouched.
    assert store.require_definition(source.id).assignee_id == "u1"

    (sent,) = notifier.sent
    assert sent.recipient_id == "u2"
    assert sent.title == "New task assigned"
    assert sent.body == "You have a new task: Clean bay 2 (Bob)"
    assert sent.tag == "task-assigned"

    assert recorder.kinds == [ChangeKind.DEFINITION_CREATED, ChangeKind.INSTANCE_FORWARDED]


@pytest.mark.parametrize(
    "title, assignee, message",
    [
        ("  ", "u2", "Title is required."),
        ("Clean", "", "Select someone to assign to."),
    ],
)
def test_forward_validation(store: ChecklistStore, title: str, assignee: str, message: str) -> None:
    _, original = _source(store)

    with pytest.raises(ValidationError, match=message):
        forward(store, original.id, new_title=title, new_assignee_id=assignee, acting_user_id="u1")

    assert store.get_instance(original.id) is not None
    assert len(store.list_definitions()) == 1


def test_completed_item_cannot_be_forwarded(store: ChecklistStore, notifier: FakeNotifier) -> None:
    _, original = _source(store)
    done_at = datetime(2024, 3, 4, 15, 0, tzinfo=UTC)
    store.update_instance_completion(original.id, completed_at=done_at, completed_by_id="u1")

    with pytest.raises(ValidationError, match="Only outstanding items can be forwarded."):
        forward(
            store,
            original.id,
            new_title="Clean bay 2",
            new_assignee_id="u2",
            acting_user_id="u1",
            notifier=notifier,
        )

    kept = store.require_instance(original.id)
    assert kept.completed_at == done_at
    assert kept.completed_by_id == "u1"
    assert len(store.list_definitions()) == 1
    assert notifier.sent == []


def test_forward_is_all_or_nothing(store: ChecklistStore, notifier: FakeNotifier) -> None:
    _, original = _source(store)

    with pytest.raises(RuntimeError):
        forward(
            BrokenDeleteRepo(store),
            original.id,
            new_title="Clean bay 2",
            new_assignee_id="u2",
            acting_user_id="u1",
            notifier=notifier,
        )

    assert store.get_instance(original.id) is not None
    assert len(store.list_definitions()) == 1
    assert due_today(store, "u2", DAY).combined == []
    assert notifier.sent == []


def test_forward_notifier_failure_keeps_the_move(store: ChecklistStore) -> None:
    _, original = _source(store)
    result = forward(
        store,
        original.id,
        new_title="Clean bay 2",
        new_assignee_id="u2",
        acting_user_id="u1",
        notifier=FailingNotifier(),
    )
    assert store.get_instance(result.instance.id) is not None
    assert store.get_instance(original.id) is None
