# src/checklist_engine/checklist/forward.py

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..core.events import ChangeEvent, ChangeFeed, ChangeKind, publish
from ..core.errors import ValidationError
from ..core.ports import ChecklistRepo, Notifier
from .models import DefinitionDraft, RepeatRule, TaskDefinition, TaskInstance
from .notify import DEFAULT_URL, TEMPLATE_TASK_ASSIGNED, build_assignment_notification, dispatch

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ForwardResult:
    definition: TaskDefinition
    instance: TaskInstance
    removed_instance_id: int


def _forward_draft(
    source: TaskDefinition | None,
    instance: TaskInstance,
    title: str,
    assignee_id: str,
) -> DefinitionDraft:
    # Notify/reminder settings carry over verbatim; a vanished source falls back to
    # "show until completed" so the forwarded item cannot silently expire.
    if source is None:
        return DefinitionDraft(
            title=title,
            assignee_id=assignee_id,
            rule=RepeatRule.once(),
            start_date=instance.scheduled_date,
            show_until_completed=True,
        )
    return DefinitionDraft(
        title=title,
        assignee_id=assignee_id,
        rule=RepeatRule.once(),
        start_date=instance.scheduled_date,
        show_until_completed=source.show_until_completed,
        notify_on_complete_user_id=source.notify_on_complete_user_id,
        notify_creator_on_complete=source.notify_creator_on_complete,
        reminder_time=source.reminder_time,
        reminder_scope=source.reminder_scope,
    )


def forward(
    repo: ChecklistRepo,
    instance_id: int,
    *,
    new_title: str,
    new_assignee_id: str,
    acting_user_id: str,
    notifier: Notifier | None = None,
    changes: ChangeFeed | None = None,
    url: str = DEFAULT_URL,
) -> ForwardResult:
    """
    Redirect an outstanding instance to another person as a one-off task.

    The new definition, its instance and the removal of the original are written
    in a single store transaction: either all three happen or none does.
    """
    title = (new_title or "").strip()
    assignee = (new_assignee_id or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    if not assignee:
        raise ValidationError("Select someone to assign to.")

    with repo.transaction():
        original = repo.require_instance(instance_id)
        if original.is_completed:
            raise ValidationError("Only outstanding items can be forwarded.")
        source = repo.get_definition(original.definition_id)
        draft = _forward_draft(source, original, title, assignee)
        draft.validate()

        definition = repo.add_definition(draft, created_by_id=acting_user_id)
        new_instance = repo.add_instance(
            definition_id=definition.id,
            scheduled_date=original.scheduled_date,
            assignee_id=assignee,
        )
        repo.delete_instance(original.id)

    logger.info(
        "Forwarded instance id=%s -> id=%s definition=%s date=%s assignee=%s",
        original.id,
        new_instance.id,
        definition.id,
        new_instance.scheduled_date,
        assignee,
    )

    publish(changes, ChangeEvent(ChangeKind.DEFINITION_CREATED, definition.id, new_instance.id))
    publish(changes, ChangeEvent(ChangeKind.INSTANCE_FORWARDED, original.definition_id, original.id))

    dispatch(
        notifier,
        [build_assignment_notification(title, assignee, instance_id=new_instance.id, url=url)],
        repo=repo,
        template=TEMPLATE_TASK_ASSIGNED,
    )

    return ForwardResult(definition=definition, instance=new_instance, removed_instance_id=original.id)
