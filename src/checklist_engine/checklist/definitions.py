# src/checklist_engine/checklist/definitions.py

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from ..core.errors import ValidationError
from ..core.events import ChangeEvent, ChangeFeed, ChangeKind, publish
from ..core.ports import ChecklistRepo, Notifier
from .models import DefinitionDraft, RepeatRule, TaskDefinition, TaskInstance
from .notify import DEFAULT_URL, TEMPLATE_TASK_ASSIGNED, build_assignment_notification, dispatch
from .recurrence import expand

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset(f.name for f in dataclasses.fields(DefinitionDraft))


@dataclass(slots=True)
class CreatedDefinition:
    definition: TaskDefinition
    instances_created: int


def draft_from(definition: TaskDefinition) -> DefinitionDraft:
    return DefinitionDraft(
        title=definition.title,
        assignee_id=definition.assignee_id,
        rule=definition.rule,
        start_date=definition.start_date,
        end_date=definition.end_date,
        show_until_completed=definition.show_until_completed,
        notify_on_complete_user_id=definition.notify_on_complete_user_id,
        notify_creator_on_complete=definition.notify_creator_on_complete,
        reminder_time=definition.reminder_time,
        reminder_scope=definition.reminder_scope,
    )


def create_definition(
    repo: ChecklistRepo,
    draft: DefinitionDraft,
    *,
    created_by: str,
    horizon_bound: int | None = None,
    changes: ChangeFeed | None = None,
) -> CreatedDefinition:
    """
    Validate and store a definition together with its pre-generated instances.

    Weekly rules get `horizon_bound` instances per weekday; once and
    days-after-completion rules get the start-date instance only.
    """
    draft.validate()
    clean = draft.normalized()

    with repo.transaction():
        definition = repo.add_definition(clean, created_by_id=created_by)
        occurrences = expand(definition, horizon_bound)
        created = repo.add_instances(
            definition.id, ((o.scheduled_date, o.assignee_id) for o in occurrences)
        )

    logger.info(
        "Definition created id=%s rule=%s assignee=%s instances=%d",
        definition.id,
        definition.rule.describe(),
        definition.assignee_id,
        created,
    )
    publish(changes, ChangeEvent(ChangeKind.DEFINITION_CREATED, definition.id))
    return CreatedDefinition(definition=definition, instances_created=created)


def edit_definition(
    repo: ChecklistRepo,
    definition_id: int,
    *,
    changes: ChangeFeed | None = None,
    **fields: Any,
) -> TaskDefinition:
    """
    Update selected fields of a definition.

    Existing instances are left alone: a new assignee or rule applies to
    instances created from now on, older ones keep their own assignee.
    """
    unknown = sorted(set(fields) - _EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"unknown definition field(s): {', '.join(unknown)}")

    current = repo.require_definition(definition_id)
    draft = dataclasses.replace(draft_from(current), **fields)
    draft.validate()

    updated = repo.update_definition(definition_id, draft.normalized())
    logger.info("Definition updated id=%s fields=%s", definition_id, sorted(fields))
    publish(changes, ChangeEvent(ChangeKind.DEFINITION_UPDATED, definition_id))
    return updated


def delete_definition(
    repo: ChecklistRepo,
    definition_id: int,
    *,
    changes: ChangeFeed | None = None,
) -> int:
    """Remove a definition and every instance it owns. Returns the instance count removed."""
    removed = repo.delete_definition(definition_id)
    logger.info("Definition deleted id=%s instances_removed=%d", definition_id, removed)
    publish(changes, ChangeEvent(ChangeKind.DEFINITION_DELETED, definition_id))
    return removed


@dataclass(slots=True)
class SentTask:
    definition: TaskDefinition
    instance: TaskInstance
    notified: bool


def send_task(
    repo: ChecklistRepo,
    *,
    title: str,
    assignee_id: str,
    created_by: str,
    as_of: date,
    show_until_completed: bool = True,
    notify_on_complete_user_id: str | None = None,
    notify_creator_on_complete: bool = False,
    notifier: Notifier | None = None,
    changes: ChangeFeed | None = None,
    url: str = DEFAULT_URL,
) -> SentTask:
    """One-off task for today, pushed to the assignee right away."""
    draft = DefinitionDraft(
        title=(title or "").strip(),
        assignee_id=(assignee_id or "").strip(),
        rule=RepeatRule.once(),
        start_date=as_of,
        show_until_completed=show_until_completed,
        notify_on_complete_user_id=notify_on_complete_user_id or None,
        notify_creator_on_complete=notify_creator_on_complete,
    )
    draft.validate()

    with repo.transaction():
        definition = repo.add_definition(draft, created_by_id=created_by)
        instance = repo.add_instance(
            definition_id=definition.id,
            scheduled_date=as_of,
            assignee_id=definition.assignee_id,
        )

    logger.info("Task sent definition=%s instance=%s to=%s", definition.id, instance.id, definition.assignee_id)
    publish(changes, ChangeEvent(ChangeKind.DEFINITION_CREATED, definition.id, instance.id))

    sent = dispatch(
        notifier,
        [build_assignment_notification(definition.title, definition.assignee_id, instance_id=instance.id, url=url)],
        repo=repo,
        template=TEMPLATE_TASK_ASSIGNED,
    )
    return SentTask(definition=definition, instance=instance, notified=sent > 0)
