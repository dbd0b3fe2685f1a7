# src/checklist_engine/checklist/completion.py

"""
Completion toggle for a single instance.

Incomplete -> Completed stamps completed_at/completed_by (and the pending note),
then runs two best-effort side effects: completion notifications and, for
days_after_completion rules, regeneration of the next instance.

Completed -> Incomplete clears the stamps, keeps the note and never retracts a
regenerated instance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from ..core.errors import ConflictError
from ..core.events import ChangeEvent, ChangeFeed, ChangeKind, publish
from ..core.ports import ChecklistRepo, Notifier
from .models import TaskDefinition, TaskInstance
from .notify import DEFAULT_URL, TEMPLATE_CHECKLIST_COMPLETED, build_completion_notifications, dispatch
from .recurrence import next_chained_date

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CompletionResult:
    instance: TaskInstance
    completed: bool
    next_instance: TaskInstance | None = None


def _clean_note(note: str | None) -> str | None:
    if note is None:
        return None
    note = note.strip()
    return note or None


def regenerate_next(
    repo: ChecklistRepo,
    definition: TaskDefinition,
    instance: TaskInstance,
    *,
    base_date: date | None = None,
) -> TaskInstance | None:
    """
    Create the next occurrence of a chained definition if it does not exist yet.

    The existence check and the insert are one conditional insert inside a
    transaction; a duplicate key means another actor already did it. Nothing is
    inserted once the chain already continues past this instance, so undoing
    and re-completing on a later day cannot fork it.
    """
    nxt = next_chained_date(definition, base_date or instance.scheduled_date)
    if nxt is None:
        return None

    try:
        with repo.transaction():
            created = repo.add_instance_if_absent(
                definition_id=definition.id,
                scheduled_date=nxt,
                assignee_id=definition.assignee_id,
                unless_later_than=instance.scheduled_date,
            )
    except ConflictError:
        created = None

    if created is None:
        logger.debug("Next instance already exists or chain moved on definition=%s date=%s", definition.id, nxt)
    else:
        logger.info(
            "Regenerated instance id=%s definition=%s date=%s assignee=%s",
            created.id,
            definition.id,
            nxt,
            created.assignee_id,
        )
    return created


def toggle_complete(
    repo: ChecklistRepo,
    instance_id: int,
    *,
    acting_user_id: str,
    now: datetime,
    note: str | None = None,
    completed_on: date | None = None,
    notifier: Notifier | None = None,
    changes: ChangeFeed | None = None,
    actor_name: str | None = None,
    url: str = DEFAULT_URL,
) -> CompletionResult:
    """
    Flip one instance between Incomplete and Completed.

    `completed_on` is the local calendar day of the completion; chained rules
    count their next date from it (falling back to the scheduled date).
    Store errors on the primary write propagate; side-effect failures are logged.
    """
    current = repo.require_instance(instance_id)

    if current.is_completed:
        updated = repo.update_instance_completion(
            current.id, completed_at=None, completed_by_id=None
        )
        logger.info("Instance reopened id=%s by=%s", updated.id, acting_user_id)
        publish(changes, ChangeEvent(ChangeKind.INSTANCE_REOPENED, updated.definition_id, updated.id))
        return CompletionResult(instance=updated, completed=False)

    if note is None:
        updated = repo.update_instance_completion(
            current.id, completed_at=now, completed_by_id=acting_user_id
        )
    else:
        updated = repo.update_instance_completion(
            current.id, completed_at=now, completed_by_id=acting_user_id, note=_clean_note(note)
        )
    logger.info("Instance completed id=%s by=%s date=%s", updated.id, acting_user_id, updated.scheduled_date)
    publish(changes, ChangeEvent(ChangeKind.INSTANCE_COMPLETED, updated.definition_id, updated.id))

    definition: TaskDefinition | None = None
    try:
        definition = repo.get_definition(updated.definition_id)
    except Exception:
        logger.exception("Could not load definition %s after completion", updated.definition_id)

    if definition is None:
        return CompletionResult(instance=updated, completed=True)

    notifications = build_completion_notifications(
        definition, updated, actor_name=actor_name or acting_user_id, url=url
    )
    if notifications:
        dispatch(notifier, notifications, repo=repo, template=TEMPLATE_CHECKLIST_COMPLETED)

    next_instance: TaskInstance | None = None
    try:
        next_instance = regenerate_next(repo, definition, updated, base_date=completed_on)
    except Exception:
        logger.exception("Chained regeneration failed definition=%s", definition.id)

    if next_instance is not None:
        publish(changes, ChangeEvent(ChangeKind.INSTANCE_CREATED, definition.id, next_instance.id))

    return CompletionResult(instance=updated, completed=True, next_instance=next_instance)


def save_note(
    repo: ChecklistRepo,
    instance_id: int,
    note: str | None,
    *,
    changes: ChangeFeed | None = None,
) -> TaskInstance:
    updated = repo.update_instance_note(instance_id, _clean_note(note))
    publish(changes, ChangeEvent(ChangeKind.INSTANCE_NOTE, updated.definition_id, updated.id))
    return updated
