# src/checklist_engine/checklist/notify.py

"""
Notification payloads and best-effort dispatch.

The engine only builds {recipient, title, body, url, tag} and hands it to a Notifier.
The tag is stable per logical event so a delivery layer can collapse retries;
nothing here deduplicates.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from ..core.ports import ChecklistRepo, Notifier
from .models import TaskDefinition, TaskInstance

logger = logging.getLogger(__name__)

DEFAULT_URL = "/checklist"

TEMPLATE_CHECKLIST_COMPLETED = "checklist_completed"
TEMPLATE_TASK_ASSIGNED = "task_assigned"
TEMPLATE_SCHEDULED_REMINDER = "scheduled_reminder"


@dataclass(frozen=True, slots=True)
class Notification:
    recipient_id: str
    title: str
    body: str
    url: str = DEFAULT_URL
    tag: str | None = None
    instance_id: int | None = None


def completion_recipients(definition: TaskDefinition) -> list[str]:
    """notify-user first, then the creator if flagged and not already listed."""
    recipients: list[str] = []
    if definition.notify_on_complete_user_id:
        recipients.append(definition.notify_on_complete_user_id)
    creator = definition.created_by_id
    if definition.notify_creator_on_complete and creator and creator not in recipients:
        recipients.append(creator)
    return recipients


def build_completion_notifications(
    definition: TaskDefinition,
    instance: TaskInstance,
    *,
    actor_name: str,
    url: str = DEFAULT_URL,
) -> list[Notification]:
    body = f"{actor_name} completed: {definition.title}"
    return [
        Notification(
            recipient_id=uid,
            title="Checklist completed",
            body=body,
            url=url,
            tag=f"checklist-{instance.id}",
            instance_id=instance.id,
        )
        for uid in completion_recipients(definition)
    ]


def build_assignment_notification(
    title: str,
    assignee_id: str,
    *,
    instance_id: int | None = None,
    url: str = DEFAULT_URL,
) -> Notification:
    return Notification(
        recipient_id=assignee_id,
        title="New task assigned",
        body=f"You have a new task: {title}",
        url=url,
        tag="task-assigned",
        instance_id=instance_id,
    )


def dispatch(
    notifier: Notifier | None,
    notifications: Iterable[Notification],
    *,
    repo: ChecklistRepo | None = None,
    template: str = TEMPLATE_CHECKLIST_COMPLETED,
    channel: str = "push",
) -> int:
    """
    Deliver each notification, never raising.

    Successful sends are recorded in the notification history when a repo is given.
    Returns the number of notifications handed off successfully.
    """
    if notifier is None:
        return 0

    sent = 0
    for n in notifications:
        try:
            notifier.notify(n)
        except Exception:
            logger.exception("notification delivery failed recipient=%s tag=%s", n.recipient_id, n.tag)
            continue

        sent += 1
        logger.info("Notification sent recipient=%s tag=%s", n.recipient_id, n.tag)

        if repo is None:
            continue
        try:
            repo.record_notification(
                recipient_id=n.recipient_id,
                template_type=template,
                title=n.title,
                body=n.body,
                channel=channel,
                instance_id=n.instance_id,
            )
        except Exception:
            logger.exception("record_notification failed recipient=%s", n.recipient_id)
    return sent


class LogNotifier:
    """
    Fallback notifier used when no transport is configured.

    Writes each notification to the log so local runs still show what would be sent.
    """

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            "[notify] to=%s title=%r body=%r tag=%s",
            notification.recipient_id,
            notification.title,
            notification.body,
            notification.tag,
        )
