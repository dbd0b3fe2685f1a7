# src/checklist_engine/checklist/due.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum

from ..core.calendar import add_days
from ..core.ports import ChecklistRepo
from .models import RepeatType, TaskInstance

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 30


@dataclass(slots=True)
class DueSet:
    """
    What an assignee should look at today.

    - today: instances scheduled on as_of, oldest assigned first
    - overdue: earlier incomplete instances of show-until-completed definitions
    """

    today: list[TaskInstance] = field(default_factory=list)
    overdue: list[TaskInstance] = field(default_factory=list)

    @property
    def combined(self) -> list[TaskInstance]:
        return [*self.overdue, *self.today]


def due_today(repo: ChecklistRepo, assignee_id: str, as_of: date) -> DueSet:
    if not assignee_id:
        return DueSet()
    today = repo.list_instances_on(assignee_id, as_of)
    overdue = repo.list_overdue(assignee_id, as_of)
    logger.debug(
        "Due set assignee=%s as_of=%s today=%d overdue=%d",
        assignee_id,
        as_of,
        len(today),
        len(overdue),
    )
    return DueSet(today=today, overdue=overdue)


def upcoming(
    repo: ChecklistRepo,
    assignee_id: str,
    as_of: date,
    limit: int = UPCOMING_LIMIT,
) -> list[TaskInstance]:
    """Instances strictly after as_of, ascending, capped at `limit` (display window)."""
    if not assignee_id:
        return []
    return repo.list_after(assignee_id, as_of, limit=max(0, int(limit)))


class OutstandingWindow(StrEnum):
    NEXT_DAY = "next_day"
    NEXT_WEEK = "next_week"
    NON_REPEATING = "non_repeating"


@dataclass(slots=True)
class OutstandingGroup:
    assignee_id: str
    instances: list[TaskInstance]

    @property
    def count(self) -> int:
        return len(self.instances)


def outstanding_by_person(
    repo: ChecklistRepo,
    as_of: date,
    window: OutstandingWindow = OutstandingWindow.NEXT_DAY,
) -> list[OutstandingGroup]:
    """
    Incomplete instances grouped per assignee, busiest first.

    next_day: tomorrow only; next_week: tomorrow..as_of+7;
    non_repeating: every open instance of a one-off definition.
    """
    tomorrow = add_days(as_of, 1)
    if window == OutstandingWindow.NON_REPEATING:
        instances = repo.list_outstanding(repeat_type=RepeatType.ONCE)
    elif window == OutstandingWindow.NEXT_WEEK:
        instances = repo.list_outstanding(start=tomorrow, end=add_days(as_of, 7))
    else:
        instances = repo.list_outstanding(start=tomorrow, end=tomorrow)

    groups: dict[str, list[TaskInstance]] = {}
    for inst in instances:
        groups.setdefault(inst.assignee_id, []).append(inst)

    out = [OutstandingGroup(assignee_id=k, instances=v) for k, v in groups.items()]
    out.sort(key=lambda g: g.count, reverse=True)
    return out
